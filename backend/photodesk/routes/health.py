"""
PhotoDesk Backend: Health Check Route
=======================================

What:  Health endpoint for container health checks and monitoring.
How:   Probes what an upload needs (writable uploads/data directories and
       a readable catalog) plus the image proxy circuit state.

Status levels:
    - healthy:   everything operational (HTTP 200)
    - degraded:  catalog corrupt or proxy circuit open; uploads still work
                 (HTTP 200)
    - unhealthy: uploads or data directory not writable (HTTP 503)
"""

import logging
import os
import time

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from photodesk import __version__
from photodesk.config import settings
from photodesk.exceptions import CatalogCorruptError, StorageError
from photodesk.schemas.common import HealthResponse
from photodesk.services.catalog_service import photo_record_catalog
from photodesk.services.image_proxy_service import CircuitBreaker, image_proxy_service

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

_start_time = time.time()


def _writable(path) -> bool:
    return path.is_dir() and os.access(path, os.W_OK)


@router.get(
    "/health",
    response_model=HealthResponse,
    responses={503: {"model": HealthResponse, "description": "Storage not writable"}},
    summary="Service health check",
)
async def health_check():
    overall = "healthy"

    # ── Storage ───────────────────────────────────────────────────────────
    storage_status = "writable"
    if not (_writable(settings.uploads_root) and _writable(settings.data_root)):
        storage_status = "unwritable"
        overall = "unhealthy"
        logger.warning("Health check: storage directories are not writable")

    # ── Catalog ───────────────────────────────────────────────────────────
    catalog_status = "readable"
    try:
        await photo_record_catalog.collection.read_strict()
    except FileNotFoundError:
        catalog_status = "missing"
    except CatalogCorruptError as e:
        catalog_status = "corrupt"
        overall = "degraded" if overall != "unhealthy" else overall
        logger.warning("Health check: catalog corrupt: %s", e.context.get("reason"))
    except StorageError as e:
        catalog_status = "unreadable"
        overall = "unhealthy"
        logger.warning("Health check: catalog unreadable: %s", e.message)

    # ── Image proxy circuit ───────────────────────────────────────────────
    proxy_status = image_proxy_service.state
    if proxy_status == CircuitBreaker.OPEN:
        overall = "degraded" if overall != "unhealthy" else overall

    body = HealthResponse(
        status=overall,
        version=__version__,
        storage=storage_status,
        catalog=catalog_status,
        image_proxy=proxy_status,
        uptime_seconds=round(time.time() - _start_time, 2),
    )
    if overall == "unhealthy":
        return JSONResponse(status_code=503, content=body.model_dump())
    return body
