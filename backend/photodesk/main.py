"""
PhotoDesk Backend: FastAPI Application Factory
================================================

What:  Creates and configures the FastAPI application instance.
How:   create_app() registers middleware, exception handlers and routers;
       lifespan() sets up logging and the public/ tree.
Who:   uvicorn (`uvicorn photodesk.main:app --port 3001`) and the tests.

Application Architecture:
    ┌──────────────────────────────────────────────────────────┐
    │                       FastAPI App                        │
    │                                                          │
    │  Middleware: Request ID → Logging → Rate Limit → GZip →  │
    │              CORS                                        │
    │                                                          │
    │  Routes: uploads │ records │ print_history │ proxy │     │
    │          health                                          │
    │                                                          │
    │  Exception Handlers:                                     │
    │  Validation→400 │ NotFound→404 │ Codec→422 │ Storage→500 │
    │  Ingestion→cause │ Upstream→502 │ Circuit→503 │ Rate→429 │
    └──────────────────────────────────────────────────────────┘

Lifecycle:
    Startup:  logging → directories → collection files
    Shutdown: log only (no pooled resources; httpx clients are per call)
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from photodesk import __version__
from photodesk.config import settings
from photodesk.exceptions import (
    CircuitBreakerOpenError,
    IngestionError,
    PhotoDeskError,
    RateLimitExceededError,
    StorageError,
)
from photodesk.middleware.logging import RequestLoggingMiddleware
from photodesk.middleware.rate_limit import RateLimitMiddleware
from photodesk.middleware.request_id import RequestIDMiddleware, request_id_var
from photodesk.routes import health, print_history, proxy, records, uploads
from photodesk.services.records_service import records_service

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════


def setup_logging() -> None:
    """
    Configure the root logger once, at startup.

    Format: 2024-06-10T08:13:20 [INFO] photodesk.services.ingestion_service: ...
    """
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    # Third-party loggers that log every operation
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("PIL").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan (Startup & Shutdown)
# ══════════════════════════════════════════════════════════════════════════


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # ── Startup ───────────────────────────────────────────────────────────
    setup_logging()
    logger.info("=" * 60)
    logger.info("PhotoDesk Backend starting up...")

    try:
        settings.ensure_directories()
        await records_service.ensure_files()
    except (OSError, StorageError) as e:
        # Keep serving: /health reports the storage problem
        logger.error("Could not prepare the public directory tree: %s", str(e))

    logger.info("Uploads directory: %s", settings.uploads_root)
    logger.info("Data directory: %s", settings.data_root)
    logger.info("Photo standard: %s %s q%d", settings.photo_standard.tag, settings.photo_format, settings.photo_quality)
    logger.info("Server ready at http://%s:%d", settings.backend_host, settings.backend_port)
    logger.info("=" * 60)

    yield

    # ── Shutdown ──────────────────────────────────────────────────────────
    logger.info("PhotoDesk Backend shut down.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════


def error_response(
    exc: PhotoDeskError,
    details: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
    **extra: Any,
) -> JSONResponse:
    """Build the shared error body: {success, error, message, details?, stage?, cause?, request_id}."""
    content: Dict[str, Any] = {
        "success": False,
        "error": exc.error_code,
        "message": exc.message,
    }
    if details:
        content["details"] = details
    content.update({key: value for key, value in extra.items() if value is not None})
    content["request_id"] = request_id_var.get("")
    return JSONResponse(status_code=exc.status_code, content=content, headers=headers)


def _public_context(exc: PhotoDeskError) -> Optional[Dict[str, Any]]:
    # Storage contexts hold file system paths and OS errors: logged, never returned
    if isinstance(exc, StorageError):
        return None
    return {key: value for key, value in exc.context.items() if key != "stage"} or None


def register_exception_handlers(app: FastAPI) -> None:
    """
    Map the PhotoDeskError hierarchy to HTTP responses.

    Each exception class carries its status and error code, so one handler
    covers most of them; the ones adding headers or fields get their own.
    Stack traces and file system paths are logged only.
    """

    @app.exception_handler(IngestionError)
    async def handle_ingestion_error(request: Request, exc: IngestionError):
        rid = request_id_var.get("")
        cause = exc.cause
        log = logger.error if exc.status_code >= 500 else logger.warning
        log("[%s] Upload failed in stage %s: %s | Context: %s", rid, exc.stage, exc.message, exc.context)
        return error_response(
            exc,
            details=_public_context(cause),
            stage=exc.stage,
            cause=None if isinstance(cause, StorageError) else cause.context.get("error", cause.message),
        )

    @app.exception_handler(RateLimitExceededError)
    async def handle_rate_limit(request: Request, exc: RateLimitExceededError):
        return error_response(
            exc, details=exc.context, headers={"Retry-After": str(exc.retry_after)}
        )

    @app.exception_handler(CircuitBreakerOpenError)
    async def handle_circuit_breaker(request: Request, exc: CircuitBreakerOpenError):
        logger.warning("[%s] Circuit breaker open: %s", request_id_var.get(""), exc.message)
        return error_response(
            exc,
            details={"recovery_time": exc.recovery_time},
            headers={"Retry-After": str(exc.recovery_time)},
        )

    @app.exception_handler(PhotoDeskError)
    async def handle_photodesk_error(request: Request, exc: PhotoDeskError):
        rid = request_id_var.get("")
        if exc.status_code >= 500:
            logger.error("[%s] %s: %s | Context: %s", rid, type(exc).__name__, exc.message, exc.context)
        else:
            logger.warning("[%s] %s: %s", rid, type(exc).__name__, exc.message)
        return error_response(exc, details=_public_context(exc))

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        rid = request_id_var.get("")
        logger.error("[%s] Unexpected error: %s", rid, str(exc), exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "error": "internal_server_error",
                "message": "An unexpected error occurred. Please try again.",
                "request_id": rid,
            },
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════


def create_app() -> FastAPI:
    app = FastAPI(
        title="PhotoDesk API",
        description=(
            "Photographer registry and photo desk for the butterfly photo contest: "
            "uploads normalized to print tiles, CSV exports, certificate print history "
            "and a trakel.org image proxy."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # ── Register Middleware ───────────────────────────────────────────────
    # Last added runs first: RequestID → Logging → RateLimit → GZip → CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "Retry-After", "Content-Disposition"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(RateLimitMiddleware)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)

    # ── Register Exception Handlers ───────────────────────────────────────
    register_exception_handlers(app)

    # ── Register Routes ───────────────────────────────────────────────────
    app.include_router(uploads.router)
    app.include_router(records.router)
    app.include_router(print_history.router)
    app.include_router(proxy.router)
    app.include_router(health.router)

    return app


app = create_app()
