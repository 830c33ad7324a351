"""
PhotoDesk Backend: Image Proxy Routes
=======================================

What:  POST /api/extract-image-url finds the photo on a trakel.org species
       page; GET /api/image-proxy relays its bytes with permissive CORS.

Error reporting differs between the two:
    - extract-image-url answers 200 with success=false and a message, the
      frontend then keeps the link as typed.
    - image-proxy is loaded by <img> tags, so failures use the regular
      error statuses (400, 502, 503).
"""

import logging
from urllib.parse import quote

from fastapi import APIRouter, Query, Request
from fastapi.responses import Response

from photodesk.config import settings
from photodesk.exceptions import PhotoDeskError
from photodesk.schemas.common import ErrorResponse
from photodesk.schemas.proxy import ExtractImageRequest, ExtractImageResponse
from photodesk.services.image_proxy_service import image_proxy_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Image Proxy"])


def proxy_url_for(direct_url: str, base_url: str) -> str:
    return f"{base_url.rstrip('/')}/api/image-proxy?url={quote(direct_url, safe='')}"


@router.post(
    "/extract-image-url",
    response_model=ExtractImageResponse,
    response_model_exclude_none=True,
    summary="Find the photo on a trakel.org page",
)
async def extract_image_url(body: ExtractImageRequest, request: Request) -> ExtractImageResponse:
    try:
        direct_url = await image_proxy_service.extract_image_url(body.trakel_url)
    except PhotoDeskError as e:
        logger.warning("Image extraction failed for %s: %s", body.trakel_url, e.message)
        return ExtractImageResponse(success=False, message=e.message, original_url=body.trakel_url)

    base_url = settings.public_base_url or str(request.base_url)
    return ExtractImageResponse(
        success=True,
        image_url=proxy_url_for(direct_url, base_url),
        original_url=body.trakel_url,
        direct_url=direct_url,
    )


@router.get(
    "/image-proxy",
    response_class=Response,
    responses={
        200: {"content": {"image/jpeg": {}}, "description": "Image bytes"},
        400: {"description": "Missing or disallowed URL", "model": ErrorResponse},
        502: {"description": "Image source failed", "model": ErrorResponse},
        503: {"description": "Image source circuit open", "model": ErrorResponse},
    },
    summary="Relay an image from the source site",
)
async def image_proxy(url: str = Query(default="", description="Direct image URL")) -> Response:
    image = await image_proxy_service.fetch_image(url)
    return Response(
        content=image.content,
        media_type=image.content_type,
        headers={
            "Access-Control-Allow-Origin": "*",
            "Cache-Control": "public, max-age=86400",
        },
    )
