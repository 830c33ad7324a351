"""
PhotoDesk Backend: Photo Upload Routes
========================================

What:  Upload endpoint of the ingestion pipeline plus the photo listings and
       the file server for normalized images.
Who:   Called by the photographer detail page of the frontend.

Request Flow (POST /api/upload-photos):
    1. Client sends multipart/form-data: photographerName, photographerId?,
       photos (repeated)
    2. Each UploadFile becomes an UploadedBlob. Files whose declared size is
       already over the limit are not read into memory.
    3. IngestionPipeline validates, stages, normalizes and catalogs
    4. 200 with the new PhotoRecords, or the IngestionError body
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, File, Form, Request, UploadFile
from fastapi.responses import FileResponse

from photodesk.config import settings
from photodesk.exceptions import NotFoundError
from photodesk.schemas.common import ErrorResponse
from photodesk.schemas.photo import (
    PhotographerPhotosResponse,
    UploadedBlob,
    UploadedPhotosResponse,
    UploadRequest,
    UploadResponse,
)
from photodesk.services.ingestion_service import UPLOADS_URL_PREFIX, ingestion_pipeline
from photodesk.services.records_service import records_service

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Photos"])


async def _to_blob(upload: UploadFile, max_size: int) -> UploadedBlob:
    declared = upload.size
    if declared is not None and declared > max_size:
        # Rejected by the validation gate from the declared size alone
        content = b""
    else:
        content = await upload.read()
    await upload.close()
    return UploadedBlob(
        filename=upload.filename or "",
        media_type=upload.content_type,
        size=declared if declared is not None else len(content),
        content=content,
    )


@router.post(
    "/api/upload-photos",
    response_model=UploadResponse,
    responses={
        400: {"description": "Missing photographer, no photos or bad format", "model": ErrorResponse},
        422: {"description": "A photo could not be decoded or encoded", "model": ErrorResponse},
        500: {"description": "Storage failure", "model": ErrorResponse},
    },
    summary="Upload photos for a photographer",
    description=(
        "Upload JPG/JPEG/PNG photos (max 10MB each). Every photo is cropped to "
        "the standard print tile and stored under the photographer's folder. "
        "The request succeeds or fails as a whole."
    ),
)
async def upload_photos(
    photographer_name: Optional[str] = Form(default=None, alias="photographerName"),
    photographer_id: Optional[str] = Form(default=None, alias="photographerId"),
    photos: Optional[List[UploadFile]] = File(default=None, description="Photo files"),
) -> UploadResponse:
    standard = settings.photo_standard
    blobs = [await _to_blob(upload, standard.max_file_size) for upload in photos or []]

    result = await ingestion_pipeline.ingest(
        UploadRequest(owner_name=photographer_name, owner_id=photographer_id, files=blobs)
    )

    return UploadResponse(
        message=(
            f"{len(result.photos)} photo(s) uploaded and resized to the "
            f"{result.standard} standard."
        ),
        photos=result.photos,
        standard=result.standard,
    )


@router.get(
    "/api/photos/{photographer_name}",
    response_model=PhotographerPhotosResponse,
    summary="Catalog entries of one photographer",
)
async def photographer_photos(photographer_name: str) -> PhotographerPhotosResponse:
    photos = await records_service.photos_for_photographer(photographer_name)
    return PhotographerPhotosResponse(
        photographer_name=photographer_name,
        count=len(photos),
        photos=photos,
    )


@router.get(
    "/api/uploaded-photos/{photographer_name}",
    response_model=UploadedPhotosResponse,
    response_model_exclude_none=True,
    summary="Photo files stored for one photographer",
)
async def uploaded_photos(photographer_name: str, request: Request) -> UploadedPhotosResponse:
    base_url = settings.public_base_url or str(request.base_url)
    files = await records_service.uploaded_files(photographer_name, base_url)
    return UploadedPhotosResponse(
        count=len(files),
        photos=files,
        photographer_name=photographer_name,
        message=None if files else "No uploaded photos found for this photographer.",
    )


@router.get(
    UPLOADS_URL_PREFIX + "/{file_path:path}",
    response_class=FileResponse,
    include_in_schema=False,
)
async def serve_upload(file_path: str) -> FileResponse:
    """Serve a normalized image; paths escaping the uploads root are a 404."""
    root = settings.uploads_root
    target = (root / file_path).resolve()
    if not target.is_relative_to(root) or not target.is_file():
        raise NotFoundError(resource="file", resource_id=file_path)
    return FileResponse(target)
