"""
PhotoDesk Backend: Records Routes
===================================

What:  Photographer and photo-record collections: save, list, status, CSV
       downloads and clear-all.
How:   Thin wrappers over RecordsService and export_service. Storage
       failures surface as StorageError through the global handler.
"""

import logging

from fastapi import APIRouter
from fastapi.responses import Response

from photodesk.schemas.common import ErrorResponse
from photodesk.schemas.records import (
    CatalogStatusResponse,
    ClearDataResponse,
    PhotographerListResponse,
    PhotoRecordListResponse,
    SaveCollectionRequest,
    SavePhotographersResponse,
    SavePhotoRecordsResponse,
)
from photodesk.services import export_service
from photodesk.services.export_service import CsvExport
from photodesk.services.records_service import records_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Records"])

_STORAGE_ERROR = {500: {"description": "Data file could not be written", "model": ErrorResponse}}


def _csv_response(export: CsvExport) -> Response:
    return Response(
        content=export.content,
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f"attachment; filename={export.filename}"},
    )


# ── Photographers ─────────────────────────────────────────────────────────


@router.post(
    "/save-photographers",
    response_model=SavePhotographersResponse,
    responses=_STORAGE_ERROR,
    summary="Save the photographer list",
    description="`replace` (default) overwrites the list, `append` adds to it.",
)
async def save_photographers(body: SaveCollectionRequest) -> SavePhotographersResponse:
    updated = await records_service.save_photographers(body.data, body.action)
    return SavePhotographersResponse(
        message=f"{len(body.data)} record(s) saved successfully",
        total_records=len(updated),
        file_path=str(records_service.photographers.path),
    )


@router.get("/photographers", response_model=PhotographerListResponse)
async def list_photographers() -> PhotographerListResponse:
    data = await records_service.list_photographers()
    return PhotographerListResponse(data=data, total_records=len(data))


@router.get(
    "/status",
    response_model=CatalogStatusResponse,
    response_model_exclude_none=True,
    summary="Photographers file status",
)
async def catalog_status() -> CatalogStatusResponse:
    ok, file_status = await records_service.catalog_status()
    return CatalogStatusResponse(success=ok, file=file_status)


@router.get("/download-csv", response_class=Response, summary="Photographers as CSV")
async def download_photographers_csv() -> Response:
    rows = await records_service.list_photographers()
    return _csv_response(export_service.photographers_csv(rows))


@router.get(
    "/photographers/download-csv",
    response_class=Response,
    summary="Photographer contact information as CSV",
)
async def download_photographer_info_csv() -> Response:
    rows = await records_service.list_photographers()
    return _csv_response(export_service.photographer_info_csv(rows))


# ── Photo Records ─────────────────────────────────────────────────────────


@router.post(
    "/save-photo-records",
    response_model=SavePhotoRecordsResponse,
    responses=_STORAGE_ERROR,
    summary="Save photo records",
)
async def save_photo_records(body: SaveCollectionRequest) -> SavePhotoRecordsResponse:
    updated = await records_service.save_photo_records(body.data, body.action)
    return SavePhotoRecordsResponse(
        message=f"{len(body.data)} photo record(s) saved successfully",
        data=updated,
        sources=records_service.sources(updated),
    )


@router.get("/photo-records", response_model=PhotoRecordListResponse)
async def list_photo_records() -> PhotoRecordListResponse:
    records = await records_service.list_photo_records()
    return PhotoRecordListResponse(
        count=len(records),
        records=records,
        sources=records_service.sources(records),
    )


@router.get("/photo-records/download-csv", response_class=Response, summary="Photo records as CSV")
async def download_photo_records_csv() -> Response:
    rows = await records_service.list_photo_records()
    return _csv_response(export_service.photo_records_csv(rows))


@router.post(
    "/clear-all-data",
    response_model=ClearDataResponse,
    responses=_STORAGE_ERROR,
    summary="Delete all photographers and photo records",
)
async def clear_all_data() -> ClearDataResponse:
    await records_service.clear_all()
    return ClearDataResponse(message="All data cleared successfully")
