"""
PhotoDesk Backend: Collection Schemas
=======================================

What:  Request/response models for the photographer, photo-record and
       print-history collections.
How:   Collection entries stay free-form dicts: clients own their shape
       (CSV import rows, butterfly records) and the store rewrites them as-is.
"""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field


class SaveCollectionRequest(BaseModel):
    """
    Body of POST /api/save-photographers and POST /api/save-photo-records.

    action:
        replace (default): the file is overwritten with `data`
        append: `data` is appended to the existing entries
    """

    data: List[Dict[str, Any]] = Field(default_factory=list)
    action: Literal["replace", "append"] = "replace"


class CollectionSources(BaseModel):
    total: int
    static: int
    local: int = 0


class SavePhotographersResponse(BaseModel):
    success: bool = True
    message: str
    total_records: int = Field(alias="totalRecords")
    file_path: str = Field(alias="filePath")

    model_config = {"populate_by_name": True}


class PhotographerListResponse(BaseModel):
    success: bool = True
    data: List[Dict[str, Any]]
    total_records: int = Field(alias="totalRecords")

    model_config = {"populate_by_name": True}


class SavePhotoRecordsResponse(BaseModel):
    success: bool = True
    message: str
    data: List[Dict[str, Any]]
    sources: CollectionSources


class PhotoRecordListResponse(BaseModel):
    success: bool = True
    count: int
    records: List[Dict[str, Any]]
    sources: CollectionSources


class CollectionFileStatus(BaseModel):
    path: str
    exists: bool
    size: Optional[int] = None
    last_modified: Optional[datetime] = Field(default=None, alias="lastModified")
    record_count: Optional[int] = Field(default=None, alias="recordCount")
    error: Optional[str] = None

    model_config = {"populate_by_name": True}


class CatalogStatusResponse(BaseModel):
    """Returned by GET /api/status for the photographers file."""

    success: bool
    file: CollectionFileStatus


class ClearDataResponse(BaseModel):
    success: bool = True
    message: str


class PrintCertificateRequest(BaseModel):
    # Both are required; checked in the service so a missing value is a 400
    photographer_id: Optional[str] = Field(default=None, alias="photographerId")
    photographer_name: Optional[str] = Field(default=None, alias="photographerName")

    model_config = {"populate_by_name": True, "coerce_numbers_to_str": True}


class PrintRecord(BaseModel):
    id: str
    photographer_id: str = Field(alias="photographerId")
    photographer_name: str = Field(alias="photographerName")
    printed_at: datetime = Field(alias="printedAt")

    model_config = {"populate_by_name": True, "coerce_numbers_to_str": True}


class PrintCertificateResponse(BaseModel):
    success: bool = True
    message: str
    record: PrintRecord


class PrintHistoryResponse(BaseModel):
    success: bool = True
    count: int
    history: List[Dict[str, Any]]
