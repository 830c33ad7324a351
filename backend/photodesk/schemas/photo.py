"""
PhotoDesk Backend: Photo Schemas
==================================

What:  Pydantic models for the ingestion pipeline and the photo endpoints.
How:   PhotoStandard and PhotoRecord are frozen (immutable once built).
       PhotoRecord serializes with camelCase keys, the on-disk catalog and
       the API share the same shape.
Who:   Used by the ingestion pipeline, the photo record catalog and routes.
"""

from datetime import datetime
from pathlib import Path
from typing import List, Optional, Tuple

from pydantic import BaseModel, Field, field_validator

# Pillow encoder names for each supported output format tag
PILLOW_FORMATS = {"jpeg": "JPEG", "png": "PNG", "webp": "WEBP"}


# ══════════════════════════════════════════════════════════════════════════
# Domain Models
# ══════════════════════════════════════════════════════════════════════════


class PhotoStandard(BaseModel):
    """
    What:  Process-wide output geometry and input acceptance rules.
    Who:   Built once from settings (settings.photo_standard).
    """

    width: int = Field(gt=0)
    height: int = Field(gt=0)
    quality: int = Field(ge=1, le=100)
    format: str
    allowed_extensions: Tuple[str, ...]
    allowed_media_types: Tuple[str, ...]
    max_file_size: int = Field(gt=0)

    model_config = {"frozen": True}

    @property
    def tag(self) -> str:
        """Standard-size tag stored on every record, e.g. '240x320'."""
        return f"{self.width}x{self.height}"

    @property
    def size(self) -> Tuple[int, int]:
        return self.width, self.height

    @property
    def pillow_format(self) -> str:
        return PILLOW_FORMATS[self.format]

    @property
    def accepted_formats_label(self) -> str:
        """Human-readable list used in validation messages: 'JPG, JPEG, PNG'."""
        return ", ".join(self.allowed_extensions).upper()

    def accepts_extension(self, filename: str) -> bool:
        ext = Path(filename).suffix.lower().lstrip(".")
        return ext in self.allowed_extensions

    def accepts_media_type(self, media_type: Optional[str]) -> bool:
        return (media_type or "").lower() in self.allowed_media_types


class UploadedBlob(BaseModel):
    """One raw file as delivered by the transport layer."""

    filename: str
    media_type: Optional[str] = None
    size: int = Field(ge=0)
    content: bytes


class UploadRequest(BaseModel):
    """
    What:  Input of one ingestion call.
    How:   Shape only; business validation (blank owner, empty file list,
           formats) happens in the validation gate so it maps to our own
           ValidationError instead of a 422.
    """

    owner_name: Optional[str] = None
    owner_id: Optional[str] = None
    files: List[UploadedBlob] = Field(default_factory=list)


class PhotoRecord(BaseModel):
    """
    What:  Metadata of one normalized photo, appended to the catalog.
    When:  Created exactly once per successfully processed input file.

    JSON shape (catalog and API):
        {
            "id": "photo_1718000000000-3f2a9c1b7d4e",
            "originalName": "IMG_0042.jpg",
            "fileName": "foto_1718000000000-3f2a9c1b7d4e.jpeg",
            "photographerName": "Ali",
            "photographerId": "17",
            "path": "/uploads/fotograflar/Ali/foto_....jpeg",
            "fullPath": "/srv/public/uploads/fotograflar/Ali/foto_....jpeg",
            "size": 18234, "width": 240, "height": 320, "format": "jpeg",
            "uploadedAt": "2024-06-10T08:13:20.000000Z",
            "standard": "240x320"
        }
    """

    id: str
    original_name: str = Field(alias="originalName")
    file_name: str = Field(alias="fileName")
    photographer_name: str = Field(alias="photographerName")
    photographer_id: Optional[str] = Field(default=None, alias="photographerId")
    path: str
    full_path: str = Field(alias="fullPath")
    size: int
    width: int
    height: int
    format: str
    uploaded_at: datetime = Field(alias="uploadedAt")
    standard: str

    model_config = {"frozen": True, "populate_by_name": True}

    @field_validator("photographer_id", mode="before")
    @classmethod
    def coerce_photographer_id(cls, v):
        # Older catalog entries and JSON clients send numeric ids
        if isinstance(v, int):
            return str(v)
        return v

    def to_catalog_entry(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


# ══════════════════════════════════════════════════════════════════════════
# Response Models
# ══════════════════════════════════════════════════════════════════════════


class UploadResponse(BaseModel):
    """Returned by POST /api/upload-photos."""

    success: bool = True
    message: str
    photos: List[PhotoRecord]
    standard: str = Field(description="Standard-size tag used, e.g. 240x320")


class PhotographerPhotosResponse(BaseModel):
    """Returned by GET /api/photos/{photographerName}."""

    success: bool = True
    photographer_name: str = Field(alias="photographerName")
    count: int
    photos: List[dict]

    model_config = {"populate_by_name": True}


class UploadedPhotoFile(BaseModel):
    file_name: str = Field(alias="fileName")
    url: str
    path: str

    model_config = {"populate_by_name": True}


class UploadedPhotosResponse(BaseModel):
    """Returned by GET /api/uploaded-photos/{photographerName}."""

    success: bool = True
    count: int
    photos: List[UploadedPhotoFile]
    photographer_name: str = Field(alias="photographerName")
    message: Optional[str] = None

    model_config = {"populate_by_name": True}
