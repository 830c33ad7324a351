"""
PhotoDesk Backend: Image Proxy Schemas
========================================

What:  Contract of POST /api/extract-image-url.
How:   Failures are reported in-band (success=false, HTTP 200); the
       frontend falls back to the original link in that case.
"""

from typing import Optional

from pydantic import BaseModel, Field


class ExtractImageRequest(BaseModel):
    trakel_url: Optional[str] = Field(default=None, alias="trakelUrl")

    model_config = {"populate_by_name": True}


class ExtractImageResponse(BaseModel):
    success: bool
    message: Optional[str] = None
    image_url: Optional[str] = Field(
        default=None,
        alias="imageUrl",
        description="Proxied URL the browser can load without CORS issues",
    )
    original_url: Optional[str] = Field(default=None, alias="originalUrl")
    direct_url: Optional[str] = Field(
        default=None, alias="directUrl", description="Image URL on the scraped site"
    )

    model_config = {"populate_by_name": True}
