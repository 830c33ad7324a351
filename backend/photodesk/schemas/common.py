"""
PhotoDesk Backend: Shared Response Schemas
============================================

What:  Error and health payloads shared by every route.
"""

from typing import Optional

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """
    What:  Standardized error response format for all API errors.

    Example (failed upload):
        {
            "success": false,
            "error": "codec_error",
            "message": "Could not process photo 'broken.jpg'.",
            "stage": "encoding",
            "cause": "cannot identify image file",
            "request_id": "a1b2c3d4"
        }
    """

    success: bool = False
    error: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error description")
    details: Optional[dict] = Field(default=None, description="Additional error context")
    stage: Optional[str] = Field(default=None, description="Pipeline stage that failed")
    cause: Optional[str] = Field(default=None, description="Underlying cause")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class HealthResponse(BaseModel):
    """
    What:  Health check response showing service and dependency status.
    Who:   Returned by GET /health for monitoring and container health checks.
    """

    status: str = Field(description="Overall service status: healthy, degraded, unhealthy")
    version: str = Field(description="Application version")
    storage: str = Field(description="Uploads/data directories: writable, unwritable")
    catalog: str = Field(description="Photo record catalog: readable, missing, corrupt")
    image_proxy: str = Field(description="Scrape upstream circuit: closed, open, half_open")
    uptime_seconds: float = Field(description="Seconds since service started")
