"""
PhotoDesk Backend: Custom Exception Hierarchy
===============================================

What:  Application-specific exceptions for the ingestion pipeline, the
       JSON collections and the image proxy.
How:   Each exception carries a message and optional context dict, plus the
       HTTP status and error code its global handler (main.py) responds with.
Who:   Raised by services; caught by global handlers.

Exception Hierarchy:
    PhotoDeskError (base)
    ├── ValidationError          → 400 Bad Request (client can fix)
    ├── NotFoundError            → 404 Not Found
    ├── CodecError               → 422 Unprocessable (image cannot be decoded/encoded)
    ├── StorageError             → 500 Internal Server Error
    │   └── CatalogCorruptError  → recovered internally (catalog treated as empty)
    ├── IngestionError           → status of its cause, annotated with the stage
    ├── UpstreamServiceError     → 502 Bad Gateway (scraped site failed)
    ├── CircuitBreakerOpenError  → 503 Service Unavailable (circuit open)
    └── RateLimitExceededError   → 429 Too Many Requests
"""

from typing import Any, Dict, Optional


class PhotoDeskError(Exception):
    """
    Base exception for all PhotoDesk application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged; only some handlers return it)
    """

    status_code = 500
    error_code = "server_error"

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(PhotoDeskError):
    """
    Raised when client input fails validation.

    When:    Missing photographer name, no files, unsupported format,
             oversize file, malformed proxy URL.
    HTTP:    400 Bad Request

    Example response:
        {
            "success": false,
            "error": "validation_error",
            "message": "Only JPG, JPEG, PNG formats are accepted.",
            "details": {"field": "photos", "accepted": ["jpg", "jpeg", "png"]}
        }
    """

    status_code = 400
    error_code = "validation_error"

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class NotFoundError(PhotoDeskError):
    """
    Raised when a requested resource does not exist.

    When:    GET /uploads/<path> for a file that is not on disk, scraped page
             without the expected image.
    HTTP:    404 Not Found
    """

    status_code = 404
    error_code = "not_found"

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"The requested {resource} was not found"
        if resource_id:
            message = f"{resource} '{resource_id}' was not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)


class CodecError(PhotoDeskError):
    """
    Raised when an image cannot be decoded, resized or encoded.

    When:    Corrupt upload, unsupported sub-format, decompression bomb,
             output path not writable.
    HTTP:    422 Unprocessable Entity

    The original filename is kept for diagnosis; the codec guarantees no
    partial output file remains when this is raised.
    """

    status_code = 422
    error_code = "codec_error"

    def __init__(
        self,
        message: str = "Image could not be processed",
        filename: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if filename:
            ctx["filename"] = filename
        super().__init__(message=message, context=ctx)
        self.filename = filename


class StorageError(PhotoDeskError):
    """
    Raised when file system operations fail.

    When:    Disk full, permission denied, directory not writable while
             staging, writing output or rewriting a collection file.
    HTTP:    500 Internal Server Error

    Recovery:
        - Log the error with full file path and OS error
        - Return generic message to client (don't expose file system paths)
    """

    status_code = 500
    error_code = "storage_error"

    def __init__(
        self,
        message: str = "File storage operation failed",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class CatalogCorruptError(StorageError):
    """
    Raised by the JSON collection reader when a file is not a JSON array.

    Callers loading a collection recover from it by treating the content
    as empty; it only escapes from the strict reader used by health checks.
    """

    error_code = "catalog_corrupt"

    def __init__(
        self,
        path: str,
        reason: str,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx.update({"path": path, "reason": reason})
        super().__init__(message=f"Collection file is not a valid JSON array: {reason}", context=ctx)
        self.path = path


class IngestionError(PhotoDeskError):
    """
    Raised by the ingestion pipeline when a request fails.

    What:    Wraps the first error encountered, annotated with the stage
             (validating, staging_files, encoding, cataloging) it occurred in.
    HTTP:    Same status as the cause (400 for validation, 422 for codec...).
    """

    def __init__(
        self,
        stage: str,
        cause: PhotoDeskError,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = dict(cause.context)
        ctx.update(context or {})
        ctx["stage"] = stage
        super().__init__(message=cause.message, context=ctx)
        self.stage = stage
        self.cause = cause
        self.status_code = cause.status_code
        self.error_code = cause.error_code


class UpstreamServiceError(PhotoDeskError):
    """
    Raised when the scraped site fails after all retries.

    HTTP:    502 Bad Gateway
    """

    status_code = 502
    error_code = "upstream_error"

    def __init__(
        self,
        message: str = "The image source is temporarily unavailable",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class CircuitBreakerOpenError(PhotoDeskError):
    """
    Raised when the image proxy circuit breaker is in OPEN state.

    When:    After cb_failure_threshold consecutive upstream failures.
    HTTP:    503 Service Unavailable

    How circuit breaker works:
        CLOSED (normal) → failures increment counter
        → After N failures → OPEN (reject all calls for recovery_time seconds)
        → After recovery_time → HALF-OPEN (allow one test call)
        → If test succeeds → CLOSED
        → If test fails → OPEN again
    """

    status_code = 503
    error_code = "service_unavailable"

    def __init__(
        self,
        recovery_time: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = (
            f"The image source is temporarily unavailable due to repeated failures. "
            f"Requests resume in approximately {recovery_time} seconds."
        )
        ctx = context or {}
        ctx["recovery_time"] = recovery_time
        super().__init__(message=message, context=ctx)
        self.recovery_time = recovery_time


class RateLimitExceededError(PhotoDeskError):
    """
    Raised when a client exceeds the per-IP request rate limit.

    HTTP:    429 Too Many Requests
    """

    status_code = 429
    error_code = "rate_limit_exceeded"

    def __init__(
        self,
        retry_after: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = (
            f"Rate limit exceeded. Please wait {retry_after} seconds before making more requests."
        )
        ctx = context or {}
        ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.retry_after = retry_after
