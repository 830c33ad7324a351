"""
PhotoDesk Backend: Request Logging Middleware
===============================================

What:  One access log line per request on the `photodesk.access` logger.
How:   Measures wall time around call_next and logs method, path, status,
       duration, request id and client IP. The level follows the status
       (5xx ERROR, 4xx WARNING, else INFO).
When:  Just inside RequestIDMiddleware, so the id is already set.

Not logged: request bodies (photographer records hold national id numbers)
and uploaded file contents.
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from photodesk.middleware.request_id import request_id_var

logger = logging.getLogger("photodesk.access")

# Polled by container health checks every few seconds
QUIET_PATHS = {"/health"}


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Logs each request with its status and duration.

    Typical durations:
        - GET /api/photographers: a few ms (one JSON file read)
        - POST /api/upload-photos: ~50-150ms per photo (Pillow encode)
        - GET /api/image-proxy: dominated by the upstream site
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        path = request.url.path
        if path in QUIET_PATHS:
            return await call_next(request)

        start_time = time.perf_counter()
        client_ip = getattr(request.client, "host", "unknown") if request.client else "unknown"
        method = request.method
        rid = request_id_var.get("")

        response = await call_next(request)

        duration_ms = (time.perf_counter() - start_time) * 1000
        status = response.status_code
        if status >= 500:
            log_level = logging.ERROR
        elif status >= 400:
            log_level = logging.WARNING
        else:
            log_level = logging.INFO

        logger.log(
            log_level,
            "%s %s %d %.1fms [%s] from %s",
            method,
            path,
            status,
            duration_ms,
            rid,
            client_ip,
            extra={
                "request_id": rid,
                "method": method,
                "path": path,
                "status": status,
                "duration_ms": round(duration_ms, 2),
                "client_ip": client_ip,
            },
        )
        return response
