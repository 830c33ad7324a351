# Middleware package init
"""
PhotoDesk Backend: Middleware Package
=======================================

Middleware Chain (outermost first):
    Request → [Request ID] → [Logging] → [Rate Limit] → [GZip] → [CORS] → Route

    - Request ID runs first so every log line and error body of the
      request, including a 429, carries the same id.
    - Logging records the final status and duration.
    - Rate limit rejects abusive clients before any route work.
"""
