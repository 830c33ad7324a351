# Routes package init
"""
PhotoDesk Backend: API Routes Package
=======================================

Route Inventory:
    - uploads.py:        POST /api/upload-photos
                         GET  /api/photos/{photographerName}
                         GET  /api/uploaded-photos/{photographerName}
                         GET  /uploads/{path}
    - records.py:        photographers, photo records, status, CSV, clear-all
    - print_history.py:  POST /api/print-certificate, GET /api/print-history[/{id}]
    - proxy.py:          POST /api/extract-image-url, GET /api/image-proxy
    - health.py:         GET  /health

Routes stay thin: read the request, call a service, shape the response.
"""
