"""
PhotoDesk Backend: Application Package
========================================

What: Photographer registry, photo ingestion and certificate print support
      for the butterfly photo contest office.
Who:  Imported by uvicorn (`photodesk.main:app`), pytest and the services.

Architecture Note:

    ┌─────────────────────────────────────┐
    │           Routes (API Layer)        │  ← HTTP concerns only
    ├─────────────────────────────────────┤
    │         Services (Business Logic)   │  ← ingestion pipeline, records,
    │                                     │    image proxy, CSV export
    ├─────────────────────────────────────┤
    │            Schemas (Data)           │  ← Pydantic models
    ├─────────────────────────────────────┤
    │   Storage (public/ tree on disk)    │  ← images + JSON collections
    └─────────────────────────────────────┘
"""

__version__ = "1.0.0"
