# Services package init
"""
PhotoDesk Backend: Services Layer
===================================

What:  Business logic between routes (HTTP) and the public/ tree on disk.

Service Inventory:
    - validation: Upload acceptance rules (extension, media type, size, owner)
    - StagingStore: Temporary copies of uploads, always cleaned up
    - ImageCodec: Pillow decode → cover-crop → encode
    - IngestionPipeline: validate → stage → encode → catalog → clean up
    - JsonCollection: Whole-file JSON arrays with a writer lock per file
    - PhotoRecordCatalog: Typed PhotoRecord view of photo-records.json
    - RecordsService: Photographers, photo records, print history
    - export_service: CSV downloads
    - ImageProxyService: Scrape + relay of species photos
"""
