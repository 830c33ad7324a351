"""
PhotoDesk Backend: Photo Record Catalog
=========================================

What:  Typed view over photo-records.json for the ingestion pipeline.
How:   Delegates persistence to the shared JsonCollection for the file, so
       catalog appends and client-side replaces (POST /api/save-photo-records)
       are serialized by the same writer lock.
Who:   IngestionPipeline (append_and_save), health check (load).

The same file also holds free-form records saved by the frontend (butterfly
type, image link...). load() returns only entries that parse as PhotoRecord;
the raw listing endpoints read the collection directly.
"""

import logging
from pathlib import Path
from typing import List, Optional, Sequence

from pydantic import ValidationError as PydanticValidationError

from photodesk.config import settings
from photodesk.schemas.photo import PhotoRecord
from photodesk.services.json_store import JsonCollection, get_collection

logger = logging.getLogger(__name__)


class PhotoRecordCatalog:
    """File-backed collection of PhotoRecords."""

    def __init__(self, path: Optional[Path] = None):
        self.collection: JsonCollection = get_collection(path or settings.photo_records_file)

    async def load(self) -> List[PhotoRecord]:
        """All upload-produced records in file order; other entries are skipped."""
        records: List[PhotoRecord] = []
        for entry in await self.collection.load():
            try:
                records.append(PhotoRecord.model_validate(entry))
            except PydanticValidationError:
                logger.debug("Skipping non-upload catalog entry: %s", entry.get("id") if isinstance(entry, dict) else entry)
        return records

    async def append_and_save(self, new_records: Sequence[PhotoRecord]) -> int:
        """
        Append records and rewrite the file in full.

        Returns:
            Total number of entries in the catalog after the write.

        Raises:
            StorageError if the catalog cannot be written.
        """
        entries = [record.to_catalog_entry() for record in new_records]
        updated = await self.collection.append(entries)
        logger.info(
            "Catalog %s: appended %d record(s), %d total",
            self.collection.path.name,
            len(entries),
            len(updated),
        )
        return len(updated)


photo_record_catalog = PhotoRecordCatalog()
