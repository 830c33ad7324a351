"""
PhotoDesk Backend: Records Service
====================================

What:  Business logic behind the photographer, photo-record and print-history
       endpoints.
How:   Each collection is a JsonCollection (whole-file JSON array, one writer
       lock per file). This service only decides what to write; the store
       decides how.
Who:   Called by routes/records.py and routes/print_history.py.

Collections:
    photographers.json   rows imported from CSV by the frontend
                         (name, tcNo, address, addedDate...)
    photo-records.json   upload-produced PhotoRecords plus free-form
                         records saved by the frontend (butterflyType...)
    print-history.json   one entry per printed certificate
"""

import logging
import re
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import quote

from photodesk.config import settings
from photodesk.exceptions import CatalogCorruptError, StorageError, ValidationError
from photodesk.schemas.photo import UploadedPhotoFile
from photodesk.schemas.records import CollectionFileStatus, CollectionSources, PrintRecord
from photodesk.services.ingestion_service import UPLOADS_URL_PREFIX
from photodesk.services.json_store import JsonCollection, get_collection
from photodesk.services.validation import validate_owner_name

logger = logging.getLogger(__name__)

# Files listed by the on-disk photo listing
_PHOTO_FILE_PATTERN = re.compile(r"\.(jpg|jpeg|png)$", re.IGNORECASE)


class RecordsService:
    """
    Photographer / photo record / print history operations.

    Paths are injectable for tests; the module-level `records_service` uses
    the configured data directory.
    """

    def __init__(
        self,
        photographers_file: Optional[Path] = None,
        photo_records_file: Optional[Path] = None,
        print_history_file: Optional[Path] = None,
        uploads_root: Optional[Path] = None,
    ):
        self.photographers: JsonCollection = get_collection(
            photographers_file or settings.photographers_file
        )
        self.photo_records: JsonCollection = get_collection(
            photo_records_file or settings.photo_records_file
        )
        self.print_history_log: JsonCollection = get_collection(
            print_history_file or settings.print_history_file
        )
        self.uploads_root = Path(uploads_root or settings.uploads_root).resolve()

    @property
    def collections(self) -> Tuple[JsonCollection, ...]:
        return (self.photographers, self.photo_records, self.print_history_log)

    async def ensure_files(self) -> None:
        """Create every collection file as [] if missing. Called at startup."""
        for collection in self.collections:
            await collection.ensure_exists()

    # ── Photographers ─────────────────────────────────────────────────────

    async def save_photographers(
        self, data: List[Dict[str, Any]], action: str = "replace"
    ) -> List[Dict[str, Any]]:
        """
        Replace (default) or extend the photographer list.

        Returns:
            The full list as stored after the write.
        """
        updated = await self._save(self.photographers, data, action)
        logger.info(
            "%d photographer record(s) %s, %d total",
            len(data),
            "appended" if action == "append" else "saved (previous data replaced)",
            len(updated),
        )
        return updated

    async def list_photographers(self) -> List[Dict[str, Any]]:
        return await self.photographers.load()

    async def catalog_status(self) -> Tuple[bool, CollectionFileStatus]:
        """
        Status of the photographers file.

        Unlike load(), a corrupt or missing file is reported here instead of
        being treated as empty.
        """
        path = str(self.photographers.path)
        try:
            info = await self.photographers.stat()
        except FileNotFoundError as e:
            return False, CollectionFileStatus(path=path, exists=False, error=str(e))
        except CatalogCorruptError as e:
            return False, CollectionFileStatus(path=path, exists=True, error=e.message)
        except StorageError as e:
            return False, CollectionFileStatus(path=path, exists=False, error=e.message)

        return True, CollectionFileStatus(
            path=info["path"],
            exists=info["exists"],
            size=info["size"],
            last_modified=info["last_modified"],
            record_count=info["record_count"],
        )

    # ── Photo Records ─────────────────────────────────────────────────────

    async def save_photo_records(
        self, data: List[Dict[str, Any]], action: str = "replace"
    ) -> List[Dict[str, Any]]:
        updated = await self._save(self.photo_records, data, action)
        logger.info(
            "%d photo record(s) %s, %d total",
            len(data),
            "appended" if action == "append" else "saved (previous data replaced)",
            len(updated),
        )
        return updated

    async def list_photo_records(self) -> List[Dict[str, Any]]:
        return await self.photo_records.load()

    @staticmethod
    def sources(records: List[Dict[str, Any]]) -> CollectionSources:
        # Every record lives in the shared file; "local" is browser storage
        return CollectionSources(total=len(records), static=len(records), local=0)

    async def photos_for_photographer(self, photographer_name: str) -> List[Dict[str, Any]]:
        """Catalog entries whose photographerName equals the given name."""
        records = await self.photo_records.load()
        return [
            record
            for record in records
            if isinstance(record, dict) and record.get("photographerName") == photographer_name
        ]

    async def uploaded_files(self, photographer_name: str, base_url: str) -> List[UploadedPhotoFile]:
        """
        Image files present in the photographer's upload directory.

        Returns [] when the directory does not exist.

        Raises:
            ValidationError if the name cannot be a directory name.
            StorageError if the directory exists but cannot be listed.
        """
        owner = validate_owner_name(photographer_name)
        owner_dir = self.uploads_root / owner
        if not owner_dir.is_dir():
            return []

        try:
            names = sorted(
                entry.name
                for entry in owner_dir.iterdir()
                if entry.is_file() and _PHOTO_FILE_PATTERN.search(entry.name)
            )
        except OSError as e:
            logger.error("Could not list %s: %s", owner_dir, str(e))
            raise StorageError(
                message="Photos could not be listed.",
                context={"photographer": owner, "os_error": str(e)},
            )

        base = base_url.rstrip("/")
        return [
            UploadedPhotoFile(
                file_name=name,
                url=f"{base}{UPLOADS_URL_PREFIX}/{quote(owner)}/{quote(name)}",
                path=f"{UPLOADS_URL_PREFIX}/{owner}/{name}",
            )
            for name in names
        ]

    async def clear_all(self) -> None:
        """Reset photographers and photo records; print history is kept."""
        await self.photographers.clear()
        await self.photo_records.clear()
        logger.info("All photographer and photo record data cleared")

    # ── Print History ─────────────────────────────────────────────────────

    async def record_print(
        self, photographer_id: Optional[str], photographer_name: Optional[str]
    ) -> PrintRecord:
        """
        Append one certificate print to the history.

        Raises:
            ValidationError if either the id or the name is missing.
        """
        if not photographer_id or not photographer_name:
            raise ValidationError(
                message="Photographer ID and name are required.",
                context={
                    "missing": [
                        field
                        for field, value in (
                            ("photographerId", photographer_id),
                            ("photographerName", photographer_name),
                        )
                        if not value
                    ]
                },
            )

        record = PrintRecord(
            id=str(int(time.time() * 1000)),
            photographer_id=photographer_id,
            photographer_name=photographer_name,
            printed_at=datetime.now(timezone.utc),
        )
        await self.print_history_log.append([record.model_dump(mode="json", by_alias=True)])
        logger.info("Certificate printed for %s", photographer_name)
        return record

    async def print_history(self, photographer_id: Optional[str] = None) -> List[Dict[str, Any]]:
        """All print records, or only those of one photographer."""
        history = await self.print_history_log.load()
        if photographer_id is None:
            return history
        # Ids are compared as strings; older entries may hold numbers
        return [
            entry
            for entry in history
            if isinstance(entry, dict) and str(entry.get("photographerId")) == photographer_id
        ]

    # ── Internals ─────────────────────────────────────────────────────────

    @staticmethod
    async def _save(
        collection: JsonCollection, data: List[Dict[str, Any]], action: str
    ) -> List[Dict[str, Any]]:
        if action == "append":
            return await collection.append(data)
        return await collection.replace(data)


records_service = RecordsService()
