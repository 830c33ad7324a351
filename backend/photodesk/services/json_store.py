"""
PhotoDesk Backend: JSON Collection Store
==========================================

What:  Whole-file JSON array collections (photographers, photo records,
       print history) with serialized read-modify-write cycles.
How:   One JsonCollection per file path (see get_collection), each owning an
       asyncio.Lock. Every mutation (replace, append, clear) runs under that
       lock: load whole file → change in memory → write whole file. Writes go
       to a temp file in the same directory and are renamed over the target,
       so readers never observe a torn file.
Who:   Used by the photo record catalog and the records service.

Lost-update hazard:
    Two unsynchronized writers can both load the array, append independently
    and the second full-file overwrite discards the first writer's entries.
    The per-file lock makes appends linearizable within one process. Several
    worker processes sharing one data directory are NOT coordinated.

Corrupt files:
    Unparsable content, or JSON that is not an array, is treated as an empty
    collection (logged as a warning). The next write replaces it.
"""

import asyncio
import json
import logging
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import aiofiles
import aiofiles.os

from photodesk.exceptions import CatalogCorruptError, StorageError

logger = logging.getLogger(__name__)


class JsonCollection:
    """
    A JSON array persisted as one pretty-printed file.

    Do not instantiate directly for shared files; use get_collection() so all
    callers of one path share one lock.
    """

    def __init__(self, path: Path):
        self.path = Path(path).resolve()
        self._lock: Optional[asyncio.Lock] = None
        self._lock_loop: Optional[asyncio.AbstractEventLoop] = None

    @property
    def lock(self) -> asyncio.Lock:
        """
        Writer lock for this file, bound to the running event loop.

        A new lock is created if the loop changed (test suites run one loop
        per test; a server runs one loop for its lifetime).
        """
        loop = asyncio.get_running_loop()
        if self._lock is None or self._lock_loop is not loop:
            self._lock = asyncio.Lock()
            self._lock_loop = loop
        return self._lock

    # ── Reading ───────────────────────────────────────────────────────────

    async def read_strict(self) -> List[Dict[str, Any]]:
        """
        Read the file, raising instead of recovering.

        Raises:
            FileNotFoundError if the file does not exist.
            CatalogCorruptError if the content is not a JSON array.
            StorageError for other OS-level read failures.
        """
        try:
            async with aiofiles.open(self.path, "r", encoding="utf-8") as f:
                raw = await f.read()
        except FileNotFoundError:
            raise
        except OSError as e:
            raise StorageError(
                message="Could not read data file.",
                context={"path": str(self.path), "os_error": str(e)},
            )

        try:
            data = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise CatalogCorruptError(path=str(self.path), reason=str(e))
        if not isinstance(data, list):
            raise CatalogCorruptError(
                path=str(self.path), reason=f"top-level value is {type(data).__name__}"
            )
        return data

    async def load(self) -> List[Dict[str, Any]]:
        """
        Load all entries; a missing or corrupt file yields [].

        Raises:
            StorageError if the file exists but cannot be read.
        """
        try:
            return await self.read_strict()
        except FileNotFoundError:
            logger.debug("Collection %s does not exist yet; starting empty", self.path.name)
            return []
        except CatalogCorruptError as e:
            logger.warning(
                "Collection %s is corrupt (%s); treating it as empty",
                self.path.name,
                e.context.get("reason"),
            )
            return []

    # ── Writing ───────────────────────────────────────────────────────────

    async def _write(self, items: List[Dict[str, Any]]) -> None:
        """Atomically replace the file content. Caller must hold the lock."""
        payload = json.dumps(items, indent=2, ensure_ascii=False, default=str)
        tmp_path = self.path.with_name(f".{self.path.name}.{uuid.uuid4().hex[:8]}.tmp")
        try:
            await aiofiles.os.makedirs(self.path.parent, exist_ok=True)
            async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
                await f.write(payload)
            await aiofiles.os.replace(tmp_path, self.path)
        except OSError as e:
            logger.error("Failed to write collection %s: %s", self.path, str(e))
            try:
                await aiofiles.os.remove(tmp_path)
            except OSError:
                pass
            raise StorageError(
                message="Failed to save data. Please try again.",
                context={"path": str(self.path), "os_error": str(e)},
            )

    async def replace(self, items: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Overwrite the collection with `items`. Returns the new content."""
        new_items = list(items)
        async with self.lock:
            await self._write(new_items)
        return new_items

    async def append(self, items: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """
        Append `items` to the stored entries (load → extend → write, under
        the lock). Returns the full updated collection.
        """
        new_items = list(items)
        async with self.lock:
            current = await self.load()
            current.extend(new_items)
            await self._write(current)
        return current

    async def clear(self) -> None:
        async with self.lock:
            await self._write([])

    async def ensure_exists(self) -> None:
        """Create the file as an empty array if it is missing."""
        async with self.lock:
            if not self.path.exists():
                await self._write([])

    async def stat(self) -> Dict[str, Any]:
        """
        File metadata for status reporting.

        Raises:
            FileNotFoundError, CatalogCorruptError, StorageError as read_strict().
        """
        st = await aiofiles.os.stat(self.path)
        items = await self.read_strict()
        return {
            "path": str(self.path),
            "exists": True,
            "size": st.st_size,
            "last_modified": datetime.fromtimestamp(st.st_mtime, tz=timezone.utc),
            "record_count": len(items),
        }


# ── Registry ──────────────────────────────────────────────────────────────
# One instance (and therefore one writer lock) per resolved file path
_collections: Dict[Path, JsonCollection] = {}


def get_collection(path: Path) -> JsonCollection:
    resolved = Path(path).resolve()
    collection = _collections.get(resolved)
    if collection is None:
        collection = JsonCollection(resolved)
        _collections[resolved] = collection
    return collection
