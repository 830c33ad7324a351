"""
PhotoDesk Backend: Staging Store
==================================

What:  Writes incoming uploads to a temporary directory before processing
       and removes them afterwards.
How:   Each blob gets a collision-resistant name
       (temp_<millis>-<random>_<sanitized original name>) under the staging
       directory, created on demand. Writes use aiofiles so the event loop
       is never blocked.
Who:   Called by IngestionPipeline (stage in `staging_files`, cleanup in
       `cleaning_up`).

Lifecycle of a staged file:
    1. stage(blob) → StagedFile (pipeline now owns it)
    2. Codec reads StagedFile.path
    3. cleanup(staged) in the pipeline's finally block, success or failure

Directory Structure:
    public/temp/
    ├── temp_1718000000000-3f2a9c1b7d4e_IMG_0042.jpg
    └── temp_1718000000001-a01c55e2d9b0_beach_day.png
"""

import logging
import os
import re
import time
import uuid
from pathlib import Path
from typing import NamedTuple, Optional

import aiofiles
import aiofiles.os

from photodesk.config import settings
from photodesk.exceptions import StorageError
from photodesk.schemas.photo import UploadedBlob

logger = logging.getLogger(__name__)

# Characters kept from the client's filename; everything else becomes "_"
_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")
_MAX_NAME_LENGTH = 100


class StagedFile(NamedTuple):
    """Handle for one staged upload; release it with StagingStore.cleanup()."""

    path: Path
    original_name: str
    size: int


def unique_suffix() -> str:
    """Millisecond timestamp plus random hex, e.g. '1718000000000-3f2a9c1b7d4e'."""
    return f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:12]}"


def sanitize_filename(filename: str) -> str:
    """
    Reduce a client filename to a safe basename.

    Directory parts are dropped (both / and \\ separators), unsafe characters
    replaced, and the result truncated. Never returns an empty string.
    """
    base = filename.replace("\\", "/").rsplit("/", 1)[-1]
    safe = _UNSAFE_CHARS.sub("_", base).strip("._")
    if not safe:
        return "upload"
    if len(safe) > _MAX_NAME_LENGTH:
        stem, dot, ext = safe.rpartition(".")
        if dot and len(ext) < 10:
            safe = stem[: _MAX_NAME_LENGTH - len(ext) - 1] + "." + ext
        else:
            safe = safe[:_MAX_NAME_LENGTH]
    return safe


class StagingStore:
    """
    Manages the temporary directory where uploads wait for processing.

    Shared, process-wide state: every request writes here, unique names keep
    concurrent requests apart.
    """

    def __init__(self, staging_root: Optional[str] = None):
        """
        Args:
            staging_root: Override the default staging path (used in tests).
                          If None, uses settings.staging_root.
        """
        self.staging_root = Path(staging_root or settings.staging_root).resolve()
        logger.info("StagingStore initialized with staging_root=%s", self.staging_root)

    def _staged_path(self, filename: str) -> Path:
        return self.staging_root / f"temp_{unique_suffix()}_{sanitize_filename(filename)}"

    async def stage(self, blob: UploadedBlob) -> StagedFile:
        """
        Write one upload to the staging directory.

        Returns:
            StagedFile handle the caller must release via cleanup().

        Raises:
            StorageError if the directory cannot be created or the write
            fails; any partially written file is removed first.
        """
        path = self._staged_path(blob.filename)
        try:
            await aiofiles.os.makedirs(path.parent, exist_ok=True)
            async with aiofiles.open(path, "wb") as f:
                await f.write(blob.content)
        except OSError as e:
            logger.error("Failed to stage upload %s at %s: %s", blob.filename, path, str(e))
            await self.cleanup(StagedFile(path, blob.filename, 0))
            raise StorageError(
                message="Failed to save uploaded photo. Please try again.",
                context={"filename": blob.filename, "os_error": str(e)},
            )

        logger.debug("Staged %s as %s (%d bytes)", blob.filename, path.name, len(blob.content))
        return StagedFile(path=path, original_name=blob.filename, size=len(blob.content))

    async def cleanup(self, staged: StagedFile) -> None:
        """
        Remove a staged file.

        Best-effort: a missing file is fine (cleanup may run twice), any other
        failure is logged and swallowed so it never masks the pipeline's own
        result.
        """
        try:
            os.remove(staged.path)
            logger.debug("Cleaned up staged file: %s", staged.path.name)
        except FileNotFoundError:
            logger.debug("Cleanup: staged file already gone: %s", staged.path.name)
        except OSError as e:
            logger.warning("Failed to clean up staged file %s: %s", staged.path, str(e))


# ── Singleton Instance ────────────────────────────────────────────────────
staging_store = StagingStore()
