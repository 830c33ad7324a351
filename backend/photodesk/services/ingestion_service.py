"""
PhotoDesk Backend: Photo Ingestion Pipeline
=============================================

What:  Orchestrates one upload request end to end:
       validate → stage → normalize → catalog → clean up.
How:   Composes the validation gate, StagingStore, ImageCodec and
       PhotoRecordCatalog. The codec runs on the thread pool; staging and
       catalog I/O go through aiofiles.
Who:   Called by POST /api/upload-photos.
When:  Once per upload request; each request runs in its own task.

Orchestration Flow:
    ┌────────────┐   ┌──────────────┐   ┌──────────┐   ┌────────────┐
    │ validating │──▶│staging_files │──▶│ encoding │──▶│ cataloging │──▶ done
    └────────────┘   └──────────────┘   └──────────┘   └────────────┘
          │                 │                 │               │
          └────────────┬────┴─────────────────┴───────────────┘
                       ▼
                    failed          cleaning_up runs in every case

Policy (all-or-nothing):
    - validating: any bad file rejects the request; nothing is written.
    - encoding/cataloging: the first failure aborts the request, outputs
      already produced for this request are deleted.
    - cleaning_up: every staged file is deleted, including when the task is
      cancelled (client disconnect).
"""

import asyncio
import enum
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import List, NamedTuple, Optional

from starlette.concurrency import run_in_threadpool

from photodesk.config import settings
from photodesk.exceptions import IngestionError, PhotoDeskError, StorageError
from photodesk.schemas.photo import PhotoRecord, PhotoStandard, UploadRequest
from photodesk.services.catalog_service import PhotoRecordCatalog, photo_record_catalog
from photodesk.services.image_codec import ImageCodec, image_codec
from photodesk.services.staging_service import (
    StagedFile,
    StagingStore,
    staging_store,
    unique_suffix,
)
from photodesk.services.validation import validate_request

logger = logging.getLogger(__name__)

# URL prefix under which the uploads root is served (see routes/uploads.py)
UPLOADS_URL_PREFIX = "/uploads/fotograflar"


class IngestionStage(str, enum.Enum):
    VALIDATING = "validating"
    STAGING_FILES = "staging_files"
    ENCODING = "encoding"
    CATALOGING = "cataloging"
    CLEANING_UP = "cleaning_up"
    DONE = "done"
    FAILED = "failed"


class IngestionResult(NamedTuple):
    photos: List[PhotoRecord]
    standard: str


class IngestionPipeline:
    """
    Upload ingestion state machine.

    Dependencies are injectable for tests; the module-level
    `ingestion_pipeline` wires the process-wide singletons.
    """

    def __init__(
        self,
        standard: Optional[PhotoStandard] = None,
        uploads_root: Optional[Path] = None,
        staging: Optional[StagingStore] = None,
        codec: Optional[ImageCodec] = None,
        catalog: Optional[PhotoRecordCatalog] = None,
        max_files: Optional[int] = None,
    ):
        self.standard = standard or settings.photo_standard
        self.uploads_root = Path(uploads_root or settings.uploads_root).resolve()
        self.staging = staging or staging_store
        self.codec = codec or image_codec
        self.catalog = catalog or photo_record_catalog
        self.max_files = max_files if max_files is not None else settings.max_files_per_request

    async def ingest(self, request: UploadRequest) -> IngestionResult:
        """
        Run the pipeline for one request.

        Returns:
            IngestionResult with one PhotoRecord per input file (input order)
            and the standard-size tag.

        Raises:
            IngestionError wrapping the first failure (ValidationError,
            StorageError or CodecError) with the stage it occurred in.
        """
        stage = IngestionStage.VALIDATING
        staged: List[StagedFile] = []
        produced: List[Path] = []

        try:
            # ── Validating: no disk writes yet ────────────────────────────
            owner_name = validate_request(request, self.standard, self.max_files)

            # ── Staging: every staged path is tracked for cleanup ─────────
            stage = IngestionStage.STAGING_FILES
            for blob in request.files:
                staged.append(await self.staging.stage(blob))

            # ── Encoding: input order, one record per file ────────────────
            stage = IngestionStage.ENCODING
            owner_dir = self.uploads_root / owner_name
            records: List[PhotoRecord] = []
            for staged_file in staged:
                records.append(
                    await self._encode_one(staged_file, owner_name, request.owner_id, owner_dir, produced)
                )

            # ── Cataloging: whole-file rewrite under the writer lock ──────
            stage = IngestionStage.CATALOGING
            await self.catalog.append_and_save(records)

        except PhotoDeskError as e:
            await self._discard_outputs(produced)
            logger.warning(
                "Ingestion failed in stage %s for %s: %s",
                stage.value,
                request.owner_name,
                e.message,
            )
            raise IngestionError(stage=stage.value, cause=e) from e
        except Exception as e:
            await self._discard_outputs(produced)
            logger.error("Unexpected error in ingestion stage %s: %s", stage.value, str(e), exc_info=True)
            cause = StorageError(
                message="An error occurred while processing your photos. Please try again.",
                context={"error_type": type(e).__name__},
            )
            raise IngestionError(stage=stage.value, cause=cause) from e
        except BaseException:
            # Cancelled (client gone): same outcome as a failure, no outputs left
            await self._discard_outputs(produced)
            logger.warning("Ingestion cancelled in stage %s for %s", stage.value, request.owner_name)
            raise
        finally:
            # ── Cleaning up: unconditional, never raises ──────────────────
            for staged_file in staged:
                await self.staging.cleanup(staged_file)

        logger.info(
            "%d photo(s) processed for %s at standard %s",
            len(records),
            owner_name,
            self.standard.tag,
        )
        return IngestionResult(photos=records, standard=self.standard.tag)

    async def _encode_one(
        self,
        staged_file: StagedFile,
        owner_name: str,
        owner_id: Optional[str],
        owner_dir: Path,
        produced: List[Path],
    ) -> PhotoRecord:
        suffix = unique_suffix()
        file_name = f"foto_{suffix}.{self.standard.format}"
        output_path = owner_dir / file_name

        # Tracked before the worker starts so a write that lands after a
        # cancellation is still discarded
        produced.append(output_path)
        encode = asyncio.ensure_future(
            run_in_threadpool(
                self.codec.normalize,
                staged_file.path,
                output_path,
                self.standard,
                staged_file.original_name,
            )
        )
        try:
            normalized = await asyncio.shield(encode)
        except asyncio.CancelledError:
            # The worker thread cannot be stopped; wait for it before cleanup
            await asyncio.wait([encode])
            if not encode.cancelled() and encode.exception() is not None:
                logger.debug("Encode of cancelled request failed: %s", encode.exception())
            raise

        return PhotoRecord(
            id=f"photo_{suffix}",
            original_name=staged_file.original_name,
            file_name=file_name,
            photographer_name=owner_name,
            photographer_id=owner_id or None,
            path=f"{UPLOADS_URL_PREFIX}/{owner_name}/{file_name}",
            full_path=str(normalized.output_path),
            size=normalized.byte_size,
            width=normalized.width,
            height=normalized.height,
            format=normalized.format,
            uploaded_at=datetime.now(timezone.utc),
            standard=self.standard.tag,
        )

    async def _discard_outputs(self, produced: List[Path]) -> None:
        """Delete outputs of a failed request; failures are logged only."""
        for path in produced:
            try:
                path.unlink()
                logger.info("Discarded output of failed request: %s", path.name)
            except FileNotFoundError:
                pass
            except OSError as e:
                logger.warning("Could not discard output %s: %s", path, str(e))


# ── Singleton Instance ────────────────────────────────────────────────────
ingestion_pipeline = IngestionPipeline()
