"""
PhotoDesk Backend: Ingestion Pipeline Tests
=============================================

What:  End-to-end behavior of IngestionPipeline.ingest against a real
       staging dir, uploads root and catalog under tmp_path.

Test Strategy:
    ✅ 800x600 JPEG for "Ali" → one 240x320 JPEG and one catalog record
    ✅ N files → N records of standard geometry, input order
    ✅ Rejected inputs write nothing (no staging, no outputs, no catalog)
    ✅ Failure on the 2nd file removes the 1st file's output
    ✅ Catalog failure removes the request's outputs
    ✅ Staged files are gone after every outcome
    ✅ Concurrent owners: both directories and both records present
    ✅ Cancelled request (client gone) leaves no outputs, even from a
       worker thread that finishes after the cancel
    ✅ Catalog round trip is field-for-field equal
"""

import asyncio
import threading
from unittest.mock import AsyncMock, MagicMock

import pytest
from PIL import Image

from photodesk.exceptions import IngestionError, StorageError
from photodesk.schemas.photo import UploadRequest
from photodesk.services.catalog_service import PhotoRecordCatalog
from photodesk.services.image_codec import ImageCodec
from photodesk.services.ingestion_service import IngestionPipeline


def _files(root):
    if not root.exists():
        return []
    return sorted(p for p in root.rglob("*") if p.is_file())


class TestSuccessfulIngestion:

    @pytest.mark.asyncio
    async def test_single_landscape_photo_for_ali(self, pipeline, make_blob):
        request = UploadRequest(owner_name="Ali", owner_id="17", files=[make_blob("kelebek.jpg")])

        result = await pipeline.ingest(request)

        assert result.standard == "240x320"
        assert len(result.photos) == 1
        record = result.photos[0]
        assert record.photographer_name == "Ali"
        assert record.photographer_id == "17"
        assert record.original_name == "kelebek.jpg"
        assert record.file_name.startswith("foto_") and record.file_name.endswith(".jpeg")
        assert record.id == "photo_" + record.file_name[len("foto_"):-len(".jpeg")]
        assert record.path == f"/uploads/fotograflar/Ali/{record.file_name}"
        assert (record.width, record.height) == (240, 320)
        assert record.format == "jpeg"
        assert record.standard == "240x320"

        output = pipeline.uploads_root / "Ali" / record.file_name
        assert record.full_path == str(output)
        assert record.size == output.stat().st_size
        with Image.open(output) as img:
            assert img.format == "JPEG"
            assert img.size == (240, 320)

    @pytest.mark.asyncio
    async def test_n_files_give_n_records_in_order(self, pipeline, make_blob, make_image):
        blobs = [
            make_blob("a.jpg", content=make_image(800, 600)),
            make_blob("b.png", "image/png", content=make_image(300, 900, fmt="PNG")),
            make_blob("c.JPEG", content=make_image(1200, 1200)),
        ]

        result = await pipeline.ingest(UploadRequest(owner_name="Ayşe", files=blobs))

        assert [r.original_name for r in result.photos] == ["a.jpg", "b.png", "c.JPEG"]
        assert all((r.width, r.height) == (240, 320) for r in result.photos)
        assert len({r.id for r in result.photos}) == 3
        assert len(_files(pipeline.uploads_root / "Ayşe")) == 3

    @pytest.mark.asyncio
    async def test_missing_owner_id_is_null(self, pipeline, make_blob):
        result = await pipeline.ingest(UploadRequest(owner_name="Ali", owner_id="", files=[make_blob()]))
        assert result.photos[0].photographer_id is None

    @pytest.mark.asyncio
    async def test_staging_is_empty_after_success(self, pipeline, make_blob):
        await pipeline.ingest(UploadRequest(owner_name="Ali", files=[make_blob(), make_blob()]))
        assert _files(pipeline.staging.staging_root) == []

    @pytest.mark.asyncio
    async def test_catalog_round_trip(self, pipeline, make_blob):
        result = await pipeline.ingest(UploadRequest(owner_name="Ali", files=[make_blob()]))

        reloaded = await PhotoRecordCatalog(pipeline.catalog.collection.path).load()

        assert reloaded == result.photos

    @pytest.mark.asyncio
    async def test_appends_to_existing_catalog(self, pipeline, make_blob):
        await pipeline.catalog.collection.replace([{"photographerName": "Ali", "butterflyType": "Apollo"}])

        await pipeline.ingest(UploadRequest(owner_name="Ali", files=[make_blob()]))

        raw = await pipeline.catalog.collection.load()
        assert len(raw) == 2
        assert raw[0]["butterflyType"] == "Apollo"
        # Free-form entries are skipped by the typed view
        assert len(await pipeline.catalog.load()) == 1


class TestRejectedIngestion:

    @pytest.mark.asyncio
    async def test_gif_rejected_without_staging(self, pipeline, make_blob):
        request = UploadRequest(
            owner_name="Ali",
            files=[make_blob(), make_blob("anim.gif", "image/gif", content=b"GIF89a")],
        )

        with pytest.raises(IngestionError) as exc_info:
            await pipeline.ingest(request)

        error = exc_info.value
        assert error.stage == "validating"
        assert error.status_code == 400
        assert error.context["accepted"] == ["jpg", "jpeg", "png"]
        assert _files(pipeline.staging.staging_root) == []
        assert _files(pipeline.uploads_root) == []
        assert await pipeline.catalog.load() == []

    @pytest.mark.asyncio
    async def test_empty_owner_rejected_before_files(self, pipeline, make_blob):
        request = UploadRequest(owner_name="  ", files=[make_blob("x.gif", "image/gif")])

        with pytest.raises(IngestionError) as exc_info:
            await pipeline.ingest(request)

        assert exc_info.value.stage == "validating"
        assert exc_info.value.context["field"] == "photographerName"
        assert _files(pipeline.staging.staging_root) == []

    @pytest.mark.asyncio
    async def test_oversize_rejected_without_writes(self, pipeline, make_blob, standard):
        blob = make_blob(content=b"\xff" * 16, size=standard.max_file_size + 1)

        with pytest.raises(IngestionError, match="exceeds"):
            await pipeline.ingest(UploadRequest(owner_name="Ali", files=[blob]))

        assert _files(pipeline.staging.staging_root) == []
        assert _files(pipeline.uploads_root) == []

    @pytest.mark.asyncio
    async def test_encoding_failure_on_second_file_removes_first_output(self, pipeline, make_blob):
        request = UploadRequest(
            owner_name="Ali",
            files=[make_blob("good.jpg"), make_blob("broken.jpg", content=b"not an image")],
        )

        with pytest.raises(IngestionError) as exc_info:
            await pipeline.ingest(request)

        error = exc_info.value
        assert error.stage == "encoding"
        assert error.status_code == 422
        assert error.error_code == "codec_error"
        assert error.cause.filename == "broken.jpg"
        assert _files(pipeline.uploads_root) == []
        assert _files(pipeline.staging.staging_root) == []
        assert await pipeline.catalog.load() == []

    @pytest.mark.asyncio
    async def test_catalog_failure_removes_outputs(self, tmp_path, standard, make_blob, pipeline):
        catalog = MagicMock()
        catalog.append_and_save = AsyncMock(side_effect=StorageError("Failed to save data."))
        failing = IngestionPipeline(
            standard=standard,
            uploads_root=pipeline.uploads_root,
            staging=pipeline.staging,
            catalog=catalog,
        )

        with pytest.raises(IngestionError) as exc_info:
            await failing.ingest(UploadRequest(owner_name="Ali", files=[make_blob(), make_blob()]))

        assert exc_info.value.stage == "cataloging"
        assert exc_info.value.status_code == 500
        assert _files(pipeline.uploads_root) == []
        assert _files(pipeline.staging.staging_root) == []

    @pytest.mark.asyncio
    async def test_unexpected_error_is_wrapped_as_storage_error(self, standard, make_blob, pipeline):
        codec = MagicMock()
        codec.normalize.side_effect = RuntimeError("boom")
        failing = IngestionPipeline(
            standard=standard,
            uploads_root=pipeline.uploads_root,
            staging=pipeline.staging,
            codec=codec,
            catalog=pipeline.catalog,
        )

        with pytest.raises(IngestionError) as exc_info:
            await failing.ingest(UploadRequest(owner_name="Ali", files=[make_blob()]))

        assert isinstance(exc_info.value.cause, StorageError)
        assert exc_info.value.stage == "encoding"
        assert _files(pipeline.staging.staging_root) == []


class TestConcurrentIngestion:

    @pytest.mark.asyncio
    async def test_two_owners_at_once(self, pipeline, make_blob):
        ali, ayse = await asyncio.gather(
            pipeline.ingest(UploadRequest(owner_name="Ali", files=[make_blob(), make_blob()])),
            pipeline.ingest(UploadRequest(owner_name="Ayşe", files=[make_blob()])),
        )

        assert len(_files(pipeline.uploads_root / "Ali")) == 2
        assert len(_files(pipeline.uploads_root / "Ayşe")) == 1

        catalog_ids = {record.id for record in await pipeline.catalog.load()}
        assert catalog_ids == {r.id for r in ali.photos + ayse.photos}

    @pytest.mark.asyncio
    async def test_many_concurrent_requests_keep_every_record(self, pipeline, make_blob):
        results = await asyncio.gather(
            *(pipeline.ingest(UploadRequest(owner_name=f"owner{i}", files=[make_blob()])) for i in range(8))
        )

        assert len(await pipeline.catalog.load()) == 8
        assert len({r.photos[0].id for r in results}) == 8


class BlockingCodec(ImageCodec):
    """Real codec that holds the Nth call until released."""

    def __init__(self, block_on_call=2):
        super().__init__()
        self.block_on_call = block_on_call
        self.calls = 0
        self.started = threading.Event()
        self.release = threading.Event()

    def normalize(self, *args, **kwargs):
        self.calls += 1
        if self.calls == self.block_on_call:
            self.started.set()
            self.release.wait(timeout=5)
        return super().normalize(*args, **kwargs)


class TestCancelledIngestion:

    @pytest.mark.asyncio
    async def test_cancel_during_second_encode_leaves_nothing(self, standard, make_blob, pipeline):
        codec = BlockingCodec()
        blocking = IngestionPipeline(
            standard=standard,
            uploads_root=pipeline.uploads_root,
            staging=pipeline.staging,
            codec=codec,
            catalog=pipeline.catalog,
        )
        task = asyncio.ensure_future(
            blocking.ingest(UploadRequest(owner_name="Ali", files=[make_blob(), make_blob(), make_blob()]))
        )

        for _ in range(500):
            if codec.started.is_set():
                break
            await asyncio.sleep(0.01)
        assert codec.started.is_set()

        task.cancel()
        await asyncio.sleep(0.05)
        # The worker finishes its write after the request was cancelled
        codec.release.set()

        with pytest.raises(asyncio.CancelledError):
            await task

        assert codec.calls == 2
        assert _files(pipeline.uploads_root) == []
        assert _files(pipeline.staging.staging_root) == []
        assert await pipeline.catalog.load() == []
