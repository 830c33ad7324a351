"""
PhotoDesk Backend: Test Configuration (conftest.py)
=====================================================

What:  Shared pytest fixtures for the whole suite.
How:   Environment overrides are applied before any photodesk import so the
       settings singleton points at a throw-away public/ tree and retries
       never sleep.

Fixture Hierarchy:
    Function-scoped:
    ├── make_image: Pillow-generated JPEG/PNG bytes of any size
    ├── make_blob: UploadedBlob factory
    ├── standard: The configured PhotoStandard (240x320 jpeg)
    ├── pipeline: IngestionPipeline isolated under tmp_path
    └── test_client: HTTPX AsyncClient on the ASGI app, clean public/ tree
"""

import io
import os
import shutil
import tempfile

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from PIL import Image

# ══════════════════════════════════════════════════════════════════════════
# Environment Setup
# ══════════════════════════════════════════════════════════════════════════

# Override settings BEFORE any photodesk import
os.environ["PUBLIC_ROOT"] = tempfile.mkdtemp(prefix="photodesk_test_")
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["RETRY_MAX_ATTEMPTS"] = "2"
os.environ["RETRY_MIN_WAIT"] = "0"
os.environ["RETRY_MAX_WAIT"] = "0"
os.environ["RETRY_JITTER"] = "0"
os.environ["RATE_LIMIT_REQUESTS"] = "100000"

from photodesk.config import settings  # noqa: E402
from photodesk.schemas.photo import UploadedBlob  # noqa: E402
from photodesk.services.catalog_service import PhotoRecordCatalog  # noqa: E402
from photodesk.services.ingestion_service import IngestionPipeline  # noqa: E402
from photodesk.services.staging_service import StagingStore  # noqa: E402


# ══════════════════════════════════════════════════════════════════════════
# Image Fixtures
# ══════════════════════════════════════════════════════════════════════════


def render_image(width=800, height=600, fmt="JPEG", mode="RGB", color=(200, 60, 40), exif=None) -> bytes:
    img = Image.new(mode, (width, height), color)
    buffer = io.BytesIO()
    kwargs = {}
    if exif is not None:
        kwargs["exif"] = exif
    img.save(buffer, format=fmt, **kwargs)
    return buffer.getvalue()


@pytest.fixture
def make_image():
    """
    Factory for real encoded images.

    Usage:
        jpeg = make_image(800, 600)
        png = make_image(300, 300, fmt="PNG", mode="RGBA", color=(0, 0, 0, 0))
    """
    return render_image


@pytest.fixture
def make_blob(make_image):
    """Factory for UploadedBlob; content defaults to an 800x600 JPEG."""

    def _make(filename="photo.jpg", media_type="image/jpeg", content=None, size=None):
        if content is None:
            content = make_image(800, 600)
        return UploadedBlob(
            filename=filename,
            media_type=media_type,
            size=len(content) if size is None else size,
            content=content,
        )

    return _make


@pytest.fixture
def standard():
    return settings.photo_standard


# ══════════════════════════════════════════════════════════════════════════
# Service Fixtures
# ══════════════════════════════════════════════════════════════════════════


@pytest.fixture
def pipeline(tmp_path, standard):
    """
    IngestionPipeline with its own staging dir, uploads root and catalog.

    Layout under tmp_path:
        temp/      staged uploads
        uploads/   one directory per owner
        data/photo-records.json
    """
    return IngestionPipeline(
        standard=standard,
        uploads_root=tmp_path / "uploads",
        staging=StagingStore(str(tmp_path / "temp")),
        catalog=PhotoRecordCatalog(tmp_path / "data" / "photo-records.json"),
    )


@pytest_asyncio.fixture
async def test_client():
    """
    Async HTTP client talking to the FastAPI app in-process.

    The shared public/ tree is wiped first so every API test starts from
    empty collections and no uploaded files.
    """
    from photodesk.main import app

    shutil.rmtree(settings.public_path, ignore_errors=True)
    settings.ensure_directories()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
