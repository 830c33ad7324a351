"""
PhotoDesk Backend: Image Proxy Service Unit Tests
===================================================

What:  Host allow-list, page scraping, retry and circuit breaker behavior.
How:   httpx.MockTransport stands in for the scraped site; conftest caps
       retries at 2 attempts with no waits.
"""

import time

import httpx
import pytest

from photodesk.exceptions import (
    CircuitBreakerOpenError,
    NotFoundError,
    UpstreamServiceError,
    ValidationError,
)
from photodesk.services.image_proxy_service import (
    CircuitBreaker,
    ImageProxyService,
    is_allowed_url,
    resolve_image_src,
)

PAGE_URL = "https://www.trakel.org/tur/papilio-machaon"
PAGE_HTML = """
<html><body>
  <img class="logo" src="/static/logo.png">
  <img class="tur" src="/resimler/machaon.jpg" alt="Papilio machaon">
</body></html>
"""


def _service(handler):
    calls = []

    def recording(request):
        calls.append(request)
        return handler(request)

    return ImageProxyService(transport=httpx.MockTransport(recording)), calls


class TestCircuitBreaker:

    def test_opens_after_threshold(self):
        cb = CircuitBreaker(failure_threshold=3, recovery_timeout=60)
        for _ in range(3):
            assert cb.can_execute()
            cb.record_failure()

        assert cb.state == CircuitBreaker.OPEN
        with pytest.raises(CircuitBreakerOpenError) as exc_info:
            cb.can_execute()
        assert 1 <= exc_info.value.recovery_time <= 60

    def test_half_open_after_timeout_then_closes(self):
        cb = CircuitBreaker(failure_threshold=1, recovery_timeout=0)
        cb.record_failure()

        assert cb.can_execute()
        assert cb.state == CircuitBreaker.HALF_OPEN
        cb.record_success()
        assert cb.state == CircuitBreaker.CLOSED
        assert cb.failure_count == 0

    def test_failure_in_half_open_reopens(self):
        cb = CircuitBreaker(failure_threshold=5, recovery_timeout=0)
        cb.state = CircuitBreaker.HALF_OPEN
        cb.record_failure()
        assert cb.state == CircuitBreaker.OPEN


class TestAllowedUrl:

    @pytest.mark.parametrize(
        "url",
        ["https://trakel.org/x", "http://www.trakel.org/tur/1", "https://img.trakel.org/a.jpg"],
    )
    def test_allowed(self, url):
        assert is_allowed_url(url)

    @pytest.mark.parametrize(
        "url",
        [
            None,
            "",
            "ftp://trakel.org/x",
            "https://nottrakel.org/x",
            "https://trakel.org.evil.com/x",
            "file:///etc/passwd",
            "trakel.org/x",
        ],
    )
    def test_rejected(self, url):
        assert not is_allowed_url(url)


class TestResolveImageSrc:

    @pytest.mark.parametrize(
        "page,src,expected",
        [
            ("https://www.trakel.org/tur/12", "../resim/a.jpg", "https://www.trakel.org/resim/a.jpg"),
            ("https://www.trakel.org/kelebek/tur/12", "../resim/a.jpg", "https://www.trakel.org/resim/a.jpg"),
            ("https://www.trakel.org/a/b/c/d", "../../resim/a.jpg", "https://www.trakel.org/resim/a.jpg"),
            ("https://www.trakel.org/kelebek/tur/12", "/resim/a.jpg", "https://www.trakel.org/resim/a.jpg"),
            ("https://www.trakel.org/kelebek/tur/12", "resim/a.jpg", "https://www.trakel.org/kelebek/tur/resim/a.jpg"),
            ("https://www.trakel.org/tur/12", "https://img.trakel.org/a.jpg", "https://img.trakel.org/a.jpg"),
        ],
    )
    def test_resolution(self, page, src, expected):
        assert resolve_image_src(page, src) == expected


class TestExtractImageUrl:

    @pytest.mark.asyncio
    async def test_relative_src_is_resolved(self):
        service, calls = _service(lambda request: httpx.Response(200, text=PAGE_HTML))

        direct = await service.extract_image_url(PAGE_URL)

        assert direct == "https://www.trakel.org/resimler/machaon.jpg"
        assert len(calls) == 1
        assert calls[0].headers["user-agent"].startswith("Mozilla/5.0")

    @pytest.mark.asyncio
    async def test_page_without_image(self):
        service, _ = _service(lambda request: httpx.Response(200, text="<html><img src='/a.png'></html>"))

        with pytest.raises(NotFoundError):
            await service.extract_image_url(PAGE_URL)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("url", [None, "", "https://example.com/tur/1", "not a url"])
    async def test_invalid_page_url_makes_no_request(self, url):
        service, calls = _service(lambda request: httpx.Response(200, text=PAGE_HTML))

        with pytest.raises(ValidationError, match="Invalid trakel.org URL"):
            await service.extract_image_url(url)
        assert calls == []

    @pytest.mark.asyncio
    async def test_redirect_to_other_host_is_blocked(self):
        def handler(request):
            if request.url.host == "www.trakel.org":
                return httpx.Response(302, headers={"Location": "http://169.254.169.254/latest"})
            return httpx.Response(200, text=PAGE_HTML)

        service, calls = _service(handler)

        with pytest.raises(ValidationError):
            await service.extract_image_url(PAGE_URL)
        assert [c.url.host for c in calls] == ["www.trakel.org"]


class TestRetriesAndBreaker:

    @pytest.mark.asyncio
    async def test_server_errors_are_retried_then_fail(self):
        service, calls = _service(lambda request: httpx.Response(503))

        with pytest.raises(UpstreamServiceError) as exc_info:
            await service.extract_image_url(PAGE_URL)

        assert len(calls) == 2
        assert exc_info.value.context["status"] == 503
        assert service.circuit_breaker.failure_count == 1

    @pytest.mark.asyncio
    async def test_transport_errors_are_retried(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        service, calls = _service(handler)

        with pytest.raises(UpstreamServiceError):
            await service.fetch_image("https://www.trakel.org/resimler/a.jpg")
        assert len(calls) == 2
        assert service.circuit_breaker.failure_count == 1

    @pytest.mark.asyncio
    async def test_client_errors_are_not_retried(self):
        service, calls = _service(lambda request: httpx.Response(404))

        with pytest.raises(UpstreamServiceError) as exc_info:
            await service.fetch_image("https://www.trakel.org/resimler/missing.jpg")

        assert len(calls) == 1
        assert exc_info.value.context["status"] == 404
        assert service.circuit_breaker.failure_count == 0

    @pytest.mark.asyncio
    async def test_recovers_after_one_failed_attempt(self):
        responses = iter([httpx.Response(500), httpx.Response(200, text=PAGE_HTML)])
        service, calls = _service(lambda request: next(responses))

        assert (await service.extract_image_url(PAGE_URL)).endswith("/resimler/machaon.jpg")
        assert len(calls) == 2
        assert service.state == CircuitBreaker.CLOSED

    @pytest.mark.asyncio
    async def test_open_circuit_fails_fast(self):
        service, calls = _service(lambda request: httpx.Response(200, content=b"img"))
        service.circuit_breaker.state = CircuitBreaker.OPEN
        service.circuit_breaker.last_failure_time = time.time()

        with pytest.raises(CircuitBreakerOpenError):
            await service.fetch_image("https://www.trakel.org/resimler/a.jpg")
        assert calls == []


class TestFetchImage:

    @pytest.mark.asyncio
    async def test_relays_bytes_and_content_type(self):
        service, _ = _service(
            lambda request: httpx.Response(200, content=b"\x89PNG...", headers={"Content-Type": "image/png"})
        )

        image = await service.fetch_image("https://www.trakel.org/resimler/a.png")

        assert image.content == b"\x89PNG..."
        assert image.content_type == "image/png"

    @pytest.mark.asyncio
    async def test_missing_content_type_defaults_to_jpeg(self):
        service, _ = _service(lambda request: httpx.Response(200, content=b"\xff\xd8\xff"))

        image = await service.fetch_image("https://www.trakel.org/resimler/a.jpg")

        assert image.content_type == "image/jpeg"

    @pytest.mark.asyncio
    async def test_url_required(self):
        service, _ = _service(lambda request: httpx.Response(200))
        with pytest.raises(ValidationError, match="url parameter is required"):
            await service.fetch_image("")

    @pytest.mark.asyncio
    async def test_other_hosts_rejected(self):
        service, calls = _service(lambda request: httpx.Response(200))
        with pytest.raises(ValidationError):
            await service.fetch_image("http://localhost:3001/api/photographers")
        assert calls == []


class TestNestedPageExtraction:

    @pytest.mark.asyncio
    async def test_parent_relative_src_on_deep_page_points_at_site_root(self):
        html = '<img class="tur" src="../resim/kelebek/machaon.jpg">'
        service, _ = _service(lambda request: httpx.Response(200, text=html))

        direct = await service.extract_image_url("https://www.trakel.org/kelebekler/papilionidae/tur/machaon")

        assert direct == "https://www.trakel.org/resim/kelebek/machaon.jpg"
