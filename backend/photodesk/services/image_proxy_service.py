"""
PhotoDesk Backend: Image Proxy Service
========================================

What:  Finds the species photo on a trakel.org page and relays image bytes
       to the browser (the site sends no CORS headers, so the frontend
       cannot load the image directly onto its canvas).
How:   httpx.AsyncClient with a fixed User-Agent and timeout; BeautifulSoup
       locates the image element (`img.tur` by default) and its src is
       made absolute by resolve_image_src.
Who:   Called by routes/proxy.py.

Resilience Strategy:
    1. Only allowed hosts (and their subdomains) are contacted, including
       on redirects
    2. Tenacity retry with exponential backoff + jitter on transport errors
       and 5xx responses
    3. Circuit breaker: after N consecutive failed calls every call fails
       fast until the recovery timeout elapses
"""

import logging
import time
import uuid
from typing import NamedTuple, Optional
from urllib.parse import urljoin, urlsplit

import httpx
from bs4 import BeautifulSoup
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential_jitter,
)

from photodesk.config import settings
from photodesk.exceptions import (
    CircuitBreakerOpenError,
    NotFoundError,
    PhotoDeskError,
    UpstreamServiceError,
    ValidationError,
)

logger = logging.getLogger(__name__)

DEFAULT_IMAGE_CONTENT_TYPE = "image/jpeg"


# ══════════════════════════════════════════════════════════════════════════
# Circuit Breaker Implementation
# ══════════════════════════════════════════════════════════════════════════


class CircuitBreaker:
    """
    Circuit breaker guarding calls to the scraped site.

    State Machine:
        CLOSED (normal operation)
            → On failure: increment failure_count
            → When failure_count >= threshold: transition to OPEN

        OPEN (rejecting all requests)
            → All calls raise CircuitBreakerOpenError immediately
            → After recovery_timeout seconds: transition to HALF_OPEN

        HALF_OPEN (testing recovery)
            → Allow the next request through
            → On success: transition to CLOSED (reset failure_count)
            → On failure: transition back to OPEN (reset timer)

    Not thread-safe; all callers run on the single event loop.
    """

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"

    def __init__(self, failure_threshold: int = 5, recovery_timeout: int = 60):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time: Optional[float] = None

    def can_execute(self) -> bool:
        """
        Check if a request is allowed through.

        Raises:
            CircuitBreakerOpenError if OPEN and the recovery timeout has not
            elapsed.
        """
        if self.state == self.CLOSED:
            return True

        if self.state == self.OPEN:
            elapsed = time.time() - (self.last_failure_time or 0)
            if elapsed >= self.recovery_timeout:
                logger.info(
                    "Circuit breaker transitioning to HALF_OPEN after %.1fs",
                    elapsed,
                )
                self.state = self.HALF_OPEN
                return True
            remaining = max(1, int(self.recovery_timeout - elapsed))
            raise CircuitBreakerOpenError(recovery_time=remaining)

        return True

    def record_success(self) -> None:
        if self.state == self.HALF_OPEN:
            logger.info("Circuit breaker transitioning to CLOSED (upstream recovered)")
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time = None

    def record_failure(self) -> None:
        self.failure_count += 1
        self.last_failure_time = time.time()

        if self.state == self.HALF_OPEN:
            logger.warning("Circuit breaker returning to OPEN (test request failed)")
            self.state = self.OPEN
        elif self.failure_count >= self.failure_threshold:
            logger.warning(
                "Circuit breaker OPENING after %d consecutive failures",
                self.failure_count,
            )
            self.state = self.OPEN


# ══════════════════════════════════════════════════════════════════════════
# Helpers
# ══════════════════════════════════════════════════════════════════════════


def is_allowed_url(url: Optional[str], allowed_hosts=None) -> bool:
    """http(s) URL whose host is an allowed host or one of its subdomains."""
    if not url:
        return False
    try:
        parts = urlsplit(url)
    except ValueError:
        return False
    if parts.scheme not in ("http", "https"):
        return False
    host = (parts.hostname or "").lower()
    if not host:
        return False
    hosts = allowed_hosts if allowed_hosts is not None else settings.proxy_allowed_hosts_list
    return any(host == allowed or host.endswith("." + allowed) for allowed in hosts)


def resolve_image_src(page_url: str, src: str) -> str:
    """
    Absolute URL of an <img> src found on a species page.

    The site writes its images as `../resim/...` from pages at any depth
    and means the site root, so leading `../` segments resolve against
    the origin. Everything else follows normal URL resolution.
    """
    if src.startswith("../"):
        parts = urlsplit(page_url)
        return f"{parts.scheme}://{parts.netloc}/{src.lstrip('./')}"
    return urljoin(page_url, src)


def _is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, httpx.TransportError):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code >= 500
    return False


class ProxiedImage(NamedTuple):
    content: bytes
    content_type: str


# ══════════════════════════════════════════════════════════════════════════
# Image Proxy Service
# ══════════════════════════════════════════════════════════════════════════


class ImageProxyService:
    """
    Scrape-and-relay client for the species photo site.

    Error Handling Chain:
        Call fails (transport / 5xx) → tenacity retries with backoff
        → All retries fail → record circuit breaker failure
        → UpstreamServiceError (502)
        Upstream 4xx → UpstreamServiceError without a retry; the site
        answered, so the breaker counts it as a success.
    """

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        """
        Args:
            transport: Optional httpx transport (tests pass httpx.MockTransport).
        """
        self._transport = transport
        self.circuit_breaker = CircuitBreaker(
            failure_threshold=settings.cb_failure_threshold,
            recovery_timeout=settings.cb_recovery_timeout,
        )
        logger.info(
            "ImageProxyService initialized for hosts=%s, "
            "circuit_breaker(threshold=%d, recovery=%ds)",
            settings.proxy_allowed_hosts,
            settings.cb_failure_threshold,
            settings.cb_recovery_timeout,
        )

    @property
    def state(self) -> str:
        return self.circuit_breaker.state

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            transport=self._transport,
            headers={"User-Agent": settings.proxy_user_agent},
            timeout=settings.proxy_timeout,
            follow_redirects=True,
            event_hooks={"request": [self._check_request_host]},
        )

    @staticmethod
    async def _check_request_host(request: httpx.Request) -> None:
        # Runs for the first request and every redirect hop
        if not is_allowed_url(str(request.url)):
            raise ValidationError(
                message="Only images from the configured source site can be fetched.",
                field="url",
                context={"host": request.url.host},
            )

    # ── Public API ────────────────────────────────────────────────────────

    async def extract_image_url(self, page_url: Optional[str]) -> str:
        """
        Find the photo on a species page.

        Returns:
            Absolute URL of the image on the scraped site.

        Raises:
            ValidationError: page_url missing or not on an allowed host
            NotFoundError: the page has no matching image element
            UpstreamServiceError / CircuitBreakerOpenError: fetch failed
        """
        if not is_allowed_url(page_url):
            raise ValidationError(
                message="Invalid trakel.org URL.",
                field="trakelUrl",
                context={"url": page_url},
            )

        logger.info("Extracting image from %s", page_url)
        response = await self._guarded_get(page_url)

        soup = BeautifulSoup(response.text, "html.parser")
        img = soup.select_one(settings.scrape_image_selector)
        src = (img.get("src") or "").strip() if img else ""
        if not src:
            logger.warning("No image found on %s", page_url)
            raise NotFoundError(resource="image", context={"url": page_url})

        direct_url = resolve_image_src(str(response.url), src)
        logger.info("Image found: %s", direct_url)
        return direct_url

    async def fetch_image(self, url: Optional[str]) -> ProxiedImage:
        """
        Download image bytes for relaying.

        Raises:
            ValidationError: url missing or not on an allowed host
            UpstreamServiceError / CircuitBreakerOpenError: fetch failed
        """
        if not url:
            raise ValidationError(message="The url parameter is required.", field="url")
        if not is_allowed_url(url):
            raise ValidationError(
                message="Only images from the configured source site can be fetched.",
                field="url",
                context={"url": url},
            )

        response = await self._guarded_get(url)
        content_type = response.headers.get("content-type") or DEFAULT_IMAGE_CONTENT_TYPE
        logger.debug("Relaying %d bytes (%s) from %s", len(response.content), content_type, url)
        return ProxiedImage(content=response.content, content_type=content_type)

    # ── Internals ─────────────────────────────────────────────────────────

    async def _guarded_get(self, url: str) -> httpx.Response:
        """GET through the circuit breaker and the retry policy."""
        call_id = uuid.uuid4().hex[:8]
        self.circuit_breaker.can_execute()

        try:
            response = await self._get_with_retry(url, call_id)
        except PhotoDeskError:
            raise
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            if status < 500:
                self.circuit_breaker.record_success()
                logger.warning("[%s] Upstream answered %d for %s", call_id, status, url)
                raise UpstreamServiceError(
                    message=f"The image source answered with status {status}.",
                    context={"url": url, "status": status},
                )
            self.circuit_breaker.record_failure()
            logger.error("[%s] Upstream kept failing with %d for %s", call_id, status, url)
            raise UpstreamServiceError(
                message="The image source is temporarily unavailable. Please try again later.",
                context={"url": url, "status": status, "attempts": settings.retry_max_attempts},
            )
        except httpx.HTTPError as e:
            self.circuit_breaker.record_failure()
            logger.error("[%s] All upstream retries exhausted for %s: %s", call_id, url, str(e))
            raise UpstreamServiceError(
                message="The image source could not be reached. Please try again later.",
                context={"url": url, "error_type": type(e).__name__},
            )

        self.circuit_breaker.record_success()
        return response

    @retry(
        retry=retry_if_exception(_is_retryable),
        stop=stop_after_attempt(settings.retry_max_attempts),
        wait=wait_exponential_jitter(
            initial=settings.retry_min_wait,
            max=settings.retry_max_wait,
            jitter=settings.retry_jitter,
        ),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async def _get_with_retry(self, url: str, call_id: str) -> httpx.Response:
        start_time = time.time()
        async with self._client() as client:
            response = await client.get(url)
            response.raise_for_status()
        logger.info(
            "[%s] GET %s → %d in %.0fms",
            call_id,
            url,
            response.status_code,
            (time.time() - start_time) * 1000,
        )
        return response


# ── Singleton Instance ────────────────────────────────────────────────────
# Holds the circuit breaker state shared by all requests
image_proxy_service = ImageProxyService()
