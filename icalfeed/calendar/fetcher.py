"""HTTP retrieval of iCalendar sources."""

import asyncio
import logging
import random
from typing import Optional
from urllib.parse import urlparse

import httpx

from ..core.config_manager import FetchConfig
from ..core.http_client import (
    create_client,
    get_shared_client,
    record_client_error,
    record_client_success,
)
from .exceptions import SourceUnavailable

logger = logging.getLogger(__name__)

MAX_BACKOFF_SECONDS = 30.0
JITTER_MIN_FACTOR = 0.1
JITTER_MAX_FACTOR = 0.3


def redact_url(url: str) -> str:
    """Return ``scheme://host/...`` so secret paths and credentials stay out of logs."""
    parsed = urlparse(url)
    if not parsed.hostname:
        return "<invalid url>"
    return f"{parsed.scheme}://{parsed.hostname}/..."


class CalendarFetcher:
    """Async HTTP client for downloading calendar documents."""

    def __init__(
        self, settings: Optional[FetchConfig] = None, client: Optional[httpx.AsyncClient] = None
    ) -> None:
        """Initialize fetcher.

        Args:
            settings: Timeout and retry settings
            client: Optional client to use instead of the shared pool
        """
        self.settings = settings or FetchConfig()
        self.client: Optional[httpx.AsyncClient] = client
        self._use_shared_client = client is None
        self._client_id = "fetcher"

    async def __aenter__(self) -> "CalendarFetcher":
        await self._ensure_client()
        return self

    async def __aexit__(self, _exc_type: object, _exc_val: object, _exc_tb: object) -> None:
        if self._use_shared_client:
            # shared clients are closed by close_all_clients()
            self.client = None

    async def _ensure_client(self) -> httpx.AsyncClient:
        # the shared pool is asked every time so an unhealthy client gets replaced
        if self._use_shared_client:
            self.client = await get_shared_client(self._client_id, self.settings)
        elif self.client is None or self.client.is_closed:
            self.client = create_client(self.settings)
        return self.client

    @staticmethod
    def validate_url(url: str) -> bool:
        """Accept only absolute http(s) URLs with a hostname."""
        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https"):
            logger.debug("Blocked non-HTTP(S) URL scheme: %s", parsed.scheme)
            return False
        if not parsed.hostname:
            logger.debug("Blocked URL with missing hostname")
            return False
        return True

    def _calculate_backoff(self, attempt: int) -> float:
        """Exponential backoff with jitter, capped at MAX_BACKOFF_SECONDS."""
        base_backoff = min(self.settings.retry_backoff_factor**attempt, MAX_BACKOFF_SECONDS)
        jitter = random.uniform(JITTER_MIN_FACTOR, JITTER_MAX_FACTOR) * base_backoff  # nosec B311 - jitter not cryptographic
        return base_backoff + jitter

    async def fetch(self, url: str) -> bytes:
        """Download a calendar document.

        The body is returned only once it has been received completely.

        Args:
            url: HTTP(S) URL of the calendar

        Returns:
            Raw response body

        Raises:
            SourceUnavailable: URL rejected, HTTP error status, timeout or
                network failure after all retries
        """
        label = redact_url(url)
        if not self.validate_url(url):
            raise SourceUnavailable("URL blocked: only http(s) URLs are allowed", label)

        client = await self._ensure_client()
        max_retries = self.settings.max_retries
        attempt = 0

        while True:
            try:
                response = await client.get(url)
                response.raise_for_status()
            except httpx.HTTPStatusError as e:
                # no retry for HTTP errors (auth, not found, ...)
                status = e.response.status_code
                raise SourceUnavailable(
                    f"HTTP {status}: {e.response.reason_phrase}", label, status
                ) from e
            except (httpx.TimeoutException, httpx.NetworkError) as e:
                if self._use_shared_client:
                    await record_client_error(self._client_id)
                if attempt >= max_retries:
                    raise SourceUnavailable(
                        f"Request failed after {attempt + 1} attempts: {e!r}", label
                    ) from e
                backoff_time = self._calculate_backoff(attempt)
                logger.warning(
                    "Request to %s failed (attempt %d/%d), retrying in %.1fs: %r",
                    label,
                    attempt + 1,
                    max_retries + 1,
                    backoff_time,
                    e,
                )
                await asyncio.sleep(backoff_time)
                attempt += 1
                client = await self._ensure_client()
                continue
            except httpx.HTTPError as e:
                raise SourceUnavailable(f"Request failed: {e!r}", label) from e

            if self._use_shared_client:
                await record_client_success(self._client_id)

            content_type = response.headers.get("content-type", "").lower()
            if content_type and not any(ct in content_type for ct in ("text/calendar", "text/plain")):
                logger.debug("Unexpected content type from %s: %s", label, content_type)

            logger.debug(
                "Fetched %s (attempt %d) - %d bytes", label, attempt + 1, len(response.content)
            )
            return response.content
