"""HTTP fetcher for ICS calendar feeds."""

import asyncio
import logging
import random
from typing import Any, Optional

import httpx

from .http_client import create_client

logger = logging.getLogger(__name__)

# Backoff calculation constants
MAX_BACKOFF_SECONDS = 30.0
JITTER_MIN_FACTOR = 0.1
JITTER_MAX_FACTOR = 0.3


class FetchError(Exception):
    """Base exception for feed download failures."""

    def __init__(self, message: str, url: Optional[str] = None):
        super().__init__(message)
        self.url = url


class FetchTimeoutError(FetchError):
    """The server did not answer within the configured timeout."""


class FetchNetworkError(FetchError):
    """DNS, connection or TLS failure."""


class FetchHTTPStatusError(FetchError):
    """The server answered with a non-2xx status."""

    def __init__(self, message: str, url: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message, url)
        self.status_code = status_code


class FetchContentError(FetchError):
    """The server answered 2xx with an empty body."""


class ICSFetcher:
    """Async downloader returning the raw text of one calendar feed.

    The fetcher can own its ``httpx.AsyncClient`` (created lazily, closed on
    exit) or borrow one passed in by the caller, which then stays open.
    """

    def __init__(self, settings: Any = None, client: Optional[httpx.AsyncClient] = None) -> None:
        """Initialize ICS fetcher.

        Args:
            settings: Object exposing request_timeout, max_retries, retry_backoff_factor
            client: Optional shared HTTP client for connection reuse
        """
        self.settings = settings
        self.client: Optional[httpx.AsyncClient] = client
        self._owns_client = client is None
        self.request_timeout = float(getattr(settings, "request_timeout", 30))
        self.max_retries = max(0, int(getattr(settings, "max_retries", 0)))
        self.backoff_factor = float(getattr(settings, "retry_backoff_factor", 1.5))

        logger.debug(
            "ICS fetcher initialized (shared_client=%s, timeout=%ss, max_retries=%d)",
            not self._owns_client,
            self.request_timeout,
            self.max_retries,
        )

    async def __aenter__(self) -> "ICSFetcher":
        self._ensure_client()
        return self

    async def __aexit__(self, _exc_type: Any, _exc_val: Any, _exc_tb: Any) -> None:
        await self.close()

    def _ensure_client(self) -> httpx.AsyncClient:
        if self.client is None or self.client.is_closed:
            self.client = create_client(self.request_timeout)
            self._owns_client = True
        return self.client

    async def close(self) -> None:
        """Close the HTTP client if this fetcher created it."""
        if self.client is not None and self._owns_client and not self.client.is_closed:
            await self.client.aclose()
            logger.debug("Closed HTTP client")
        if self._owns_client:
            self.client = None

    async def fetch_ics(self, url: str) -> str:
        """Download the ICS text behind ``url``.

        Args:
            url: HTTP(S) URL of the feed

        Returns:
            Response body decoded as text

        Raises:
            FetchTimeoutError: Timed out on every attempt
            FetchNetworkError: Connection-level failure on every attempt
            FetchHTTPStatusError: Non-2xx response (never retried)
            FetchContentError: 2xx response with an empty body
            FetchError: Any other request failure, e.g. a malformed URL
        """
        client = self._ensure_client()
        logger.debug("Fetching ICS from %s", url)

        try:
            response = await self._get_with_retry(client, url)
        except httpx.TimeoutException as e:
            raise FetchTimeoutError(
                f"Request timeout after {self.request_timeout:g}s", url
            ) from e
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            raise FetchHTTPStatusError(
                f"HTTP {status}: {e.response.reason_phrase}", url, status_code=status
            ) from e
        except httpx.TransportError as e:
            raise FetchNetworkError(f"Network error: {e}", url) from e
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise FetchError(f"Request failed: {e}", url) from e

        content = response.text
        if not content or not content.strip():
            raise FetchContentError("Empty content received", url)

        content_type = response.headers.get("content-type", "").lower()
        if content_type and not any(ct in content_type for ct in ("text/calendar", "text/plain")):
            logger.debug("Unexpected content type %s from %s", content_type, url)

        logger.debug("Fetched %d bytes from %s", len(content), url)
        return content

    def _calculate_backoff(self, attempt: int) -> float:
        """Exponential backoff with jitter, capped at MAX_BACKOFF_SECONDS."""
        base_backoff = min(self.backoff_factor**attempt, MAX_BACKOFF_SECONDS)
        jitter = random.uniform(JITTER_MIN_FACTOR, JITTER_MAX_FACTOR) * base_backoff  # nosec B311 - jitter not cryptographic
        return base_backoff + jitter

    async def _get_with_retry(self, client: httpx.AsyncClient, url: str) -> httpx.Response:
        """GET with retries for timeout and transport errors only."""
        attempt = 0
        while True:
            try:
                response = await client.get(url)
                response.raise_for_status()
                return response
            except httpx.HTTPStatusError:
                # Don't retry HTTP errors (auth errors, not found, etc.)
                raise
            except httpx.TransportError as e:
                if attempt >= self.max_retries:
                    raise
                backoff_time = self._calculate_backoff(attempt)
                logger.warning(
                    "Request to %s failed (attempt %d/%d), retrying in %.1fs: %s",
                    url,
                    attempt + 1,
                    self.max_retries + 1,
                    backoff_time,
                    e,
                )
                await asyncio.sleep(backoff_time)
                attempt += 1
