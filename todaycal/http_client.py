"""httpx client construction for ICS feed downloads."""

import logging
from typing import Optional

import httpx

logger = logging.getLogger(__name__)

# Browser-like headers; some providers (e.g. Office365) reject obvious bots
DEFAULT_BROWSER_HEADERS: dict[str, str] = {
    "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Accept": "text/calendar, text/plain, application/octet-stream, */*",
    "Accept-Language": "en-US,en;q=0.9",
    "Cache-Control": "no-cache",
}

_LIMITS = httpx.Limits(max_connections=4, max_keepalive_connections=2)


def build_timeout(request_timeout: float) -> httpx.Timeout:
    """Timeout with the read budget taken from configuration."""
    return httpx.Timeout(connect=10.0, read=request_timeout, write=10.0, pool=30.0)


def create_client(
    request_timeout: float = 30.0,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.AsyncClient:
    """Create an AsyncClient configured for calendar feed downloads.

    Args:
        request_timeout: Read timeout in seconds
        transport: Optional transport override (tests pass ``httpx.MockTransport``)

    Returns:
        New httpx.AsyncClient; the caller owns and must close it
    """
    client = httpx.AsyncClient(
        transport=transport,
        limits=_LIMITS,
        timeout=build_timeout(request_timeout),
        follow_redirects=True,
        headers=DEFAULT_BROWSER_HEADERS,
    )
    logger.debug("Created HTTP client (timeout=%ss)", request_timeout)
    return client
