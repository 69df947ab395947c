"""Meeting-link detection in free-text event fields."""

import logging
import re
from collections.abc import Iterable

from .constants import CONFERENCE_PLATFORM_DOMAINS

logger = logging.getLogger(__name__)

# Permissive: scheme followed by any run of non-whitespace
URL_PATTERN = re.compile(r"https?://\S+")


def find_urls(text: str) -> list[str]:
    """Return every URL-like substring of ``text`` in order of appearance."""
    if not text:
        return []
    return URL_PATTERN.findall(text)


def is_conference_url(url: str, domains: Iterable[str] = CONFERENCE_PLATFORM_DOMAINS) -> bool:
    """Check whether a URL points at a known meeting platform."""
    return any(domain in url for domain in domains)


def extract_conference_link(description: str, location: str) -> str:
    """Return the first meeting-platform URL found in description then location.

    Generic URLs are ignored; an empty string means no meeting link.

    Examples:
        >>> extract_conference_link("join at https://example.com/x and https://zoom.us/y", "")
        'https://zoom.us/y'
        >>> extract_conference_link("see https://example.com", "")
        ''
    """
    candidates = find_urls(description) + find_urls(location)
    for url in candidates:
        if is_conference_url(url):
            logger.debug("Conference link detected: %s", url)
            return url
    return ""
