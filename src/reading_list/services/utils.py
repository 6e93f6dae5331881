"""Shared utility functions for service layer."""
from urllib.parse import urlparse

from reading_list.core.config import get_settings


def is_valid_url(value: str) -> bool:
    """Check that a string is an absolute http(s) URL with a host."""
    try:
        parsed = urlparse(value)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc) and bool(parsed.hostname)


def get_domain(url: str) -> str:
    """
    Extract the display domain from a URL.

    Strips a leading "www." from the hostname. Returns an empty string when the
    URL cannot be parsed or has no host.
    """
    try:
        hostname = urlparse(url).hostname
    except ValueError:
        return ""
    if not hostname:
        return ""
    return hostname.removeprefix("www.")


def favicon_url_for(url: str) -> str | None:
    """Build the favicon-service URL for a page, or None if the URL has no host."""
    try:
        hostname = urlparse(url).hostname
    except ValueError:
        return None
    if not hostname:
        return None
    return get_settings().favicon_service_url.format(domain=hostname)
