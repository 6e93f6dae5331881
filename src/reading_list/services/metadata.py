"""Best-effort page metadata (title and favicon) for new bookmarks."""
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from urllib.parse import urljoin

import httpx
from bs4 import BeautifulSoup

from reading_list.core.config import get_settings
from reading_list.services.utils import favicon_url_for, get_domain

logger = logging.getLogger(__name__)

USER_AGENT = 'Mozilla/5.0 (compatible; ReadingList/1.0)'


@dataclass
class PageMetadata:
    """Title and favicon discovered for a page."""

    title: str
    favicon_url: str | None


@dataclass
class ExtractedMetadata:
    """Title and icon link found in an HTML document (either may be missing)."""

    title: str | None
    icon_href: str | None


MetadataFetcher = Callable[[str], Awaitable[PageMetadata]]


def fallback_metadata(url: str) -> PageMetadata:
    """
    Metadata derived from the URL alone.

    Title is the domain without a leading "www."; favicon comes from the
    favicon service. A URL without a host yields the URL itself as title and
    no favicon.
    """
    domain = get_domain(url)
    if not domain:
        return PageMetadata(title=url, favicon_url=None)
    return PageMetadata(title=domain, favicon_url=favicon_url_for(url))


def extract_html_metadata(html: str) -> ExtractedMetadata:
    """
    Extract title and icon link from HTML.

    Pure function with no I/O. Uses BeautifulSoup for parsing.

    Title extraction priority:
    1. <title> tag
    2. <meta property="og:title">
    3. <meta name="twitter:title">

    Icon: the first <link> whose rel includes "icon".
    """
    soup = BeautifulSoup(html, 'lxml')

    title = None
    title_tag = soup.find('title')
    if title_tag and title_tag.string:
        title = title_tag.string.strip() or None
    if not title:
        og_title = soup.find('meta', property='og:title')
        if og_title and og_title.get('content'):
            title = og_title['content'].strip() or None
    if not title:
        twitter_title = soup.find('meta', attrs={'name': 'twitter:title'})
        if twitter_title and twitter_title.get('content'):
            title = twitter_title['content'].strip() or None

    icon_href = None
    for link in soup.find_all('link', href=True):
        rel = link.get('rel') or []
        if any('icon' in value.lower() for value in rel):
            icon_href = link['href'].strip() or None
            break

    return ExtractedMetadata(title=title, icon_href=icon_href)


async def fetch_html(url: str, timeout: float) -> tuple[str, str] | None:  # noqa: ASYNC109
    """
    Fetch a page's HTML.

    Returns:
        (html, final_url) on a successful HTML response, otherwise None.
    """
    try:
        async with httpx.AsyncClient(
            follow_redirects=True,
            timeout=timeout,
            headers={'User-Agent': USER_AGENT},
        ) as client:
            response = await client.get(url)
    except httpx.TimeoutException:
        logger.debug("Metadata fetch timed out for %s", url)
        return None
    except httpx.RequestError as e:
        logger.debug("Metadata fetch failed for %s: %s", url, e)
        return None

    if not response.is_success:
        logger.debug("Metadata fetch for %s returned HTTP %s", url, response.status_code)
        return None
    content_type = response.headers.get('content-type', '')
    if 'text/html' not in content_type.lower():
        return None
    return response.text, str(response.url)


async def fetch_metadata(url: str) -> PageMetadata:
    """
    Look up a page's title and favicon.

    Never raises: any failure falls back to `fallback_metadata`, and an
    unexpected error while parsing yields `{title: url, favicon_url: None}`.
    """
    settings = get_settings()
    fallback = fallback_metadata(url)
    if not settings.fetch_page_metadata or fallback.favicon_url is None:
        return fallback

    try:
        fetched = await fetch_html(url, settings.metadata_timeout)
        if fetched is None:
            return fallback
        html, final_url = fetched
        extracted = extract_html_metadata(html)
    except Exception:
        logger.exception("Unexpected error fetching metadata for %s", url)
        return PageMetadata(title=url, favicon_url=None)

    favicon = _resolve_icon(final_url, extracted.icon_href) if extracted.icon_href else None
    return PageMetadata(
        title=extracted.title or fallback.title,
        favicon_url=favicon or fallback.favicon_url,
    )


def _resolve_icon(base_url: str, href: str) -> str | None:
    """Absolute URL of an icon link, or None if `href` is not a usable URL."""
    try:
        return urljoin(base_url, href)
    except ValueError as e:
        logger.debug("Ignoring malformed icon link %r on %s: %s", href, base_url, e)
        return None
