"""
Tests for page metadata lookup.

Tests cover:
- extract_html_metadata: pure parsing of title and icon link
- fetch_html: HTTP fetching with mocked responses (success, timeout, errors, non-HTML)
- fetch_metadata: fallbacks and favicon resolution
"""
from collections.abc import Generator
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from reading_list.services.metadata import (
    USER_AGENT,
    PageMetadata,
    extract_html_metadata,
    fallback_metadata,
    fetch_html,
    fetch_metadata,
)


def _response(
    html: str,
    url: str = 'https://example.com/page',
    content_type: str = 'text/html; charset=utf-8',
    status_code: int = 200,
) -> MagicMock:
    response = MagicMock()
    response.text = html
    response.url = url
    response.status_code = status_code
    response.is_success = 200 <= status_code < 300
    response.headers = {'content-type': content_type}
    return response


@pytest.fixture
def mock_client() -> Generator[AsyncMock]:
    """Patch httpx.AsyncClient inside the metadata module."""
    with patch('reading_list.services.metadata.httpx.AsyncClient') as mock_client_class:
        client = AsyncMock()
        client.__aenter__.return_value = client
        client.__aexit__.return_value = None
        mock_client_class.return_value = client
        client.client_class = mock_client_class
        yield client


class TestExtractHtmlMetadata:
    """Tests for extract_html_metadata."""

    def test__extract__title_tag(self) -> None:
        html = '<html><head><title>  My Page </title></head></html>'
        assert extract_html_metadata(html).title == 'My Page'

    def test__extract__og_title_fallback(self) -> None:
        html = '<html><head><meta property="og:title" content="OG Title"></head></html>'
        assert extract_html_metadata(html).title == 'OG Title'

    def test__extract__twitter_title_fallback(self) -> None:
        html = '<html><head><meta name="twitter:title" content="Tweet Title"></head></html>'
        assert extract_html_metadata(html).title == 'Tweet Title'

    def test__extract__first_icon_link(self) -> None:
        html = (
            '<html><head>'
            '<link rel="stylesheet" href="/style.css">'
            '<link rel="shortcut icon" href="/favicon.ico">'
            '<link rel="apple-touch-icon" href="/touch.png">'
            '</head></html>'
        )
        assert extract_html_metadata(html).icon_href == '/favicon.ico'

    def test__extract__nothing_found(self) -> None:
        result = extract_html_metadata('<html><body>No head</body></html>')
        assert result.title is None
        assert result.icon_href is None


class TestFallbackMetadata:
    """Tests for fallback_metadata."""

    def test__fallback__domain_title_and_favicon_service(self) -> None:
        result = fallback_metadata('https://www.example.com/a/b')
        assert result.title == 'example.com'
        assert result.favicon_url == (
            'https://www.google.com/s2/favicons?domain=www.example.com&sz=64'
        )

    def test__fallback__no_host(self) -> None:
        assert fallback_metadata('not a url') == PageMetadata(title='not a url', favicon_url=None)


class TestFetchHtml:
    """Tests for fetch_html."""

    async def test__fetch_html__success(self, mock_client: AsyncMock) -> None:
        mock_client.get.return_value = _response('<html></html>')

        result = await fetch_html('https://example.com', 5.0)

        assert result == ('<html></html>', 'https://example.com/page')
        mock_client.client_class.assert_called_once_with(
            follow_redirects=True,
            timeout=5.0,
            headers={'User-Agent': USER_AGENT},
        )

    async def test__fetch_html__timeout(self, mock_client: AsyncMock) -> None:
        mock_client.get.side_effect = httpx.TimeoutException('Connection timed out')
        assert await fetch_html('https://example.com', 5.0) is None

    async def test__fetch_html__request_error(self, mock_client: AsyncMock) -> None:
        mock_client.get.side_effect = httpx.ConnectError('refused')
        assert await fetch_html('https://example.com', 5.0) is None

    async def test__fetch_html__http_error_status(self, mock_client: AsyncMock) -> None:
        mock_client.get.return_value = _response('Not found', status_code=404)
        assert await fetch_html('https://example.com', 5.0) is None

    async def test__fetch_html__non_html(self, mock_client: AsyncMock) -> None:
        mock_client.get.return_value = _response('%PDF', content_type='application/pdf')
        assert await fetch_html('https://example.com', 5.0) is None


class TestFetchMetadata:
    """Tests for fetch_metadata."""

    async def test__fetch_metadata__page_title_and_relative_icon(
        self, mock_client: AsyncMock,
    ) -> None:
        mock_client.get.return_value = _response(
            '<html><head><title>Article</title>'
            '<link rel="icon" href="/static/icon.png"></head></html>',
            url='https://example.com/posts/1',
        )

        result = await fetch_metadata('https://example.com/p/1')

        assert result == PageMetadata(
            title='Article', favicon_url='https://example.com/static/icon.png',
        )

    async def test__fetch_metadata__malformed_icon_link_uses_fallback_favicon(
        self, mock_client: AsyncMock,
    ) -> None:
        mock_client.get.return_value = _response(
            '<html><head><title>Article</title>'
            '<link rel="icon" href="http://[broken/icon.png"></head></html>',
            url='https://example.com/posts/1',
        )

        result = await fetch_metadata('https://example.com/posts/1')

        assert result == PageMetadata(
            title='Article',
            favicon_url=fallback_metadata('https://example.com/posts/1').favicon_url,
        )

    async def test__fetch_metadata__missing_pieces_use_fallback(
        self, mock_client: AsyncMock,
    ) -> None:
        mock_client.get.return_value = _response('<html><body>bare</body></html>')

        result = await fetch_metadata('https://www.example.com/')

        assert result == fallback_metadata('https://www.example.com/')

    async def test__fetch_metadata__fetch_failure_uses_fallback(
        self, mock_client: AsyncMock,
    ) -> None:
        mock_client.get.side_effect = httpx.TimeoutException('slow')
        result = await fetch_metadata('https://example.com')
        assert result.title == 'example.com'

    async def test__fetch_metadata__unexpected_error_yields_url(
        self, mock_client: AsyncMock,
    ) -> None:
        mock_client.get.return_value = _response('<html></html>')
        with patch(
            'reading_list.services.metadata.extract_html_metadata',
            side_effect=RuntimeError('parser crashed'),
        ):
            result = await fetch_metadata('https://example.com')

        assert result == PageMetadata(title='https://example.com', favicon_url=None)

    async def test__fetch_metadata__disabled_skips_network(
        self, mock_client: AsyncMock, monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.setenv('READING_LIST_FETCH_PAGE_METADATA', 'false')

        result = await fetch_metadata('https://example.com')

        assert result == fallback_metadata('https://example.com')
        mock_client.get.assert_not_called()
