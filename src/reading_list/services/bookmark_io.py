"""
Import and export of bookmark collections.

Exports render a snapshot as text for download. Imports parse a browser's
"Export bookmarks" HTML file into drafts for `MutationCoordinator.import_bookmarks`.
"""
import csv
import io
import json
from collections.abc import Iterable
from typing import Any

from bs4 import BeautifulSoup

from reading_list.schemas.bookmark import Bookmark
from reading_list.services.utils import is_valid_url

CSV_HEADERS = ["Title", "URL", "Status", "Tags", "Notes", "Created At"]
TAG_SEPARATOR = "; "


def export_json(records: Iterable[Bookmark]) -> str:
    """Serialize records as a pretty-printed JSON array."""
    return json.dumps([record.model_dump(mode="json") for record in records], indent=2)


def export_csv(records: Iterable[Bookmark]) -> str:
    """
    Serialize records as CSV with a header row.

    Every cell is quoted. Tags are joined with "; " and the creation date is
    written as YYYY-MM-DD.
    """
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(CSV_HEADERS)
    for record in records:
        writer.writerow([
            record.title,
            record.url,
            record.status,
            TAG_SEPARATOR.join(record.tags),
            record.notes or "",
            record.created_at.date().isoformat(),
        ])
    return buffer.getvalue()


def parse_html_bookmarks(html: str) -> list[dict[str, Any]]:
    """
    Extract bookmark drafts from a browser bookmark export.

    Every anchor with an http(s) href becomes a draft; other links (folders,
    javascript: bookmarklets, place: queries) are skipped. The link text is
    used as the title, falling back to the URL.
    """
    soup = BeautifulSoup(html, 'lxml')
    drafts = []
    for link in soup.find_all('a', href=True):
        url = link['href'].strip()
        if not is_valid_url(url):
            continue
        title = link.get_text(strip=True)
        drafts.append({
            "url": url,
            "title": title or url,
            "status": "unread",
            "priority": 0,
            "tags": [],
        })
    return drafts
