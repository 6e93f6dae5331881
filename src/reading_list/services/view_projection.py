"""
Derives the presented bookmark list and its aggregates from a snapshot.

`project` is a pure function: callers re-invoke it whenever the record store
notifies them of a change.
"""
import unicodedata
from collections import Counter
from collections.abc import Iterable, Sequence

from reading_list.schemas.bookmark import STATUS_CYCLE, Bookmark
from reading_list.schemas.view import BookmarkView, SortKey, TagCount, ViewFilters


def title_sort_key(title: str) -> str:
    """
    Collation key approximating a locale-aware title comparison.

    Case and accents are ignored at the primary level, so "apple", "Apple"
    and "Äpple" group together instead of sorting by code point.
    """
    decomposed = unicodedata.normalize("NFKD", title.casefold())
    return "".join(char for char in decomposed if not unicodedata.combining(char))


def matches_search(record: Bookmark, query: str) -> bool:
    """Case-insensitive substring match against title, url and notes."""
    needle = query.casefold()
    if needle in record.title.casefold() or needle in record.url.casefold():
        return True
    return record.notes is not None and needle in record.notes.casefold()


def filter_bookmarks(records: Iterable[Bookmark], filters: ViewFilters) -> list[Bookmark]:
    """
    Apply search, status and tag filters (AND-combined) in that order.

    Each filter is skipped when inactive: blank query, status "all", or an
    empty tag selection. The tag filter passes records carrying any selected tag.
    """
    result = list(records)
    query = filters.search_query.strip()
    if query:
        result = [record for record in result if matches_search(record, query)]
    if filters.status_filter != "all":
        result = [record for record in result if record.status == filters.status_filter]
    if filters.selected_tags:
        result = [
            record for record in result
            if not filters.selected_tags.isdisjoint(record.tags)
        ]
    return result


def sort_bookmarks(records: Sequence[Bookmark], sort_key: SortKey) -> list[Bookmark]:
    """
    Sort with pinned records first, then by the chosen key.

    Both passes are stable, so records with equal keys keep snapshot order.
    "priority" applies only the pinned-first ordering.
    """
    result = list(records)
    if sort_key == "date-desc":
        result.sort(key=lambda r: r.created_at, reverse=True)
    elif sort_key == "date-asc":
        result.sort(key=lambda r: r.created_at)
    elif sort_key == "title-asc":
        result.sort(key=lambda r: title_sort_key(r.title))
    elif sort_key == "title-desc":
        result.sort(key=lambda r: title_sort_key(r.title), reverse=True)
    result.sort(key=lambda r: not r.is_pinned)
    return result


def count_statuses(records: Sequence[Bookmark]) -> dict[str, int]:
    """Count records per status, plus the total under "all"."""
    counts = {"all": len(records)}
    counts.update({status: 0 for status in STATUS_CYCLE})
    for record in records:
        counts[record.status] += 1
    return counts


def count_tags(records: Iterable[Bookmark]) -> list[TagCount]:
    """
    Count records per tag across the whole collection.

    Sorted by count descending; ties keep the order in which tags were first
    encountered.
    """
    counter: Counter[str] = Counter()
    for record in records:
        counter.update(record.tags)
    # Counter preserves first-insertion order and sorted() is stable
    ordered = sorted(counter.items(), key=lambda item: item[1], reverse=True)
    return [TagCount(name=name, count=count) for name, count in ordered]


def project(snapshot: Sequence[Bookmark], filters: ViewFilters | None = None) -> BookmarkView:
    """
    Build the view for the presentation layer.

    Aggregates are computed over the full snapshot, not just visible records.
    """
    filters = filters or ViewFilters()
    visible = sort_bookmarks(filter_bookmarks(snapshot, filters), filters.sort_key)
    return BookmarkView(
        bookmarks=visible,
        status_counts=count_statuses(snapshot),
        tag_counts=count_tags(snapshot),
    )
