"""Tests for filtering, sorting and aggregating the bookmark view."""
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

import pytest

from reading_list.schemas.bookmark import Bookmark
from reading_list.schemas.view import SortKey, TagCount, ViewFilters
from reading_list.services.view_projection import (
    count_statuses,
    count_tags,
    filter_bookmarks,
    project,
    sort_bookmarks,
    title_sort_key,
)

ALL_SORT_KEYS: list[SortKey] = ["date-desc", "date-asc", "title-asc", "title-desc", "priority"]


def _titles(records: list[Bookmark]) -> list[str]:
    return [record.title for record in records]


class TestFilter:
    """Tests for filter_bookmarks."""

    def test__filter__search_matches_title_and_notes(
        self, make_bookmark: Callable[..., Bookmark],
    ) -> None:
        records = [
            make_bookmark(title="Node.js Homepage"),
            make_bookmark(title="React Docs"),
            make_bookmark(title="JS Notes", notes="node-based tooling"),
        ]
        result = filter_bookmarks(records, ViewFilters(search_query="node"))
        assert _titles(result) == ["Node.js Homepage", "JS Notes"]

    def test__filter__search_matches_url(self, make_bookmark: Callable[..., Bookmark]) -> None:
        records = [make_bookmark(url="https://docs.python.org"), make_bookmark()]
        result = filter_bookmarks(records, ViewFilters(search_query="PYTHON"))
        assert result == records[:1]

    def test__filter__blank_query_ignored(self, make_bookmark: Callable[..., Bookmark]) -> None:
        records = [make_bookmark(), make_bookmark()]
        assert filter_bookmarks(records, ViewFilters(search_query="   ")) == records

    def test__filter__status(self, make_bookmark: Callable[..., Bookmark]) -> None:
        records = [make_bookmark(status="unread"), make_bookmark(status="reading")]
        result = filter_bookmarks(records, ViewFilters(status_filter="reading"))
        assert result == records[1:]

    def test__filter__tags_match_any_selected(
        self, make_bookmark: Callable[..., Bookmark],
    ) -> None:
        records = [
            make_bookmark(tags=("python",)),
            make_bookmark(tags=("js", "web")),
            make_bookmark(tags=()),
            make_bookmark(tags=("Python",)),
        ]
        result = filter_bookmarks(records, ViewFilters(selected_tags={"python", "web"}))
        assert result == records[:2]

    def test__filter__filters_combine(self, make_bookmark: Callable[..., Bookmark]) -> None:
        records = [
            make_bookmark(title="Python tips", status="unread", tags=("python",)),
            make_bookmark(title="Python news", status="completed", tags=("python",)),
            make_bookmark(title="Python docs", status="unread", tags=("docs",)),
        ]
        filters = ViewFilters(
            search_query="python", status_filter="unread", selected_tags={"python"},
        )
        assert filter_bookmarks(records, filters) == records[:1]


class TestSort:
    """Tests for sort_bookmarks."""

    @pytest.fixture
    def mixed(self, make_bookmark: Callable[..., Bookmark]) -> list[Bookmark]:
        """Two pinned and three unpinned records with distinct titles and dates."""
        return [
            make_bookmark(title="delta", priority=0),
            make_bookmark(title="alpha", priority=1),
            make_bookmark(title="echo", priority=0),
            make_bookmark(title="charlie", priority=1),
            make_bookmark(title="bravo", priority=0),
        ]

    @pytest.mark.parametrize("sort_key", ALL_SORT_KEYS)
    def test__sort__pinned_always_first(
        self, mixed: list[Bookmark], sort_key: SortKey,
    ) -> None:
        result = sort_bookmarks(mixed, sort_key)
        assert [record.is_pinned for record in result] == [True, True, False, False, False]

    @pytest.mark.parametrize(
        ("sort_key", "expected"),
        [
            ("date-desc", ["charlie", "alpha", "bravo", "echo", "delta"]),
            ("date-asc", ["alpha", "charlie", "delta", "echo", "bravo"]),
            ("title-asc", ["alpha", "charlie", "bravo", "delta", "echo"]),
            ("title-desc", ["charlie", "alpha", "echo", "delta", "bravo"]),
            ("priority", ["alpha", "charlie", "delta", "echo", "bravo"]),
        ],
    )
    def test__sort__secondary_key_within_groups(
        self, mixed: list[Bookmark], sort_key: SortKey, expected: list[str],
    ) -> None:
        assert _titles(sort_bookmarks(mixed, sort_key)) == expected

    def test__sort__title_ignores_case_and_accents(
        self, make_bookmark: Callable[..., Bookmark],
    ) -> None:
        records = [
            make_bookmark(title="banana"),
            make_bookmark(title="Émile"),
            make_bookmark(title="apple"),
            make_bookmark(title="Zebra"),
        ]
        result = sort_bookmarks(records, "title-asc")
        assert _titles(result) == ["apple", "banana", "Émile", "Zebra"]

    def test__sort__equal_keys_keep_snapshot_order(
        self, make_bookmark: Callable[..., Bookmark],
    ) -> None:
        same_time = datetime(2024, 5, 1, tzinfo=UTC)
        records = [make_bookmark(title="Same", created_at=same_time) for _ in range(3)]
        assert sort_bookmarks(records, "date-desc") == records
        assert sort_bookmarks(records, "title-asc") == records

    def test__sort__priority_other_than_one_not_pinned(
        self, make_bookmark: Callable[..., Bookmark],
    ) -> None:
        records = [make_bookmark(priority=2), make_bookmark(priority=1)]
        assert sort_bookmarks(records, "priority") == [records[1], records[0]]


def test__title_sort_key__folds_case_and_accents() -> None:
    assert title_sort_key("Äpple") == title_sort_key("apple")
    assert title_sort_key("STRASSE") == title_sort_key("straße")


class TestAggregates:
    """Tests for status and tag counts."""

    def test__count_statuses(self, make_bookmark: Callable[..., Bookmark]) -> None:
        records = [
            make_bookmark(status="unread"),
            make_bookmark(status="unread"),
            make_bookmark(status="completed"),
        ]
        assert count_statuses(records) == {
            "all": 3, "unread": 2, "reading": 0, "completed": 1,
        }

    def test__count_statuses__empty(self) -> None:
        assert count_statuses([]) == {"all": 0, "unread": 0, "reading": 0, "completed": 0}

    def test__count_tags__by_count_then_first_seen(
        self, make_bookmark: Callable[..., Bookmark],
    ) -> None:
        records = [
            make_bookmark(tags=("b", "a")),
            make_bookmark(tags=("c", "a")),
            make_bookmark(tags=("c",)),
            make_bookmark(tags=("d",)),
        ]
        assert count_tags(records) == [
            TagCount(name="a", count=2),
            TagCount(name="c", count=2),
            TagCount(name="b", count=1),
            TagCount(name="d", count=1),
        ]


class TestProject:
    """Tests for the combined projection."""

    def test__project__aggregates_use_full_snapshot(
        self, make_bookmark: Callable[..., Bookmark],
    ) -> None:
        snapshot = (
            make_bookmark(title="Keep", tags=("x",)),
            make_bookmark(title="Drop", tags=("y",), status="completed"),
        )
        view = project(snapshot, ViewFilters(status_filter="unread"))

        assert _titles(view.bookmarks) == ["Keep"]
        assert view.status_counts["all"] == 2
        assert view.status_counts["completed"] == 1
        assert {tag.name for tag in view.tag_counts} == {"x", "y"}

    def test__project__default_filters(self, make_bookmark: Callable[..., Bookmark]) -> None:
        base = datetime(2024, 3, 1, tzinfo=UTC)
        older = make_bookmark(created_at=base)
        newer = make_bookmark(created_at=base + timedelta(days=1))
        view = project((older, newer))
        assert view.bookmarks == [newer, older]
