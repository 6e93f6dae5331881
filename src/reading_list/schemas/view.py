"""Pydantic schemas for the filtered and sorted bookmark view."""
from typing import Literal

from pydantic import BaseModel, ConfigDict, field_validator

from reading_list.schemas.bookmark import Bookmark

SortKey = Literal["date-desc", "date-asc", "title-asc", "title-desc", "priority"]
StatusFilter = Literal["all", "unread", "reading", "completed"]


class ViewFilters(BaseModel):
    """User-selected search, filter and sort settings."""

    model_config = ConfigDict(frozen=True)

    search_query: str = ""
    status_filter: StatusFilter = "all"
    selected_tags: frozenset[str] = frozenset()
    sort_key: SortKey = "date-desc"

    @field_validator("selected_tags", mode="before")
    @classmethod
    def none_to_empty(cls, v: object) -> object:
        """Treat a missing selection as no tag filter."""
        return frozenset() if v is None else v


class TagCount(BaseModel):
    """Schema for a tag with its usage count across the whole collection."""

    name: str
    count: int


class BookmarkView(BaseModel):
    """Projection of the snapshot handed to the presentation layer."""

    bookmarks: list[Bookmark]
    status_counts: dict[str, int]  # keys: all, unread, reading, completed
    tag_counts: list[TagCount]  # count desc, ties in first-encountered order
