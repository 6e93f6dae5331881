"""
Collaborator interfaces consumed by the reading list core.

The persistence service and change feed are owned by other components; the
core depends only on these shapes.
"""
from collections.abc import Callable, Mapping, Sequence
from typing import Any, Protocol, runtime_checkable

from reading_list.schemas.bookmark import Bookmark, ChangeEvent

ChangeHandler = Callable[[ChangeEvent], None]


@runtime_checkable
class PersistenceService(Protocol):
    """
    Authoritative backend for bookmark records.

    Every method raises `BackendError` on transport or authorization failure.
    """

    async def fetch_all(self, owner: str) -> Sequence[Bookmark]:
        """Return every bookmark owned by `owner`."""
        ...

    async def create(self, fields: Mapping[str, Any]) -> Bookmark:
        """Create a bookmark; the server assigns `id` and `created_at`."""
        ...

    async def update(self, bookmark_id: str, fields: Mapping[str, Any]) -> Bookmark:
        """Apply a partial update and return the full updated record."""
        ...

    async def delete(self, bookmark_id: str) -> None:
        """Delete a single bookmark."""
        ...

    async def delete_many(self, bookmark_ids: Sequence[str]) -> None:
        """Delete several bookmarks in one request."""
        ...


@runtime_checkable
class ChangeFeed(Protocol):
    """Per-owner push channel of insert/update/delete events."""

    def subscribe(self, owner: str, on_event: ChangeHandler) -> object:
        """Start delivering events for `owner`; returns an opaque handle."""
        ...

    def unsubscribe(self, handle: object) -> None:
        """Stop delivery for `handle`. Unknown or closed handles are ignored."""
        ...
