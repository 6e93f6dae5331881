"""
Process-local persistence service.

Implements the persistence contract against an in-memory dict and publishes
every successful write to an `InMemoryChangeFeed`, the way a hosted backend
echoes writes over its realtime channel. Useful for offline use and tests.
"""
import asyncio
import logging
from collections.abc import Mapping, Sequence
from typing import Any
from uuid import uuid4

from reading_list.schemas.bookmark import Bookmark, ChangeEvent, utc_now
from reading_list.services.change_feed import InMemoryChangeFeed
from reading_list.services.exceptions import BackendError

logger = logging.getLogger(__name__)

# Fields the server owns; client-supplied values are ignored on create
_SERVER_FIELDS = ("id", "created_at")


class InMemoryBackend:
    """Authoritative bookmark store held in process memory."""

    def __init__(
        self,
        feed: InMemoryChangeFeed | None = None,
        latency: float = 0.0,
    ) -> None:
        self.feed = feed if feed is not None else InMemoryChangeFeed()
        self.latency = latency
        self.calls: list[tuple[str, Any]] = []
        self._records: dict[str, Bookmark] = {}
        self._failures: list[str] = []

    def fail_next(self, count: int = 1, message: str = "Service unavailable") -> None:
        """Make the next `count` requests raise `BackendError`."""
        self._failures.extend([message] * count)

    def seed(self, *records: Bookmark) -> None:
        """Store records directly, without publishing events."""
        for record in records:
            self._records[record.id] = record

    def records_for(self, owner: str) -> list[Bookmark]:
        """Current server-side records for `owner`, in insertion order."""
        return [record for record in self._records.values() if record.owner == owner]

    async def fetch_all(self, owner: str) -> list[Bookmark]:
        await self._request("fetch_all", owner)
        return self.records_for(owner)

    async def create(self, fields: Mapping[str, Any]) -> Bookmark:
        await self._request("create", dict(fields))
        data = {key: value for key, value in fields.items() if key not in _SERVER_FIELDS}
        data["id"] = str(uuid4())
        data["created_at"] = utc_now()
        try:
            record = Bookmark.model_validate(data)
        except ValueError as e:
            raise BackendError(f"Invalid bookmark: {e}", status_code=422) from e
        self._records[record.id] = record
        self.feed.publish(record.owner, ChangeEvent(kind="insert", record=record))
        return record

    async def update(self, bookmark_id: str, fields: Mapping[str, Any]) -> Bookmark:
        await self._request("update", (bookmark_id, dict(fields)))
        existing = self._records.get(bookmark_id)
        if existing is None:
            raise BackendError(f"Bookmark '{bookmark_id}' not found", status_code=404)
        merged = existing.model_dump()
        merged.update(fields)
        merged["id"] = bookmark_id
        merged["created_at"] = existing.created_at
        try:
            record = Bookmark.model_validate(merged)
        except ValueError as e:
            raise BackendError(f"Invalid bookmark: {e}", status_code=422) from e
        self._records[bookmark_id] = record
        self.feed.publish(record.owner, ChangeEvent(kind="update", record=record))
        return record

    async def delete(self, bookmark_id: str) -> None:
        await self._request("delete", bookmark_id)
        self._delete(bookmark_id)

    async def delete_many(self, bookmark_ids: Sequence[str]) -> None:
        await self._request("delete_many", list(bookmark_ids))
        for bookmark_id in bookmark_ids:
            self._delete(bookmark_id)

    def _delete(self, bookmark_id: str) -> None:
        record = self._records.pop(bookmark_id, None)
        if record is not None:
            self.feed.publish(record.owner, ChangeEvent(kind="delete", deleted_id=bookmark_id))

    async def _request(self, operation: str, payload: Any) -> None:
        self.calls.append((operation, payload))
        # Every request suspends, like a real network round trip
        await asyncio.sleep(self.latency)
        if self._failures:
            message = self._failures.pop(0)
            logger.debug("Injected failure for %s: %s", operation, message)
            raise BackendError(message, status_code=503)
