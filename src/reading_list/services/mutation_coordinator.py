"""
Optimistic mutation coordinator.

Every user-initiated change follows the same protocol:

1. Validate input. `ValidationError` / `NotFoundError` are raised synchronously
   and the store is never touched.
2. Apply the local effect to the record store immediately.
3. Send the backend request in a background task. The returned task resolves
   with the operation's result, so callers can await it or just show a
   loading indicator while it is pending.
4. On success, reconcile the store with the server-confirmed record(s).
5. On failure, reload the whole collection from the backend and raise
   `OperationFailedError` ("Failed to <action>: <cause>").

Concurrent operations are not serialized: whichever backend response is
processed last wins for the fields it returns.
"""
import asyncio
import logging
import secrets
import time
from collections.abc import Awaitable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from reading_list.schemas.bookmark import (
    STATUS_CYCLE,
    Bookmark,
    BookmarkCreate,
    BookmarkUpdate,
    next_status,
    utc_now,
)
from reading_list.schemas.validators import validate_tag
from reading_list.services.exceptions import (
    FetchError,
    NotFoundError,
    OperationFailedError,
    ValidationError,
)
from reading_list.services.metadata import MetadataFetcher, fallback_metadata, fetch_metadata
from reading_list.services.protocols import PersistenceService
from reading_list.services.record_store import RecordStore, Snapshot
from reading_list.services.utils import favicon_url_for

logger = logging.getLogger(__name__)

T = TypeVar("T")
ModelT = TypeVar("ModelT", bound=BaseModel)

# Statuses that "mark all as read" moves to completed
UNFINISHED_STATUSES = ("unread", "reading")


@dataclass
class ImportResult:
    """Outcome of importing a batch of bookmark drafts."""

    imported: list[Bookmark] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def failed(self) -> int:
        return len(self.errors)


class MutationCoordinator:
    """Applies user changes optimistically and keeps them consistent with the backend."""

    def __init__(
        self,
        store: RecordStore,
        persistence: PersistenceService,
        owner: str,
        metadata_fetcher: MetadataFetcher | None = None,
    ) -> None:
        self._store = store
        self._persistence = persistence
        self.owner = owner
        self._fetch_metadata = metadata_fetcher or fetch_metadata
        # Keep references so in-flight tasks are not garbage collected
        self._background_tasks: set[asyncio.Task] = set()

    @property
    def pending_count(self) -> int:
        """Number of backend requests still in flight."""
        return len(self._background_tasks)

    async def refresh(self) -> Snapshot:
        """Reload the collection for this session's owner."""
        return await self._store.load(self.owner)

    async def close(self) -> None:
        """Cancel in-flight requests; used when the session ends."""
        tasks = [task for task in self._background_tasks if not task.done()]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._background_tasks.clear()

    # -------------------------------------------------------------------------
    # Single-record operations
    # -------------------------------------------------------------------------

    def add_bookmark(
        self,
        url: str,
        title: str | None = None,
        notes: str | None = None,
        tags: Sequence[str] | None = None,
    ) -> "asyncio.Future[Bookmark]":
        """
        Add a bookmark.

        A temporary record appears in the store immediately. Without a title,
        the temporary record shows the domain and the page title is looked up
        before the create request is sent.

        Returns:
            Task resolving to the server-confirmed bookmark.
        """
        data = _validate(BookmarkCreate, url=url, title=title, notes=notes, tags=list(tags or []))
        temp = Bookmark(
            id=self._new_temp_id(),
            owner=self.owner,
            url=data.url,
            title=data.title or fallback_metadata(data.url).title,
            favicon_url=favicon_url_for(data.url),
            notes=data.notes,
            status="unread",
            priority=0,
            tags=tuple(data.tags),
            created_at=utc_now(),
        )
        self._store.insert(temp)
        self._store.track_pending(temp.id, temp.url)
        return self._run("add bookmark", self._create(temp, data))

    def edit_bookmark(
        self,
        bookmark_id: str,
        updates: Mapping[str, Any],
    ) -> "asyncio.Future[Bookmark]":
        """
        Apply a partial update.

        Unknown fields are rejected. Changing `status` also sets or clears
        `completed_at`.
        """
        record = self._require(bookmark_id)
        changes = _validate(BookmarkUpdate, **updates).changes()
        if not changes:
            return _resolved(record)
        if "status" in changes:
            changes.update(_status_fields(changes["status"]))
        return self._apply_update("update bookmark", bookmark_id, changes)

    def remove_bookmark(self, bookmark_id: str) -> "asyncio.Future[None]":
        """Delete a bookmark."""
        self._require(bookmark_id)
        self._store.remove(bookmark_id)
        return self._run("delete bookmark", self._persistence.delete(bookmark_id))

    def change_status(
        self,
        bookmark_id: str,
        status: str,
    ) -> "asyncio.Future[Bookmark]":
        """Set the reading status; completed stamps `completed_at`, others clear it."""
        self._require(bookmark_id)
        if status not in STATUS_CYCLE:
            raise ValidationError(f"Invalid status: '{status}'", field="status")
        return self._apply_update("change status", bookmark_id, _status_fields(status))

    def cycle_status(self, bookmark_id: str) -> "asyncio.Future[Bookmark]":
        """Advance the status: unread -> reading -> completed -> unread."""
        record = self._require(bookmark_id)
        return self.change_status(bookmark_id, next_status(record.status))

    def toggle_priority(self, bookmark_id: str) -> "asyncio.Future[Bookmark]":
        """Pin or unpin. Any priority other than 1 counts as unpinned."""
        record = self._require(bookmark_id)
        priority = 0 if record.priority == 1 else 1
        return self._apply_update("toggle priority", bookmark_id, {"priority": priority})

    def add_tag(self, bookmark_id: str, tag: str) -> "asyncio.Future[Bookmark]":
        """
        Add a tag.

        Tags compare case-sensitively. Adding a tag the record already has
        resolves to the current record without contacting the backend.
        """
        record = self._require(bookmark_id)
        try:
            tag = validate_tag(tag)
        except ValueError as e:
            raise ValidationError(str(e), field="tag") from e
        if tag in record.tags:
            return _resolved(record)
        return self._apply_update("add tag", bookmark_id, {"tags": [*record.tags, tag]})

    def remove_tag(self, bookmark_id: str, tag: str) -> "asyncio.Future[Bookmark]":
        """Remove a tag. Removing a tag the record doesn't have is a no-op."""
        record = self._require(bookmark_id)
        if tag not in record.tags:
            return _resolved(record)
        tags = [existing for existing in record.tags if existing != tag]
        return self._apply_update("remove tag", bookmark_id, {"tags": tags})

    # -------------------------------------------------------------------------
    # Bulk operations
    # -------------------------------------------------------------------------

    def remove_multiple(self, bookmark_ids: Iterable[str]) -> "asyncio.Future[int]":
        """
        Delete several bookmarks in one request.

        Ids not present in the local snapshot are ignored. If none remain, no
        request is sent.

        Returns:
            Task resolving to the number of bookmarks deleted.
        """
        targets = [
            bookmark_id for bookmark_id in dict.fromkeys(bookmark_ids)
            if bookmark_id in self._store
        ]
        for bookmark_id in targets:
            self._require(bookmark_id)
        if not targets:
            return _resolved(0)
        self._store.remove_many(targets)
        return self._run("delete bookmarks", self._delete_many(targets))

    def unfinished_ids(self) -> list[str]:
        """
        Ids that `mark_all_read` would complete right now.

        Bookmarks still being saved are left out, so this can be smaller than
        the unread and reading counts of the view. Confirmation prompts should
        use `len(unfinished_ids())`.
        """
        return [
            record.id for record in self._store.snapshot
            if record.status in UNFINISHED_STATUSES and not self._store.is_temporary(record.id)
        ]

    def completed_ids(self) -> list[str]:
        """Ids that `clear_completed` would delete now; bookmarks being saved are left out."""
        return [
            record.id for record in self._store.snapshot
            if record.status == "completed" and not self._store.is_temporary(record.id)
        ]

    def mark_all_read(self) -> "asyncio.Future[int]":
        """
        Complete every unread or reading bookmark with a single timestamp.

        The affected set is `unfinished_ids()`, fixed before any request is
        sent, so the resolved count is exactly the number of records changed.
        Bookmarks still being saved keep their status.
        """
        targets = self.unfinished_ids()
        if not targets:
            return _resolved(0)
        fields = _status_fields("completed")
        self._store.patch_many(targets, fields)
        return self._run("mark all as read", self._update_many(targets, fields))

    def clear_completed(self) -> "asyncio.Future[int]":
        """
        Delete every bookmark in `completed_ids()`.

        A no-op without contacting the backend if there are none.
        """
        targets = self.completed_ids()
        if not targets:
            return _resolved(0)
        self._store.remove_many(targets)
        return self._run("clear completed", self._delete_many(targets))

    async def import_bookmarks(self, drafts: Iterable[Mapping[str, Any]]) -> ImportResult:
        """
        Add a batch of drafts (e.g. parsed from a browser export).

        Each draft goes through `add_bookmark`; invalid drafts and failed
        creates are reported in `errors` rather than aborting the batch.
        """
        result = ImportResult()
        tasks = []
        for draft in drafts:
            try:
                tasks.append(self.add_bookmark(
                    draft.get("url", ""),
                    title=draft.get("title"),
                    notes=draft.get("notes"),
                    tags=draft.get("tags"),
                ))
            except ValidationError as e:
                result.errors.append(f"{draft.get('url', '')}: {e}")
        for outcome in await asyncio.gather(*tasks, return_exceptions=True):
            if isinstance(outcome, OperationFailedError):
                result.errors.append(str(outcome))
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                result.imported.append(outcome)
        logger.info(
            "Imported %d bookmarks for %s (%d failed)",
            len(result.imported), self.owner, result.failed,
        )
        return result

    # -------------------------------------------------------------------------
    # Backend round trips
    # -------------------------------------------------------------------------

    async def _create(self, temp: Bookmark, data: BookmarkCreate) -> Bookmark:
        fields: dict[str, Any] = {
            "owner": self.owner,
            "url": data.url,
            "title": data.title,
            "favicon_url": temp.favicon_url,
            "notes": data.notes,
            "status": "unread",
            "priority": 0,
            "tags": list(data.tags),
        }
        try:
            if data.title is None:
                metadata = await self._fetch_metadata(data.url)
                fields["title"] = metadata.title or data.url
                fields["favicon_url"] = metadata.favicon_url
            confirmed = await self._persistence.create(fields)
            self._store.swap_id(temp.id, confirmed)
            return confirmed
        finally:
            self._store.forget_pending(temp.id)

    async def _update(self, bookmark_id: str, fields: Mapping[str, Any]) -> Bookmark:
        confirmed = await self._persistence.update(bookmark_id, fields)
        self._store.patch(bookmark_id, confirmed.model_dump(exclude={"id"}))
        return confirmed

    async def _update_many(self, bookmark_ids: Sequence[str], fields: Mapping[str, Any]) -> int:
        await asyncio.gather(*(self._update(bookmark_id, fields) for bookmark_id in bookmark_ids))
        return len(bookmark_ids)

    async def _delete_many(self, bookmark_ids: Sequence[str]) -> int:
        await self._persistence.delete_many(bookmark_ids)
        return len(bookmark_ids)

    def _apply_update(
        self,
        action: str,
        bookmark_id: str,
        fields: Mapping[str, Any],
    ) -> "asyncio.Future[Bookmark]":
        self._store.patch(bookmark_id, fields)
        return self._run(action, self._update(bookmark_id, fields))

    def _run(self, action: str, operation: Awaitable[T]) -> "asyncio.Future[T]":
        task = asyncio.create_task(self._settle(action, operation))
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)
        return task

    async def _settle(self, action: str, operation: Awaitable[T]) -> T:
        try:
            return await operation
        except Exception as e:
            logger.warning("Failed to %s for %s, reloading: %s", action, self.owner, e)
            await self._rollback()
            raise OperationFailedError(action, str(e)) from e

    async def _rollback(self) -> None:
        """Discard optimistic state by reloading the authoritative collection."""
        try:
            await self._store.load(self.owner)
        except FetchError:
            logger.exception("Rollback reload failed for %s", self.owner)

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _require(self, bookmark_id: str) -> Bookmark:
        record = self._store.get(bookmark_id)
        if record is None:
            raise NotFoundError(bookmark_id)
        if self._store.is_temporary(bookmark_id):
            raise ValidationError("Bookmark is still being saved", field="id")
        return record

    def _new_temp_id(self) -> str:
        while True:
            candidate = (
                f"{self._store.temp_id_prefix}{time.monotonic_ns()}-{secrets.token_hex(4)}"
            )
            if candidate not in self._store:
                return candidate


def _validate(schema: type[ModelT], **data: Any) -> ModelT:
    """Build `schema` from user input, converting pydantic errors to `ValidationError`."""
    try:
        return schema(**data)
    except PydanticValidationError as e:
        first = e.errors()[0]
        field_name = ".".join(str(part) for part in first["loc"]) or None
        message = first["msg"].removeprefix("Value error, ")
        raise ValidationError(message, field=field_name) from e


def _status_fields(status: str) -> dict[str, Any]:
    return {
        "status": status,
        "completed_at": utc_now() if status == "completed" else None,
    }


def _resolved(value: T) -> "asyncio.Future[T]":
    """An already-completed future for operations that need no backend call."""
    future = asyncio.get_running_loop().create_future()
    future.set_result(value)
    return future
