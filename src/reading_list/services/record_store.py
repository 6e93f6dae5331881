"""
Local snapshot of the current user's bookmark collection.

The store is the single source of truth for what the presentation layer sees.
All local mutations are synchronous and build a new immutable tuple before
swapping it in, so observers only ever see the snapshot from before or after a
mutation. Listeners are notified synchronously after each swap.
"""
import logging
from collections.abc import Callable, Iterable, Mapping
from typing import Any

from reading_list.core.config import get_settings
from reading_list.schemas.bookmark import Bookmark
from reading_list.services.exceptions import BackendError, FetchError
from reading_list.services.protocols import PersistenceService

logger = logging.getLogger(__name__)

Snapshot = tuple[Bookmark, ...]
StoreListener = Callable[[Snapshot], None]


class RecordStore:
    """Holds the authoritative local snapshot of one owner's bookmarks."""

    def __init__(
        self,
        persistence: PersistenceService,
        temp_id_prefix: str | None = None,
    ) -> None:
        self._persistence = persistence
        self.temp_id_prefix = temp_id_prefix or get_settings().temp_id_prefix
        self._records: Snapshot = ()
        self._listeners: list[StoreListener] = []
        # Creates awaiting their response, oldest first: temp id -> url
        self._pending: dict[str, str] = {}
        # Pending temp id -> id of the pushed server record shown in its place
        self._stand_ins: dict[str, str] = {}
        self.owner: str | None = None
        self.loading = False
        self.error: str | None = None

    @property
    def snapshot(self) -> Snapshot:
        """The current snapshot, newest first unless reordered by mutations."""
        return self._records

    def get(self, bookmark_id: str) -> Bookmark | None:
        """Return the record with `bookmark_id`, or None."""
        for record in self._records:
            if record.id == bookmark_id:
                return record
        return None

    def is_temporary(self, bookmark_id: str) -> bool:
        """True for client-generated ids that the server has not confirmed yet."""
        return bookmark_id.startswith(self.temp_id_prefix)

    def find_unconfirmed(self, url: str) -> Bookmark | None:
        """
        Return the oldest pending temporary record for `url`.

        Only records registered with `track_pending` and not yet replaced by
        `stand_in` qualify, so concurrent creates of the same URL are matched
        to pushed records in the order they were started.
        """
        for temp_id, pending_url in self._pending.items():
            if pending_url != url or temp_id in self._stand_ins:
                continue
            record = self.get(temp_id)
            if record is not None:
                return record
        return None

    def track_pending(self, temp_id: str, url: str) -> None:
        """Register a temporary record whose create request is in flight."""
        self._pending[temp_id] = url

    def forget_pending(self, temp_id: str) -> None:
        """Stop tracking a temporary record. Unknown ids are ignored."""
        self._pending.pop(temp_id, None)
        self._stand_ins.pop(temp_id, None)

    def __contains__(self, bookmark_id: object) -> bool:
        return any(record.id == bookmark_id for record in self._records)

    def __len__(self) -> int:
        return len(self._records)

    def subscribe(self, listener: StoreListener) -> Callable[[], None]:
        """
        Register a change listener.

        Returns:
            A callable that removes the listener. Calling it twice is harmless.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def load(self, owner: str) -> Snapshot:
        """
        Fetch the full collection for `owner` and replace the snapshot.

        Records are ordered by `created_at` descending.

        Raises:
            FetchError: If the persistence service fails. The current snapshot
                is left untouched; the caller decides whether to retry.
        """
        self.loading = True
        self.error = None
        try:
            records = await self._persistence.fetch_all(owner)
        except BackendError as e:
            self.error = str(e)
            logger.warning("Failed to load bookmarks for %s: %s", owner, e)
            raise FetchError(owner, str(e)) from e
        finally:
            self.loading = False

        self.owner = owner
        self.replace_all(sorted(records, key=lambda r: r.created_at, reverse=True))
        logger.info("Loaded %d bookmarks for %s", len(self._records), owner)
        return self._records

    def clear(self) -> None:
        """Drop the snapshot when the session ends."""
        self.owner = None
        self.error = None
        self._pending.clear()
        self._stand_ins.clear()
        self.replace_all(())

    def replace_all(self, records: Iterable[Bookmark]) -> None:
        """Atomically swap in an entirely new snapshot."""
        self._commit(tuple(records))

    def insert(self, record: Bookmark) -> bool:
        """
        Add a record to the front of the snapshot.

        A record whose id is already present replaces the existing one in place
        so ids stay unique.

        Returns:
            True if a new record was added, False if an existing one was replaced.
        """
        index = self._index_of(record.id)
        if index is None:
            self._commit((record, *self._records))
            return True
        records = list(self._records)
        records[index] = record
        self._commit(tuple(records))
        return False

    def patch(self, bookmark_id: str, fields: Mapping[str, Any]) -> Bookmark | None:
        """
        Merge `fields` into the record with `bookmark_id`.

        `completed_at` is re-derived from `status` by the record schema, so a
        patch can never produce an inconsistent record. Patching an unknown id
        is a no-op.

        Returns:
            The patched record, or None if the id is not in the snapshot.
        """
        index = self._index_of(bookmark_id)
        if index is None:
            return None
        patched = _merge(self._records[index], fields)
        records = list(self._records)
        records[index] = patched
        self._commit(tuple(records))
        return patched

    def patch_many(self, bookmark_ids: Iterable[str], fields: Mapping[str, Any]) -> int:
        """Merge the same `fields` into several records in a single commit."""
        targets = set(bookmark_ids)
        records = []
        patched = 0
        for record in self._records:
            if record.id in targets:
                record = _merge(record, fields)
                patched += 1
            records.append(record)
        if patched:
            self._commit(tuple(records))
        return patched

    def remove(self, bookmark_id: str) -> bool:
        """Remove a record. Removing an absent id is a no-op returning False."""
        return self.remove_many([bookmark_id]) == 1

    def remove_many(self, bookmark_ids: Iterable[str]) -> int:
        """Remove every record whose id is in `bookmark_ids`; returns how many were removed."""
        doomed = set(bookmark_ids)
        kept = tuple(record for record in self._records if record.id not in doomed)
        removed = len(self._records) - len(kept)
        if removed:
            self._commit(kept)
        return removed

    def stand_in(self, temp_id: str, record: Bookmark) -> bool:
        """
        Show a pushed server record in place of a pending temporary record.

        Used when the change feed delivers a create before its response. The
        temporary record stays pending until `swap_id` resolves it.

        Returns:
            False if the temporary record is no longer in the snapshot.
        """
        index = self._index_of(temp_id)
        if index is None:
            return False
        self._stand_ins[temp_id] = record.id
        records = list(self._records)
        records[index] = record
        self._commit(tuple(records))
        return True

    def swap_id(self, temp_id: str, record: Bookmark) -> None:
        """
        Replace a temporary record with its server-confirmed version.

        The confirmed record takes the position of the temporary record (or of
        the record standing in for it) in a single commit, so observers never
        see the bookmark missing. If the confirmed id is already shown
        elsewhere, the two copies are merged; when that other copy stands in
        for a different pending create, the slot passes to that create instead
        of being dropped.
        """
        self._pending.pop(temp_id, None)
        stand_in_id = self._stand_ins.pop(temp_id, None)
        records = list(self._records)
        slot = self._index_of(temp_id)
        if slot is None and stand_in_id is not None:
            slot = self._index_of(stand_in_id)
        existing = self._index_of(record.id)

        if slot is None and existing is None:
            records.insert(0, record)
        elif slot is None or existing is None or slot == existing:
            records[slot if existing is None else existing] = record
        else:
            records[existing] = record
            other_temp = self._stand_in_owner(record.id)
            if other_temp is None:
                records[slot] = record
                del records[existing]
            else:
                # The feed matched this record to another create; that create
                # now owns the slot held for this one
                self._stand_ins[other_temp] = records[slot].id
        self._commit(tuple(records))

    def _stand_in_owner(self, bookmark_id: str) -> str | None:
        for temp_id, stand_in_id in self._stand_ins.items():
            if stand_in_id == bookmark_id:
                return temp_id
        return None

    def _index_of(self, bookmark_id: str) -> int | None:
        for index, record in enumerate(self._records):
            if record.id == bookmark_id:
                return index
        return None

    def _commit(self, records: Snapshot) -> None:
        self._records = records
        for listener in list(self._listeners):
            try:
                listener(records)
            except Exception:
                logger.exception("Store listener %r failed", listener)


def _merge(record: Bookmark, fields: Mapping[str, Any]) -> Bookmark:
    """Build a new record from `record` with `fields` applied; the id never changes."""
    merged = record.model_dump()
    merged.update(fields)
    merged["id"] = record.id
    return Bookmark.model_validate(merged)
