"""
Reconciles remote-origin changes from the change feed into the record store.

Applying an event is idempotent with respect to the mutation coordinator's
own reconciliation: an insert echo for a record this session already holds
never creates a duplicate.
"""
import logging

from reading_list.schemas.bookmark import ChangeEvent
from reading_list.services.protocols import ChangeFeed
from reading_list.services.record_store import RecordStore

logger = logging.getLogger(__name__)


class LiveUpdateListener:
    """
    Subscribes to one owner's change feed for the lifetime of a session.

    Use `start()`/`stop()` directly or as a context manager::

        with LiveUpdateListener(store, feed, owner):
            ...
    """

    def __init__(self, store: RecordStore, feed: ChangeFeed, owner: str) -> None:
        self._store = store
        self._feed = feed
        self.owner = owner
        self._handle: object | None = None

    @property
    def active(self) -> bool:
        """True while a subscription is open."""
        return self._handle is not None

    def start(self) -> None:
        """Open the subscription. Starting an active listener is a no-op."""
        if self._handle is not None:
            return
        self._handle = self._feed.subscribe(self.owner, self.handle_event)
        logger.info("Listening for bookmark changes for %s", self.owner)

    def stop(self) -> None:
        """Close the subscription. Safe to call if never started or already stopped."""
        handle, self._handle = self._handle, None
        if handle is None:
            return
        self._feed.unsubscribe(handle)
        logger.info("Stopped listening for bookmark changes for %s", self.owner)

    def __enter__(self) -> "LiveUpdateListener":
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop()

    def handle_event(self, event: ChangeEvent) -> None:
        """Apply a single change event to the store."""
        if event.record is not None and event.record.owner != self.owner:
            logger.warning(
                "Ignoring %s event for %s owned by another user", event.kind, event.record_id,
            )
            return

        if event.kind == "insert":
            if event.record_id in self._store:
                logger.debug("Ignoring insert echo for %s", event.record_id)
                return
            # Echo of this session's own create arriving before the create response;
            # the create response settles which temporary record it belongs to
            unconfirmed = self._store.find_unconfirmed(event.record.url)
            if unconfirmed is not None and self._store.stand_in(unconfirmed.id, event.record):
                return
            self._store.insert(event.record)
        elif event.kind == "update":
            if event.record_id not in self._store:
                # Unknown locally; the record exists on the server, so show it
                self._store.insert(event.record)
                return
            self._store.patch(event.record_id, event.record.model_dump(exclude={"id"}))
        else:
            self._store.remove(event.record_id)
