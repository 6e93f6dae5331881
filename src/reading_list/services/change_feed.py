"""
In-process change feed.

Delivers insert/update/delete events to subscribers of a single owner. Used
by the in-memory backend and by embedding applications that bridge an
external push channel into the core.
"""
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from itertools import count

from reading_list.schemas.bookmark import ChangeEvent
from reading_list.services.protocols import ChangeHandler

logger = logging.getLogger(__name__)

_subscription_ids = count(1)


@dataclass(eq=False)
class Subscription:
    """Handle returned by `InMemoryChangeFeed.subscribe`."""

    owner: str
    on_event: ChangeHandler
    id: int = field(default_factory=lambda: next(_subscription_ids))
    closed: bool = False


class InMemoryChangeFeed:
    """
    Simple per-owner pub/sub channel for change events.

    Handlers are called synchronously in subscription order. If a handler
    fails, the error is logged and the remaining handlers still run.
    """

    def __init__(self) -> None:
        self._subscriptions: dict[str, list[Subscription]] = defaultdict(list)

    def subscribe(self, owner: str, on_event: ChangeHandler) -> Subscription:
        """Subscribe `on_event` to events for `owner`."""
        subscription = Subscription(owner=owner, on_event=on_event)
        self._subscriptions[owner].append(subscription)
        logger.debug("Subscription %d opened for %s", subscription.id, owner)
        return subscription

    def unsubscribe(self, handle: object) -> None:
        """Close a subscription. Unknown or already-closed handles are ignored."""
        if not isinstance(handle, Subscription) or handle.closed:
            return
        handle.closed = True
        subscribers = self._subscriptions.get(handle.owner, [])
        if handle in subscribers:
            subscribers.remove(handle)
        logger.debug("Subscription %d closed for %s", handle.id, handle.owner)

    def subscriber_count(self, owner: str) -> int:
        """Number of open subscriptions for `owner`."""
        return len(self._subscriptions.get(owner, []))

    def publish(self, owner: str, event: ChangeEvent) -> int:
        """
        Deliver `event` to every subscriber of `owner`.

        Returns:
            Number of handlers that received the event without raising.
        """
        delivered = 0
        for subscription in list(self._subscriptions.get(owner, [])):
            try:
                subscription.on_event(event)
            except Exception:
                logger.exception(
                    "Change handler failed for %s event on %s", event.kind, event.record_id,
                )
                continue
            delivered += 1
        return delivered
