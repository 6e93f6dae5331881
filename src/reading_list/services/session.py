"""
Wires the core components together for one logged-in user.

A session owns the record store, the mutation coordinator and the live update
listener for a single owner. Starting it loads the collection and opens the
change feed subscription; ending it cancels in-flight requests, closes the
subscription and clears the snapshot.
"""
import logging

from reading_list.schemas.view import BookmarkView, ViewFilters
from reading_list.services.live_updates import LiveUpdateListener
from reading_list.services.metadata import MetadataFetcher
from reading_list.services.mutation_coordinator import MutationCoordinator
from reading_list.services.protocols import ChangeFeed, PersistenceService
from reading_list.services.record_store import RecordStore
from reading_list.services.view_projection import project

logger = logging.getLogger(__name__)


class ReadingListSession:
    """
    Everything the presentation layer needs for one user.

    Usage::

        async with ReadingListSession(persistence, feed, owner) as session:
            await session.bookmarks.add_bookmark("https://example.com")
            view = session.view(ViewFilters(search_query="example"))
    """

    def __init__(
        self,
        persistence: PersistenceService,
        feed: ChangeFeed,
        owner: str,
        metadata_fetcher: MetadataFetcher | None = None,
    ) -> None:
        self.owner = owner
        self.store = RecordStore(persistence)
        self.bookmarks = MutationCoordinator(
            self.store, persistence, owner, metadata_fetcher=metadata_fetcher,
        )
        self.listener = LiveUpdateListener(self.store, feed, owner)

    async def start(self) -> None:
        """
        Subscribe to live updates, then load the collection.

        The subscription opens first so no change made during the load is lost;
        events for records the load also returns are applied idempotently.

        Raises:
            FetchError: If the initial load fails. The subscription stays open
                so a later `bookmarks.refresh()` can recover.
        """
        self.listener.start()
        await self.store.load(self.owner)

    async def end(self) -> None:
        """Tear down the session. Safe to call more than once."""
        self.listener.stop()
        await self.bookmarks.close()
        self.store.clear()
        logger.info("Session ended for %s", self.owner)

    async def __aenter__(self) -> "ReadingListSession":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.end()

    def view(self, filters: ViewFilters | None = None) -> BookmarkView:
        """Project the current snapshot with `filters`."""
        return project(self.store.snapshot, filters)
