"""Pytest fixtures for testing."""
from collections.abc import AsyncGenerator, Callable, Generator
from datetime import UTC, datetime, timedelta
from itertools import count
from typing import Any

import pytest

from reading_list.core.config import get_settings
from reading_list.schemas.bookmark import Bookmark
from reading_list.services.live_updates import LiveUpdateListener
from reading_list.services.memory_backend import InMemoryBackend
from reading_list.services.metadata import PageMetadata
from reading_list.services.mutation_coordinator import MutationCoordinator
from reading_list.services.record_store import RecordStore

OWNER = "user-1"
BASE_TIME = datetime(2024, 1, 1, 12, 0, tzinfo=UTC)


@pytest.fixture(autouse=True)
def clear_settings_cache() -> Generator[None]:
    """Settings are cached; reset between tests so env overrides don't leak."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def owner() -> str:
    """Id of the signed-in user for the test session."""
    return OWNER


@pytest.fixture
def make_bookmark() -> Callable[..., Bookmark]:
    """
    Factory for bookmark records owned by the test user.

    Each call gets a unique id, URL and title; later records are created later.
    """
    sequence = count(1)

    def _make(**overrides: Any) -> Bookmark:
        n = next(sequence)
        data: dict[str, Any] = {
            "id": f"bm-{n}",
            "owner": OWNER,
            "url": f"https://example.com/{n}",
            "title": f"Bookmark {n}",
            "created_at": BASE_TIME + timedelta(minutes=n),
        }
        data.update(overrides)
        return Bookmark(**data)

    return _make


@pytest.fixture
def backend() -> InMemoryBackend:
    """In-memory persistence service with its own change feed."""
    return InMemoryBackend()


@pytest.fixture
def store(backend: InMemoryBackend) -> RecordStore:
    """Empty record store backed by the in-memory backend."""
    return RecordStore(backend)


@pytest.fixture
def metadata_calls() -> list[str]:
    """URLs passed to the fake metadata fetcher."""
    return []


@pytest.fixture
def fake_metadata(metadata_calls: list[str]) -> Callable[[str], Any]:
    """Metadata fetcher that never touches the network."""

    async def _fetch(url: str) -> PageMetadata:
        metadata_calls.append(url)
        return PageMetadata(title="Fetched Title", favicon_url="https://example.com/icon.png")

    return _fetch


@pytest.fixture
async def coordinator(
    store: RecordStore,
    backend: InMemoryBackend,
    fake_metadata: Callable[[str], Any],
) -> AsyncGenerator[MutationCoordinator]:
    """Mutation coordinator; in-flight requests are cancelled after the test."""
    coordinator = MutationCoordinator(store, backend, OWNER, metadata_fetcher=fake_metadata)
    yield coordinator
    await coordinator.close()


@pytest.fixture
def listener(store: RecordStore, backend: InMemoryBackend) -> Generator[LiveUpdateListener]:
    """Live update listener subscribed to the backend's change feed."""
    with LiveUpdateListener(store, backend.feed, OWNER) as listener:
        yield listener
