"""Pytest fixtures for sync service tests."""

import pytest
from unittest.mock import AsyncMock

from services.connectivity import ConnectivityMonitor
from services.document_store import DocumentStore
from services.offline_queue import OfflineQueue
from utils.cache import TTLCache
from utils.storage import FileStorage


class FakeClock:
    """Manually advanced clock, in seconds."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    """Cache with the default TTL table and a fake clock."""
    from config import DEFAULT_CACHE_TTLS

    return TTLCache(ttls=DEFAULT_CACHE_TTLS, default_ttl=300, clock=clock)


@pytest.fixture
def storage(tmp_path):
    return FileStorage(tmp_path / "storage")


@pytest.fixture
def connectivity():
    return ConnectivityMonitor(online=True)


@pytest.fixture
def mock_store():
    """Document store mock that succeeds on every call."""
    store = AsyncMock(spec=DocumentStore)
    store.set_document.return_value = {}
    store.delete_document.return_value = True
    store.get_document.return_value = None
    store.query_collection.return_value = []
    return store


@pytest.fixture
def make_queue(mock_store, storage, connectivity):
    """Build a queue over the shared store, storage and connectivity fixtures."""
    def _make(**kwargs) -> OfflineQueue:
        return OfflineQueue(
            kwargs.pop("store", mock_store),
            kwargs.pop("storage", storage),
            kwargs.pop("connectivity", connectivity),
            **kwargs,
        )
    return _make


@pytest.fixture
def profile_update():
    return {"id": "user-1", "displayName": "Ada", "bio": "Baker"}


@pytest.fixture
def event_create():
    return {
        "id": "event-1",
        "title": "Summer potluck",
        "type": "potluck",
        "visibility": "public",
        "organizer": "user-1",
        "dateTime": "2026-07-01T18:00:00Z",
        "duration": 180,
        "location": {"name": "Hall", "address": "1 Main St"},
        "status": "published",
    }
