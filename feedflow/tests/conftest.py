"""
Pytest fixtures for feedflow tests.
"""

import os
import tempfile
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from feedflow.config import config, state
from feedflow.database import Database
from feedflow.domain.source import Source, SourceType
from feedflow.events import EventChannel
from feedflow.fetchers import FetchedItem, FetchResult, FetchStrategy, FetchStrategyRegistry
from feedflow.server import app
from feedflow.services import FetchOrchestrator, SourceService


class FakeFetchStrategy(FetchStrategy):
    """Fetch strategy returning queued items or raising a queued error."""

    def __init__(self, source_type: SourceType = SourceType.RSS):
        self._source_type = source_type
        self.items: list[FetchedItem] = []
        self.error: Exception | None = None
        self.calls = 0

    @property
    def source_type(self) -> SourceType:
        return self._source_type

    async def fetch(self, source: Source) -> FetchResult:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return FetchResult(items=list(self.items))


def make_items(count: int, prefix: str = "item") -> list[FetchedItem]:
    """Build ``count`` distinct fetched items with explicit GUIDs."""
    return [
        FetchedItem(
            title=f"Story number {i}",
            content=f"Body of story {i}",
            url=f"https://example.com/{prefix}/{i}",
            guid=f"{prefix}-{i}",
        )
        for i in range(count)
    ]


class EventRecorder:
    """Collects published events of any subscribed type."""

    def __init__(self):
        self.events = []

    async def __call__(self, event):
        self.events.append(event)

    def of_type(self, event_type: str):
        return [e for e in self.events if e.event_type == event_type]


STATE_FIELDS = (
    "db", "events", "strategies", "provider", "ai_service",
    "source_service", "orchestrator", "workflow", "scheduler",
)


@pytest.fixture
def make_fetched_items():
    return make_items


@pytest.fixture
def recorder():
    return EventRecorder()


@pytest.fixture
def temp_db_path():
    """Create a temporary database file path."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        yield Path(f.name)
    # Cleanup
    if os.path.exists(f.name):
        os.unlink(f.name)


@pytest.fixture
def test_db(temp_db_path):
    """SQLite-backed database with in-memory fallback."""
    return Database(temp_db_path)


@pytest.fixture
def memory_db():
    """Purely in-memory database."""
    return Database(None)


@pytest.fixture
def channel():
    return EventChannel()


@pytest.fixture
def rss_strategy():
    return FakeFetchStrategy(SourceType.RSS)


@pytest.fixture
def orchestrator(memory_db, rss_strategy, channel):
    return FetchOrchestrator(
        memory_db.sources,
        memory_db.feed_items,
        FetchStrategyRegistry([rss_strategy]),
        channel,
        fetch_timeout=5,
    )


@pytest.fixture
def rss_source():
    source, _ = Source.create_rss_source("Example News", "https://example.com/feed.xml")
    return source


@pytest.fixture
def client(temp_db_path):
    """Create a test client with an isolated database and fake fetching."""
    # Store original state
    original = {name: getattr(state, name) for name in STATE_FIELDS}
    original_api_key = config.API_KEY
    config.API_KEY = ""

    strategy = FakeFetchStrategy(SourceType.RSS)
    state.db = Database(temp_db_path)
    state.events = EventChannel()
    state.strategies = FetchStrategyRegistry([strategy])
    state.source_service = SourceService(state.db.sources, state.events, state.strategies)
    state.orchestrator = FetchOrchestrator(
        state.db.sources, state.db.feed_items, state.strategies, state.events
    )
    state.provider = None
    state.ai_service = None
    state.workflow = None  # Disable for tests (requires API key)
    state.scheduler = None

    with TestClient(app, raise_server_exceptions=False) as test_client:
        test_client.strategy = strategy
        yield test_client

    # Restore original state
    for name, value in original.items():
        setattr(state, name, value)
    config.API_KEY = original_api_key
