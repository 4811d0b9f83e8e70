"""
Tests for storage failover to the in-memory repositories.
"""

import sqlite3

import pytest

from feedflow.database import Database
from feedflow.database.fallback import (
    FallbackFeedItemRepository,
    FallbackSourceRepository,
    StorageHealth,
    is_storage_unavailable,
)
from feedflow.database.memory import InMemoryFeedItemRepository, InMemorySourceRepository
from feedflow.domain.feed_item import FeedItem
from feedflow.domain.source import Source
from feedflow.exceptions import (
    DuplicateItemError,
    StorageError,
    StorageErrorCode,
    ValidationError,
)


class FlakySourceRepository(InMemorySourceRepository):
    """In-memory repository that raises ``error`` while it is set."""

    def __init__(self, error: Exception | None = None):
        super().__init__()
        self.error = error
        self.calls = 0

    async def save(self, source):
        self.calls += 1
        if self.error:
            raise self.error
        return await super().save(source)

    async def find_by_id(self, source_id):
        self.calls += 1
        if self.error:
            raise self.error
        return await super().find_by_id(source_id)


def _source(name: str = "Example") -> Source:
    source, _ = Source.create_rss_source(name, f"https://example.com/{name.lower()}")
    return source


class TestClassification:

    @pytest.mark.parametrize("error,expected", [
        (ConnectionRefusedError("Connection refused"), True),
        (TimeoutError(), True),
        (sqlite3.OperationalError("unable to open database file"), True),
        (StorageError("down", StorageErrorCode.CONNECTION_ERROR), True),
        (RuntimeError("ECONNREFUSED 127.0.0.1:5432"), True),
        (DuplicateItemError("src", "guid"), False),
        (StorageError("bad row", StorageErrorCode.VALIDATION_ERROR), False),
        (ValidationError("bad name"), False),
        (sqlite3.IntegrityError("UNIQUE constraint failed"), False),
        (sqlite3.OperationalError("database is locked"), False),
        (sqlite3.OperationalError('near "SELEC": syntax error'), False),
        (sqlite3.OperationalError("disk I/O error"), True),
        (RuntimeError("something else"), False),
    ])
    def test_is_storage_unavailable(self, error, expected):
        assert is_storage_unavailable(error) is expected


class TestFallbackDispatch:

    @pytest.mark.asyncio
    async def test_switches_to_fallback_on_connection_error(self):
        primary = FlakySourceRepository(ConnectionRefusedError("Connection refused"))
        repo = FallbackSourceRepository(primary, InMemorySourceRepository())
        source = _source()

        saved = await repo.save(source)

        assert saved is source
        assert repo.using_fallback
        assert repo.status()["repository"] == "fallback"
        assert "Connection refused" in repo.status()["reason"]
        assert (await repo.find_by_id(source.id)).name == "Example"

    @pytest.mark.asyncio
    async def test_degraded_mode_is_sticky(self):
        primary = FlakySourceRepository(ConnectionRefusedError("Connection refused"))
        repo = FallbackSourceRepository(primary, InMemorySourceRepository())
        await repo.save(_source())
        assert primary.calls == 1

        # Primary recovers but is not consulted again until reset
        primary.error = None
        await repo.save(_source("Second"))
        await repo.find_by_id("anything")
        assert primary.calls == 1

        repo.reset_fallback()
        assert not repo.using_fallback
        await repo.save(_source("Third"))
        assert primary.calls == 2

    @pytest.mark.asyncio
    async def test_data_is_not_synchronised(self):
        """Records written before failover are not visible in the fallback."""
        primary = FlakySourceRepository()
        repo = FallbackSourceRepository(primary, InMemorySourceRepository())
        source = _source()
        await repo.save(source)

        primary.error = ConnectionRefusedError("Connection refused")

        assert await repo.find_by_id(source.id) is None
        assert repo.using_fallback

    @pytest.mark.asyncio
    async def test_other_errors_propagate(self):
        primary = FlakySourceRepository(ValueError("malformed input"))
        repo = FallbackSourceRepository(primary, InMemorySourceRepository())

        with pytest.raises(ValueError):
            await repo.save(_source())

        assert not repo.using_fallback

    @pytest.mark.asyncio
    async def test_duplicates_propagate(self):
        repo = FallbackFeedItemRepository(InMemoryFeedItemRepository(), InMemoryFeedItemRepository())
        item = FeedItem(source_id="src", guid="g", title="t", content="c")
        await repo.save(item)

        with pytest.raises(DuplicateItemError):
            await repo.save(FeedItem(source_id="src", guid="g", title="t", content="c"))

        assert not repo.using_fallback

    @pytest.mark.asyncio
    async def test_missing_primary_starts_degraded(self):
        repo = FallbackSourceRepository(None, InMemorySourceRepository())
        assert repo.using_fallback

        source = _source()
        await repo.save(source)
        assert (await repo.find_by_id(source.id)).id == source.id


class TestSharedHealth:

    @pytest.mark.asyncio
    async def test_one_failure_degrades_every_repository(self):
        health = StorageHealth()
        sources = FallbackSourceRepository(
            FlakySourceRepository(ConnectionRefusedError("Connection refused")),
            InMemorySourceRepository(),
            health,
        )
        items = FallbackFeedItemRepository(
            InMemoryFeedItemRepository(), InMemoryFeedItemRepository(), health
        )

        await sources.save(_source())

        assert items.using_fallback
        assert health.status()["degraded"] is True

    def test_unopenable_path_starts_degraded(self, tmp_path):
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("")

        db = Database(blocker / "feedflow.db")

        assert db.degraded
        assert db.status()["repository"] == "fallback"

    def test_memory_database_is_healthy(self, memory_db):
        assert not memory_db.degraded
        assert memory_db.status() == {
            "degraded": False,
            "repository": "primary",
            "reason": None,
            "since": None,
        }
