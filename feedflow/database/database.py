"""
Database facade - unified access to the resilient repositories.
"""

import logging
import sqlite3
from pathlib import Path

from .article_repository import SqliteArticleRepository
from .connection import DatabaseConnection
from .fallback import (
    FallbackArticleRepository,
    FallbackFeedItemRepository,
    FallbackSourceRepository,
    StorageHealth,
)
from .feed_item_repository import SqliteFeedItemRepository
from .memory import (
    InMemoryArticleRepository,
    InMemoryFeedItemRepository,
    InMemorySourceRepository,
)
from .source_repository import SqliteSourceRepository

logger = logging.getLogger(__name__)


class Database:
    """
    Storage entry point.

    Wraps the SQLite repositories with in-memory fallbacks. All three share
    one StorageHealth, so a failure seen through any of them degrades the
    whole database. Pass ``db_path=None`` for a purely in-memory database.
    """

    def __init__(self, db_path: Path | None):
        self.health = StorageHealth()
        self._connection: DatabaseConnection | None = None

        if db_path is not None:
            try:
                self._connection = DatabaseConnection(db_path)
            except (sqlite3.Error, OSError) as e:
                logger.error(f"Could not open database at {db_path}: {e}")

        primary_sources = primary_items = primary_articles = None
        if self._connection is not None:
            primary_sources = SqliteSourceRepository(self._connection)
            primary_items = SqliteFeedItemRepository(self._connection)
            primary_articles = SqliteArticleRepository(self._connection)
        elif db_path is None:
            # In-memory by choice, not a failover
            primary_sources = InMemorySourceRepository()
            primary_items = InMemoryFeedItemRepository()
            primary_articles = InMemoryArticleRepository()

        self.sources = FallbackSourceRepository(
            primary_sources, InMemorySourceRepository(), self.health
        )
        self.feed_items = FallbackFeedItemRepository(
            primary_items, InMemoryFeedItemRepository(), self.health
        )
        self.articles = FallbackArticleRepository(
            primary_articles, InMemoryArticleRepository(), self.health
        )

    # ─────────────────────────────────────────────────────────────
    # Health
    # ─────────────────────────────────────────────────────────────

    @property
    def degraded(self) -> bool:
        return self.health.degraded

    def status(self) -> dict:
        return self.health.status()

    def reset_fallback(self):
        """Leave degraded mode; the next call retries the primary store."""
        self.health.reset()
