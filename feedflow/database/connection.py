"""
Database connection management and schema initialization.
"""

import asyncio
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterator, TypeVar

T = TypeVar("T")


class DatabaseConnection:
    """Manages database connection and schema."""

    def __init__(self, db_path: Path):
        self.db_path = db_path
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    @contextmanager
    def conn(self) -> Iterator[sqlite3.Connection]:
        """Get database connection with row factory."""
        connection = sqlite3.connect(self.db_path, timeout=10)
        connection.row_factory = sqlite3.Row
        try:
            yield connection
            connection.commit()
        finally:
            connection.close()

    async def run(self, fn: Callable[..., T], *args) -> T:
        """Run a blocking repository call in the default executor."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, lambda: fn(*args))

    def _init_schema(self):
        """Initialize database schema."""
        with self.conn() as connection:
            connection.executescript("""
                CREATE TABLE IF NOT EXISTS sources (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    type TEXT NOT NULL CHECK(type IN ('rss', 'telegram', 'calendar')),
                    status TEXT NOT NULL CHECK(status IN ('active', 'paused', 'error', 'archived')),
                    url TEXT,
                    default_category TEXT,
                    configuration TEXT NOT NULL DEFAULT '{}',
                    metadata TEXT NOT NULL DEFAULT '{}',
                    last_fetch_at TIMESTAMP,
                    last_error_at TIMESTAMP,
                    last_error_message TEXT,
                    created_at TIMESTAMP NOT NULL,
                    updated_at TIMESTAMP NOT NULL
                );

                CREATE TABLE IF NOT EXISTS feed_items (
                    id TEXT PRIMARY KEY,
                    source_id TEXT NOT NULL,
                    guid TEXT NOT NULL,
                    title TEXT NOT NULL,
                    content TEXT NOT NULL,
                    url TEXT,
                    published_at TIMESTAMP,
                    fetched_at TIMESTAMP NOT NULL,
                    status TEXT NOT NULL CHECK(status IN ('pending', 'draft', 'processed')),
                    article_id TEXT,
                    UNIQUE(source_id, guid)
                );

                CREATE TABLE IF NOT EXISTS articles (
                    id TEXT PRIMARY KEY,
                    title TEXT NOT NULL,
                    content TEXT NOT NULL,
                    status TEXT NOT NULL,
                    source_id TEXT,
                    feed_item_id TEXT,
                    generation_parameters TEXT,
                    seo TEXT,
                    published_at TIMESTAMP,
                    failure_reason TEXT,
                    created_at TIMESTAMP NOT NULL,
                    updated_at TIMESTAMP NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_sources_status ON sources(status);
                CREATE INDEX IF NOT EXISTS idx_sources_type_url ON sources(type, url);
                CREATE INDEX IF NOT EXISTS idx_feed_items_source_status ON feed_items(source_id, status);
                CREATE INDEX IF NOT EXISTS idx_articles_status ON articles(status, created_at DESC);
            """)
