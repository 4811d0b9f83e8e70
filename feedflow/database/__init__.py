"""
Database module - SQLite storage with in-memory failover.

Uses repository pattern for better separation of concerns.
"""

from .connection import DatabaseConnection
from .ports import ArticleRepository, FeedItemRepository, SourceRepository
from .source_repository import SqliteSourceRepository
from .feed_item_repository import SqliteFeedItemRepository
from .article_repository import SqliteArticleRepository
from .memory import (
    InMemoryArticleRepository,
    InMemoryFeedItemRepository,
    InMemorySourceRepository,
)
from .fallback import (
    FallbackArticleRepository,
    FallbackFeedItemRepository,
    FallbackSourceRepository,
    StorageHealth,
    is_storage_unavailable,
)
from .database import Database

__all__ = [
    "Database",
    "DatabaseConnection",
    "ArticleRepository",
    "FeedItemRepository",
    "SourceRepository",
    "SqliteSourceRepository",
    "SqliteFeedItemRepository",
    "SqliteArticleRepository",
    "InMemorySourceRepository",
    "InMemoryFeedItemRepository",
    "InMemoryArticleRepository",
    "FallbackSourceRepository",
    "FallbackFeedItemRepository",
    "FallbackArticleRepository",
    "StorageHealth",
    "is_storage_unavailable",
]
