"""
Resilient repository wrappers.

Each wrapper tries the primary store first. When the primary fails with a
storage-unavailable error the shared ``StorageHealth`` flips to degraded and
the same call is re-issued against the in-memory fallback. Degraded mode is
sticky: every later call goes straight to the fallback until
``reset_fallback()``. Other errors (duplicates, validation) pass through.

Data written to one store is never copied to the other.
"""

import asyncio
import logging
import sqlite3
from datetime import datetime, timezone

from ..domain.article import Article, ArticleStatus
from ..domain.feed_item import FeedItem, FeedItemStatus
from ..domain.source import Source, SourceStatus, SourceType
from ..exceptions import FeedflowError, StorageError, StorageErrorCode
from .ports import ArticleRepository, FeedItemRepository, SourceRepository

logger = logging.getLogger(__name__)

# Substrings of driver/server messages that mean the store itself is unreachable
UNAVAILABLE_PATTERNS = (
    "authentication failed",
    "can't reach database server",
    "connection terminated",
    "connection refused",
    "enotfound",
    "econnrefused",
    "etimedout",
    "does not exist in the current database",
    "database credentials",
    "connection pool",
    "unable to open database",
    "no such table",
    "disk i/o error",
    "file is not a database",
)


def is_storage_unavailable(error: BaseException) -> bool:
    """Classify an exception from a primary store."""
    if isinstance(error, StorageError):
        return error.code == StorageErrorCode.CONNECTION_ERROR
    if isinstance(error, FeedflowError):
        return False
    if isinstance(error, sqlite3.IntegrityError):
        return False
    if isinstance(error, (ConnectionError, TimeoutError, asyncio.TimeoutError)):
        return True
    message = str(error).lower()
    return any(pattern in message for pattern in UNAVAILABLE_PATTERNS)


class StorageHealth:
    """Sticky healthy/degraded switch shared by the wrappers of one database."""

    def __init__(self):
        self.degraded = False
        self.reason: str | None = None
        self.since: datetime | None = None

    def degrade(self, error: BaseException | str):
        if not self.degraded:
            self.degraded = True
            self.reason = str(error)
            self.since = datetime.now(timezone.utc)
            logger.warning(f"Primary storage unavailable, switching to in-memory fallback: {error}")

    def reset(self):
        if self.degraded:
            logger.info("Storage fallback reset, retrying primary store")
        self.degraded = False
        self.reason = None
        self.since = None

    def status(self) -> dict:
        return {
            "degraded": self.degraded,
            "repository": "fallback" if self.degraded else "primary",
            "reason": self.reason,
            "since": self.since.isoformat() if self.since else None,
        }


class _FallbackDispatch:
    """Routes each call to the primary or fallback store."""

    def __init__(self, primary, fallback, health: StorageHealth | None = None):
        self._primary = primary
        self._fallback = fallback
        self._health = health or StorageHealth()
        if primary is None:
            self._health.degrade("primary store not configured")

    @property
    def using_fallback(self) -> bool:
        return self._health.degraded

    def reset_fallback(self):
        self._health.reset()

    def status(self) -> dict:
        return self._health.status()

    async def _call(self, operation: str, *args, **kwargs):
        if self._health.degraded or self._primary is None:
            return await getattr(self._fallback, operation)(*args, **kwargs)
        try:
            return await getattr(self._primary, operation)(*args, **kwargs)
        except Exception as e:
            if not is_storage_unavailable(e):
                raise
            self._health.degrade(e)
            return await getattr(self._fallback, operation)(*args, **kwargs)


class FallbackSourceRepository(_FallbackDispatch, SourceRepository):

    async def save(self, source: Source) -> Source:
        return await self._call("save", source)

    async def record_fetch_result(self, source: Source, expected_status: SourceStatus) -> bool:
        return await self._call("record_fetch_result", source, expected_status)

    async def find_by_id(self, source_id: str) -> Source | None:
        return await self._call("find_by_id", source_id)

    async def find_all(
        self,
        status: SourceStatus | None = None,
        source_type: SourceType | None = None,
    ) -> list[Source]:
        return await self._call("find_all", status, source_type)

    async def find_active(self) -> list[Source]:
        return await self._call("find_active")

    async def find_needing_attention(self) -> list[Source]:
        return await self._call("find_needing_attention")

    async def exists_by_type_and_url(self, source_type: SourceType, url: str) -> bool:
        return await self._call("exists_by_type_and_url", source_type, url)

    async def delete(self, source_id: str) -> bool:
        return await self._call("delete", source_id)


class FallbackFeedItemRepository(_FallbackDispatch, FeedItemRepository):

    async def save(self, item: FeedItem) -> FeedItem:
        return await self._call("save", item)

    async def find_by_key(self, source_id: str, guid: str) -> FeedItem | None:
        return await self._call("find_by_key", source_id, guid)

    async def get(self, item_id: str) -> FeedItem | None:
        return await self._call("get", item_id)

    async def update_status(
        self,
        item_id: str,
        status: FeedItemStatus,
        article_id: str | None = None,
    ) -> FeedItem | None:
        return await self._call("update_status", item_id, status, article_id)

    async def list_by_status(
        self,
        source_id: str | None = None,
        status: FeedItemStatus | None = None,
        limit: int = 100,
    ) -> list[FeedItem]:
        return await self._call("list_by_status", source_id, status, limit)


class FallbackArticleRepository(_FallbackDispatch, ArticleRepository):

    async def save(self, article: Article) -> Article:
        return await self._call("save", article)

    async def find_by_id(self, article_id: str) -> Article | None:
        return await self._call("find_by_id", article_id)

    async def find_by_status(
        self,
        status: ArticleStatus | None = None,
        limit: int = 50,
    ) -> list[Article]:
        return await self._call("find_by_status", status, limit)

    async def delete(self, article_id: str) -> bool:
        return await self._call("delete", article_id)
