"""
Repository interfaces.

Services depend on these; the sqlite, in-memory and fallback implementations
all satisfy them.
"""

from abc import ABC, abstractmethod

from ..domain.article import Article, ArticleStatus
from ..domain.feed_item import FeedItem, FeedItemStatus
from ..domain.source import Source, SourceStatus, SourceType


class SourceRepository(ABC):

    @abstractmethod
    async def save(self, source: Source) -> Source:
        """Insert or update a source."""

    @abstractmethod
    async def record_fetch_result(self, source: Source, expected_status: SourceStatus) -> bool:
        """
        Write only the fetch bookkeeping of ``source``.

        Metadata, last fetch and last error columns are always written. The
        status is written only while the stored status still equals
        ``expected_status``, so a pause or archive made during the fetch
        wins. Name, URL and configuration are never touched.

        Returns False if the source no longer exists.
        """

    @abstractmethod
    async def find_by_id(self, source_id: str) -> Source | None:
        pass

    @abstractmethod
    async def find_all(
        self,
        status: SourceStatus | None = None,
        source_type: SourceType | None = None,
    ) -> list[Source]:
        pass

    @abstractmethod
    async def find_active(self) -> list[Source]:
        pass

    @abstractmethod
    async def find_needing_attention(self) -> list[Source]:
        pass

    @abstractmethod
    async def exists_by_type_and_url(self, source_type: SourceType, url: str) -> bool:
        pass

    @abstractmethod
    async def delete(self, source_id: str) -> bool:
        """Remove a source. Returns False if it did not exist."""


class FeedItemRepository(ABC):

    @abstractmethod
    async def save(self, item: FeedItem) -> FeedItem:
        """
        Insert a new feed item.

        Raises:
            DuplicateItemError: an item with the same (source_id, guid) exists
        """

    @abstractmethod
    async def find_by_key(self, source_id: str, guid: str) -> FeedItem | None:
        pass

    @abstractmethod
    async def get(self, item_id: str) -> FeedItem | None:
        pass

    @abstractmethod
    async def update_status(
        self,
        item_id: str,
        status: FeedItemStatus,
        article_id: str | None = None,
    ) -> FeedItem | None:
        """Advance an item's status. Returns None if the item does not exist."""

    @abstractmethod
    async def list_by_status(
        self,
        source_id: str | None = None,
        status: FeedItemStatus | None = None,
        limit: int = 100,
    ) -> list[FeedItem]:
        pass


class ArticleRepository(ABC):

    @abstractmethod
    async def save(self, article: Article) -> Article:
        """Insert or update an article."""

    @abstractmethod
    async def find_by_id(self, article_id: str) -> Article | None:
        pass

    @abstractmethod
    async def find_by_status(
        self,
        status: ArticleStatus | None = None,
        limit: int = 50,
    ) -> list[Article]:
        pass

    @abstractmethod
    async def delete(self, article_id: str) -> bool:
        pass
