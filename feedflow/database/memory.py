"""
In-memory repositories.

Used as the failover store when the primary database is unreachable, and in
tests. Entities are copied on the way in and out so callers never share state
with the store.
"""

import asyncio
import copy

from ..domain.article import Article, ArticleStatus
from ..domain.feed_item import FeedItem, FeedItemStatus
from ..domain.source import Source, SourceStatus, SourceType
from ..exceptions import DuplicateItemError
from .ports import ArticleRepository, FeedItemRepository, SourceRepository


class InMemorySourceRepository(SourceRepository):

    def __init__(self):
        self._sources: dict[str, Source] = {}

    async def save(self, source: Source) -> Source:
        self._sources[source.id] = copy.deepcopy(source)
        return source

    async def record_fetch_result(self, source: Source, expected_status: SourceStatus) -> bool:
        stored = self._sources.get(source.id)
        if stored is None:
            return False
        if stored.status == expected_status:
            stored.status = source.status
        stored.metadata = copy.deepcopy(source.metadata)
        stored.last_fetch_at = source.last_fetch_at
        stored.last_error_at = source.last_error_at
        stored.last_error_message = source.last_error_message
        stored.updated_at = source.updated_at
        return True

    async def find_by_id(self, source_id: str) -> Source | None:
        source = self._sources.get(source_id)
        return copy.deepcopy(source) if source else None

    async def find_all(
        self,
        status: SourceStatus | None = None,
        source_type: SourceType | None = None,
    ) -> list[Source]:
        sources = sorted(self._sources.values(), key=lambda s: s.created_at)
        return [
            copy.deepcopy(s) for s in sources
            if (status is None or s.status == status)
            and (source_type is None or s.type == source_type)
        ]

    async def find_active(self) -> list[Source]:
        return await self.find_all(status=SourceStatus.ACTIVE)

    async def find_needing_attention(self) -> list[Source]:
        return [s for s in await self.find_all() if s.needs_attention()]

    async def exists_by_type_and_url(self, source_type: SourceType, url: str) -> bool:
        return any(s.type == source_type and s.url == url for s in self._sources.values())

    async def delete(self, source_id: str) -> bool:
        return self._sources.pop(source_id, None) is not None

    def clear(self):
        self._sources.clear()


class InMemoryFeedItemRepository(FeedItemRepository):

    def __init__(self):
        self._items: dict[str, FeedItem] = {}
        self._keys: dict[tuple[str, str], str] = {}
        self._lock = asyncio.Lock()

    async def save(self, item: FeedItem) -> FeedItem:
        async with self._lock:
            key = (item.source_id, item.guid)
            if key in self._keys:
                raise DuplicateItemError(item.source_id, item.guid)
            self._items[item.id] = copy.deepcopy(item)
            self._keys[key] = item.id
        return item

    async def find_by_key(self, source_id: str, guid: str) -> FeedItem | None:
        item_id = self._keys.get((source_id, guid))
        return await self.get(item_id) if item_id else None

    async def get(self, item_id: str) -> FeedItem | None:
        item = self._items.get(item_id)
        return copy.deepcopy(item) if item else None

    async def update_status(
        self,
        item_id: str,
        status: FeedItemStatus,
        article_id: str | None = None,
    ) -> FeedItem | None:
        item = self._items.get(item_id)
        if item is None:
            return None
        item.advance(status, article_id)
        return copy.deepcopy(item)

    async def list_by_status(
        self,
        source_id: str | None = None,
        status: FeedItemStatus | None = None,
        limit: int = 100,
    ) -> list[FeedItem]:
        # dicts keep insertion order, which is feed order
        matches = [
            copy.deepcopy(i) for i in self._items.values()
            if (source_id is None or i.source_id == source_id)
            and (status is None or i.status == status)
        ]
        return matches[:limit]

    def clear(self):
        self._items.clear()
        self._keys.clear()


class InMemoryArticleRepository(ArticleRepository):

    def __init__(self):
        self._articles: dict[str, Article] = {}

    async def save(self, article: Article) -> Article:
        self._articles[article.id] = copy.deepcopy(article)
        return article

    async def find_by_id(self, article_id: str) -> Article | None:
        article = self._articles.get(article_id)
        return copy.deepcopy(article) if article else None

    async def find_by_status(
        self,
        status: ArticleStatus | None = None,
        limit: int = 50,
    ) -> list[Article]:
        articles = sorted(self._articles.values(), key=lambda a: a.created_at, reverse=True)
        return [
            copy.deepcopy(a) for a in articles
            if status is None or a.status == status
        ][:limit]

    async def delete(self, article_id: str) -> bool:
        return self._articles.pop(article_id, None) is not None

    def clear(self):
        self._articles.clear()
