"""
Feed item repository - the deduplication store.

Uniqueness of (source_id, guid) is enforced by the table constraint; an
insert that hits it raises DuplicateItemError.
"""

import sqlite3

from ..domain.feed_item import FeedItem, FeedItemStatus
from ..exceptions import DuplicateItemError, InvalidTransitionError
from .connection import DatabaseConnection
from .converters import feed_item_to_params, row_to_feed_item
from .ports import FeedItemRepository


class SqliteFeedItemRepository(FeedItemRepository):
    """Repository for feed item operations."""

    def __init__(self, db: DatabaseConnection):
        self._db = db

    async def save(self, item: FeedItem) -> FeedItem:
        await self._db.run(self._insert, item)
        return item

    def _insert(self, item: FeedItem):
        try:
            with self._db.conn() as conn:
                conn.execute(
                    """INSERT INTO feed_items (
                           id, source_id, guid, title, content, url,
                           published_at, fetched_at, status, article_id
                       ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                    feed_item_to_params(item),
                )
        except sqlite3.IntegrityError as e:
            if "UNIQUE" in str(e) and "guid" in str(e):
                raise DuplicateItemError(item.source_id, item.guid) from e
            raise

    async def find_by_key(self, source_id: str, guid: str) -> FeedItem | None:
        return await self._db.run(self._find_by_key, source_id, guid)

    def _find_by_key(self, source_id: str, guid: str) -> FeedItem | None:
        with self._db.conn() as conn:
            row = conn.execute(
                "SELECT * FROM feed_items WHERE source_id = ? AND guid = ?",
                (source_id, guid),
            ).fetchone()
            return row_to_feed_item(row) if row else None

    async def get(self, item_id: str) -> FeedItem | None:
        return await self._db.run(self._get, item_id)

    def _get(self, item_id: str) -> FeedItem | None:
        with self._db.conn() as conn:
            row = conn.execute("SELECT * FROM feed_items WHERE id = ?", (item_id,)).fetchone()
            return row_to_feed_item(row) if row else None

    async def update_status(
        self,
        item_id: str,
        status: FeedItemStatus,
        article_id: str | None = None,
    ) -> FeedItem | None:
        return await self._db.run(self._update_status, item_id, status, article_id)

    def _update_status(
        self,
        item_id: str,
        status: FeedItemStatus,
        article_id: str | None,
    ) -> FeedItem | None:
        with self._db.conn() as conn:
            row = conn.execute("SELECT * FROM feed_items WHERE id = ?", (item_id,)).fetchone()
            if not row:
                return None
            item = row_to_feed_item(row)
            previous = item.status
            item.advance(status, article_id)
            # Compare-and-set: another writer may have advanced the row since the read
            cursor = conn.execute(
                "UPDATE feed_items SET status = ?, article_id = ? WHERE id = ? AND status = ?",
                (item.status.value, item.article_id, item.id, previous.value),
            )
            if cursor.rowcount == 0:
                current = conn.execute(
                    "SELECT status FROM feed_items WHERE id = ?", (item_id,)
                ).fetchone()
                if current is None:
                    return None
                raise InvalidTransitionError("feed item", current["status"], status.value)
            return item

    async def list_by_status(
        self,
        source_id: str | None = None,
        status: FeedItemStatus | None = None,
        limit: int = 100,
    ) -> list[FeedItem]:
        return await self._db.run(self._list_by_status, source_id, status, limit)

    def _list_by_status(
        self,
        source_id: str | None,
        status: FeedItemStatus | None,
        limit: int,
    ) -> list[FeedItem]:
        query = "SELECT * FROM feed_items"
        conditions = []
        params: list = []
        if source_id is not None:
            conditions.append("source_id = ?")
            params.append(source_id)
        if status is not None:
            conditions.append("status = ?")
            params.append(status.value)
        if conditions:
            query += " WHERE " + " AND ".join(conditions)
        query += " ORDER BY fetched_at, rowid LIMIT ?"
        params.append(limit)

        with self._db.conn() as conn:
            rows = conn.execute(query, params).fetchall()
            return [row_to_feed_item(row) for row in rows]
