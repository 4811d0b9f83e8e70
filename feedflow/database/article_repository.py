"""
Article repository - SQLite persistence for generated articles.
"""

from ..domain.article import Article, ArticleStatus
from .connection import DatabaseConnection
from .converters import article_to_params, row_to_article
from .ports import ArticleRepository


class SqliteArticleRepository(ArticleRepository):
    """Repository for article operations."""

    def __init__(self, db: DatabaseConnection):
        self._db = db

    async def save(self, article: Article) -> Article:
        await self._db.run(self._save, article)
        return article

    def _save(self, article: Article):
        with self._db.conn() as conn:
            conn.execute(
                """INSERT INTO articles (
                       id, title, content, status, source_id, feed_item_id,
                       generation_parameters, seo, published_at, failure_reason,
                       created_at, updated_at
                   ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                   ON CONFLICT(id) DO UPDATE SET
                       title = excluded.title,
                       content = excluded.content,
                       status = excluded.status,
                       seo = excluded.seo,
                       published_at = excluded.published_at,
                       failure_reason = excluded.failure_reason,
                       updated_at = excluded.updated_at""",
                article_to_params(article),
            )

    async def find_by_id(self, article_id: str) -> Article | None:
        return await self._db.run(self._find_by_id, article_id)

    def _find_by_id(self, article_id: str) -> Article | None:
        with self._db.conn() as conn:
            row = conn.execute("SELECT * FROM articles WHERE id = ?", (article_id,)).fetchone()
            return row_to_article(row) if row else None

    async def find_by_status(
        self,
        status: ArticleStatus | None = None,
        limit: int = 50,
    ) -> list[Article]:
        return await self._db.run(self._find_by_status, status, limit)

    def _find_by_status(self, status: ArticleStatus | None, limit: int) -> list[Article]:
        with self._db.conn() as conn:
            if status is not None:
                rows = conn.execute(
                    "SELECT * FROM articles WHERE status = ? ORDER BY created_at DESC LIMIT ?",
                    (status.value, limit),
                ).fetchall()
            else:
                rows = conn.execute(
                    "SELECT * FROM articles ORDER BY created_at DESC LIMIT ?",
                    (limit,),
                ).fetchall()
            return [row_to_article(row) for row in rows]

    async def delete(self, article_id: str) -> bool:
        return await self._db.run(self._delete, article_id)

    def _delete(self, article_id: str) -> bool:
        with self._db.conn() as conn:
            cursor = conn.execute("DELETE FROM articles WHERE id = ?", (article_id,))
            return cursor.rowcount > 0
