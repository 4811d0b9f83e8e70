"""
Source repository - SQLite persistence for sources.
"""

from ..domain.source import Source, SourceStatus, SourceType
from .connection import DatabaseConnection
from .converters import row_to_source, source_fetch_params, source_to_params
from .ports import SourceRepository


class SqliteSourceRepository(SourceRepository):
    """Repository for source operations."""

    def __init__(self, db: DatabaseConnection):
        self._db = db

    async def save(self, source: Source) -> Source:
        await self._db.run(self._save, source)
        return source

    def _save(self, source: Source):
        with self._db.conn() as conn:
            conn.execute(
                """INSERT INTO sources (
                       id, name, type, status, url, default_category,
                       configuration, metadata, last_fetch_at, last_error_at,
                       last_error_message, created_at, updated_at
                   ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                   ON CONFLICT(id) DO UPDATE SET
                       name = excluded.name,
                       status = excluded.status,
                       url = excluded.url,
                       default_category = excluded.default_category,
                       configuration = excluded.configuration,
                       metadata = excluded.metadata,
                       last_fetch_at = excluded.last_fetch_at,
                       last_error_at = excluded.last_error_at,
                       last_error_message = excluded.last_error_message,
                       updated_at = excluded.updated_at""",
                source_to_params(source),
            )

    async def record_fetch_result(self, source: Source, expected_status: SourceStatus) -> bool:
        return await self._db.run(self._record_fetch_result, source, expected_status)

    def _record_fetch_result(self, source: Source, expected_status: SourceStatus) -> bool:
        params = source_fetch_params(source)
        params["expected_status"] = expected_status.value
        with self._db.conn() as conn:
            cursor = conn.execute(
                """UPDATE sources SET
                       status = CASE WHEN status = :expected_status
                                     THEN :status ELSE status END,
                       metadata = :metadata,
                       last_fetch_at = :last_fetch_at,
                       last_error_at = :last_error_at,
                       last_error_message = :last_error_message,
                       updated_at = :updated_at
                   WHERE id = :id""",
                params,
            )
            return cursor.rowcount > 0

    async def find_by_id(self, source_id: str) -> Source | None:
        return await self._db.run(self._find_by_id, source_id)

    def _find_by_id(self, source_id: str) -> Source | None:
        with self._db.conn() as conn:
            row = conn.execute("SELECT * FROM sources WHERE id = ?", (source_id,)).fetchone()
            return row_to_source(row) if row else None

    async def find_all(
        self,
        status: SourceStatus | None = None,
        source_type: SourceType | None = None,
    ) -> list[Source]:
        return await self._db.run(self._find_all, status, source_type)

    def _find_all(
        self,
        status: SourceStatus | None,
        source_type: SourceType | None,
    ) -> list[Source]:
        query = "SELECT * FROM sources"
        conditions = []
        params: list = []
        if status is not None:
            conditions.append("status = ?")
            params.append(status.value)
        if source_type is not None:
            conditions.append("type = ?")
            params.append(source_type.value)
        if conditions:
            query += " WHERE " + " AND ".join(conditions)
        query += " ORDER BY created_at"

        with self._db.conn() as conn:
            rows = conn.execute(query, params).fetchall()
            return [row_to_source(row) for row in rows]

    async def find_active(self) -> list[Source]:
        return await self.find_all(status=SourceStatus.ACTIVE)

    async def find_needing_attention(self) -> list[Source]:
        sources = await self._db.run(
            self._find_by_statuses, (SourceStatus.ACTIVE.value, SourceStatus.ERROR.value)
        )
        return [s for s in sources if s.needs_attention()]

    def _find_by_statuses(self, statuses: tuple[str, ...]) -> list[Source]:
        placeholders = ", ".join("?" for _ in statuses)
        with self._db.conn() as conn:
            rows = conn.execute(
                f"SELECT * FROM sources WHERE status IN ({placeholders}) ORDER BY created_at",
                statuses,
            ).fetchall()
            return [row_to_source(row) for row in rows]

    async def exists_by_type_and_url(self, source_type: SourceType, url: str) -> bool:
        return await self._db.run(self._exists_by_type_and_url, source_type, url)

    def _exists_by_type_and_url(self, source_type: SourceType, url: str) -> bool:
        with self._db.conn() as conn:
            row = conn.execute(
                "SELECT 1 FROM sources WHERE type = ? AND url = ? LIMIT 1",
                (source_type.value, url),
            ).fetchone()
            return row is not None

    async def delete(self, source_id: str) -> bool:
        return await self._db.run(self._delete, source_id)

    def _delete(self, source_id: str) -> bool:
        with self._db.conn() as conn:
            cursor = conn.execute("DELETE FROM sources WHERE id = ?", (source_id,))
            return cursor.rowcount > 0
