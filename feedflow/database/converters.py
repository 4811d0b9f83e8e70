"""
Database row converters - convert SQLite rows to domain entities and back.
"""

import json
import sqlite3
from datetime import datetime

from ..domain.article import (
    Article,
    ArticleStatus,
    Content,
    GenerationParameters,
    SeoMetadata,
    Title,
)
from ..domain.feed_item import FeedItem, FeedItemStatus
from ..domain.source import (
    Source,
    SourceConfiguration,
    SourceMetadata,
    SourceStatus,
    SourceType,
)


def _to_datetime(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        return None


def _to_iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _load_json(value: str | None) -> dict | None:
    if not value:
        return None
    try:
        return json.loads(value)
    except json.JSONDecodeError:
        return None


# ─────────────────────────────────────────────────────────────
# Sources
# ─────────────────────────────────────────────────────────────

def row_to_source(row: sqlite3.Row) -> Source:
    """Convert a database row to a Source."""
    return Source(
        id=row["id"],
        name=row["name"],
        type=SourceType(row["type"]),
        status=SourceStatus(row["status"]),
        url=row["url"],
        default_category=row["default_category"],
        configuration=SourceConfiguration.from_dict(_load_json(row["configuration"])),
        metadata=SourceMetadata.from_dict(_load_json(row["metadata"])),
        last_fetch_at=_to_datetime(row["last_fetch_at"]),
        last_error_at=_to_datetime(row["last_error_at"]),
        last_error_message=row["last_error_message"],
        created_at=_to_datetime(row["created_at"]),
        updated_at=_to_datetime(row["updated_at"]),
    )


def source_to_params(source: Source) -> tuple:
    """Column values in the order used by SourceRepository inserts."""
    return (
        source.id,
        source.name,
        source.type.value,
        source.status.value,
        source.url,
        source.default_category,
        json.dumps(source.configuration.to_dict()),
        json.dumps(source.metadata.to_dict()),
        _to_iso(source.last_fetch_at),
        _to_iso(source.last_error_at),
        source.last_error_message,
        _to_iso(source.created_at),
        _to_iso(source.updated_at),
    )


def source_fetch_params(source: Source) -> dict:
    """Named values for the fetch bookkeeping update."""
    return {
        "id": source.id,
        "status": source.status.value,
        "metadata": json.dumps(source.metadata.to_dict()),
        "last_fetch_at": _to_iso(source.last_fetch_at),
        "last_error_at": _to_iso(source.last_error_at),
        "last_error_message": source.last_error_message,
        "updated_at": _to_iso(source.updated_at),
    }


# ─────────────────────────────────────────────────────────────
# Feed items
# ─────────────────────────────────────────────────────────────

def row_to_feed_item(row: sqlite3.Row) -> FeedItem:
    """Convert a database row to a FeedItem."""
    return FeedItem(
        id=row["id"],
        source_id=row["source_id"],
        guid=row["guid"],
        title=row["title"],
        content=row["content"],
        url=row["url"],
        published_at=_to_datetime(row["published_at"]),
        fetched_at=_to_datetime(row["fetched_at"]),
        status=FeedItemStatus(row["status"]),
        article_id=row["article_id"],
    )


def feed_item_to_params(item: FeedItem) -> tuple:
    return (
        item.id,
        item.source_id,
        item.guid,
        item.title,
        item.content,
        item.url,
        _to_iso(item.published_at),
        _to_iso(item.fetched_at),
        item.status.value,
        item.article_id,
    )


# ─────────────────────────────────────────────────────────────
# Articles
# ─────────────────────────────────────────────────────────────

def row_to_article(row: sqlite3.Row) -> Article:
    """Convert a database row to an Article."""
    params = _load_json(row["generation_parameters"])
    seo = _load_json(row["seo"])
    return Article(
        id=row["id"],
        title=Title(row["title"]),
        content=Content(row["content"]),
        status=ArticleStatus(row["status"]),
        source_id=row["source_id"],
        feed_item_id=row["feed_item_id"],
        generation_parameters=GenerationParameters.from_dict(params) if params else None,
        seo=SeoMetadata.from_dict(seo) if seo else None,
        published_at=_to_datetime(row["published_at"]),
        failure_reason=row["failure_reason"],
        created_at=_to_datetime(row["created_at"]),
        updated_at=_to_datetime(row["updated_at"]),
    )


def article_to_params(article: Article) -> tuple:
    return (
        article.id,
        article.title.value,
        article.content.value,
        article.status.value,
        article.source_id,
        article.feed_item_id,
        json.dumps(article.generation_parameters.to_dict()) if article.generation_parameters else None,
        json.dumps(article.seo.to_dict()) if article.seo else None,
        _to_iso(article.published_at),
        article.failure_reason,
        _to_iso(article.created_at),
        _to_iso(article.updated_at),
    )
