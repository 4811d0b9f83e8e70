"""
Domain model: sources, feed items, articles and the events they emit.
"""

from .events import DomainEvent
from .source import (
    Source,
    SourceType,
    SourceStatus,
    SourceConfiguration,
    SourceFilters,
    SourceMetadata,
    GenerationConfig,
)
from .feed_item import FeedItem, FeedItemStatus, derive_guid
from .article import (
    Article,
    ArticleStatus,
    AutomationSettings,
    Content,
    GenerationParameters,
    SeoMetadata,
    Title,
    determine_initial_status,
)

__all__ = [
    "DomainEvent",
    "Source",
    "SourceType",
    "SourceStatus",
    "SourceConfiguration",
    "SourceFilters",
    "SourceMetadata",
    "GenerationConfig",
    "FeedItem",
    "FeedItemStatus",
    "derive_guid",
    "Article",
    "ArticleStatus",
    "AutomationSettings",
    "Content",
    "GenerationParameters",
    "SeoMetadata",
    "Title",
    "determine_initial_status",
]
