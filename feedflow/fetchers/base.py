"""
Fetch strategy interface and shared helpers.
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime

import aiohttp

from ..domain.source import Source, SourceConfiguration, SourceType
from ..exceptions import FetchError, FetchErrorType


@dataclass
class FetchedItem:
    """A raw item as returned by a source, before deduplication."""
    title: str
    content: str
    url: str | None = None
    guid: str | None = None
    published_at: datetime | None = None
    author: str | None = None
    categories: list[str] = field(default_factory=list)


@dataclass
class FetchResult:
    items: list[FetchedItem]
    metadata: dict = field(default_factory=dict)


@dataclass
class SourceTestResult:
    success: bool
    message: str
    item_count: int = 0
    error_type: FetchErrorType | None = None
    sample_titles: list[str] = field(default_factory=list)


class FetchStrategy(ABC):
    """Retrieves raw items for one source type."""

    @property
    @abstractmethod
    def source_type(self) -> SourceType:
        pass

    @abstractmethod
    async def fetch(self, source: Source) -> FetchResult:
        """
        Fetch raw items from the source.

        Raises:
            FetchError: the source could not be fetched or parsed
        """

    async def test(self, source: Source) -> SourceTestResult:
        """Check a source can be fetched, without persisting anything."""
        try:
            result = await self.fetch(source)
        except FetchError as e:
            return SourceTestResult(success=False, message=e.message, error_type=e.type)
        return SourceTestResult(
            success=True,
            message=f"Fetched {len(result.items)} items",
            item_count=len(result.items),
            sample_titles=[item.title for item in result.items[:5]],
        )


def _matches_any(text: str, keywords: list[str]) -> bool:
    return any(k.lower() in text for k in keywords)


def apply_filters(items: list[FetchedItem], configuration: SourceConfiguration) -> list[FetchedItem]:
    """Apply keyword, category, length and count filters, keeping feed order."""
    filters = configuration.filters
    wanted_categories = {c.lower() for c in filters.categories}
    kept = []
    for item in items:
        text = f"{item.title} {item.content}".lower()
        if filters.keywords and not _matches_any(text, filters.keywords):
            continue
        if filters.exclude_keywords and _matches_any(text, filters.exclude_keywords):
            continue
        if wanted_categories and not wanted_categories & {c.lower() for c in item.categories}:
            continue
        if filters.min_length is not None and len(item.content) < filters.min_length:
            continue
        kept.append(item)

    if configuration.max_items is not None:
        kept = kept[:configuration.max_items]
    return kept


def classify_exception(error: BaseException) -> FetchError:
    """Map a transport or parsing exception to a FetchError."""
    if isinstance(error, FetchError):
        return error
    if isinstance(error, (asyncio.TimeoutError, TimeoutError)):
        return FetchError(FetchErrorType.TIMEOUT, "Request timed out")
    if isinstance(error, aiohttp.ClientResponseError):
        status = error.status
        if status in (401, 403):
            error_type = FetchErrorType.AUTH
        elif status == 404:
            error_type = FetchErrorType.NOT_FOUND
        elif status == 429:
            error_type = FetchErrorType.RATE_LIMIT
        elif status >= 500:
            error_type = FetchErrorType.SERVER
        else:
            error_type = FetchErrorType.CLIENT
        return FetchError(error_type, f"HTTP {status}: {error.message}", code=str(status))
    if isinstance(error, (aiohttp.ClientConnectionError, ConnectionError)):
        return FetchError(FetchErrorType.NETWORK, f"Network error: {error}")
    if isinstance(error, aiohttp.ClientError):
        return FetchError(FetchErrorType.CLIENT, f"HTTP client error: {error}")
    if isinstance(error, ValueError):
        return FetchError(FetchErrorType.PARSE, str(error))
    return FetchError(FetchErrorType.UNKNOWN, str(error) or error.__class__.__name__)
