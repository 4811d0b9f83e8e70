"""
Fetch strategies, one per source type, and the registry that selects them.
"""

from ..domain.source import SourceType
from ..exceptions import FetchError, FetchErrorType
from .base import (
    FetchedItem,
    FetchResult,
    FetchStrategy,
    SourceTestResult,
    apply_filters,
    classify_exception,
)
from .calendar import CalendarClient, CalendarFetchStrategy
from .rss import RssFetchStrategy
from .telegram import TelegramFetchStrategy


class FetchStrategyRegistry:
    """Maps source types to their fetch strategy."""

    def __init__(self, strategies: list[FetchStrategy] | None = None):
        self._strategies: dict[SourceType, FetchStrategy] = {}
        for strategy in strategies or []:
            self.register(strategy)

    def register(self, strategy: FetchStrategy):
        self._strategies[strategy.source_type] = strategy

    def get(self, source_type: SourceType) -> FetchStrategy:
        strategy = self._strategies.get(source_type)
        if strategy is None:
            raise FetchError(
                FetchErrorType.VALIDATION,
                f"No fetch strategy for source type '{source_type.value}'",
            )
        return strategy

    def supported_types(self) -> list[SourceType]:
        return list(self._strategies)


def create_default_registry(
    timeout: int = 30,
    user_agent: str | None = None,
    calendar_client: CalendarClient | None = None,
) -> FetchStrategyRegistry:
    return FetchStrategyRegistry([
        RssFetchStrategy(timeout=timeout, user_agent=user_agent),
        TelegramFetchStrategy(timeout=timeout, user_agent=user_agent),
        CalendarFetchStrategy(client=calendar_client),
    ])


__all__ = [
    "CalendarClient",
    "CalendarFetchStrategy",
    "FetchedItem",
    "FetchResult",
    "FetchStrategy",
    "FetchStrategyRegistry",
    "RssFetchStrategy",
    "SourceTestResult",
    "TelegramFetchStrategy",
    "apply_filters",
    "classify_exception",
    "create_default_registry",
]
