"""
Calendar fetch strategy.

Calendar sources have no URL; events come from an injected ``CalendarClient``.
Without a client every fetch fails with a ``server`` error.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone

from ..domain.source import Source, SourceType
from ..exceptions import FetchError, FetchErrorType
from .base import FetchedItem, FetchResult, FetchStrategy, classify_exception

DEFAULT_LOOK_AHEAD_DAYS = 7


class CalendarClient(ABC):
    """Access to an external calendar service."""

    @abstractmethod
    async def list_events(
        self,
        calendar_id: str | None,
        start: datetime,
        end: datetime,
        event_types: list[str],
    ) -> list[dict]:
        """
        Return events in the window as dicts with ``id``, ``title``,
        ``description``, ``start`` (datetime or ISO string) and optional ``url``.
        """


class CalendarFetchStrategy(FetchStrategy):

    def __init__(self, client: CalendarClient | None = None):
        self.client = client

    @property
    def source_type(self) -> SourceType:
        return SourceType.CALENDAR

    async def fetch(self, source: Source) -> FetchResult:
        if self.client is None:
            raise FetchError(FetchErrorType.SERVER, "Calendar service not available")

        config = source.configuration
        start = datetime.now(timezone.utc)
        end = start + timedelta(days=config.look_ahead_days or DEFAULT_LOOK_AHEAD_DAYS)
        try:
            events = await self.client.list_events(config.calendar_id, start, end, config.event_types)
        except Exception as e:
            raise classify_exception(e) from e

        items = []
        for event in events:
            event_start = event.get("start")
            if isinstance(event_start, str):
                try:
                    event_start = datetime.fromisoformat(event_start)
                except ValueError:
                    event_start = None
            items.append(FetchedItem(
                title=event.get("title") or "Untitled event",
                content=event.get("description") or "",
                url=event.get("url"),
                guid=str(event["id"]) if event.get("id") is not None else None,
                published_at=event_start,
                categories=[event["type"]] if event.get("type") else [],
            ))
        return FetchResult(
            items=items,
            metadata={"window_start": start.isoformat(), "window_end": end.isoformat()},
        )
