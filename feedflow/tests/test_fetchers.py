"""
Tests for fetch strategies, filtering and error classification.
"""

from datetime import datetime, timezone

import aiohttp
import pytest

from feedflow.domain.source import Source, SourceConfiguration, SourceType
from feedflow.exceptions import FetchError, FetchErrorType
from feedflow.fetchers import (
    CalendarClient,
    CalendarFetchStrategy,
    FetchedItem,
    FetchStrategyRegistry,
    RssFetchStrategy,
    TelegramFetchStrategy,
    apply_filters,
    classify_exception,
    create_default_registry,
)
from feedflow.fetchers.telegram import channel_from_source

RSS_FEED = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
  <channel>
    <title>Example News</title>
    <description>Daily stories</description>
    <item>
      <title>First story</title>
      <link>https://example.com/first</link>
      <guid>urn:story:1</guid>
      <description>The first body</description>
      <pubDate>Mon, 01 Jan 2024 10:00:00 GMT</pubDate>
      <category>Politics</category>
    </item>
    <item>
      <title>Second story</title>
      <link>https://example.com/second</link>
      <description>The second body</description>
    </item>
  </channel>
</rss>
"""

TELEGRAM_PAGE = """
<html><body>
  <div class="tgme_channel_info">Example channel</div>
  <div class="tgme_widget_message" data-post="example/101">
    <div class="tgme_widget_message_text">Breaking headline<br>More details follow here.</div>
    <a class="tgme_widget_message_date" href="https://t.me/example/101">
      <time datetime="2024-03-05T09:30:00+00:00">09:30</time>
    </a>
  </div>
  <div class="tgme_widget_message" data-post="example/102">
    <div class="tgme_widget_message_photo_wrap"></div>
  </div>
</body></html>
"""


class TestRssParsing:

    def test_parses_entries(self):
        result = RssFetchStrategy()._parse(RSS_FEED)

        assert result.metadata["feed_title"] == "Example News"
        assert len(result.items) == 2

        first = result.items[0]
        assert first.title == "First story"
        assert first.url == "https://example.com/first"
        assert first.guid == "urn:story:1"
        assert first.content == "The first body"
        assert first.published_at == datetime(2024, 1, 1, 10, 0, tzinfo=timezone.utc)
        assert first.categories == ["Politics"]

        assert result.items[1].guid is None

    def test_garbage_is_parse_error(self):
        with pytest.raises(FetchError) as exc_info:
            RssFetchStrategy()._parse("this is not a feed <<<")
        assert exc_info.value.type == FetchErrorType.PARSE

    @pytest.mark.asyncio
    async def test_source_without_url(self):
        source, _ = Source.create_rss_source("Example", "https://example.com/rss")
        source.url = None
        with pytest.raises(FetchError) as exc_info:
            await RssFetchStrategy().fetch(source)
        assert exc_info.value.type == FetchErrorType.VALIDATION


class TestTelegramParsing:

    def test_parses_text_messages(self):
        items = TelegramFetchStrategy()._parse(TELEGRAM_PAGE)

        assert len(items) == 1
        item = items[0]
        assert item.guid == "example/101"
        assert item.title == "Breaking headline"
        assert "More details follow here." in item.content
        assert item.url == "https://t.me/example/101"
        assert item.published_at == datetime(2024, 3, 5, 9, 30, tzinfo=timezone.utc)

    def test_non_channel_page_is_parse_error(self):
        with pytest.raises(FetchError) as exc_info:
            TelegramFetchStrategy()._parse("<html><body>Nothing here</body></html>")
        assert exc_info.value.type == FetchErrorType.PARSE

    @pytest.mark.parametrize("url,configured,expected", [
        ("https://t.me/example", None, "example"),
        ("https://t.me/s/example", None, "example"),
        ("https://t.me/example", "@override", "override"),
    ])
    def test_channel_from_source(self, url, configured, expected):
        source, _ = Source.create_telegram_source(
            "Channel", url, {"channel_id": configured} if configured else None
        )
        assert channel_from_source(source) == expected


class FakeCalendarClient(CalendarClient):

    def __init__(self, events):
        self.events = events
        self.calls = []

    async def list_events(self, calendar_id, start, end, event_types):
        self.calls.append((calendar_id, start, end, event_types))
        return self.events


class TestCalendar:

    @pytest.mark.asyncio
    async def test_no_client_is_server_error(self):
        source, _ = Source.create_calendar_source("Events")
        with pytest.raises(FetchError) as exc_info:
            await CalendarFetchStrategy().fetch(source)
        assert exc_info.value.type == FetchErrorType.SERVER
        assert exc_info.value.message == "Calendar service not available"

    @pytest.mark.asyncio
    async def test_maps_events(self):
        client = FakeCalendarClient([
            {"id": 7, "title": "Council meeting", "description": "Budget vote",
             "start": "2024-06-01T18:00:00+00:00", "type": "meeting"},
        ])
        source, _ = Source.create_calendar_source(
            "Events", {"calendar_id": "city", "look_ahead_days": 3}
        )

        result = await CalendarFetchStrategy(client).fetch(source)

        item = result.items[0]
        assert item.guid == "7"
        assert item.title == "Council meeting"
        assert item.published_at == datetime(2024, 6, 1, 18, 0, tzinfo=timezone.utc)
        assert item.categories == ["meeting"]

        calendar_id, start, end, _ = client.calls[0]
        assert calendar_id == "city"
        assert (end - start).days == 3


class TestFilters:

    def _items(self):
        return [
            FetchedItem(title="AI beats chess champion", content="x" * 300, categories=["Tech"]),
            FetchedItem(title="Local bakery opens", content="short", categories=["Local"]),
            FetchedItem(title="AI regulation sponsored post", content="y" * 300, categories=["Tech"]),
        ]

    def test_keywords_and_exclusions(self):
        config = SourceConfiguration.from_dict(
            {"filters": {"keywords": ["ai"], "exclude_keywords": ["sponsored"]}}
        )
        kept = apply_filters(self._items(), config)
        assert [i.title for i in kept] == ["AI beats chess champion"]

    def test_categories_and_min_length(self):
        config = SourceConfiguration.from_dict({"filters": {"categories": ["tech"], "min_length": 100}})
        assert len(apply_filters(self._items(), config)) == 2

    def test_max_items_keeps_feed_order(self):
        config = SourceConfiguration.from_dict({"max_items": 2})
        kept = apply_filters(self._items(), config)
        assert [i.title for i in kept] == ["AI beats chess champion", "Local bakery opens"]


def _response_error(status: int) -> aiohttp.ClientResponseError:
    return aiohttp.ClientResponseError(
        request_info=None, history=(), status=status, message="error"
    )


class TestClassifyException:

    @pytest.mark.parametrize("status,expected", [
        (401, FetchErrorType.AUTH),
        (403, FetchErrorType.AUTH),
        (404, FetchErrorType.NOT_FOUND),
        (429, FetchErrorType.RATE_LIMIT),
        (500, FetchErrorType.SERVER),
        (503, FetchErrorType.SERVER),
        (400, FetchErrorType.CLIENT),
    ])
    def test_http_status(self, status, expected):
        error = classify_exception(_response_error(status))
        assert error.type == expected
        assert error.code == str(status)

    @pytest.mark.parametrize("exc,expected", [
        (TimeoutError(), FetchErrorType.TIMEOUT),
        (aiohttp.ClientConnectionError("refused"), FetchErrorType.NETWORK),
        (ConnectionResetError(), FetchErrorType.NETWORK),
        (ValueError("bad date"), FetchErrorType.PARSE),
        (RuntimeError("boom"), FetchErrorType.UNKNOWN),
    ])
    def test_other_errors(self, exc, expected):
        assert classify_exception(exc).type == expected

    def test_fetch_error_passes_through(self):
        original = FetchError(FetchErrorType.RATE_LIMIT, "slow down")
        assert classify_exception(original) is original


class TestRegistry:

    def test_default_registry_covers_all_types(self):
        registry = create_default_registry()
        assert set(registry.supported_types()) == set(SourceType)

    def test_unknown_type(self):
        with pytest.raises(FetchError) as exc_info:
            FetchStrategyRegistry().get(SourceType.RSS)
        assert exc_info.value.type == FetchErrorType.VALIDATION
