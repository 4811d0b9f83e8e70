"""
Tests for the Source aggregate: factories, status machine and fetch recording.
"""

from datetime import timedelta

import pytest

from feedflow.domain import events
from feedflow.domain.events import utcnow
from feedflow.domain.source import (
    Source,
    SourceConfiguration,
    SourceStatus,
    SourceType,
)
from feedflow.exceptions import InvalidTransitionError, ValidationError


def _source_in(status: SourceStatus) -> Source:
    source, _ = Source.create_rss_source("Example News", "https://example.com/feed.xml")
    source.status = status
    return source


class TestFactories:
    """Tests for type-specific creation."""

    def test_rss_source_is_active(self):
        """New sources start active with empty counters."""
        source, event = Source.create_rss_source("Example", "https://example.com/rss")

        assert source.status == SourceStatus.ACTIVE
        assert source.type == SourceType.RSS
        assert source.metadata.total_fetches == 0
        assert event.event_type == events.SOURCE_CREATED
        assert event.aggregate_id == source.id

    def test_telegram_requires_telegram_url(self):
        """Telegram URLs must point at t.me or telegram.me."""
        source, _ = Source.create_telegram_source("Channel", "https://t.me/somechannel")
        assert source.url == "https://t.me/somechannel"

        with pytest.raises(ValidationError):
            Source.create_telegram_source("Channel", "https://example.com/somechannel")

    def test_calendar_rejects_url(self):
        """Calendar sources never carry a URL."""
        source, _ = Source.create_calendar_source("Events")
        assert source.url is None

        with pytest.raises(ValidationError):
            Source.create("calendar", "Events", url="https://example.com/cal")

    @pytest.mark.parametrize("url", [
        None,
        "",
        "ftp://example.com/feed",
        "not a url",
        "https://example.com/" + "a" * 2000,
    ])
    def test_rss_rejects_invalid_urls(self, url):
        with pytest.raises(ValidationError):
            Source.create_rss_source("Example", url)

    def test_rejects_empty_name(self):
        with pytest.raises(ValidationError):
            Source.create_rss_source("   ", "https://example.com/rss")

    def test_unknown_type(self):
        with pytest.raises(ValidationError):
            Source.create("podcast", "Example", url="https://example.com")

    def test_configuration_from_dict_is_validated(self):
        """Bad configuration values are rejected at creation."""
        with pytest.raises(ValidationError):
            Source.create_rss_source(
                "Example", "https://example.com/rss", {"polling_interval": 0}
            )
        with pytest.raises(ValidationError):
            Source.create_rss_source(
                "Example", "https://example.com/rss", {"filters": {"keywords": "ai"}}
            )


class TestStatusTransitions:
    """Tests for the status state machine."""

    @pytest.mark.parametrize("start,target,allowed", [
        (SourceStatus.ACTIVE, SourceStatus.PAUSED, True),
        (SourceStatus.ACTIVE, SourceStatus.ARCHIVED, True),
        (SourceStatus.PAUSED, SourceStatus.ACTIVE, True),
        (SourceStatus.PAUSED, SourceStatus.ARCHIVED, True),
        (SourceStatus.ERROR, SourceStatus.ACTIVE, True),
        (SourceStatus.ERROR, SourceStatus.PAUSED, True),
        (SourceStatus.ERROR, SourceStatus.ARCHIVED, True),
        (SourceStatus.ACTIVE, SourceStatus.ACTIVE, False),
        (SourceStatus.PAUSED, SourceStatus.PAUSED, False),
        (SourceStatus.ARCHIVED, SourceStatus.ACTIVE, False),
        (SourceStatus.ARCHIVED, SourceStatus.PAUSED, False),
    ])
    def test_transition_table(self, start, target, allowed):
        source = _source_in(start)

        if allowed:
            event = source.change_status(target)
            assert source.status == target
            assert event.payload == {"from": start.value, "to": target.value}
        else:
            with pytest.raises(InvalidTransitionError) as exc_info:
                source.change_status(target)
            assert exc_info.value.current == start.value
            assert exc_info.value.requested == target.value
            assert source.status == start

    def test_error_cannot_be_requested(self):
        """The error status is only reached through record_error."""
        source = _source_in(SourceStatus.ACTIVE)
        with pytest.raises(InvalidTransitionError):
            source.change_status(SourceStatus.ERROR)

    def test_activate_clears_error(self):
        source = _source_in(SourceStatus.ACTIVE)
        source.record_error("network", "Connection reset")

        source.activate()

        assert source.status == SourceStatus.ACTIVE
        assert source.last_error_message is None
        assert source.metadata.last_error is None


class TestFetchRecording:
    """Tests for record_successful_fetch and record_error."""

    def test_successful_fetch_updates_counters(self):
        source = _source_in(SourceStatus.ACTIVE)

        source.record_successful_fetch(10, 7, duration=1.5)
        source.record_successful_fetch(5, 0)

        assert source.metadata.total_fetches == 2
        assert source.metadata.total_items == 15
        assert source.metadata.total_new_items == 7
        assert source.metadata.last_fetch["new_items"] == 0
        assert source.last_fetch_at is not None

    def test_successful_fetch_leaves_configuration_untouched(self):
        source, _ = Source.create_rss_source(
            "Example", "https://example.com/rss",
            {"polling_interval": 30, "auto_generate": True, "filters": {"keywords": ["ai"]}},
        )
        before = source.configuration

        source.record_successful_fetch(3, 3, metadata={"feed_title": "Example"})

        assert source.configuration == before
        assert source.configuration.to_dict() == before.to_dict()

    def test_successful_fetch_recovers_from_error(self):
        source = _source_in(SourceStatus.ACTIVE)
        source.record_error("timeout", "Timed out")

        source.record_successful_fetch(1, 1)

        assert source.status == SourceStatus.ACTIVE
        assert source.metadata.last_error is None
        assert source.last_error_message is None

    def test_record_error_from_any_status(self):
        """record_error sets error status unconditionally."""
        for status in (SourceStatus.ACTIVE, SourceStatus.PAUSED, SourceStatus.ERROR):
            source = _source_in(status)
            event = source.record_error("parse", "Bad XML", code="E1")

            assert source.status == SourceStatus.ERROR
            assert source.metadata.total_errors == 1
            assert source.metadata.last_error["type"] == "parse"
            assert source.metadata.last_error["code"] == "E1"
            assert event.event_type == events.SOURCE_ERROR_OCCURRED


class TestScheduling:
    """Tests for readiness, due checks and needs_attention."""

    @pytest.mark.parametrize("source_type,url,expected", [
        (SourceType.RSS, "https://example.com/rss", 60),
        (SourceType.TELEGRAM, "https://t.me/channel", 15),
        (SourceType.CALENDAR, None, 1440),
    ])
    def test_default_intervals(self, source_type, url, expected):
        source, _ = Source.create(source_type, "Example", url=url)
        assert source.recommended_fetch_interval() == expected

    def test_configured_interval_wins(self):
        source, _ = Source.create_rss_source(
            "Example", "https://example.com/rss", {"polling_interval": 5}
        )
        assert source.recommended_fetch_interval() == 5

    def test_only_active_is_ready(self):
        for status in SourceStatus:
            assert _source_in(status).is_ready_for_fetch() == (status == SourceStatus.ACTIVE)

    def test_due_for_fetch(self):
        source = _source_in(SourceStatus.ACTIVE)
        assert source.is_due_for_fetch()

        source.record_successful_fetch(0, 0)
        assert not source.is_due_for_fetch()
        assert source.is_due_for_fetch(now=utcnow() + timedelta(minutes=61))

    def test_needs_attention_when_errored(self):
        source = _source_in(SourceStatus.ACTIVE)
        source.record_error("network", "down")
        assert source.needs_attention()

    def test_needs_attention_when_overdue(self):
        """Active sources need attention after twice the interval without a fetch."""
        source = _source_in(SourceStatus.ACTIVE)
        source.record_successful_fetch(0, 0)

        assert not source.needs_attention(now=utcnow() + timedelta(minutes=119))
        assert source.needs_attention(now=utcnow() + timedelta(minutes=121))

    def test_paused_source_never_overdue(self):
        source = _source_in(SourceStatus.ACTIVE)
        source.record_successful_fetch(0, 0)
        source.pause()

        assert not source.needs_attention(now=utcnow() + timedelta(days=30))


class TestUpdates:

    def test_update_configuration_merges(self):
        source, _ = Source.create_rss_source(
            "Example", "https://example.com/rss",
            {"polling_interval": 30, "filters": {"keywords": ["ai"]}},
        )

        source.update_configuration({"auto_generate": True, "filters": {"min_length": 100}})

        assert source.configuration.polling_interval == 30
        assert source.configuration.auto_generate is True
        assert source.configuration.filters.keywords == ["ai"]
        assert source.configuration.filters.min_length == 100

    def test_calendar_url_update_rejected(self):
        source, _ = Source.create_calendar_source("Events")
        with pytest.raises(ValidationError):
            source.update_url("https://example.com/cal")

    def test_configuration_round_trip(self):
        config = SourceConfiguration.from_dict({
            "polling_interval": 10,
            "generation": {"temperature": 0.3, "tone": "neutral"},
            "enable_auto_publish": True,
        })
        assert SourceConfiguration.from_dict(config.to_dict()) == config
