"""
Source aggregate: a feed origin with its configuration and health.

The status machine is:

    active   -> paused, error, archived
    paused   -> active, archived
    error    -> active, paused, archived
    archived -> (terminal)

Mutating methods return the DomainEvent describing the change; the caller
hands it to the event channel.
"""

import re
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from enum import Enum
from urllib.parse import urlparse

from ..exceptions import InvalidTransitionError, ValidationError
from . import events
from .events import DomainEvent, utcnow


class SourceType(str, Enum):
    RSS = "rss"
    TELEGRAM = "telegram"
    CALENDAR = "calendar"


class SourceStatus(str, Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    ERROR = "error"
    ARCHIVED = "archived"


SOURCE_TRANSITIONS: dict[SourceStatus, frozenset[SourceStatus]] = {
    SourceStatus.ACTIVE: frozenset({SourceStatus.PAUSED, SourceStatus.ERROR, SourceStatus.ARCHIVED}),
    SourceStatus.PAUSED: frozenset({SourceStatus.ACTIVE, SourceStatus.ARCHIVED}),
    SourceStatus.ERROR: frozenset({SourceStatus.ACTIVE, SourceStatus.PAUSED, SourceStatus.ARCHIVED}),
    SourceStatus.ARCHIVED: frozenset(),
}

# Minutes between fetches when the configuration does not say otherwise
DEFAULT_POLLING_INTERVALS: dict[SourceType, int] = {
    SourceType.RSS: 60,
    SourceType.TELEGRAM: 15,
    SourceType.CALENDAR: 24 * 60,
}

URL_PATTERNS: dict[SourceType, re.Pattern] = {
    SourceType.RSS: re.compile(r"^https?://.+", re.IGNORECASE),
    SourceType.TELEGRAM: re.compile(r"^https?://(t\.me|telegram\.me)/.+$", re.IGNORECASE),
}

MAX_URL_LENGTH = 2000
MAX_NAME_LENGTH = 100


def validate_url(source_type: SourceType, url: str | None) -> str | None:
    """Check a URL against the type's rules. Returns the normalized URL."""
    if source_type == SourceType.CALENDAR:
        if url:
            raise ValidationError("Calendar sources must not have a URL")
        return None

    if not url or not url.strip():
        raise ValidationError(f"{source_type.value} sources require a URL")

    url = url.strip()
    if len(url) > MAX_URL_LENGTH:
        raise ValidationError(f"URL is too long (max {MAX_URL_LENGTH} characters)")

    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValidationError("Only HTTP and HTTPS URLs are supported")

    if not URL_PATTERNS[source_type].match(url):
        raise ValidationError(f"URL does not match the {source_type.value} URL pattern: {url}")

    return url


def validate_name(name: str) -> str:
    name = (name or "").strip()
    if not name:
        raise ValidationError("Source name cannot be empty")
    if len(name) > MAX_NAME_LENGTH:
        raise ValidationError(f"Source name is too long (max {MAX_NAME_LENGTH} characters)")
    return name


# ─────────────────────────────────────────────────────────────
# Configuration
# ─────────────────────────────────────────────────────────────

def _string_list(data: dict, key: str) -> list[str]:
    value = data.get(key) or []
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ValidationError(f"'{key}' must be a list of strings")
    return [v.strip() for v in value if v.strip()]


def _int_in_range(data: dict, key: str, low: int, high: int) -> int | None:
    value = data.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"'{key}' must be an integer")
    if not low <= value <= high:
        raise ValidationError(f"'{key}' must be between {low} and {high}")
    return value


def _optional_bool(data: dict, key: str) -> bool | None:
    value = data.get(key)
    if value is not None and not isinstance(value, bool):
        raise ValidationError(f"'{key}' must be a boolean")
    return value


@dataclass(frozen=True)
class SourceFilters:
    """Item filters applied in feed order after fetching."""
    keywords: list[str] = field(default_factory=list)
    exclude_keywords: list[str] = field(default_factory=list)
    categories: list[str] = field(default_factory=list)
    min_length: int | None = None

    @classmethod
    def from_dict(cls, data: dict | None) -> "SourceFilters":
        data = data or {}
        return cls(
            keywords=_string_list(data, "keywords"),
            exclude_keywords=_string_list(data, "exclude_keywords"),
            categories=_string_list(data, "categories"),
            min_length=_int_in_range(data, "min_length", 0, 100000),
        )

    def to_dict(self) -> dict:
        return {
            "keywords": list(self.keywords),
            "exclude_keywords": list(self.exclude_keywords),
            "categories": list(self.categories),
            "min_length": self.min_length,
        }


@dataclass(frozen=True)
class GenerationConfig:
    """Prompt templates and model parameters used when generating from this source."""
    title_prompt: str | None = None
    content_prompt: str | None = None
    model: str | None = None
    temperature: float | None = None
    max_tokens: int | None = None
    language: str | None = None
    tone: str | None = None
    style: str | None = None
    target_audience: str | None = None

    @classmethod
    def from_dict(cls, data: dict | None) -> "GenerationConfig":
        data = data or {}
        temperature = data.get("temperature")
        if temperature is not None:
            if isinstance(temperature, bool) or not isinstance(temperature, (int, float)):
                raise ValidationError("'temperature' must be a number")
            if not 0 <= temperature <= 2:
                raise ValidationError("'temperature' must be between 0 and 2")
            temperature = float(temperature)
        return cls(
            title_prompt=data.get("title_prompt"),
            content_prompt=data.get("content_prompt"),
            model=data.get("model"),
            temperature=temperature,
            max_tokens=_int_in_range(data, "max_tokens", 1, 32000),
            language=data.get("language"),
            tone=data.get("tone"),
            style=data.get("style"),
            target_audience=data.get("target_audience"),
        )

    def to_dict(self) -> dict:
        return {
            "title_prompt": self.title_prompt,
            "content_prompt": self.content_prompt,
            "model": self.model,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "language": self.language,
            "tone": self.tone,
            "style": self.style,
            "target_audience": self.target_audience,
        }


@dataclass(frozen=True)
class SourceConfiguration:
    """
    Per-source settings.

    Common fields apply to every type; ``user_agent``/``timeout``/``max_items``
    are used by rss, ``channel_id``/``max_items`` by telegram and
    ``calendar_id``/``look_ahead_days``/``event_types`` by calendar sources.
    ``enable_featured_image``/``enable_auto_publish`` override the app-wide
    automation defaults when set.
    """
    polling_interval: int | None = None  # minutes
    enabled: bool = True
    auto_generate: bool = False
    user_agent: str | None = None
    timeout: int | None = None  # seconds
    max_items: int | None = None
    channel_id: str | None = None
    calendar_id: str | None = None
    look_ahead_days: int | None = None
    event_types: list[str] = field(default_factory=list)
    filters: SourceFilters = field(default_factory=SourceFilters)
    generation: GenerationConfig = field(default_factory=GenerationConfig)
    enable_featured_image: bool | None = None
    enable_auto_publish: bool | None = None

    @classmethod
    def from_dict(cls, data: dict | None) -> "SourceConfiguration":
        """Build a validated configuration from a plain dict."""
        data = data or {}
        if not isinstance(data, dict):
            raise ValidationError("Configuration must be an object")
        return cls(
            polling_interval=_int_in_range(data, "polling_interval", 1, 7 * 24 * 60),
            enabled=_optional_bool(data, "enabled") is not False,
            auto_generate=bool(_optional_bool(data, "auto_generate")),
            user_agent=data.get("user_agent"),
            timeout=_int_in_range(data, "timeout", 1, 600),
            max_items=_int_in_range(data, "max_items", 1, 500),
            channel_id=data.get("channel_id"),
            calendar_id=data.get("calendar_id"),
            look_ahead_days=_int_in_range(data, "look_ahead_days", 1, 365),
            event_types=_string_list(data, "event_types"),
            filters=SourceFilters.from_dict(data.get("filters")),
            generation=GenerationConfig.from_dict(data.get("generation")),
            enable_featured_image=_optional_bool(data, "enable_featured_image"),
            enable_auto_publish=_optional_bool(data, "enable_auto_publish"),
        )

    def to_dict(self) -> dict:
        return {
            "polling_interval": self.polling_interval,
            "enabled": self.enabled,
            "auto_generate": self.auto_generate,
            "user_agent": self.user_agent,
            "timeout": self.timeout,
            "max_items": self.max_items,
            "channel_id": self.channel_id,
            "calendar_id": self.calendar_id,
            "look_ahead_days": self.look_ahead_days,
            "event_types": list(self.event_types),
            "filters": self.filters.to_dict(),
            "generation": self.generation.to_dict(),
            "enable_featured_image": self.enable_featured_image,
            "enable_auto_publish": self.enable_auto_publish,
        }

    def merge(self, updates: dict) -> "SourceConfiguration":
        """Return a new configuration with ``updates`` applied over this one."""
        merged = self.to_dict()
        for key, value in updates.items():
            if key in ("filters", "generation") and isinstance(value, dict):
                merged[key] = {**merged[key], **value}
            else:
                merged[key] = value
        return SourceConfiguration.from_dict(merged)


@dataclass
class SourceMetadata:
    """Fetch and error counters plus the last fetch/error records."""
    total_fetches: int = 0
    total_items: int = 0
    total_new_items: int = 0
    total_errors: int = 0
    last_fetch: dict | None = None
    last_error: dict | None = None

    @classmethod
    def from_dict(cls, data: dict | None) -> "SourceMetadata":
        data = data or {}
        return cls(
            total_fetches=data.get("total_fetches", 0),
            total_items=data.get("total_items", 0),
            total_new_items=data.get("total_new_items", 0),
            total_errors=data.get("total_errors", 0),
            last_fetch=data.get("last_fetch"),
            last_error=data.get("last_error"),
        )

    def to_dict(self) -> dict:
        return {
            "total_fetches": self.total_fetches,
            "total_items": self.total_items,
            "total_new_items": self.total_new_items,
            "total_errors": self.total_errors,
            "last_fetch": self.last_fetch,
            "last_error": self.last_error,
        }


# ─────────────────────────────────────────────────────────────
# Aggregate
# ─────────────────────────────────────────────────────────────

@dataclass
class Source:
    id: str
    name: str
    type: SourceType
    status: SourceStatus
    url: str | None
    configuration: SourceConfiguration
    metadata: SourceMetadata
    default_category: str | None = None
    last_fetch_at: datetime | None = None
    last_error_at: datetime | None = None
    last_error_message: str | None = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    # ── Factories ──

    @classmethod
    def _create(
        cls,
        source_type: SourceType,
        name: str,
        url: str | None,
        configuration: SourceConfiguration | dict | None,
        default_category: str | None,
    ) -> tuple["Source", DomainEvent]:
        if not isinstance(configuration, SourceConfiguration):
            configuration = SourceConfiguration.from_dict(configuration)
        now = utcnow()
        source = cls(
            id=uuid.uuid4().hex,
            name=validate_name(name),
            type=source_type,
            status=SourceStatus.ACTIVE,
            url=validate_url(source_type, url),
            configuration=configuration,
            metadata=SourceMetadata(),
            default_category=default_category,
            created_at=now,
            updated_at=now,
        )
        event = DomainEvent(
            event_type=events.SOURCE_CREATED,
            aggregate_id=source.id,
            payload={"name": source.name, "type": source.type.value, "url": source.url},
        )
        return source, event

    @classmethod
    def create_rss_source(
        cls,
        name: str,
        url: str,
        configuration: SourceConfiguration | dict | None = None,
        default_category: str | None = None,
    ) -> tuple["Source", DomainEvent]:
        return cls._create(SourceType.RSS, name, url, configuration, default_category)

    @classmethod
    def create_telegram_source(
        cls,
        name: str,
        url: str,
        configuration: SourceConfiguration | dict | None = None,
        default_category: str | None = None,
    ) -> tuple["Source", DomainEvent]:
        return cls._create(SourceType.TELEGRAM, name, url, configuration, default_category)

    @classmethod
    def create_calendar_source(
        cls,
        name: str,
        configuration: SourceConfiguration | dict | None = None,
        default_category: str | None = None,
    ) -> tuple["Source", DomainEvent]:
        return cls._create(SourceType.CALENDAR, name, None, configuration, default_category)

    @classmethod
    def create(
        cls,
        source_type: SourceType | str,
        name: str,
        url: str | None = None,
        configuration: SourceConfiguration | dict | None = None,
        default_category: str | None = None,
    ) -> tuple["Source", DomainEvent]:
        """Dispatch to the type-specific factory."""
        try:
            source_type = SourceType(source_type)
        except ValueError:
            raise ValidationError(f"Unknown source type: {source_type}")
        if source_type == SourceType.CALENDAR:
            return cls.create_calendar_source(name, configuration, default_category)
        if source_type == SourceType.TELEGRAM:
            return cls.create_telegram_source(name, url, configuration, default_category)
        return cls.create_rss_source(name, url, configuration, default_category)

    # ── Status transitions ──

    def can_transition_to(self, status: SourceStatus) -> bool:
        return status in SOURCE_TRANSITIONS[self.status]

    def _transition(self, status: SourceStatus) -> DomainEvent:
        if not self.can_transition_to(status):
            raise InvalidTransitionError("source", self.status.value, status.value)
        previous = self.status
        self.status = status
        self.updated_at = utcnow()
        return DomainEvent(
            event_type=events.SOURCE_STATUS_CHANGED,
            aggregate_id=self.id,
            payload={"from": previous.value, "to": status.value},
        )

    def activate(self) -> DomainEvent:
        event = self._transition(SourceStatus.ACTIVE)
        self.last_error_at = None
        self.last_error_message = None
        self.metadata.last_error = None
        return event

    def pause(self) -> DomainEvent:
        return self._transition(SourceStatus.PAUSED)

    def archive(self) -> DomainEvent:
        return self._transition(SourceStatus.ARCHIVED)

    def change_status(self, status: SourceStatus | str) -> DomainEvent:
        """Apply an admin-requested status. ``error`` is only set by record_error."""
        status = SourceStatus(status)
        if status == SourceStatus.ACTIVE:
            return self.activate()
        if status == SourceStatus.PAUSED:
            return self.pause()
        if status == SourceStatus.ARCHIVED:
            return self.archive()
        raise InvalidTransitionError("source", self.status.value, status.value)

    # ── Updates ──

    def _updated(self, changes: dict) -> DomainEvent:
        self.updated_at = utcnow()
        return DomainEvent(
            event_type=events.SOURCE_UPDATED,
            aggregate_id=self.id,
            payload={"changes": changes},
        )

    def update_name(self, name: str) -> DomainEvent:
        self.name = validate_name(name)
        return self._updated({"name": self.name})

    def update_url(self, url: str) -> DomainEvent:
        self.url = validate_url(self.type, url)
        return self._updated({"url": self.url})

    def update_default_category(self, category: str | None) -> DomainEvent:
        self.default_category = category
        return self._updated({"default_category": category})

    def update_configuration(self, updates: SourceConfiguration | dict) -> DomainEvent:
        if isinstance(updates, SourceConfiguration):
            self.configuration = updates
            return self._updated({"configuration": updates.to_dict()})
        self.configuration = self.configuration.merge(updates)
        return self._updated({"configuration": updates})

    # ── Fetch outcomes ──

    def record_successful_fetch(
        self,
        fetched_count: int,
        new_count: int,
        duration: float = 0.0,
        metadata: dict | None = None,
    ) -> DomainEvent:
        """Record a completed fetch. Leaves the configuration untouched."""
        now = utcnow()
        self.metadata = replace(
            self.metadata,
            total_fetches=self.metadata.total_fetches + 1,
            total_items=self.metadata.total_items + fetched_count,
            total_new_items=self.metadata.total_new_items + new_count,
            last_fetch={
                "timestamp": now.isoformat(),
                "fetched_items": fetched_count,
                "new_items": new_count,
                "duration": duration,
                **(metadata or {}),
            },
            last_error=None,
        )
        self.last_fetch_at = now
        self.last_error_at = None
        self.last_error_message = None
        if self.status == SourceStatus.ERROR:
            self.status = SourceStatus.ACTIVE
        self.updated_at = now
        return DomainEvent(
            event_type=events.SOURCE_FETCHED,
            aggregate_id=self.id,
            payload={
                "fetched_items": fetched_count,
                "new_items": new_count,
                "duration": duration,
            },
        )

    def record_error(
        self,
        error_type: str,
        message: str,
        code: str | None = None,
        metadata: dict | None = None,
    ) -> DomainEvent:
        """Record a failed fetch. Always moves the source to ``error``."""
        now = utcnow()
        self.metadata = replace(
            self.metadata,
            total_errors=self.metadata.total_errors + 1,
            last_error={
                "timestamp": now.isoformat(),
                "type": error_type,
                "message": message,
                "code": code,
                **(metadata or {}),
            },
        )
        self.status = SourceStatus.ERROR
        self.last_error_at = now
        self.last_error_message = message
        self.updated_at = now
        return DomainEvent(
            event_type=events.SOURCE_ERROR_OCCURRED,
            aggregate_id=self.id,
            payload={"type": error_type, "message": message, "code": code},
        )

    # ── Queries ──

    def is_ready_for_fetch(self) -> bool:
        return self.status == SourceStatus.ACTIVE

    def recommended_fetch_interval(self) -> int:
        """Polling interval in minutes."""
        return self.configuration.polling_interval or DEFAULT_POLLING_INTERVALS[self.type]

    def is_due_for_fetch(self, now: datetime | None = None) -> bool:
        if self.last_fetch_at is None:
            return True
        now = now or utcnow()
        return now - self.last_fetch_at >= timedelta(minutes=self.recommended_fetch_interval())

    def needs_attention(self, now: datetime | None = None) -> bool:
        if self.status == SourceStatus.ERROR:
            return True
        if self.status == SourceStatus.ACTIVE and self.last_fetch_at is not None:
            now = now or utcnow()
            overdue = timedelta(minutes=self.recommended_fetch_interval() * 2)
            return now - self.last_fetch_at > overdue
        return False

    def should_auto_generate(self) -> bool:
        return self.configuration.auto_generate
