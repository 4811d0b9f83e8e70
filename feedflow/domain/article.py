"""
Article entity, its value objects and the generation-status decision.
"""

import math
import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from ..exceptions import InvalidTransitionError, ValidationError
from . import events
from .events import DomainEvent, utcnow


class ArticleStatus(str, Enum):
    DRAFT = "draft"
    GENERATED_IMAGE_DRAFT = "generated_image_draft"
    GENERATED_WITH_IMAGE = "generated_with_image"
    GENERATED = "generated"
    READY_TO_PUBLISH = "ready_to_publish"
    PUBLISHED = "published"
    FAILED = "failed"


ARTICLE_TRANSITIONS: dict[ArticleStatus, frozenset[ArticleStatus]] = {
    ArticleStatus.DRAFT: frozenset({ArticleStatus.GENERATED, ArticleStatus.FAILED}),
    ArticleStatus.GENERATED: frozenset({ArticleStatus.READY_TO_PUBLISH, ArticleStatus.FAILED}),
    ArticleStatus.READY_TO_PUBLISH: frozenset({ArticleStatus.PUBLISHED, ArticleStatus.FAILED}),
    ArticleStatus.PUBLISHED: frozenset(),
    ArticleStatus.FAILED: frozenset({ArticleStatus.DRAFT, ArticleStatus.GENERATED}),
    # Image workflow
    ArticleStatus.GENERATED_IMAGE_DRAFT: frozenset({
        ArticleStatus.GENERATED_WITH_IMAGE,
        ArticleStatus.READY_TO_PUBLISH,
        ArticleStatus.FAILED,
    }),
    ArticleStatus.GENERATED_WITH_IMAGE: frozenset({
        ArticleStatus.READY_TO_PUBLISH,
        ArticleStatus.FAILED,
    }),
}

# Statuses that do not require publishable content
_UNCHECKED_STATUSES = frozenset({ArticleStatus.DRAFT, ArticleStatus.FAILED})

MIN_WORDS = 50
WORDS_PER_MINUTE = 200


# ─────────────────────────────────────────────────────────────
# Value objects
# ─────────────────────────────────────────────────────────────

_HTML_TAG = re.compile(r"<[^>]+>")
_SCRIPT_TAG = re.compile(r"<\s*script\b", re.IGNORECASE)
_EVENT_HANDLER = re.compile(r"<[^>]*\son[a-z]+\s*=", re.IGNORECASE)
_ALLOWED_TITLE_PUNCTUATION = set(" .,!?;:'\"-()&%$#/")


@dataclass(frozen=True)
class Title:
    value: str

    MIN_LENGTH = 10
    MAX_LENGTH = 200
    MAX_SPECIAL_RATIO = 0.2

    def __post_init__(self):
        value = (self.value or "").strip()
        if len(value) < self.MIN_LENGTH:
            raise ValidationError(f"Title must be at least {self.MIN_LENGTH} characters")
        if len(value) > self.MAX_LENGTH:
            raise ValidationError(f"Title cannot exceed {self.MAX_LENGTH} characters")
        if _HTML_TAG.search(value):
            raise ValidationError("Title cannot contain HTML")
        special = sum(1 for c in value if not c.isalnum() and c not in _ALLOWED_TITLE_PUNCTUATION)
        if special / len(value) > self.MAX_SPECIAL_RATIO:
            raise ValidationError("Title contains too many special characters")
        object.__setattr__(self, "value", value)

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class Content:
    value: str

    MAX_LENGTH = 50000

    def __post_init__(self):
        value = (self.value or "").strip()
        if not value:
            raise ValidationError("Content cannot be empty")
        if len(value) > self.MAX_LENGTH:
            raise ValidationError(f"Content cannot exceed {self.MAX_LENGTH} characters")
        if _SCRIPT_TAG.search(value):
            raise ValidationError("Content cannot contain script tags")
        if _EVENT_HANDLER.search(value):
            raise ValidationError("Content cannot contain inline event handlers")
        object.__setattr__(self, "value", value)

    @property
    def plain_text(self) -> str:
        return _HTML_TAG.sub(" ", self.value)

    @property
    def word_count(self) -> int:
        return len(self.plain_text.split())

    @property
    def reading_time_minutes(self) -> int:
        return max(1, math.ceil(self.word_count / WORDS_PER_MINUTE))

    def excerpt(self, max_length: int = 200) -> str:
        text = " ".join(self.plain_text.split())
        if len(text) <= max_length:
            return text
        cut = text[:max_length].rsplit(" ", 1)[0]
        return cut + "..."

    def __str__(self) -> str:
        return self.value


_SLUG = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")


def slugify(text: str, max_length: int = 80) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-")
    return slug[:max_length].rstrip("-")


@dataclass(frozen=True)
class SeoMetadata:
    meta_title: str
    meta_description: str
    keywords: tuple[str, ...] = ()
    slug: str = ""

    def __post_init__(self):
        if not self.meta_title or len(self.meta_title) > 70:
            raise ValidationError("Meta title must be 1-70 characters")
        if not self.meta_description or len(self.meta_description) > 160:
            raise ValidationError("Meta description must be 1-160 characters")
        slug = self.slug or slugify(self.meta_title)
        if not _SLUG.match(slug):
            raise ValidationError(f"Invalid slug: {slug}")
        object.__setattr__(self, "slug", slug)
        object.__setattr__(self, "keywords", tuple(k.strip() for k in self.keywords if k.strip()))

    @classmethod
    def from_dict(cls, data: dict) -> "SeoMetadata":
        return cls(
            meta_title=data.get("meta_title", ""),
            meta_description=data.get("meta_description", ""),
            keywords=tuple(data.get("keywords") or ()),
            slug=data.get("slug") or "",
        )

    def to_dict(self) -> dict:
        return {
            "meta_title": self.meta_title,
            "meta_description": self.meta_description,
            "keywords": list(self.keywords),
            "slug": self.slug,
        }


@dataclass(frozen=True)
class GenerationParameters:
    prompt: str
    model: str | None = None
    temperature: float = 0.7
    max_tokens: int = 2000
    language: str = "en"
    tone: str | None = None
    style: str | None = None
    target_audience: str | None = None

    def __post_init__(self):
        if not self.prompt or not self.prompt.strip():
            raise ValidationError("Generation prompt cannot be empty")
        if not 0 <= self.temperature <= 2:
            raise ValidationError("Temperature must be between 0 and 2")
        if self.max_tokens <= 0:
            raise ValidationError("max_tokens must be positive")

    @classmethod
    def from_dict(cls, data: dict) -> "GenerationParameters":
        return cls(
            prompt=data.get("prompt", ""),
            model=data.get("model"),
            temperature=data.get("temperature", 0.7),
            max_tokens=data.get("max_tokens", 2000),
            language=data.get("language", "en"),
            tone=data.get("tone"),
            style=data.get("style"),
            target_audience=data.get("target_audience"),
        )

    def to_dict(self) -> dict:
        return {
            "prompt": self.prompt,
            "model": self.model,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "language": self.language,
            "tone": self.tone,
            "style": self.style,
            "target_audience": self.target_audience,
        }


@dataclass(frozen=True)
class AutomationSettings:
    enable_featured_image: bool = False
    enable_auto_publish: bool = False


def determine_initial_status(settings: AutomationSettings) -> ArticleStatus:
    """
    Initial status of a freshly generated article.

    Featured image on        -> generated_image_draft
    Auto-publish on (only)   -> ready_to_publish
    Neither                  -> generated_image_draft
    """
    if settings.enable_featured_image:
        return ArticleStatus.GENERATED_IMAGE_DRAFT
    if settings.enable_auto_publish:
        return ArticleStatus.READY_TO_PUBLISH
    return ArticleStatus.GENERATED_IMAGE_DRAFT


# ─────────────────────────────────────────────────────────────
# Entity
# ─────────────────────────────────────────────────────────────

def _check_invariants(
    status: ArticleStatus,
    content: Content,
    seo: SeoMetadata | None,
    published_at: datetime | None,
):
    if status not in _UNCHECKED_STATUSES and content.word_count < MIN_WORDS:
        raise ValidationError(
            f"Content must have at least {MIN_WORDS} words for status '{status.value}' "
            f"(has {content.word_count})"
        )
    if status == ArticleStatus.PUBLISHED:
        if seo is None:
            raise ValidationError("Published articles require SEO metadata")
        if published_at is None:
            raise ValidationError("Published articles require a published timestamp")


@dataclass
class Article:
    title: Title
    content: Content
    status: ArticleStatus
    generation_parameters: GenerationParameters | None = None
    source_id: str | None = None
    feed_item_id: str | None = None
    seo: SeoMetadata | None = None
    published_at: datetime | None = None
    failure_reason: str | None = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def __post_init__(self):
        _check_invariants(self.status, self.content, self.seo, self.published_at)

    @classmethod
    def create(
        cls,
        title: str,
        content: str,
        status: ArticleStatus = ArticleStatus.DRAFT,
        generation_parameters: GenerationParameters | None = None,
        source_id: str | None = None,
        feed_item_id: str | None = None,
        seo: SeoMetadata | None = None,
    ) -> "Article":
        """Build an article from raw strings, validating every field."""
        return cls(
            title=Title(title),
            content=Content(content),
            status=status,
            generation_parameters=generation_parameters,
            source_id=source_id,
            feed_item_id=feed_item_id,
            seo=seo,
        )

    def can_transition_to(self, status: ArticleStatus) -> bool:
        return status in ARTICLE_TRANSITIONS[self.status]

    def transition_to(self, status: ArticleStatus | str) -> DomainEvent:
        status = ArticleStatus(status)
        if not self.can_transition_to(status):
            raise InvalidTransitionError("article", self.status.value, status.value)
        published_at = self.published_at
        if status == ArticleStatus.PUBLISHED and published_at is None:
            published_at = utcnow()
        _check_invariants(status, self.content, self.seo, published_at)

        previous = self.status
        self.status = status
        self.published_at = published_at
        if status != ArticleStatus.FAILED:
            self.failure_reason = None
        self.updated_at = utcnow()
        return DomainEvent(
            event_type=events.ARTICLE_STATUS_CHANGED,
            aggregate_id=self.id,
            payload={"from": previous.value, "to": status.value},
        )

    def publish(self, seo: SeoMetadata | None = None) -> DomainEvent:
        previous_seo = self.seo
        if seo is not None:
            self.seo = seo
        try:
            return self.transition_to(ArticleStatus.PUBLISHED)
        except (InvalidTransitionError, ValidationError):
            self.seo = previous_seo
            raise

    def fail(self, reason: str) -> DomainEvent:
        event = self.transition_to(ArticleStatus.FAILED)
        self.failure_reason = reason
        return event

    def retry(self, target: ArticleStatus = ArticleStatus.DRAFT) -> DomainEvent:
        if self.status != ArticleStatus.FAILED:
            raise InvalidTransitionError("article", self.status.value, ArticleStatus(target).value)
        return self.transition_to(target)

    def update_content(self, title: str | None = None, content: str | None = None):
        new_title = Title(title) if title is not None else self.title
        new_content = Content(content) if content is not None else self.content
        _check_invariants(self.status, new_content, self.seo, self.published_at)
        self.title = new_title
        self.content = new_content
        self.updated_at = utcnow()

    @property
    def word_count(self) -> int:
        return self.content.word_count

    @property
    def excerpt(self) -> str:
        return self.content.excerpt()

    @property
    def reading_time_minutes(self) -> int:
        return self.content.reading_time_minutes
