"""
Pydantic models for API request/response validation.
"""

from typing import Literal

from pydantic import BaseModel, Field

from .domain.article import Article, ArticleStatus
from .domain.feed_item import FeedItem
from .domain.source import Source, SourceType
from .fetchers import SourceTestResult
from .services import FetchOutcome, GenerationOutcome


# ─────────────────────────────────────────────────────────────
# Source Schemas
# ─────────────────────────────────────────────────────────────

class SourceResponse(BaseModel):
    id: str
    name: str
    type: str
    status: str
    url: str | None
    default_category: str | None
    configuration: dict
    metadata: dict
    needs_attention: bool
    recommended_fetch_interval: int  # minutes
    last_fetch_at: str | None
    last_error_at: str | None
    last_error_message: str | None
    created_at: str
    updated_at: str

    @classmethod
    def from_domain(cls, source: Source) -> "SourceResponse":
        return cls(
            id=source.id,
            name=source.name,
            type=source.type.value,
            status=source.status.value,
            url=source.url,
            default_category=source.default_category,
            configuration=source.configuration.to_dict(),
            metadata=source.metadata.to_dict(),
            needs_attention=source.needs_attention(),
            recommended_fetch_interval=source.recommended_fetch_interval(),
            last_fetch_at=source.last_fetch_at.isoformat() if source.last_fetch_at else None,
            last_error_at=source.last_error_at.isoformat() if source.last_error_at else None,
            last_error_message=source.last_error_message,
            created_at=source.created_at.isoformat(),
            updated_at=source.updated_at.isoformat(),
        )


class CreateSourceRequest(BaseModel):
    type: SourceType
    name: str
    url: str | None = None
    default_category: str | None = None
    configuration: dict = Field(default_factory=dict)


class UpdateSourceRequest(BaseModel):
    name: str | None = None
    url: str | None = None
    default_category: str | None = None
    configuration: dict | None = None


class SourceStatusRequest(BaseModel):
    status: Literal["active", "paused", "archived"]


class FetchSourceRequest(BaseModel):
    force: bool = True
    mark_for_processing: bool | None = None


class FeedItemResponse(BaseModel):
    id: str
    source_id: str
    guid: str
    title: str
    url: str | None
    status: str
    article_id: str | None
    published_at: str | None
    fetched_at: str

    @classmethod
    def from_domain(cls, item: FeedItem) -> "FeedItemResponse":
        return cls(
            id=item.id,
            source_id=item.source_id,
            guid=item.guid,
            title=item.title,
            url=item.url,
            status=item.status.value,
            article_id=item.article_id,
            published_at=item.published_at.isoformat() if item.published_at else None,
            fetched_at=item.fetched_at.isoformat(),
        )


class FetchOutcomeResponse(BaseModel):
    source_id: str
    success: bool
    skipped: bool
    skip_reason: str | None
    fetched_count: int
    new_count: int
    duplicate_count: int
    error_type: str | None
    error_message: str | None
    duration: float
    new_items: list[FeedItemResponse]

    @classmethod
    def from_outcome(cls, outcome: FetchOutcome) -> "FetchOutcomeResponse":
        return cls(
            source_id=outcome.source_id,
            success=outcome.success,
            skipped=outcome.skipped,
            skip_reason=outcome.skip_reason,
            fetched_count=outcome.fetched_count,
            new_count=outcome.new_count,
            duplicate_count=outcome.duplicate_count,
            error_type=outcome.error_type.value if outcome.error_type else None,
            error_message=outcome.error_message,
            duration=outcome.duration,
            new_items=[FeedItemResponse.from_domain(i) for i in outcome.new_items],
        )


class SourceTestResponse(BaseModel):
    success: bool
    message: str
    item_count: int
    error_type: str | None
    sample_titles: list[str]

    @classmethod
    def from_result(cls, result: SourceTestResult) -> "SourceTestResponse":
        return cls(
            success=result.success,
            message=result.message,
            item_count=result.item_count,
            error_type=result.error_type.value if result.error_type else None,
            sample_titles=result.sample_titles,
        )


# ─────────────────────────────────────────────────────────────
# Article Schemas
# ─────────────────────────────────────────────────────────────

class ArticleResponse(BaseModel):
    """Article for list view."""
    id: str
    title: str
    status: str
    excerpt: str
    word_count: int
    reading_time_minutes: int
    source_id: str | None
    feed_item_id: str | None
    published_at: str | None
    created_at: str

    @classmethod
    def from_domain(cls, article: Article) -> "ArticleResponse":
        return cls(
            id=article.id,
            title=article.title.value,
            status=article.status.value,
            excerpt=article.excerpt,
            word_count=article.word_count,
            reading_time_minutes=article.reading_time_minutes,
            source_id=article.source_id,
            feed_item_id=article.feed_item_id,
            published_at=article.published_at.isoformat() if article.published_at else None,
            created_at=article.created_at.isoformat(),
        )


class ArticleDetailResponse(ArticleResponse):
    """Article with full content for detail view."""
    content: str
    seo: dict | None
    generation_parameters: dict | None
    failure_reason: str | None
    updated_at: str

    @classmethod
    def from_domain(cls, article: Article) -> "ArticleDetailResponse":
        base = ArticleResponse.from_domain(article).model_dump()
        return cls(
            **base,
            content=article.content.value,
            seo=article.seo.to_dict() if article.seo else None,
            generation_parameters=(
                article.generation_parameters.to_dict() if article.generation_parameters else None
            ),
            failure_reason=article.failure_reason,
            updated_at=article.updated_at.isoformat(),
        )


class GenerateArticleRequest(BaseModel):
    feed_item_id: str
    enable_featured_image: bool | None = None
    enable_auto_publish: bool | None = None


class GenerationResultResponse(BaseModel):
    feed_item_id: str
    success: bool
    error_code: str | None
    error_message: str | None
    ai_error_code: str | None
    article: ArticleDetailResponse | None

    @classmethod
    def from_outcome(cls, outcome: GenerationOutcome) -> "GenerationResultResponse":
        return cls(
            feed_item_id=outcome.feed_item_id,
            success=outcome.success,
            error_code=outcome.error_code.value if outcome.error_code else None,
            error_message=outcome.error_message,
            ai_error_code=outcome.ai_error_code.value if outcome.ai_error_code else None,
            article=ArticleDetailResponse.from_domain(outcome.article) if outcome.article else None,
        )


class ArticleTransitionRequest(BaseModel):
    status: ArticleStatus


class SeoRequest(BaseModel):
    meta_title: str
    meta_description: str
    keywords: list[str] = Field(default_factory=list)
    slug: str | None = None


class PublishArticleRequest(BaseModel):
    seo: SeoRequest | None = None


class RetryArticleRequest(BaseModel):
    target: Literal["draft", "generated"] = "draft"


class FailArticleRequest(BaseModel):
    reason: str


# ─────────────────────────────────────────────────────────────
# Misc Schemas
# ─────────────────────────────────────────────────────────────

class StorageStatusResponse(BaseModel):
    degraded: bool
    repository: str
    reason: str | None = None
    since: str | None = None


class HealthResponse(BaseModel):
    status: str
    storage: StorageStatusResponse
    provider: str | None
    scheduler_running: bool
