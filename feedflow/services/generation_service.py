"""
Generation workflow - turns feed items into articles.

Every call returns a GenerationOutcome instead of raising, so one bad item
never stops a batch. A failed save after a successful generation keeps the
built article on the outcome; ``retry_save`` persists it without calling
the AI again.
"""

import asyncio
import logging
import weakref
from dataclasses import dataclass
from enum import Enum

from ..database import ArticleRepository, FeedItemRepository, SourceRepository
from ..domain import events as event_types
from ..domain.article import (
    Article,
    ArticleStatus,
    AutomationSettings,
    GenerationParameters,
    SeoMetadata,
    determine_initial_status,
)
from ..domain.events import DomainEvent
from ..domain.feed_item import FeedItem, FeedItemStatus
from ..domain.source import Source
from ..events import EventChannel
from ..exceptions import AiErrorCode, AiServiceError, InvalidTransitionError, ValidationError
from ..generator import AiService, GenerationRequest

logger = logging.getLogger(__name__)

DEFAULT_PROMPT = (
    "Write an original news article based on the source below. "
    "Explain what happened, why it matters and what comes next."
)


class GenerationErrorCode(Enum):
    FEED_ITEM_NOT_FOUND = "FEED_ITEM_NOT_FOUND"
    ALREADY_PROCESSED = "ALREADY_PROCESSED"
    INVALID_PROMPT = "INVALID_PROMPT"
    GENERATION_FAILED = "GENERATION_FAILED"
    INVALID_GENERATED_CONTENT = "INVALID_GENERATED_CONTENT"
    PERSISTENCE_FAILED = "PERSISTENCE_FAILED"
    UNEXPECTED_ERROR = "UNEXPECTED_ERROR"


@dataclass
class GenerationOutcome:
    feed_item_id: str
    article: Article | None = None
    error_code: GenerationErrorCode | None = None
    error_message: str | None = None
    ai_error_code: AiErrorCode | None = None

    @property
    def success(self) -> bool:
        return self.error_code is None

    @property
    def retryable_save(self) -> bool:
        return self.error_code == GenerationErrorCode.PERSISTENCE_FAILED and self.article is not None


class GenerationWorkflow:
    """Drives feed items through AI generation into articles."""

    def __init__(
        self,
        sources: SourceRepository,
        feed_items: FeedItemRepository,
        articles: ArticleRepository,
        ai: AiService,
        events: EventChannel,
        defaults: AutomationSettings | None = None,
    ):
        self.sources = sources
        self.feed_items = feed_items
        self.articles = articles
        self.ai = ai
        self.events = events
        self.defaults = defaults or AutomationSettings()
        self._item_locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    # ─────────────────────────────────────────────────────────────
    # Settings
    # ─────────────────────────────────────────────────────────────

    def automation_settings_for(self, source: Source | None) -> AutomationSettings:
        """Source overrides on top of the app-wide defaults."""
        if source is None:
            return self.defaults
        config = source.configuration
        return AutomationSettings(
            enable_featured_image=(
                config.enable_featured_image
                if config.enable_featured_image is not None
                else self.defaults.enable_featured_image
            ),
            enable_auto_publish=(
                config.enable_auto_publish
                if config.enable_auto_publish is not None
                else self.defaults.enable_auto_publish
            ),
        )

    @staticmethod
    def parameters_for(source: Source | None) -> GenerationParameters:
        if source is None:
            return GenerationParameters(prompt=DEFAULT_PROMPT)
        generation = source.configuration.generation
        return GenerationParameters(
            prompt=generation.content_prompt or DEFAULT_PROMPT,
            model=generation.model,
            temperature=generation.temperature if generation.temperature is not None else 0.7,
            max_tokens=generation.max_tokens or 2000,
            language=generation.language or "en",
            tone=generation.tone,
            style=generation.style,
            target_audience=generation.target_audience,
        )

    # ─────────────────────────────────────────────────────────────
    # Generation
    # ─────────────────────────────────────────────────────────────

    async def generate_for_item(
        self,
        feed_item_id: str,
        settings: AutomationSettings | None = None,
    ) -> GenerationOutcome:
        """Generate an article from one stored feed item."""
        # Concurrent calls for one item run one after the other; the second sees PROCESSED
        lock = self._item_locks.setdefault(feed_item_id, asyncio.Lock())
        try:
            async with lock:
                return await self._generate(feed_item_id, settings)
        except Exception as e:
            logger.exception(f"Unexpected error generating from feed item {feed_item_id}: {e}")
            return GenerationOutcome(
                feed_item_id=feed_item_id,
                error_code=GenerationErrorCode.UNEXPECTED_ERROR,
                error_message=str(e),
            )

    async def generate_batch(
        self,
        feed_item_ids: list[str],
        settings: AutomationSettings | None = None,
    ) -> list[GenerationOutcome]:
        """Generate for each item in order. Failures are reported per item."""
        outcomes = []
        for item_id in feed_item_ids:
            outcomes.append(await self.generate_for_item(item_id, settings))

        succeeded = sum(1 for o in outcomes if o.success)
        if outcomes:
            logger.info(f"Generated {succeeded}/{len(outcomes)} articles")
        return outcomes

    async def _generate(
        self,
        feed_item_id: str,
        settings: AutomationSettings | None,
    ) -> GenerationOutcome:
        item = await self.feed_items.get(feed_item_id)
        if item is None:
            return GenerationOutcome(
                feed_item_id=feed_item_id,
                error_code=GenerationErrorCode.FEED_ITEM_NOT_FOUND,
                error_message="Feed item not found",
            )
        if item.status == FeedItemStatus.PROCESSED:
            return self._already_processed(item)

        source = await self.sources.find_by_id(item.source_id)
        settings = settings or self.automation_settings_for(source)

        try:
            parameters = self.parameters_for(source)
        except ValidationError as e:
            return GenerationOutcome(
                feed_item_id=item.id,
                error_code=GenerationErrorCode.INVALID_PROMPT,
                error_message=str(e),
            )

        request = GenerationRequest(
            parameters=parameters,
            source_title=item.title,
            source_content=item.content,
            source_url=item.url,
            title_prompt=source.configuration.generation.title_prompt if source else None,
            content_prompt=source.configuration.generation.content_prompt if source else None,
        )

        try:
            generated = await self.ai.generate_article(request)
        except AiServiceError as e:
            logger.warning(f"AI generation failed for feed item {item.id} ({e.code.value}): {e}")
            return GenerationOutcome(
                feed_item_id=item.id,
                error_code=GenerationErrorCode.GENERATION_FAILED,
                error_message=str(e),
                ai_error_code=e.code,
            )
        except ValidationError as e:
            return GenerationOutcome(
                feed_item_id=item.id,
                error_code=GenerationErrorCode.INVALID_GENERATED_CONTENT,
                error_message=str(e),
            )

        try:
            article = Article.create(
                title=generated.title,
                content=generated.content,
                status=determine_initial_status(settings),
                generation_parameters=parameters,
                source_id=item.source_id,
                feed_item_id=item.id,
                seo=self._seo_from(generated.title, generated.meta_description, generated.keywords),
            )
        except ValidationError as e:
            logger.warning(f"Generated content rejected for feed item {item.id}: {e}")
            return GenerationOutcome(
                feed_item_id=item.id,
                error_code=GenerationErrorCode.INVALID_GENERATED_CONTENT,
                error_message=str(e),
            )

        return await self._persist(item, article)

    @staticmethod
    def _seo_from(title: str, description: str | None, keywords: list[str]) -> SeoMetadata | None:
        if not description:
            return None
        try:
            return SeoMetadata(
                meta_title=title[:70],
                meta_description=description[:160],
                keywords=tuple(keywords),
            )
        except ValidationError:
            return None

    @staticmethod
    def _already_processed(item: FeedItem) -> GenerationOutcome:
        return GenerationOutcome(
            feed_item_id=item.id,
            error_code=GenerationErrorCode.ALREADY_PROCESSED,
            error_message=f"Feed item already produced article {item.article_id}",
        )

    async def _discard(self, article: Article):
        try:
            await self.articles.delete(article.id)
        except Exception as e:
            logger.error(f"Could not remove duplicate article {article.id}: {e}")

    async def _persist(self, item: FeedItem, article: Article) -> GenerationOutcome:
        try:
            await self.articles.save(article)
            await self.feed_items.update_status(item.id, FeedItemStatus.PROCESSED, article.id)
        except InvalidTransitionError as e:
            # Another writer processed the item first; drop our copy of the article
            logger.warning(f"Feed item {item.id} was processed concurrently: {e}")
            await self._discard(article)
            current = await self.feed_items.get(item.id)
            return self._already_processed(current or item)
        except Exception as e:
            logger.error(f"Could not save article for feed item {item.id}: {e}")
            return GenerationOutcome(
                feed_item_id=item.id,
                article=article,
                error_code=GenerationErrorCode.PERSISTENCE_FAILED,
                error_message=str(e),
            )

        logger.info(f"Generated article {article.id} ({article.status.value}) from feed item {item.id}")
        await self.events.publish(DomainEvent(
            event_type=event_types.ARTICLE_GENERATED,
            aggregate_id=article.id,
            payload={
                "feed_item_id": item.id,
                "source_id": item.source_id,
                "status": article.status.value,
                "word_count": article.word_count,
            },
        ))
        return GenerationOutcome(feed_item_id=item.id, article=article)

    async def retry_save(self, outcome: GenerationOutcome) -> GenerationOutcome:
        """Persist the article of a PERSISTENCE_FAILED outcome again."""
        if not outcome.retryable_save:
            raise ValueError("Only persistence failures with an article can be retried")
        item = await self.feed_items.get(outcome.feed_item_id)
        if item is None:
            return GenerationOutcome(
                feed_item_id=outcome.feed_item_id,
                article=outcome.article,
                error_code=GenerationErrorCode.FEED_ITEM_NOT_FOUND,
                error_message="Feed item not found",
            )
        if item.status == FeedItemStatus.PROCESSED:
            if item.article_id == outcome.article.id:
                # The earlier attempt committed after all
                return GenerationOutcome(feed_item_id=item.id, article=outcome.article)
            await self._discard(outcome.article)
            return self._already_processed(item)
        return await self._persist(item, outcome.article)

    # ─────────────────────────────────────────────────────────────
    # Article lifecycle
    # ─────────────────────────────────────────────────────────────

    async def _apply(self, article: Article, event: DomainEvent) -> Article:
        await self.articles.save(article)
        await self.events.publish(event)
        return article

    async def transition(self, article_id: str, status: ArticleStatus | str) -> Article | None:
        """
        Move an article to a new status.

        Raises:
            InvalidTransitionError: not allowed from the current status
            ValidationError: the article does not meet the target status' invariants
        """
        article = await self.articles.find_by_id(article_id)
        if article is None:
            return None
        return await self._apply(article, article.transition_to(status))

    async def publish(self, article_id: str, seo: SeoMetadata | None = None) -> Article | None:
        article = await self.articles.find_by_id(article_id)
        if article is None:
            return None
        return await self._apply(article, article.publish(seo))

    async def fail(self, article_id: str, reason: str) -> Article | None:
        article = await self.articles.find_by_id(article_id)
        if article is None:
            return None
        return await self._apply(article, article.fail(reason))

    async def retry(
        self,
        article_id: str,
        target: ArticleStatus = ArticleStatus.DRAFT,
    ) -> Article | None:
        article = await self.articles.find_by_id(article_id)
        if article is None:
            return None
        return await self._apply(article, article.retry(target))
