"""
Tests for the LLM article service and the generation workflow.
"""

import asyncio
import json

import pytest

from feedflow.database.memory import InMemoryArticleRepository, InMemoryFeedItemRepository
from feedflow.domain import events
from feedflow.domain.article import ArticleStatus, AutomationSettings, GenerationParameters
from feedflow.domain.feed_item import FeedItem, FeedItemStatus
from feedflow.domain.source import Source
from feedflow.exceptions import AiErrorCode, AiServiceError, ValidationError
from feedflow.generator import AiService, GeneratedArticle, GenerationRequest, LLMArticleService
from feedflow.providers import LLMProvider, LLMResponse, ProviderCapabilities
from feedflow.services import GenerationWorkflow, NewItemsAutomationHandler
from feedflow.services.generation_service import GenerationErrorCode

BODY = " ".join(f"Sentence part {i} of the generated story." for i in range(15))


class MockProvider(LLMProvider):
    """Mock LLM provider that returns pre-configured responses."""

    def __init__(self):
        self.calls: list[dict] = []
        self.responses: list = []

    @property
    def name(self) -> str:
        return "mock"

    @property
    def capabilities(self) -> ProviderCapabilities:
        return ProviderCapabilities(supports_json_mode=True)

    def queue_response(self, text: str, truncated: bool = False):
        """Queue a response to be returned on the next complete() call."""
        self.responses.append(LLMResponse(text=text, model="mock-standard", truncated=truncated))

    def queue_error(self, error: Exception):
        self.responses.append(error)

    def queue_article(self, title: str = "Council approves new budget plan", content: str = BODY):
        self.queue_response(json.dumps({
            "title": title,
            "content": content,
            "meta_description": "The council approved the budget.",
            "keywords": ["budget", "council"],
        }))

    def complete(
        self,
        user_prompt: str,
        system_prompt: str | None = None,
        model: str | None = None,
        max_tokens: int = 1024,
        temperature: float = 0.0,
        json_mode: bool = False,
    ) -> LLMResponse:
        self.calls.append({
            "user_prompt": user_prompt,
            "system_prompt": system_prompt,
            "model": model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "json_mode": json_mode,
        })
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


class BrokenArticleRepository(InMemoryArticleRepository):
    """Article store whose saves fail until ``broken`` is cleared."""

    def __init__(self):
        super().__init__()
        self.broken = True

    async def save(self, article):
        if self.broken:
            raise RuntimeError("disk full")
        return await super().save(article)


class GatedAiService(AiService):
    """Waits for ``release`` before answering, counting every call."""

    def __init__(self):
        self.calls = 0
        self.release = asyncio.Event()

    async def generate_article(self, request: GenerationRequest) -> GeneratedArticle:
        self.calls += 1
        await self.release.wait()
        return GeneratedArticle(title="Council approves new budget plan", content=BODY)


class CommitThenFailFeedItemRepository(InMemoryFeedItemRepository):
    """Commits the first status update, then reports it as failed."""

    def __init__(self):
        super().__init__()
        self.fail_next = True

    async def update_status(self, item_id, status, article_id=None):
        item = await super().update_status(item_id, status, article_id)
        if self.fail_next:
            self.fail_next = False
            raise RuntimeError("connection reset after commit")
        return item


@pytest.fixture
def provider():
    return MockProvider()


@pytest.fixture
def workflow(memory_db, provider, channel):
    return GenerationWorkflow(
        memory_db.sources,
        memory_db.feed_items,
        memory_db.articles,
        LLMArticleService(provider),
        channel,
    )


async def _store_item(db, source: Source | None = None, feed_items=None, **kwargs) -> FeedItem:
    if source is None:
        source, _ = Source.create_rss_source("Example", "https://example.com/rss")
    await db.sources.save(source)
    item = FeedItem(
        source_id=source.id,
        guid=kwargs.pop("guid", "guid-1"),
        title="Council meets on budget",
        content="The city council met on Tuesday to discuss the budget.",
        url="https://example.com/budget",
        **kwargs,
    )
    await (feed_items or db.feed_items).save(item)
    return item


class TestLLMArticleService:

    def _request(self, **kwargs) -> GenerationRequest:
        return GenerationRequest(
            parameters=GenerationParameters(prompt="Rewrite as news", tone="neutral", max_tokens=900),
            source_title="Council meets",
            source_content="Body text",
            source_url="https://example.com/a",
            **kwargs,
        )

    @pytest.mark.asyncio
    async def test_builds_prompt_and_parses(self, provider):
        provider.queue_article()

        generated = await LLMArticleService(provider).generate_article(
            self._request(title_prompt="Keep it short")
        )

        assert generated.title == "Council approves new budget plan"
        assert generated.keywords == ["budget", "council"]
        call = provider.calls[0]
        assert "Rewrite as news" in call["user_prompt"]
        assert "Tone: neutral" in call["user_prompt"]
        assert "Title guidance: Keep it short" in call["user_prompt"]
        assert "URL: https://example.com/a" in call["user_prompt"]
        assert call["max_tokens"] == 900
        assert call["json_mode"] is True

    @pytest.mark.asyncio
    async def test_accepts_fenced_json(self, provider):
        provider.queue_response('```json\n{"title": "A fine headline", "content": "Text"}\n```')

        generated = await LLMArticleService(provider).generate_article(self._request())

        assert generated.title == "A fine headline"
        assert generated.meta_description is None

    @pytest.mark.asyncio
    async def test_truncated_response(self, provider):
        provider.queue_response('{"title": "Cut', truncated=True)

        with pytest.raises(AiServiceError) as exc_info:
            await LLMArticleService(provider).generate_article(self._request())

        assert exc_info.value.code == AiErrorCode.TOKEN_LIMIT_EXCEEDED

    @pytest.mark.asyncio
    @pytest.mark.parametrize("text", [
        "not json at all",
        "[1, 2, 3]",
        '{"title": "Only a title"}',
    ])
    async def test_unusable_output(self, provider, text):
        provider.queue_response(text)

        with pytest.raises(ValidationError):
            await LLMArticleService(provider).generate_article(self._request())


class TestGenerateForItem:

    @pytest.mark.asyncio
    async def test_generates_and_marks_item_processed(
        self, workflow, memory_db, provider, channel, recorder
    ):
        channel.subscribe(events.ARTICLE_GENERATED, recorder)
        item = await _store_item(memory_db)
        provider.queue_article()

        outcome = await workflow.generate_for_item(item.id)

        assert outcome.success
        article = outcome.article
        assert article.status == ArticleStatus.GENERATED_IMAGE_DRAFT
        assert article.feed_item_id == item.id
        assert article.seo.meta_description == "The council approved the budget."
        assert (await memory_db.articles.find_by_id(article.id)) is not None

        stored = await memory_db.feed_items.get(item.id)
        assert stored.status == FeedItemStatus.PROCESSED
        assert stored.article_id == article.id
        assert recorder.events[0].payload["feed_item_id"] == item.id

    @pytest.mark.asyncio
    async def test_auto_publish_source(self, workflow, memory_db, provider):
        source, _ = Source.create_rss_source(
            "Auto", "https://example.com/auto", {"enable_auto_publish": True}
        )
        item = await _store_item(memory_db, source)
        provider.queue_article()

        outcome = await workflow.generate_for_item(item.id)

        assert outcome.article.status == ArticleStatus.READY_TO_PUBLISH

    @pytest.mark.asyncio
    async def test_source_generation_settings_used(self, workflow, memory_db, provider):
        source, _ = Source.create_rss_source(
            "Tuned", "https://example.com/tuned",
            {"generation": {"content_prompt": "Write for teenagers", "temperature": 0.2, "max_tokens": 700}},
        )
        item = await _store_item(memory_db, source)
        provider.queue_article()

        outcome = await workflow.generate_for_item(item.id)

        assert outcome.article.generation_parameters.prompt == "Write for teenagers"
        assert provider.calls[0]["temperature"] == 0.2
        assert provider.calls[0]["max_tokens"] == 700

    @pytest.mark.asyncio
    async def test_missing_item(self, workflow):
        outcome = await workflow.generate_for_item("missing")
        assert outcome.error_code == GenerationErrorCode.FEED_ITEM_NOT_FOUND

    @pytest.mark.asyncio
    async def test_already_processed(self, workflow, memory_db, provider):
        item = await _store_item(memory_db, status=FeedItemStatus.PROCESSED, article_id="art-1")

        outcome = await workflow.generate_for_item(item.id)

        assert outcome.error_code == GenerationErrorCode.ALREADY_PROCESSED
        assert provider.calls == []

    @pytest.mark.asyncio
    async def test_provider_failure(self, workflow, memory_db, provider):
        item = await _store_item(memory_db)
        provider.queue_error(AiServiceError("Slow down", AiErrorCode.RATE_LIMIT_EXCEEDED))

        outcome = await workflow.generate_for_item(item.id)

        assert outcome.error_code == GenerationErrorCode.GENERATION_FAILED
        assert outcome.ai_error_code == AiErrorCode.RATE_LIMIT_EXCEEDED
        assert (await memory_db.feed_items.get(item.id)).status == FeedItemStatus.PENDING

    @pytest.mark.asyncio
    async def test_too_short_content_rejected(self, workflow, memory_db, provider):
        item = await _store_item(memory_db)
        provider.queue_article(content="Far too short to publish.")

        outcome = await workflow.generate_for_item(item.id)

        assert outcome.error_code == GenerationErrorCode.INVALID_GENERATED_CONTENT
        assert await memory_db.articles.find_by_status() == []

    @pytest.mark.asyncio
    async def test_persistence_failure_can_be_retried(self, memory_db, provider, channel):
        articles = BrokenArticleRepository()
        workflow = GenerationWorkflow(
            memory_db.sources, memory_db.feed_items, articles, LLMArticleService(provider), channel
        )
        item = await _store_item(memory_db)
        provider.queue_article()

        outcome = await workflow.generate_for_item(item.id)

        assert outcome.error_code == GenerationErrorCode.PERSISTENCE_FAILED
        assert outcome.retryable_save
        assert (await memory_db.feed_items.get(item.id)).status == FeedItemStatus.PENDING

        articles.broken = False
        retried = await workflow.retry_save(outcome)

        assert retried.success
        assert retried.article.id == outcome.article.id
        assert len(provider.calls) == 1
        assert (await memory_db.feed_items.get(item.id)).status == FeedItemStatus.PROCESSED

    @pytest.mark.asyncio
    async def test_retry_save_requires_persistence_failure(self, workflow):
        outcome = await workflow.generate_for_item("missing")
        with pytest.raises(ValueError):
            await workflow.retry_save(outcome)

    @pytest.mark.asyncio
    async def test_batch_continues_after_failure(self, workflow, memory_db, provider):
        source, _ = Source.create_rss_source("Example", "https://example.com/rss")
        first = await _store_item(memory_db, source, guid="a")
        second = await _store_item(memory_db, source, guid="b")
        provider.queue_error(AiServiceError("boom", AiErrorCode.SERVICE_UNAVAILABLE))
        provider.queue_article()

        outcomes = await workflow.generate_batch([first.id, second.id])

        assert [o.success for o in outcomes] == [False, True]


class TestConcurrentGeneration:
    """One feed item never yields two stored articles."""

    @pytest.mark.asyncio
    async def test_parallel_calls_generate_once(self, memory_db, channel):
        ai = GatedAiService()
        workflow = GenerationWorkflow(
            memory_db.sources, memory_db.feed_items, memory_db.articles, ai, channel
        )
        item = await _store_item(memory_db)

        both = asyncio.gather(workflow.generate_for_item(item.id), workflow.generate_for_item(item.id))
        while ai.calls == 0:
            await asyncio.sleep(0)
        ai.release.set()
        first, second = await both

        assert first.success
        assert second.error_code == GenerationErrorCode.ALREADY_PROCESSED
        assert ai.calls == 1
        assert len(await memory_db.articles.find_by_status()) == 1

    @pytest.mark.asyncio
    async def test_item_processed_elsewhere_during_generation(self, memory_db, provider, channel):
        """A second workflow over the same store wins; the loser keeps no article."""
        slow_ai = GatedAiService()
        slow = GenerationWorkflow(
            memory_db.sources, memory_db.feed_items, memory_db.articles, slow_ai, channel
        )
        fast = GenerationWorkflow(
            memory_db.sources, memory_db.feed_items, memory_db.articles,
            LLMArticleService(provider), channel,
        )
        item = await _store_item(memory_db)
        provider.queue_article()

        pending = asyncio.create_task(slow.generate_for_item(item.id))
        while slow_ai.calls == 0:
            await asyncio.sleep(0)
        winner = await fast.generate_for_item(item.id)
        slow_ai.release.set()
        loser = await pending

        assert winner.success
        assert loser.error_code == GenerationErrorCode.ALREADY_PROCESSED
        assert winner.article.id in loser.error_message
        stored = await memory_db.articles.find_by_status()
        assert [a.id for a in stored] == [winner.article.id]
        assert (await memory_db.feed_items.get(item.id)).article_id == winner.article.id

    @pytest.mark.asyncio
    async def test_retry_save_after_commit_succeeds(self, memory_db, provider, channel):
        feed_items = CommitThenFailFeedItemRepository()
        workflow = GenerationWorkflow(
            memory_db.sources, feed_items, memory_db.articles, LLMArticleService(provider), channel
        )
        item = await _store_item(memory_db, feed_items=feed_items)
        provider.queue_article()

        outcome = await workflow.generate_for_item(item.id)
        assert outcome.error_code == GenerationErrorCode.PERSISTENCE_FAILED

        retried = await workflow.retry_save(outcome)

        assert retried.success
        assert retried.article.id == outcome.article.id
        assert len(await memory_db.articles.find_by_status()) == 1
        assert len(provider.calls) == 1

    @pytest.mark.asyncio
    async def test_retry_save_after_another_article_won(self, memory_db, provider, channel):
        articles = BrokenArticleRepository()
        workflow = GenerationWorkflow(
            memory_db.sources, memory_db.feed_items, articles, LLMArticleService(provider), channel
        )
        item = await _store_item(memory_db)
        provider.queue_article()
        outcome = await workflow.generate_for_item(item.id)
        assert outcome.error_code == GenerationErrorCode.PERSISTENCE_FAILED

        await memory_db.feed_items.update_status(item.id, FeedItemStatus.PROCESSED, "other-article")
        articles.broken = False
        retried = await workflow.retry_save(outcome)

        assert retried.error_code == GenerationErrorCode.ALREADY_PROCESSED
        assert await articles.find_by_id(outcome.article.id) is None


class TestAutomationSettings:

    def test_source_overrides_defaults(self, memory_db, provider, channel):
        workflow = GenerationWorkflow(
            memory_db.sources, memory_db.feed_items, memory_db.articles,
            LLMArticleService(provider), channel,
            defaults=AutomationSettings(enable_featured_image=True, enable_auto_publish=True),
        )
        source, _ = Source.create_rss_source(
            "Example", "https://example.com/rss", {"enable_featured_image": False}
        )

        settings = workflow.automation_settings_for(source)

        assert settings == AutomationSettings(enable_featured_image=False, enable_auto_publish=True)
        assert workflow.automation_settings_for(None) == workflow.defaults


class TestArticleLifecycle:

    @pytest.mark.asyncio
    async def test_transition_publish_and_fail(self, workflow, memory_db, provider, channel, recorder):
        channel.subscribe(events.ARTICLE_STATUS_CHANGED, recorder)
        item = await _store_item(memory_db)
        provider.queue_article()
        article = (await workflow.generate_for_item(item.id)).article

        await workflow.transition(article.id, ArticleStatus.READY_TO_PUBLISH)
        published = await workflow.publish(article.id)

        assert published.status == ArticleStatus.PUBLISHED
        assert (await memory_db.articles.find_by_id(article.id)).published_at is not None
        assert [e.payload["to"] for e in recorder.events] == ["ready_to_publish", "published"]

    @pytest.mark.asyncio
    async def test_missing_article(self, workflow):
        assert await workflow.transition("missing", ArticleStatus.GENERATED) is None
        assert await workflow.fail("missing", "reason") is None


class TestAutomationHandler:

    @pytest.mark.asyncio
    async def test_generates_for_auto_sources(
        self, memory_db, orchestrator, rss_strategy, make_fetched_items, provider, channel
    ):
        workflow = GenerationWorkflow(
            memory_db.sources, memory_db.feed_items, memory_db.articles,
            LLMArticleService(provider), channel,
        )
        handler = NewItemsAutomationHandler(memory_db.feed_items, workflow)
        handler.register(channel)
        source, _ = Source.create_rss_source(
            "Auto", "https://example.com/auto", {"auto_generate": True}
        )
        await memory_db.sources.save(source)
        rss_strategy.items = make_fetched_items(2)
        provider.queue_article()
        provider.queue_article(title="Second article about the budget")

        await orchestrator.fetch_source(source)

        assert [o.success for o in handler.last_outcomes] == [True, True]
        assert len(await memory_db.articles.find_by_status()) == 2
        processed = await memory_db.feed_items.list_by_status(source.id, FeedItemStatus.PROCESSED)
        assert len(processed) == 2

    @pytest.mark.asyncio
    async def test_ignores_manual_sources(
        self, memory_db, orchestrator, rss_source, rss_strategy, make_fetched_items, provider, channel
    ):
        workflow = GenerationWorkflow(
            memory_db.sources, memory_db.feed_items, memory_db.articles,
            LLMArticleService(provider), channel,
        )
        handler = NewItemsAutomationHandler(memory_db.feed_items, workflow)
        handler.register(channel)
        rss_strategy.items = make_fetched_items(2)

        await orchestrator.fetch_source(rss_source)

        assert handler.last_outcomes == []
        assert provider.calls == []
