"""
feedflow API Server

FastAPI application providing endpoints for:
- Source management (create, configure, pause, archive)
- Fetching sources into the deduplication store
- Article generation and workflow transitions
- Health and storage status
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from . import __version__
from .config import config, state
from .database import Database
from .domain.article import AutomationSettings
from .events import EventChannel
from .fetchers import create_default_registry
from .generator import LLMArticleService
from .providers import get_provider_from_env
from .routes import articles_router, misc_router, sources_router
from .scheduler import PollingScheduler
from .services import (
    FetchOrchestrator,
    GenerationWorkflow,
    NewItemsAutomationHandler,
    SourceService,
)

logger = logging.getLogger(__name__)


def build_state():
    """Wire repositories, strategies and services onto ``state``."""
    state.db = Database(config.DB_PATH)
    if state.db.degraded:
        logger.warning("Starting with in-memory storage; data will not survive a restart")

    state.events = EventChannel()
    state.strategies = create_default_registry(
        timeout=config.REQUEST_TIMEOUT,
        user_agent=config.USER_AGENT,
    )
    state.source_service = SourceService(state.db.sources, state.events, state.strategies)
    state.orchestrator = FetchOrchestrator(
        state.db.sources,
        state.db.feed_items,
        state.strategies,
        state.events,
        fetch_timeout=config.FETCH_TIMEOUT,
        concurrency=config.FETCH_CONCURRENCY,
    )

    # Initialize LLM provider (supports Anthropic, OpenAI, Google)
    state.provider = get_provider_from_env(
        anthropic_key=config.ANTHROPIC_API_KEY or None,
        openai_key=config.OPENAI_API_KEY or None,
        google_key=config.GOOGLE_API_KEY or None,
        preferred_provider=config.LLM_PROVIDER or None,
        default_model=config.LLM_MODEL or None,
    )

    if state.provider:
        state.ai_service = LLMArticleService(state.provider)
        state.workflow = GenerationWorkflow(
            state.db.sources,
            state.db.feed_items,
            state.db.articles,
            state.ai_service,
            state.events,
            defaults=AutomationSettings(
                enable_featured_image=config.ENABLE_FEATURED_IMAGE,
                enable_auto_publish=config.ENABLE_AUTO_PUBLISH,
            ),
        )
        NewItemsAutomationHandler(state.db.feed_items, state.workflow).register(state.events)
        logger.info(f"LLM provider initialized: {state.provider.name}")
    else:
        logger.warning(
            "No LLM API key configured. Set ANTHROPIC_API_KEY, OPENAI_API_KEY, "
            "or GOOGLE_API_KEY. Article generation disabled."
        )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize and cleanup application resources."""
    logging.basicConfig(
        level=config.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # Startup - skip if already initialized (e.g., by tests)
    if state.db is None:
        build_state()

        if config.ENABLE_SCHEDULER:
            state.scheduler = PollingScheduler(
                state.orchestrator,
                interval_seconds=config.POLL_INTERVAL_SECONDS,
            )
            await state.scheduler.start()

    yield

    # Shutdown
    if state.scheduler:
        await state.scheduler.stop()


app = FastAPI(
    title="feedflow API",
    version=__version__,
    lifespan=lifespan
)

# Include routers
app.include_router(misc_router)
app.include_router(sources_router)
app.include_router(articles_router)
