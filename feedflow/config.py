"""
Configuration and application state management.
"""

import os
from pathlib import Path
from typing import TYPE_CHECKING

from dotenv import load_dotenv
from fastapi import HTTPException

if TYPE_CHECKING:
    from .database import Database
    from .events import EventChannel
    from .fetchers import FetchStrategyRegistry
    from .generator import AiService
    from .providers import LLMProvider
    from .scheduler import PollingScheduler
    from .services import FetchOrchestrator, GenerationWorkflow, SourceService

# Load environment variables
load_dotenv()


def _parse_bool(value: str | None, default: bool = False) -> bool:
    """Parse boolean from environment variable."""
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


class Config:
    """Application configuration from environment."""
    # LLM Provider configuration
    # Set one of these API keys based on your preferred provider
    ANTHROPIC_API_KEY: str = os.getenv("ANTHROPIC_API_KEY", "")
    OPENAI_API_KEY: str = os.getenv("OPENAI_API_KEY", "")
    GOOGLE_API_KEY: str = os.getenv("GOOGLE_API_KEY", "")

    # Preferred provider: "anthropic", "openai", or "google"
    # If not set, uses the first available key in order: Anthropic > OpenAI > Google
    LLM_PROVIDER: str = os.getenv("LLM_PROVIDER", "")

    # Optional: override the default model for the selected provider
    LLM_MODEL: str = os.getenv("LLM_MODEL", "")

    # Admin API key for the X-API-Key header (empty disables auth)
    API_KEY: str = os.getenv("API_KEY", "")

    DB_PATH: Path = Path(os.getenv("DB_PATH", "./data/feedflow.db"))
    PORT: int = int(os.getenv("PORT", "5010"))
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Fetching
    FETCH_TIMEOUT: int = int(os.getenv("FETCH_TIMEOUT", "60"))  # seconds per source run
    # Per HTTP request; kept well under FETCH_TIMEOUT so download retries fit in one run
    REQUEST_TIMEOUT: int = int(os.getenv("REQUEST_TIMEOUT", "15"))
    FETCH_CONCURRENCY: int = int(os.getenv("FETCH_CONCURRENCY", "5"))
    USER_AGENT: str = os.getenv("USER_AGENT", "feedflow/1.0 (+https://github.com/feedflow)")

    # Background polling
    ENABLE_SCHEDULER: bool = _parse_bool(os.getenv("ENABLE_SCHEDULER"), default=False)
    POLL_INTERVAL_SECONDS: int = int(os.getenv("POLL_INTERVAL_SECONDS", "300"))

    # Default automation settings (sources may override)
    ENABLE_FEATURED_IMAGE: bool = _parse_bool(os.getenv("ENABLE_FEATURED_IMAGE"), default=False)
    ENABLE_AUTO_PUBLISH: bool = _parse_bool(os.getenv("ENABLE_AUTO_PUBLISH"), default=False)

    @classmethod
    def has_llm_key(cls) -> bool:
        """Check if any LLM API key is configured."""
        return bool(cls.ANTHROPIC_API_KEY or cls.OPENAI_API_KEY or cls.GOOGLE_API_KEY)


config = Config()


class AppState:
    """Shared application state, populated once by the server lifespan."""
    db: "Database | None" = None
    events: "EventChannel | None" = None
    strategies: "FetchStrategyRegistry | None" = None
    provider: "LLMProvider | None" = None
    ai_service: "AiService | None" = None
    source_service: "SourceService | None" = None
    orchestrator: "FetchOrchestrator | None" = None
    workflow: "GenerationWorkflow | None" = None
    scheduler: "PollingScheduler | None" = None


state = AppState()


def get_db() -> "Database":
    """Dependency to get database instance."""
    if not state.db:
        raise HTTPException(status_code=500, detail="Database not initialized")
    return state.db
