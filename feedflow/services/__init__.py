"""
Service layer for business logic.

Services encapsulate business logic, keeping routes as thin HTTP adapters.
Each service receives its dependencies via constructor injection; the server
lifespan builds them once and stores them on ``state``.

Usage in routes:
    from ..services import SourceServiceDep

    @router.get("/sources")
    async def list_sources(service: SourceServiceDep):
        return await service.list_sources()
"""

from typing import Annotated

from fastapi import Depends, HTTPException

from ..config import state
from .automation import NewItemsAutomationHandler
from .fetch_service import FetchOrchestrator, FetchOutcome
from .generation_service import (
    GenerationErrorCode,
    GenerationOutcome,
    GenerationWorkflow,
)
from .source_service import SourceService

__all__ = [
    # Services
    "FetchOrchestrator",
    "FetchOutcome",
    "GenerationErrorCode",
    "GenerationOutcome",
    "GenerationWorkflow",
    "NewItemsAutomationHandler",
    "SourceService",
    # Dependency factories
    "get_source_service",
    "get_orchestrator",
    "get_workflow",
    # Type aliases for dependency injection
    "SourceServiceDep",
    "OrchestratorDep",
    "WorkflowDep",
]


def get_source_service() -> SourceService:
    """Dependency to get SourceService instance."""
    if not state.source_service:
        raise HTTPException(status_code=500, detail="Source service not initialized")
    return state.source_service


def get_orchestrator() -> FetchOrchestrator:
    """Dependency to get the fetch orchestrator."""
    if not state.orchestrator:
        raise HTTPException(status_code=500, detail="Fetch orchestrator not initialized")
    return state.orchestrator


def get_workflow() -> GenerationWorkflow:
    """Dependency to get the generation workflow (requires an LLM provider)."""
    if not state.workflow:
        raise HTTPException(
            status_code=503,
            detail="Article generation unavailable: no LLM API key configured",
        )
    return state.workflow


SourceServiceDep = Annotated[SourceService, Depends(get_source_service)]
OrchestratorDep = Annotated[FetchOrchestrator, Depends(get_orchestrator)]
WorkflowDep = Annotated[GenerationWorkflow, Depends(get_workflow)]
