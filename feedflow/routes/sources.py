"""
Source routes: management, status changes, fetching and connectivity tests.
"""

from fastapi import APIRouter, Depends, HTTPException, Query

from ..auth import verify_api_key
from ..domain.source import SourceStatus, SourceType
from ..exceptions import InvalidTransitionError, ValidationError, require_source
from ..schemas import (
    CreateSourceRequest,
    FetchOutcomeResponse,
    FetchSourceRequest,
    SourceResponse,
    SourceStatusRequest,
    SourceTestResponse,
    UpdateSourceRequest,
)
from ..services import OrchestratorDep, SourceServiceDep

router = APIRouter(
    prefix="/sources",
    tags=["sources"],
    dependencies=[Depends(verify_api_key)]
)


# ─────────────────────────────────────────────────────────────
# Source Management
# ─────────────────────────────────────────────────────────────

@router.get("")
async def list_sources(
    service: SourceServiceDep,
    status: SourceStatus | None = Query(default=None),
    type: SourceType | None = Query(default=None),
) -> list[SourceResponse]:
    """List sources, optionally filtered by status and type."""
    sources = await service.list_sources(status=status, source_type=type)
    return [SourceResponse.from_domain(s) for s in sources]


@router.get("/attention")
async def sources_needing_attention(service: SourceServiceDep) -> list[SourceResponse]:
    """Sources in error, or overdue by more than twice their polling interval."""
    sources = await service.needing_attention()
    return [SourceResponse.from_domain(s) for s in sources]


@router.post("", status_code=201)
async def create_source(
    request: CreateSourceRequest,
    service: SourceServiceDep,
) -> SourceResponse:
    """Create a new source."""
    try:
        source = await service.create(
            request.type,
            request.name,
            url=request.url,
            configuration=request.configuration,
            default_category=request.default_category,
        )
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return SourceResponse.from_domain(source)


@router.get("/{source_id}")
async def get_source(source_id: str, service: SourceServiceDep) -> SourceResponse:
    source = require_source(await service.get(source_id))
    return SourceResponse.from_domain(source)


@router.put("/{source_id}")
async def update_source(
    source_id: str,
    request: UpdateSourceRequest,
    service: SourceServiceDep,
) -> SourceResponse:
    """Update name, URL, category or configuration."""
    try:
        source = await service.update(
            source_id,
            name=request.name,
            url=request.url,
            default_category=request.default_category,
            configuration=request.configuration,
        )
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return SourceResponse.from_domain(require_source(source))


@router.post("/{source_id}/status")
async def set_source_status(
    source_id: str,
    request: SourceStatusRequest,
    service: SourceServiceDep,
) -> SourceResponse:
    """Activate, pause or archive a source."""
    try:
        source = await service.change_status(source_id, request.status)
    except InvalidTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return SourceResponse.from_domain(require_source(source))


@router.delete("/{source_id}")
async def delete_source(source_id: str, service: SourceServiceDep) -> dict:
    if not await service.delete(source_id):
        raise HTTPException(status_code=404, detail="Source not found")
    return {"success": True}


# ─────────────────────────────────────────────────────────────
# Fetching
# ─────────────────────────────────────────────────────────────

@router.post("/{source_id}/fetch")
async def fetch_source(
    source_id: str,
    orchestrator: OrchestratorDep,
    request: FetchSourceRequest | None = None,
) -> FetchOutcomeResponse:
    """Fetch a source now. Failures are recorded on the source and reported, not raised."""
    request = request or FetchSourceRequest()
    outcome = await orchestrator.fetch_by_id(
        source_id,
        force=request.force,
        mark_for_processing=request.mark_for_processing,
    )
    return FetchOutcomeResponse.from_outcome(require_source(outcome))


@router.post("/fetch")
async def fetch_all_sources(
    orchestrator: OrchestratorDep,
    force: bool = False,
) -> list[FetchOutcomeResponse]:
    """Fetch every active source that is due (or all of them with force)."""
    outcomes = await orchestrator.fetch_all(force=force)
    return [FetchOutcomeResponse.from_outcome(o) for o in outcomes]


@router.post("/{source_id}/test")
async def test_source(source_id: str, service: SourceServiceDep) -> SourceTestResponse:
    """Check that a source can be fetched without storing anything."""
    result = require_source(await service.test(source_id))
    return SourceTestResponse.from_result(result)
