"""
Miscellaneous routes: health check, storage status and feed item listing.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query

from ..auth import verify_api_key
from ..config import state, get_db
from ..database import Database
from ..domain.feed_item import FeedItemStatus
from ..schemas import FeedItemResponse, HealthResponse, StorageStatusResponse

router = APIRouter(tags=["misc"])


@router.get("/health")
async def health_check(db: Annotated[Database, Depends(get_db)]) -> HealthResponse:
    """API health check. Reports ``degraded`` while storage runs on the fallback."""
    storage = StorageStatusResponse(**db.status())
    return HealthResponse(
        status="degraded" if storage.degraded else "ok",
        storage=storage,
        provider=state.provider.name if state.provider else None,
        scheduler_running=bool(state.scheduler and state.scheduler.running),
    )


@router.post("/storage/reset", dependencies=[Depends(verify_api_key)])
async def reset_storage_fallback(db: Annotated[Database, Depends(get_db)]) -> StorageStatusResponse:
    """Leave degraded mode and retry the primary store on the next call."""
    db.reset_fallback()
    return StorageStatusResponse(**db.status())


@router.get("/feed-items", dependencies=[Depends(verify_api_key)])
async def list_feed_items(
    db: Annotated[Database, Depends(get_db)],
    source_id: str | None = None,
    status: FeedItemStatus | None = Query(default=None),
    limit: int = Query(default=100, le=500),
) -> list[FeedItemResponse]:
    items = await db.feed_items.list_by_status(source_id, status, limit)
    return [FeedItemResponse.from_domain(i) for i in items]
