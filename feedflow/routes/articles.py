"""
Article routes: listing, generation and workflow transitions.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query

from ..auth import verify_api_key
from ..config import get_db
from ..database import Database
from ..domain.article import ArticleStatus, AutomationSettings, SeoMetadata
from ..exceptions import InvalidTransitionError, ValidationError, require_article
from ..schemas import (
    ArticleDetailResponse,
    ArticleResponse,
    ArticleTransitionRequest,
    FailArticleRequest,
    GenerateArticleRequest,
    GenerationResultResponse,
    PublishArticleRequest,
    RetryArticleRequest,
)
from ..services import WorkflowDep

router = APIRouter(
    prefix="/articles",
    tags=["articles"],
    dependencies=[Depends(verify_api_key)]
)


@router.get("")
async def list_articles(
    db: Annotated[Database, Depends(get_db)],
    status: ArticleStatus | None = Query(default=None),
    limit: int = Query(default=50, le=200),
) -> list[ArticleResponse]:
    articles = await db.articles.find_by_status(status, limit=limit)
    return [ArticleResponse.from_domain(a) for a in articles]


@router.get("/{article_id}")
async def get_article(
    article_id: str,
    db: Annotated[Database, Depends(get_db)],
) -> ArticleDetailResponse:
    article = require_article(await db.articles.find_by_id(article_id))
    return ArticleDetailResponse.from_domain(article)


# ─────────────────────────────────────────────────────────────
# Generation
# ─────────────────────────────────────────────────────────────

@router.post("/generate")
async def generate_article(
    request: GenerateArticleRequest,
    workflow: WorkflowDep,
    db: Annotated[Database, Depends(get_db)],
) -> GenerationResultResponse:
    """Generate an article from a stored feed item."""
    settings = None
    if request.enable_featured_image is not None or request.enable_auto_publish is not None:
        item = await db.feed_items.get(request.feed_item_id)
        source = await db.sources.find_by_id(item.source_id) if item else None
        base = workflow.automation_settings_for(source)
        settings = AutomationSettings(
            enable_featured_image=(
                request.enable_featured_image
                if request.enable_featured_image is not None
                else base.enable_featured_image
            ),
            enable_auto_publish=(
                request.enable_auto_publish
                if request.enable_auto_publish is not None
                else base.enable_auto_publish
            ),
        )
    outcome = await workflow.generate_for_item(request.feed_item_id, settings)
    return GenerationResultResponse.from_outcome(outcome)


# ─────────────────────────────────────────────────────────────
# Workflow
# ─────────────────────────────────────────────────────────────

def _workflow_error(e: Exception) -> HTTPException:
    if isinstance(e, InvalidTransitionError):
        return HTTPException(status_code=409, detail=str(e))
    return HTTPException(status_code=400, detail=str(e))


@router.post("/{article_id}/status")
async def transition_article(
    article_id: str,
    request: ArticleTransitionRequest,
    workflow: WorkflowDep,
) -> ArticleDetailResponse:
    try:
        article = await workflow.transition(article_id, request.status)
    except (InvalidTransitionError, ValidationError) as e:
        raise _workflow_error(e)
    return ArticleDetailResponse.from_domain(require_article(article))


@router.post("/{article_id}/publish")
async def publish_article(
    article_id: str,
    request: PublishArticleRequest,
    workflow: WorkflowDep,
) -> ArticleDetailResponse:
    try:
        seo = None
        if request.seo:
            seo = SeoMetadata(
                meta_title=request.seo.meta_title,
                meta_description=request.seo.meta_description,
                keywords=tuple(request.seo.keywords),
                slug=request.seo.slug or "",
            )
        article = await workflow.publish(article_id, seo)
    except (InvalidTransitionError, ValidationError) as e:
        raise _workflow_error(e)
    return ArticleDetailResponse.from_domain(require_article(article))


@router.post("/{article_id}/fail")
async def fail_article(
    article_id: str,
    request: FailArticleRequest,
    workflow: WorkflowDep,
) -> ArticleDetailResponse:
    try:
        article = await workflow.fail(article_id, request.reason)
    except (InvalidTransitionError, ValidationError) as e:
        raise _workflow_error(e)
    return ArticleDetailResponse.from_domain(require_article(article))


@router.post("/{article_id}/retry")
async def retry_article(
    article_id: str,
    request: RetryArticleRequest,
    workflow: WorkflowDep,
) -> ArticleDetailResponse:
    try:
        article = await workflow.retry(article_id, ArticleStatus(request.target))
    except (InvalidTransitionError, ValidationError) as e:
        raise _workflow_error(e)
    return ArticleDetailResponse.from_domain(require_article(article))
