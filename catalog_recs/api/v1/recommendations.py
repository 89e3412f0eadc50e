"""
Recommendation endpoints.

Thin request handlers over RankingPipeline: parse paging parameters, run the
pipeline, translate ranking errors into HTTP errors. All scoring happens per
request from current data; nothing is cached between calls.
"""

import logging
from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from catalog_recs.config import get_settings
from catalog_recs.core.exceptions import RankingError, ReferenceNotFound
from catalog_recs.db import schemas
from catalog_recs.db.database import async_session_maker
from catalog_recs.services.exclusion_service import ExclusionService
from catalog_recs.services.hydration import ItemHydrator
from catalog_recs.services.projection_store import ProjectionRepository
from catalog_recs.services.ranking import RankedPage, RankingPipeline
from catalog_recs.services.signals import SignalRepository

logger = logging.getLogger(__name__)
settings = get_settings()

# Rate limiter for expensive ranking endpoints
limiter = Limiter(key_func=get_remote_address)

router = APIRouter()


def get_ranking_pipeline() -> RankingPipeline:
    """Build a pipeline over the SQL-backed collaborators."""
    return RankingPipeline(
        visibility=ExclusionService(async_session_maker),
        projection_store=ProjectionRepository(async_session_maker),
        signal_store=SignalRepository(async_session_maker),
        hydration=ItemHydrator(async_session_maker),
        settings=settings,
    )


def _to_response(result: RankedPage) -> schemas.RankedPageResponse:
    return schemas.RankedPageResponse(
        items=result.items,
        total_match_count=result.total_match_count,
        page=result.page,
        per_page=result.per_page,
        diagnostic_counts=(
            schemas.CriteriaCountsResponse(**asdict(result.diagnostic_counts))
            if result.diagnostic_counts is not None else None
        ),
        message=result.message,
    )


def _http_error(e: RankingError) -> HTTPException:
    if isinstance(e, ReferenceNotFound):
        return HTTPException(status_code=404, detail=e.message)
    logger.error(f"Ranking failed ({e.error_code.value}): {e.message}")
    return HTTPException(
        status_code=503,
        detail={"error": e.message, "error_code": e.error_code.value, "retryable": e.retryable},
    )


@router.get("/{user_id}", response_model=schemas.RankedPageResponse)
@limiter.limit("30/minute")
async def get_recommendations(
    request: Request,
    user_id: int,
    page: int = Query(default=1, ge=1, description="1-based page number"),
    per_page: int = Query(
        default=settings.recommendation_default_per_page,
        ge=1, le=settings.max_per_page,
        description="Items per page",
    ),
    pipeline: RankingPipeline = Depends(get_ranking_pipeline),
):
    """
    Get personalized recommendations for a user.

    Ranked from favorites, high ratings (80+) on contributors/owners/tags,
    weights derived from rated or favorited items, watch recency and
    engagement. When nothing matches, `diagnostic_counts` explains which
    signals the user has.
    """
    try:
        result = await pipeline.rank_for_user(user_id, page=page, per_page=per_page)
    except RankingError as e:
        raise _http_error(e) from e
    return _to_response(result)


@router.get("/{user_id}/similar/{item_id}", response_model=schemas.RankedPageResponse)
@limiter.limit("60/minute")
async def get_similar_items(
    request: Request,
    user_id: int,
    item_id: str,
    page: int = Query(default=1, ge=1, description="1-based page number"),
    per_page: int = Query(
        default=settings.similar_default_per_page,
        ge=1, le=settings.max_per_page,
        description="Items per page",
    ),
    pipeline: RankingPipeline = Depends(get_ranking_pipeline),
):
    """
    Find items similar to a specific item.

    Contributors: 3 points each, owner: 2 points, tags: 1 point each.
    """
    try:
        result = await pipeline.rank_similar(user_id, item_id, page=page, per_page=per_page)
    except RankingError as e:
        raise _http_error(e) from e
    return _to_response(result)
