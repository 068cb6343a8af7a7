import logging

from fastapi import APIRouter, Depends, Query

from storecompare.api.deps import get_trending_ranker, http_error
from storecompare.config import settings
from storecompare.errors import EngineError
from storecompare.schemas.trending import SearchRequest, TrendingCounter, TrendingResponse
from storecompare.services.async_query_service import async_query_service
from storecompare.services.trending_service import TrendingRanker

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/search", response_model=TrendingCounter)
async def record_search(
    request: SearchRequest,
    ranker: TrendingRanker = Depends(get_trending_ranker),
) -> TrendingCounter:
    """Count a search; returns the query's updated counter."""
    try:
        return await async_query_service.run(ranker.record_search, request.query, operation="record_search")
    except EngineError as e:
        raise http_error(e)


@router.get("/trending", response_model=TrendingResponse)
async def get_trending_searches(
    limit: int = Query(settings.TRENDING_DEFAULT_LIMIT, ge=1, le=100, description="Number of searches to return"),
    ranker: TrendingRanker = Depends(get_trending_ranker),
) -> TrendingResponse:
    """
    Most searched queries.

    Ordered by count, then by most recent search.
    """
    try:
        searches = await async_query_service.run(ranker.top_n, limit, operation="trending_top_n")
    except EngineError as e:
        raise http_error(e)
    return TrendingResponse(searches=searches)
