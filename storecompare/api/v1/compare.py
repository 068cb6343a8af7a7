import logging

from fastapi import APIRouter, Depends

from storecompare.api.deps import get_comparison_engine, http_error
from storecompare.errors import EngineError
from storecompare.schemas.comparison import ComparisonRequest, ComparisonResult
from storecompare.services.comparison_engine import ComparisonEngine

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/compare", response_model=ComparisonResult)
async def compare_stores(
    request: ComparisonRequest,
    engine: ComparisonEngine = Depends(get_comparison_engine),
) -> ComparisonResult:
    """
    Price a wish list across 2 or 3 stores.

    Returns per-store subtotals and coverage, the cheapest store per item, and
    an allocation plan that buys every available item using at most
    `max_stores` stores.
    """
    try:
        return await engine.compare(request.store_ids, request.wish_list, request.max_stores)
    except EngineError as e:
        raise http_error(e)
