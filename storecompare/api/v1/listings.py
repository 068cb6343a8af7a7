import logging

from fastapi import APIRouter, Depends, Path, Query

from storecompare.api.deps import (
    get_catalog_index,
    get_listing_service,
    get_price_history_tracker,
    http_error,
)
from storecompare.config import settings
from storecompare.errors import EngineError
from storecompare.schemas.listing import Listing, ListingPriceUpdate, ListingPriceUpdateResponse
from storecompare.schemas.price_history import PriceHistoryResponse
from storecompare.services.async_query_service import async_query_service
from storecompare.services.catalog_index import CatalogIndex
from storecompare.services.listing_service import ListingService
from storecompare.services.price_history_service import PriceHistoryTracker

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/stores/{store_id}/listings/{product_id}", response_model=Listing)
async def get_store_listing(
    store_id: str = Path(..., description="Store id"),
    product_id: str = Path(..., description="Canonical product id"),
    catalog: CatalogIndex = Depends(get_catalog_index),
) -> Listing:
    """Get one store's listing of a product."""
    try:
        return await async_query_service.run(catalog.resolve, store_id, product_id, operation="resolve_listing")
    except EngineError as e:
        raise http_error(e)


@router.put("/listings/{listing_id}/price", response_model=ListingPriceUpdateResponse)
async def update_listing_price(
    update: ListingPriceUpdate,
    listing_id: str = Path(..., description="Listing id"),
    service: ListingService = Depends(get_listing_service),
) -> ListingPriceUpdateResponse:
    """
    Set a listing's price.

    A real change is appended to the listing's price history; a drop also
    notifies shoppers who saved the product.
    """
    try:
        return await async_query_service.run(
            service.update_price, listing_id, update.price, operation="update_listing_price"
        )
    except EngineError as e:
        raise http_error(e)


@router.get("/listings/{listing_id}/price-history", response_model=PriceHistoryResponse)
async def get_price_history(
    listing_id: str = Path(..., description="Listing id"),
    limit: int = Query(settings.PRICE_HISTORY_DEFAULT_LIMIT, ge=1, le=365, description="Number of changes to return"),
    tracker: PriceHistoryTracker = Depends(get_price_history_tracker),
) -> PriceHistoryResponse:
    """Recent price changes of a listing, oldest first."""
    try:
        return await async_query_service.run(tracker.history_view, listing_id, limit, operation="price_history")
    except EngineError as e:
        raise http_error(e)
