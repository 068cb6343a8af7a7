"""
Schemas package initialization
"""

from storecompare.schemas.comparison import (
    AllocationPlan,
    ComparisonRequest,
    ComparisonResult,
    StoreBreakdown,
    WishItem,
)
from storecompare.schemas.listing import Listing, ListingPriceUpdate, ListingPriceUpdateResponse
from storecompare.schemas.notifications import Notification
from storecompare.schemas.price_history import PriceDropEvent, PriceHistoryEntry, PriceHistoryResponse
from storecompare.schemas.trending import SearchRequest, TrendingCounter, TrendingResponse

__all__ = [
    "AllocationPlan",
    "ComparisonRequest",
    "ComparisonResult",
    "StoreBreakdown",
    "WishItem",
    "Listing",
    "ListingPriceUpdate",
    "ListingPriceUpdateResponse",
    "Notification",
    "PriceDropEvent",
    "PriceHistoryEntry",
    "PriceHistoryResponse",
    "SearchRequest",
    "TrendingCounter",
    "TrendingResponse",
]
