"""
Pydantic schemas for the multi-store comparison API.
"""
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field


class WishItem(BaseModel):
    """A product the shopper wants, with how many of it."""
    product_id: str
    quantity: int = Field(1, description="Must be at least 1")


class ComparisonRequest(BaseModel):
    store_ids: List[str] = Field(..., description="2 or 3 candidate store ids")
    wish_list: List[WishItem] = Field(..., description="Items to price across the stores")
    max_stores: Optional[int] = Field(
        None, description="Cap on distinct stores in the allocation plan, 2 or 3"
    )


class MatchedItem(BaseModel):
    product_id: str
    quantity: int
    listing_id: str
    unit_price: Decimal
    line_total: Decimal


class StoreBreakdown(BaseModel):
    store_id: str
    store_name: Optional[str] = None
    matched: List[MatchedItem]
    missing: List[str] = Field(..., description="Requested product ids this store cannot supply")
    subtotal: Decimal
    coverage: float = Field(..., description="matched count / requested count")
    has_all_items: bool


class ItemPrice(BaseModel):
    store_id: str
    listing_id: str
    unit_price: Decimal
    is_cheapest: bool
    difference: Decimal = Field(..., description="Amount above the cheapest unit price")


class ItemComparison(BaseModel):
    product_id: str
    quantity: int
    prices: List[ItemPrice]
    cheapest_store_id: Optional[str] = None


class PlanAssignment(BaseModel):
    product_id: str
    quantity: int
    store_id: str
    listing_id: str
    unit_price: Decimal
    line_total: Decimal


class AllocationPlan(BaseModel):
    max_stores: int
    stores_used: List[str]
    assignments: List[PlanAssignment]
    unassigned: List[str] = Field(
        ..., description="Available product ids dropped to respect the store cap"
    )
    total: Decimal


class ComparisonResult(BaseModel):
    stores: List[StoreBreakdown]
    items: List[ItemComparison]
    allocation: AllocationPlan
    missing: List[str] = Field(..., description="Product ids no candidate store can supply")
    cheapest_full_store_id: Optional[str] = None
    cheapest_full_total: Optional[Decimal] = None
    max_savings: Decimal = Field(..., description="Spread between full-coverage store totals")
    allocation_savings: Decimal = Field(
        ..., description="Cheapest full-coverage total minus the allocation total"
    )
