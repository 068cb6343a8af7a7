from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from storecompare.schemas.listing import Listing


class PriceHistoryEntry(BaseModel):
    id: Optional[str] = Field(None, description="Assigned by the history store on append")
    listing_id: str
    old_price: Decimal
    new_price: Decimal
    changed_at: datetime


class PriceDropEvent(BaseModel):
    """Published by the tracker when a listing gets cheaper."""
    listing_id: str
    old_price: Decimal
    new_price: Decimal
    magnitude: Decimal = Field(..., description="old_price - new_price")
    percentage: int = Field(..., description="Drop as a whole percent of old_price")
    occurred_at: datetime


class PriceHistoryPoint(BaseModel):
    id: Optional[str] = None
    old_price: Decimal
    new_price: Decimal
    changed_at: datetime


class PriceHistoryResponse(BaseModel):
    listing: Listing = Field(..., description="Product, store and current price of the listing")
    history: List[PriceHistoryPoint] = Field(..., description="Price changes in chronological order")
    price_dropped: bool = Field(..., description="True when the latest change lowered the price")
