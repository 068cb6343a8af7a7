"""
Listing (store product) schema definitions.
"""
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field


class Listing(BaseModel):
    """One store's priced offer of a canonical product."""
    id: str = Field(..., description="Listing (store product) id")
    store_id: str
    product_id: str
    price: Decimal = Field(..., ge=0, description="Current price; 0 is a valid offer")
    in_stock: bool = Field(True, description="Availability flag, distinct from price")
    updated_at: Optional[datetime] = None
    product_name: Optional[str] = None
    store_name: Optional[str] = None


class ListingPriceUpdate(BaseModel):
    price: Decimal = Field(..., description="New listing price")


class ListingPriceUpdateResponse(BaseModel):
    listing: Listing
    previous_price: Decimal
    price_changed: bool = Field(..., description="False when the write repeated the current price")
    history_entry_id: Optional[str] = None
