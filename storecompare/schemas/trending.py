from datetime import datetime
from typing import List

from pydantic import BaseModel, Field


class SearchRequest(BaseModel):
    query: str = Field(..., description="Raw search text as typed by the shopper")


class TrendingCounter(BaseModel):
    """Popularity tally for one normalized search query."""
    query: str
    count: int
    last_searched: datetime


class TrendingResponse(BaseModel):
    """Response model for the trending searches endpoint."""
    searches: List[TrendingCounter]
