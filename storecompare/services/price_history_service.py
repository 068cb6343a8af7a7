"""
Price history tracker.

Called after a listing's price is written. Records one immutable history entry
per actual change and publishes a PriceDropEvent when the price went down.
"""
import logging
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, List, Optional

from storecompare.config import settings
from storecompare.errors import InvalidPrice, ListingNotFound
from storecompare.schemas.price_history import (
    PriceDropEvent,
    PriceHistoryEntry,
    PriceHistoryPoint,
    PriceHistoryResponse,
)
from storecompare.services.stores import HistoryStore, ListingReader, utc_now

logger = logging.getLogger(__name__)

PriceDropSubscriber = Callable[[PriceDropEvent], None]


def drop_percentage(old_price: Decimal, new_price: Decimal) -> int:
    """(old - new) / old as a whole percent, halves rounded up. old_price must be > 0."""
    ratio = (old_price - new_price) / old_price * 100
    return int(ratio.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class PriceHistoryTracker:
    def __init__(
        self,
        history: HistoryStore,
        listings: Optional[ListingReader] = None,
        subscribers: Optional[List[PriceDropSubscriber]] = None,
    ):
        self.history_store = history
        self.listings = listings
        self._subscribers: List[PriceDropSubscriber] = list(subscribers or [])

    def subscribe(self, subscriber: PriceDropSubscriber) -> None:
        self._subscribers.append(subscriber)

    def on_price_change(
        self,
        listing_id: str,
        old_price: Decimal,
        new_price: Decimal,
        timestamp: Optional[datetime] = None,
    ) -> Optional[PriceHistoryEntry]:
        """
        Record a listing price change.

        Returns the stored entry, or None when the price did not change.

        Raises:
            InvalidPrice: If either price is negative.
            UpstreamUnavailable: If the history store fails.
        """
        old_price = Decimal(str(old_price))
        new_price = Decimal(str(new_price))
        if new_price < 0:
            raise InvalidPrice(f"Price must not be negative, got {new_price}")
        if old_price < 0:
            raise InvalidPrice(f"Previous price must not be negative, got {old_price}")

        if old_price == new_price:
            logger.debug(f"Listing {listing_id} re-saved at {new_price}, nothing to record")
            return None

        changed_at = timestamp or utc_now()
        entry = self.history_store.append(
            PriceHistoryEntry(
                listing_id=listing_id,
                old_price=old_price,
                new_price=new_price,
                changed_at=changed_at,
            )
        )
        logger.info(f"Recorded price change for listing {listing_id}: {old_price} -> {new_price}")

        # A drop from 0 has no meaningful percentage, so it is recorded but not flagged
        if new_price < old_price and old_price > 0:
            self._publish(
                PriceDropEvent(
                    listing_id=listing_id,
                    old_price=old_price,
                    new_price=new_price,
                    magnitude=old_price - new_price,
                    percentage=drop_percentage(old_price, new_price),
                    occurred_at=changed_at,
                )
            )
        return entry

    def _publish(self, event: PriceDropEvent) -> None:
        for subscriber in self._subscribers:
            try:
                subscriber(event)
            except Exception as e:
                # Notification problems must never fail the price update
                logger.error(f"Price drop subscriber failed for listing {event.listing_id}: {e}")

    def history(self, listing_id: str, limit: int = settings.PRICE_HISTORY_DEFAULT_LIMIT) -> List[PriceHistoryEntry]:
        """Entries for the listing, most recent first."""
        return self.history_store.query(listing_id, limit, order="desc")

    def history_view(self, listing_id: str, limit: int = settings.PRICE_HISTORY_DEFAULT_LIMIT) -> PriceHistoryResponse:
        """Listing summary plus its recent changes in chronological order, for charting."""
        if self.listings is None:
            raise RuntimeError("history_view needs a listing store")
        listing = self.listings.get_by_id(listing_id)
        if listing is None:
            raise ListingNotFound(f"Listing {listing_id} not found")

        entries = self.history(listing_id, limit)
        price_dropped = bool(entries) and entries[0].new_price < entries[0].old_price
        return PriceHistoryResponse(
            listing=listing,
            history=[
                PriceHistoryPoint(
                    id=entry.id,
                    old_price=entry.old_price,
                    new_price=entry.new_price,
                    changed_at=entry.changed_at,
                )
                for entry in reversed(entries)
            ],
            price_dropped=price_dropped,
        )
