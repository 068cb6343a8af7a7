"""
Listing price write path: persist a new price, then let the tracker record it.
"""
import logging
from decimal import Decimal

from storecompare.errors import InvalidPrice, ListingNotFound, UpstreamUnavailable
from storecompare.schemas.listing import ListingPriceUpdateResponse
from storecompare.services.price_history_service import PriceHistoryTracker
from storecompare.services.stores import ListingStore

logger = logging.getLogger(__name__)

MAX_UPDATE_ATTEMPTS = 5


class ListingService:
    def __init__(self, listings: ListingStore, tracker: PriceHistoryTracker, max_attempts: int = MAX_UPDATE_ATTEMPTS):
        self.listings = listings
        self.tracker = tracker
        self.max_attempts = max_attempts

    def update_price(self, listing_id: str, new_price: Decimal) -> ListingPriceUpdateResponse:
        """
        Set a listing's price and track the change.

        The write only lands if the price is still the one just read, so every
        history entry pairs two consecutive prices even when writers race; a
        lost race re-reads and tries again. A concurrent comparison may read
        either the old or the new price.

        Raises:
            InvalidPrice: If new_price is negative.
            ListingNotFound: If the listing does not exist.
            UpstreamUnavailable: If a store fails, or the price keeps changing
                underneath every attempt.
        """
        new_price = Decimal(str(new_price))
        if new_price < 0:
            raise InvalidPrice(f"Price must not be negative, got {new_price}")

        for attempt in range(1, self.max_attempts + 1):
            current = self.listings.get_by_id(listing_id)
            if current is None:
                raise ListingNotFound(f"Listing {listing_id} not found")

            if current.price == new_price:
                return ListingPriceUpdateResponse(
                    listing=current,
                    previous_price=current.price,
                    price_changed=False,
                )

            stored = self.listings.update(listing_id, new_price, expected_price=current.price)
            if stored is not None:
                break
            logger.info(f"Listing {listing_id} changed during price update (attempt {attempt}), retrying")
        else:
            raise UpstreamUnavailable(
                f"Listing {listing_id} kept changing, gave up after {self.max_attempts} attempts"
            )

        listing = current.model_copy(update={"price": stored.price, "updated_at": stored.updated_at})
        entry = self.tracker.on_price_change(listing_id, current.price, stored.price, stored.updated_at)

        return ListingPriceUpdateResponse(
            listing=listing,
            previous_price=current.price,
            price_changed=entry is not None,
            history_entry_id=entry.id if entry is not None else None,
        )
