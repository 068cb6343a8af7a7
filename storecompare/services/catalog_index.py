"""
Catalog index: resolves canonical product ids to one store's listings.
Matching is exact on product id; this module never writes.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from storecompare.errors import ListingNotFound
from storecompare.schemas.comparison import WishItem
from storecompare.schemas.listing import Listing
from storecompare.services.stores import ListingReader

logger = logging.getLogger(__name__)


@dataclass
class StoreResolution:
    """Matches and misses of one store against a wish list, in wish-list order."""
    store_id: str
    matches: List[Tuple[WishItem, Listing]] = field(default_factory=list)
    missing: List[WishItem] = field(default_factory=list)


class CatalogIndex:
    def __init__(self, listings: ListingReader):
        self.listings = listings

    def resolve(self, store_id: str, product_id: str) -> Listing:
        """
        Return the store's listing for product_id.

        Raises:
            ListingNotFound: If the store does not list the product.
        """
        listing = self.listings.get(store_id, product_id)
        if listing is None:
            raise ListingNotFound(f"Store {store_id} has no listing for product {product_id}")
        return listing

    def resolve_batch(self, store_id: str, wish_list: List[WishItem]) -> StoreResolution:
        """
        Split a wish list into items the store can supply and items it cannot.
        A listing that is out of stock counts as missing.
        """
        found = self.listings.batch_get(store_id, [item.product_id for item in wish_list])
        by_product: Dict[str, Listing] = {}
        for listing in found:
            if listing.store_id != store_id:
                continue
            by_product[listing.product_id] = listing

        resolution = StoreResolution(store_id=store_id)
        for item in wish_list:
            listing = by_product.get(item.product_id)
            if listing is not None and listing.in_stock:
                resolution.matches.append((item, listing))
            else:
                resolution.missing.append(item)

        logger.debug(
            f"Store {store_id}: {len(resolution.matches)} matched, {len(resolution.missing)} missing"
        )
        return resolution

    def known_stores(self, store_ids: Iterable[str]) -> Dict[str, Optional[str]]:
        """Map of the given ids that exist to their display names."""
        return self.listings.get_stores(store_ids)
