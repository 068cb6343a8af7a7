"""
Multi-store comparison engine.

Given a wish list and 2-3 candidate stores, produces per-store subtotals and
coverage, the cheapest store for every item, and an allocation plan that splits
the basket across at most `max_stores` stores at minimum cost.

Tie-break policy, relied on by the UI's "best price" highlighting:
  - the cheapest store for an item is the lowest price, then the lowest store id;
  - when the allocation has to shed a store, it sheds the one whose removal
    loses the fewest items, then the least savings, then the highest store id.
"""
import logging
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from storecompare.config import settings
from storecompare.errors import (
    CallerError,
    EmptyWishList,
    InsufficientStores,
    InvalidWishList,
    TooManyStores,
    UnknownStore,
)
from storecompare.schemas.comparison import (
    AllocationPlan,
    ComparisonResult,
    ItemComparison,
    ItemPrice,
    MatchedItem,
    PlanAssignment,
    StoreBreakdown,
    WishItem,
)
from storecompare.schemas.listing import Listing
from storecompare.services.async_query_service import async_query_service
from storecompare.services.catalog_index import CatalogIndex, StoreResolution

logger = logging.getLogger(__name__)

ZERO = Decimal("0")

# product_id -> store_id -> available listing
Offers = Dict[str, Dict[str, Listing]]


def cheapest_listing(candidates: Iterable[Listing]) -> Listing:
    """Lowest price wins; equal prices go to the lowest store id."""
    return min(candidates, key=lambda listing: (listing.price, listing.store_id))


def _basket_cost(coverable: Sequence[WishItem], offers: Offers, stores: Set[str]) -> Tuple[int, Decimal]:
    """(items no store in `stores` can supply, cost of the rest at their cheapest store)."""
    lost = 0
    cost = ZERO
    for item in coverable:
        prices = [listing.price for store_id, listing in offers[item.product_id].items() if store_id in stores]
        if not prices:
            lost += 1
            continue
        cost += min(prices) * item.quantity
    return lost, cost


def _shed_one_store(coverable: Sequence[WishItem], offers: Offers, used: List[str]) -> List[str]:
    _, base_cost = _basket_cost(coverable, offers, set(used))
    candidates = []
    # Highest id first so min() below keeps lower ids among equally good drops.
    for store_id in sorted(used, reverse=True):
        remaining = [s for s in used if s != store_id]
        lost, cost = _basket_cost(coverable, offers, set(remaining))
        candidates.append((lost, cost - base_cost, store_id, remaining))

    lost, savings_lost, dropped, remaining = min(candidates, key=lambda c: (c[0], c[1]))
    logger.debug(f"Allocation drops store {dropped}: {lost} item(s) lost, {savings_lost} savings lost")
    return remaining


def allocate(wish_list: Sequence[WishItem], offers: Offers, max_stores: int) -> AllocationPlan:
    """
    Assign every coverable wish item to one store using at most max_stores stores.

    Starts from each item's cheapest store and, while too many stores are in
    play, sheds stores greedily, moving their items to the cheapest store still
    selected. Items left without any selected store are reported as unassigned.
    """
    coverable = [item for item in wish_list if offers[item.product_id]]
    used = sorted({cheapest_listing(offers[item.product_id].values()).store_id for item in coverable})
    while len(used) > max_stores:
        used = _shed_one_store(coverable, offers, used)

    selected = set(used)
    assignments: List[PlanAssignment] = []
    unassigned: List[str] = []
    for item in coverable:
        candidates = [listing for store_id, listing in offers[item.product_id].items() if store_id in selected]
        if not candidates:
            unassigned.append(item.product_id)
            continue
        listing = cheapest_listing(candidates)
        assignments.append(
            PlanAssignment(
                product_id=item.product_id,
                quantity=item.quantity,
                store_id=listing.store_id,
                listing_id=listing.id,
                unit_price=listing.price,
                line_total=listing.price * item.quantity,
            )
        )

    return AllocationPlan(
        max_stores=max_stores,
        stores_used=sorted({a.store_id for a in assignments}),
        assignments=assignments,
        unassigned=unassigned,
        total=sum((a.line_total for a in assignments), ZERO),
    )


def _store_breakdown(resolution: StoreResolution, requested: int, store_name: Optional[str]) -> StoreBreakdown:
    matched = [
        MatchedItem(
            product_id=item.product_id,
            quantity=item.quantity,
            listing_id=listing.id,
            unit_price=listing.price,
            line_total=listing.price * item.quantity,
        )
        for item, listing in resolution.matches
    ]
    return StoreBreakdown(
        store_id=resolution.store_id,
        store_name=store_name,
        matched=matched,
        missing=[item.product_id for item in resolution.missing],
        subtotal=sum((m.line_total for m in matched), ZERO),
        coverage=len(matched) / requested,
        has_all_items=len(matched) == requested,
    )


def _item_comparison(item: WishItem, store_offers: Dict[str, Listing]) -> ItemComparison:
    if not store_offers:
        return ItemComparison(product_id=item.product_id, quantity=item.quantity, prices=[])

    best = cheapest_listing(store_offers.values())
    prices = [
        ItemPrice(
            store_id=store_id,
            listing_id=listing.id,
            unit_price=listing.price,
            is_cheapest=listing.price == best.price,
            difference=listing.price - best.price,
        )
        for store_id, listing in sorted(store_offers.items())
    ]
    return ItemComparison(
        product_id=item.product_id,
        quantity=item.quantity,
        prices=prices,
        cheapest_store_id=best.store_id,
    )


def build_comparison(
    store_ids: Sequence[str],
    wish_list: Sequence[WishItem],
    resolutions: Dict[str, StoreResolution],
    max_stores: int,
    store_names: Optional[Dict[str, Optional[str]]] = None,
) -> ComparisonResult:
    """Pure part of a comparison: everything after the listings are resolved."""
    store_names = store_names or {}
    requested = len(wish_list)

    offers: Offers = {item.product_id: {} for item in wish_list}
    breakdowns = []
    for store_id in sorted(store_ids):
        resolution = resolutions[store_id]
        for item, listing in resolution.matches:
            offers[item.product_id][store_id] = listing
        breakdowns.append(_store_breakdown(resolution, requested, store_names.get(store_id)))

    # Full-coverage stores first by total, then partial ones by coverage and total
    breakdowns.sort(key=lambda b: (not b.has_all_items, -len(b.matched), b.subtotal, b.store_id))

    plan = allocate(wish_list, offers, max_stores)

    full_stores = [b for b in breakdowns if b.has_all_items]
    cheapest_full = full_stores[0] if full_stores else None
    max_savings = full_stores[-1].subtotal - full_stores[0].subtotal if len(full_stores) >= 2 else ZERO

    return ComparisonResult(
        stores=breakdowns,
        items=[_item_comparison(item, offers[item.product_id]) for item in wish_list],
        allocation=plan,
        missing=[item.product_id for item in wish_list if not offers[item.product_id]],
        cheapest_full_store_id=cheapest_full.store_id if cheapest_full else None,
        cheapest_full_total=cheapest_full.subtotal if cheapest_full else None,
        max_savings=max_savings,
        allocation_savings=cheapest_full.subtotal - plan.total if cheapest_full else ZERO,
    )


class ComparisonEngine:
    def __init__(
        self,
        catalog: CatalogIndex,
        max_allocation_stores: int = settings.MAX_ALLOCATION_STORES,
        min_compare_stores: int = settings.MIN_COMPARE_STORES,
        max_compare_stores: int = settings.MAX_COMPARE_STORES,
    ):
        self.catalog = catalog
        self.max_allocation_stores = max_allocation_stores
        self.min_compare_stores = min_compare_stores
        self.max_compare_stores = max_compare_stores

    def validate(self, store_ids: Sequence[str], wish_list: Sequence[WishItem]) -> List[str]:
        """Check caller input and return the distinct store ids in ascending order."""
        if not wish_list:
            raise EmptyWishList("Wish list must contain at least one item")

        seen = set()
        for item in wish_list:
            if not item.product_id or not item.product_id.strip():
                raise InvalidWishList("Every wish list item needs a product id")
            if item.quantity < 1:
                raise InvalidWishList(f"Quantity for product {item.product_id} must be at least 1")
            if item.product_id in seen:
                raise InvalidWishList(f"Product {item.product_id} appears more than once in the wish list")
            seen.add(item.product_id)

        distinct = sorted({store_id.strip() for store_id in store_ids if store_id and store_id.strip()})
        if len(distinct) < self.min_compare_stores:
            raise InsufficientStores(
                f"Select {self.min_compare_stores} or {self.max_compare_stores} stores to compare"
            )
        if len(distinct) > self.max_compare_stores:
            raise TooManyStores(f"At most {self.max_compare_stores} stores can be compared at once")
        return distinct

    def allocation_cap(self, max_stores: Optional[int]) -> int:
        cap = self.max_allocation_stores if max_stores is None else max_stores
        if not self.min_compare_stores <= cap <= self.max_compare_stores:
            raise CallerError(
                f"max_stores must be between {self.min_compare_stores} and {self.max_compare_stores}"
            )
        return cap

    async def compare(
        self,
        store_ids: Sequence[str],
        wish_list: Sequence[WishItem],
        max_stores: Optional[int] = None,
    ) -> ComparisonResult:
        """
        Compare the wish list across the candidate stores.

        Raises:
            EmptyWishList, InvalidWishList, InsufficientStores, TooManyStores,
            UnknownStore: bad input.
            UpstreamUnavailable: the listing store failed or timed out.
        """
        wish_list = list(wish_list)
        ids = self.validate(store_ids, wish_list)
        cap = self.allocation_cap(max_stores)

        store_names = await async_query_service.run(self.catalog.known_stores, ids, operation="known_stores")
        unknown = [store_id for store_id in ids if store_id not in store_names]
        if unknown:
            raise UnknownStore(unknown)

        # One lookup per store, issued together and joined before allocating
        resolutions = await async_query_service.run_parallel(
            {store_id: (self.catalog.resolve_batch, store_id, wish_list) for store_id in ids}
        )

        result = build_comparison(ids, wish_list, resolutions, cap, store_names)
        logger.info(
            f"Compared {len(wish_list)} item(s) across {len(ids)} stores: "
            f"allocation total {result.allocation.total} over {len(result.allocation.stores_used)} store(s)"
        )
        return result
