"""
Shared fixtures: in-memory stand-ins for the Supabase-backed stores.
"""
import itertools
import threading
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

import pytest

from storecompare.errors import UpstreamUnavailable
from storecompare.schemas.listing import Listing
from storecompare.schemas.notifications import Notification
from storecompare.schemas.price_history import PriceHistoryEntry
from storecompare.services.catalog_index import CatalogIndex
from storecompare.services.comparison_engine import ComparisonEngine

T0 = datetime(2026, 1, 1, 9, 0, tzinfo=timezone.utc)


def make_listing(store_id: str, product_id: str, price: str, in_stock: bool = True) -> Listing:
    return Listing(
        id=f"{store_id}-{product_id}",
        store_id=store_id,
        product_id=product_id,
        price=Decimal(price),
        in_stock=in_stock,
        updated_at=T0,
        product_name=product_id.title(),
        store_name=store_id.upper(),
    )


class FakeListingStore:
    def __init__(self, listings: Iterable[Listing] = (), stores: Optional[Dict[str, str]] = None):
        self.listings: Dict[str, Listing] = {listing.id: listing for listing in listings}
        self.stores = stores if stores is not None else {l.store_id: l.store_id.upper() for l in self.listings.values()}
        self.update_calls = 0
        self._write_lock = threading.Lock()

    def get(self, store_id, product_id):
        for listing in self.listings.values():
            if listing.store_id == store_id and listing.product_id == product_id:
                return listing
        return None

    def get_by_id(self, listing_id):
        return self.listings.get(listing_id)

    def batch_get(self, store_id, product_ids):
        wanted = set(product_ids)
        return [l for l in self.listings.values() if l.store_id == store_id and l.product_id in wanted]

    def get_stores(self, store_ids):
        return {store_id: self.stores[store_id] for store_id in store_ids if store_id in self.stores}

    def update(self, listing_id, new_price, expected_price):
        with self._write_lock:
            current = self.listings.get(listing_id)
            if current is None or current.price != Decimal(expected_price):
                return None
            self.update_calls += 1
            listing = current.model_copy(
                update={"price": Decimal(new_price), "updated_at": T0 + timedelta(minutes=self.update_calls)}
            )
            self.listings[listing_id] = listing
            return listing


class BrokenListingStore(FakeListingStore):
    """Listing store whose lookups fail the way an unreachable database does."""

    def batch_get(self, store_id, product_ids):
        raise ConnectionError("connection reset by peer")


class FakeHistoryStore:
    def __init__(self):
        self.entries: List[PriceHistoryEntry] = []
        self._ids = itertools.count(1)

    def append(self, entry):
        stored = entry.model_copy(update={"id": str(next(self._ids))})
        self.entries.append(stored)
        return stored

    def query(self, listing_id, limit, order="desc"):
        rows = [(i, e) for i, e in enumerate(self.entries) if e.listing_id == listing_id]
        rows.sort(key=lambda row: (row[1].changed_at, row[0]), reverse=(order == "desc"))
        return [e for _, e in rows[:limit]]


class FakeNotificationStore:
    def __init__(self):
        self.notifications: List[Notification] = []
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def create(self, user_id, type, title, message):
        with self._lock:
            notification = Notification(
                id=str(next(self._ids)),
                user_id=user_id,
                type=type,
                title=title,
                message=message,
                read=False,
                created_at=T0 + timedelta(seconds=len(self.notifications)),
            )
            self.notifications.append(notification)
            return notification

    def _for(self, user_id):
        return sorted(
            (n for n in self.notifications if n.user_id == user_id),
            key=lambda n: n.created_at,
            reverse=True,
        )

    def list_unread(self, user_id):
        return [n for n in self._for(user_id) if not n.read]

    def list_recent(self, user_id, limit=20):
        return self._for(user_id)[:limit]

    def unread_count(self, user_id):
        return len(self.list_unread(user_id))

    def mark_read(self, notification_id, user_id=None):
        for i, n in enumerate(self.notifications):
            if n.id == notification_id and (user_id is None or n.user_id == user_id):
                self.notifications[i] = n.model_copy(update={"read": True})
                return True
        return False

    def mark_all_read(self, user_id):
        return sum(1 for n in self.list_unread(user_id) if self.mark_read(n.id, user_id))


class FailingNotificationStore(FakeNotificationStore):
    def create(self, user_id, type, title, message):
        raise UpstreamUnavailable("notifications.create failed: timeout")


class FakeWatcherStore:
    def __init__(self, watchers: Optional[Dict[str, List[str]]] = None):
        self.watchers = watchers or {}

    def watchers_for_product(self, product_id):
        return sorted(set(self.watchers.get(product_id, [])))


# Three stores, five products. s1 has no cheese; butter is cheapest at s1,
# bread at s2, milk and eggs at s3; salt costs the same at s1 and s2.
GROCERY_LISTINGS = [
    make_listing("s1", "milk", "1.00"),
    make_listing("s1", "bread", "2.00"),
    make_listing("s1", "eggs", "3.00"),
    make_listing("s1", "butter", "1.00"),
    make_listing("s1", "salt", "1.00"),
    make_listing("s2", "milk", "1.20"),
    make_listing("s2", "bread", "1.50"),
    make_listing("s2", "eggs", "3.50"),
    make_listing("s2", "cheese", "4.00"),
    make_listing("s2", "butter", "2.00"),
    make_listing("s2", "salt", "1.00"),
    make_listing("s3", "milk", "0.90"),
    make_listing("s3", "bread", "2.50"),
    make_listing("s3", "eggs", "2.80"),
    make_listing("s3", "cheese", "4.50"),
    make_listing("s3", "butter", "2.00"),
]


@pytest.fixture
def listing_store():
    return FakeListingStore(GROCERY_LISTINGS)


@pytest.fixture
def catalog(listing_store):
    return CatalogIndex(listing_store)


@pytest.fixture
def engine(catalog):
    return ComparisonEngine(catalog, max_allocation_stores=2)


@pytest.fixture
def history_store():
    return FakeHistoryStore()


@pytest.fixture
def notification_store():
    return FakeNotificationStore()
