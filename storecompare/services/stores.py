"""
Collaborator stores used by the engine.

Each store is described by a Protocol (what the engine needs) and implemented
against Supabase tables. Every Supabase failure is logged and re-raised as
UpstreamUnavailable so callers see one error type for a degraded collaborator.
"""
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol

from storecompare.db.supabase_client import get_supabase_client
from storecompare.errors import UpstreamUnavailable
from storecompare.schemas.listing import Listing
from storecompare.schemas.notifications import Notification
from storecompare.schemas.price_history import PriceHistoryEntry

logger = logging.getLogger(__name__)

LISTING_COLUMNS = "id, store_id, product_id, price, in_stock, updated_at, products(name), stores(name)"


class ListingReader(Protocol):
    def get(self, store_id: str, product_id: str) -> Optional[Listing]: ...

    def get_by_id(self, listing_id: str) -> Optional[Listing]: ...

    def batch_get(self, store_id: str, product_ids: List[str]) -> List[Listing]: ...

    def get_stores(self, store_ids: Iterable[str]) -> Dict[str, Optional[str]]: ...


class ListingStore(ListingReader, Protocol):
    def update(self, listing_id: str, new_price: Decimal, expected_price: Decimal) -> Optional[Listing]:
        """Set the price only if it still equals expected_price; None when it did not."""
        ...


class HistoryStore(Protocol):
    def append(self, entry: PriceHistoryEntry) -> PriceHistoryEntry: ...

    def query(self, listing_id: str, limit: int, order: str = "desc") -> List[PriceHistoryEntry]: ...


class NotificationStore(Protocol):
    def create(self, user_id: str, type: str, title: str, message: str) -> Notification: ...

    def list_unread(self, user_id: str) -> List[Notification]: ...

    def list_recent(self, user_id: str, limit: int = 20) -> List[Notification]: ...

    def unread_count(self, user_id: str) -> int: ...

    def mark_read(self, notification_id: str, user_id: Optional[str] = None) -> bool: ...

    def mark_all_read(self, user_id: str) -> int: ...


class WatcherStore(Protocol):
    def watchers_for_product(self, product_id: str) -> List[str]: ...


def utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)


def _to_decimal(value: Any) -> Decimal:
    return Decimal(str(value))


def _embedded_name(row: Dict[str, Any], relation: str) -> Optional[str]:
    embedded = row.get(relation)
    if isinstance(embedded, dict):
        return embedded.get("name")
    return None


def listing_from_row(row: Dict[str, Any]) -> Listing:
    return Listing(
        id=str(row["id"]),
        store_id=str(row["store_id"]),
        product_id=str(row["product_id"]),
        price=_to_decimal(row["price"]),
        in_stock=bool(row.get("in_stock", True)),
        updated_at=row.get("updated_at"),
        product_name=_embedded_name(row, "products"),
        store_name=_embedded_name(row, "stores"),
    )


class _SupabaseTable:
    table_name = ""

    def __init__(self, client_factory: Callable = get_supabase_client):
        self._client_factory = client_factory

    def _run(self, operation: str, build: Callable):
        """Build a query against this table, execute it and return the response."""
        try:
            query = build(self._client_factory().table(self.table_name))
            return query.execute()
        except Exception as e:
            logger.error(f"Supabase {self.table_name}.{operation} failed: {e}")
            raise UpstreamUnavailable(f"{self.table_name}.{operation} failed: {e}") from e


class SupabaseListingStore(_SupabaseTable):
    """Listings live in 'store_products'; store names come from 'stores'."""
    table_name = "store_products"

    def get(self, store_id: str, product_id: str) -> Optional[Listing]:
        response = self._run(
            "get",
            lambda t: t.select(LISTING_COLUMNS).eq("store_id", store_id).eq("product_id", product_id).limit(1),
        )
        return listing_from_row(response.data[0]) if response.data else None

    def get_by_id(self, listing_id: str) -> Optional[Listing]:
        response = self._run("get_by_id", lambda t: t.select(LISTING_COLUMNS).eq("id", listing_id).limit(1))
        return listing_from_row(response.data[0]) if response.data else None

    def batch_get(self, store_id: str, product_ids: List[str]) -> List[Listing]:
        if not product_ids:
            return []
        response = self._run(
            "batch_get",
            lambda t: t.select(LISTING_COLUMNS).eq("store_id", store_id).in_("product_id", list(product_ids)),
        )
        return [listing_from_row(row) for row in response.data or []]

    def get_stores(self, store_ids: Iterable[str]) -> Dict[str, Optional[str]]:
        ids = list(store_ids)
        if not ids:
            return {}
        try:
            response = self._client_factory().table("stores").select("id, name").in_("id", ids).execute()
        except Exception as e:
            logger.error(f"Supabase stores.get_stores failed: {e}")
            raise UpstreamUnavailable(f"stores.get_stores failed: {e}") from e
        return {str(row["id"]): row.get("name") for row in response.data or []}

    def update(self, listing_id: str, new_price: Decimal, expected_price: Decimal) -> Optional[Listing]:
        payload = {"price": str(new_price), "updated_at": utc_now().isoformat()}
        # Compare-and-set: no row comes back when another writer changed the price first
        response = self._run(
            "update",
            lambda t: t.update(payload).eq("id", listing_id).eq("price", str(expected_price)),
        )
        if not response.data:
            return None
        return listing_from_row(response.data[0])


class SupabaseHistoryStore(_SupabaseTable):
    table_name = "price_history"

    @staticmethod
    def _entry_from_row(row: Dict[str, Any]) -> PriceHistoryEntry:
        return PriceHistoryEntry(
            id=str(row["id"]),
            listing_id=str(row["store_product_id"]),
            old_price=_to_decimal(row["old_price"]),
            new_price=_to_decimal(row["new_price"]),
            changed_at=row["changed_at"],
        )

    def append(self, entry: PriceHistoryEntry) -> PriceHistoryEntry:
        payload = {
            "store_product_id": entry.listing_id,
            "old_price": str(entry.old_price),
            "new_price": str(entry.new_price),
            "changed_at": entry.changed_at.isoformat(),
        }
        response = self._run("append", lambda t: t.insert(payload))
        if response.data:
            return self._entry_from_row(response.data[0])
        logger.warning(f"History entry for listing {entry.listing_id} stored but no row returned")
        return entry

    def query(self, listing_id: str, limit: int, order: str = "desc") -> List[PriceHistoryEntry]:
        response = self._run(
            "query",
            lambda t: t.select("id, store_product_id, old_price, new_price, changed_at")
            .eq("store_product_id", listing_id)
            .order("changed_at", desc=(order == "desc"))
            .limit(limit),
        )
        return [self._entry_from_row(row) for row in response.data or []]


class SupabaseNotificationStore(_SupabaseTable):
    table_name = "notifications"
    columns = "id, user_id, type, title, message, read, created_at"

    @staticmethod
    def _from_row(row: Dict[str, Any]) -> Notification:
        return Notification(
            id=str(row["id"]),
            user_id=str(row["user_id"]),
            type=row["type"],
            title=row["title"],
            message=row["message"],
            read=bool(row.get("read", False)),
            created_at=row["created_at"],
        )

    def create(self, user_id: str, type: str, title: str, message: str) -> Notification:
        payload = {
            "user_id": user_id,
            "type": type,
            "title": title,
            "message": message,
            "read": False,
            "created_at": utc_now().isoformat(),
        }
        response = self._run("create", lambda t: t.insert(payload))
        if not response.data:
            raise UpstreamUnavailable(f"Notification for {user_id} was not created")
        return self._from_row(response.data[0])

    def list_unread(self, user_id: str) -> List[Notification]:
        response = self._run(
            "list_unread",
            lambda t: t.select(self.columns).eq("user_id", user_id).eq("read", False).order("created_at", desc=True),
        )
        return [self._from_row(row) for row in response.data or []]

    def list_recent(self, user_id: str, limit: int = 20) -> List[Notification]:
        response = self._run(
            "list_recent",
            lambda t: t.select(self.columns).eq("user_id", user_id).order("created_at", desc=True).limit(limit),
        )
        return [self._from_row(row) for row in response.data or []]

    def unread_count(self, user_id: str) -> int:
        response = self._run(
            "unread_count",
            lambda t: t.select("id", count="exact").eq("user_id", user_id).eq("read", False),
        )
        return int(response.count or 0)

    def mark_read(self, notification_id: str, user_id: Optional[str] = None) -> bool:
        def build(t):
            query = t.update({"read": True}).eq("id", notification_id)
            if user_id is not None:
                query = query.eq("user_id", user_id)
            return query

        response = self._run("mark_read", build)
        return bool(response.data)

    def mark_all_read(self, user_id: str) -> int:
        # Row by row; a failed row is logged and the rest still get marked.
        updated = 0
        for notification in self.list_unread(user_id):
            try:
                if self.mark_read(notification.id, user_id):
                    updated += 1
            except UpstreamUnavailable as e:
                logger.warning(f"Could not mark notification {notification.id} read: {e}")
        return updated


class SupabaseWatcherStore(_SupabaseTable):
    """Shoppers who favorited a product are the audience for its price drops."""
    table_name = "userfavorites"

    def watchers_for_product(self, product_id: str) -> List[str]:
        response = self._run("watchers_for_product", lambda t: t.select("user_id").eq("product_id", product_id))
        return sorted({str(row["user_id"]) for row in response.data or []})
