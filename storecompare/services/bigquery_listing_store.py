"""
Read-only listing source backed by the BigQuery warehouse.

Selected with DATA_SOURCE=bigquery. Comparisons then read the latest warehouse
snapshot of each listing; price writes still go through Supabase.
"""
import logging
import threading
from decimal import Decimal
from typing import Callable, Dict, Iterable, List, Optional

from google.cloud import bigquery

from storecompare.db.bigquery_client import get_bigquery_client, table_ref
from storecompare.errors import UpstreamUnavailable
from storecompare.schemas.listing import Listing

logger = logging.getLogger(__name__)


class BigQueryListingStore:
    def __init__(self, client_factory: Callable[[], bigquery.Client] = get_bigquery_client):
        self._client_factory = client_factory
        self._client: Optional[bigquery.Client] = None
        self._client_lock = threading.Lock()

    def _get_client(self) -> bigquery.Client:
        # Per-store lookups run in parallel threads; they share one client
        with self._client_lock:
            if self._client is None:
                self._client = self._client_factory()
            return self._client

    def _query(self, operation: str, query: str, params: List) -> List[Dict]:
        try:
            job_config = bigquery.QueryJobConfig(query_parameters=params)
            query_job = self._get_client().query(query, job_config=job_config)
            return [dict(row) for row in query_job.result()]
        except Exception as e:
            logger.error(f"BigQuery {operation} failed: {e}")
            raise UpstreamUnavailable(f"warehouse {operation} failed: {e}") from e

    def _listing_query(self, where: str) -> str:
        return f"""
            SELECT
              sp.store_product_id AS id,
              sp.store_id,
              sp.product_id,
              sp.current_price AS price,
              sp.is_available AS in_stock,
              sp.updated_at,
              sp.product_name,
              s.store_name
            FROM {table_ref("StoreProduct")} AS sp
            JOIN {table_ref("Store")} AS s ON sp.store_id = s.store_id
            WHERE {where}
            -- Only the most recent snapshot of every listing
            QUALIFY ROW_NUMBER() OVER(PARTITION BY sp.store_product_id ORDER BY sp.updated_at DESC) = 1
        """

    @staticmethod
    def _to_listing(row: Dict) -> Listing:
        return Listing(
            id=str(row["id"]),
            store_id=str(row["store_id"]),
            product_id=str(row["product_id"]),
            price=Decimal(str(row["price"])),
            in_stock=bool(row["in_stock"]),
            updated_at=row.get("updated_at"),
            product_name=row.get("product_name"),
            store_name=row.get("store_name"),
        )

    def get(self, store_id: str, product_id: str) -> Optional[Listing]:
        rows = self._query(
            "get",
            self._listing_query("sp.store_id = @store_id AND sp.product_id = @product_id"),
            [
                bigquery.ScalarQueryParameter("store_id", "STRING", store_id),
                bigquery.ScalarQueryParameter("product_id", "STRING", product_id),
            ],
        )
        return self._to_listing(rows[0]) if rows else None

    def get_by_id(self, listing_id: str) -> Optional[Listing]:
        rows = self._query(
            "get_by_id",
            self._listing_query("sp.store_product_id = @listing_id"),
            [bigquery.ScalarQueryParameter("listing_id", "STRING", listing_id)],
        )
        return self._to_listing(rows[0]) if rows else None

    def batch_get(self, store_id: str, product_ids: List[str]) -> List[Listing]:
        if not product_ids:
            return []
        rows = self._query(
            "batch_get",
            self._listing_query("sp.store_id = @store_id AND sp.product_id IN UNNEST(@product_ids)"),
            [
                bigquery.ScalarQueryParameter("store_id", "STRING", store_id),
                bigquery.ArrayQueryParameter("product_ids", "STRING", list(product_ids)),
            ],
        )
        return [self._to_listing(row) for row in rows]

    def get_stores(self, store_ids: Iterable[str]) -> Dict[str, Optional[str]]:
        ids = list(store_ids)
        if not ids:
            return {}
        rows = self._query(
            "get_stores",
            f"SELECT store_id, store_name FROM {table_ref('Store')} WHERE store_id IN UNNEST(@store_ids)",
            [bigquery.ArrayQueryParameter("store_ids", "STRING", ids)],
        )
        return {str(row["store_id"]): row.get("store_name") for row in rows}
