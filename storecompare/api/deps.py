# storecompare/api/deps.py

import logging
from functools import lru_cache

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from storecompare.config import settings
from storecompare.db.redis_client import get_redis_client
from storecompare.errors import CallerError, EngineError
from storecompare.services.bigquery_listing_store import BigQueryListingStore
from storecompare.services.catalog_index import CatalogIndex
from storecompare.services.comparison_engine import ComparisonEngine
from storecompare.services.listing_service import ListingService
from storecompare.services.notification_service import NotificationEmitter, PriceDropNotifier
from storecompare.services.price_history_service import PriceHistoryTracker
from storecompare.services.stores import (
    SupabaseHistoryStore,
    SupabaseListingStore,
    SupabaseNotificationStore,
    SupabaseWatcherStore,
)
from storecompare.services.trending_service import (
    InMemoryTrendingStore,
    RedisTrendingStore,
    TrendingRanker,
)

logger = logging.getLogger(__name__)

# Extracts the token from the "Authorization: Bearer <token>" header
security = HTTPBearer()


def _decode_token(token: str) -> dict:
    # Supabase access tokens carry an audience we do not check
    return jwt.decode(
        token,
        settings.SUPABASE_JWT_SECRET,
        algorithms=["HS256"],
        options={"verify_signature": True, "verify_aud": False, "verify_exp": True},
    )


async def get_current_user(credentials: HTTPAuthorizationCredentials = Depends(security)) -> dict:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = _decode_token(credentials.credentials)
    except JWTError as e:
        logger.info(f"JWT verification failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Token validation failed: {e}",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if payload.get("sub") is None:
        raise credentials_exception
    return payload


async def get_current_user_id(current_user: dict = Depends(get_current_user)) -> str:
    return current_user["sub"]


# --- Service wiring ---
# One instance of each per process; tests replace them through dependency_overrides.

@lru_cache()
def get_listing_store() -> SupabaseListingStore:
    return SupabaseListingStore()


@lru_cache()
def get_catalog_index() -> CatalogIndex:
    """Comparisons read listings from the warehouse when DATA_SOURCE=bigquery."""
    if settings.DATA_SOURCE == "bigquery":
        logger.info("Catalog index reading listings from BigQuery")
        return CatalogIndex(BigQueryListingStore())
    return CatalogIndex(get_listing_store())


@lru_cache()
def get_comparison_engine() -> ComparisonEngine:
    return ComparisonEngine(get_catalog_index())


@lru_cache()
def get_notification_store() -> SupabaseNotificationStore:
    return SupabaseNotificationStore()


@lru_cache()
def get_notification_emitter() -> NotificationEmitter:
    return NotificationEmitter(get_notification_store())


@lru_cache()
def get_price_history_tracker() -> PriceHistoryTracker:
    listings = get_listing_store()
    tracker = PriceHistoryTracker(SupabaseHistoryStore(), listings=listings)
    tracker.subscribe(PriceDropNotifier(get_notification_emitter(), listings, SupabaseWatcherStore()))
    return tracker


@lru_cache()
def get_listing_service() -> ListingService:
    return ListingService(get_listing_store(), get_price_history_tracker())


@lru_cache()
def get_trending_ranker() -> TrendingRanker:
    client = get_redis_client()
    if client is None:
        return TrendingRanker(InMemoryTrendingStore())
    return TrendingRanker(RedisTrendingStore(client))


def http_error(e: EngineError) -> HTTPException:
    """Translate an engine error into the HTTPException a route raises."""
    if isinstance(e, CallerError):
        logger.info(f"Rejected request ({e.code}): {e}")
    else:
        logger.error(f"Request failed ({e.code}): {e}")
    return HTTPException(status_code=e.status_code, detail=e.to_detail())
