"""
Error taxonomy for the comparison and price-history engine.

CallerError subclasses describe bad input and are returned to the caller as-is.
UpstreamUnavailable wraps any failure or timeout of a collaborator store.
"""
from typing import Any, Dict


class EngineError(Exception):
    """Base class for every error the engine raises on purpose."""
    code = "engine_error"
    status_code = 500

    def to_detail(self) -> Dict[str, Any]:
        return {"error": self.code, "message": str(self)}


class CallerError(EngineError):
    """Bad input. Never retried, never logged as a system fault."""
    code = "caller_error"
    status_code = 400


class EmptyWishList(CallerError):
    code = "empty_wish_list"


class InvalidWishList(CallerError):
    code = "invalid_wish_list"


class InsufficientStores(CallerError):
    code = "insufficient_stores"


class TooManyStores(CallerError):
    code = "too_many_stores"


class UnknownStore(CallerError):
    code = "unknown_store"
    status_code = 404

    def __init__(self, store_ids):
        self.store_ids = sorted(store_ids)
        super().__init__(f"Unknown store id(s): {', '.join(self.store_ids)}")


class ListingNotFound(CallerError):
    code = "listing_not_found"
    status_code = 404


class NotificationNotFound(CallerError):
    code = "notification_not_found"
    status_code = 404


class InvalidPrice(CallerError):
    code = "invalid_price"


class InvalidSearchQuery(CallerError):
    code = "invalid_search_query"


class UpstreamUnavailable(EngineError):
    """A listing, history or notification store is unreachable or erroring."""
    code = "upstream_unavailable"
    status_code = 503
