"""
Service for turning domain events into user notifications.

emit() and submit() only enqueue; a background worker performs the writes to the
notification store. A slow or failing store therefore never delays a price
update or a comparison, it only produces log lines.
"""
import logging
import queue
import threading
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Callable, Optional, Tuple

from storecompare.config import settings
from storecompare.schemas.price_history import PriceDropEvent
from storecompare.services.stores import ListingReader, NotificationStore, WatcherStore

logger = logging.getLogger(__name__)

PRICE_DROP = "price_drop"

_STOP = object()


@dataclass
class _Job:
    func: Callable
    args: Tuple[Any, ...]
    description: str


class NotificationEmitter:
    """
    Fire-and-forget notification dispatcher.

    The engine keeps no record of what it already emitted, so a retried event
    may produce a duplicate notification; deduplication belongs to the store.
    """

    def __init__(self, store: NotificationStore, max_queue_size: int = settings.NOTIFICATION_QUEUE_SIZE):
        self.store = store
        self._queue: "queue.Queue[Any]" = queue.Queue(maxsize=max_queue_size)
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()
        self.delivered = 0
        self.failed = 0

    def start(self) -> None:
        with self._lock:
            if self._thread is not None and self._thread.is_alive():
                return
            self._thread = threading.Thread(target=self._run, name="notification-worker", daemon=True)
            self._thread.start()
            logger.info("Notification worker started")

    def stop(self, timeout: float = 5.0) -> None:
        with self._lock:
            thread = self._thread
            if thread is None or not thread.is_alive():
                return
            self._queue.put(_STOP)
        thread.join(timeout)
        if thread.is_alive():
            logger.warning(f"Notification worker did not stop within {timeout}s, {self.pending()} job(s) pending")
        else:
            logger.info("Notification worker stopped")

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def pending(self) -> int:
        return self._queue.qsize()

    def flush(self) -> None:
        """Block until every job enqueued so far has been attempted."""
        self.start()
        self._queue.join()

    def submit(self, func: Callable, *args: Any, description: Optional[str] = None) -> bool:
        """
        Enqueue deferred work for the worker.

        Returns False (and logs) when the queue is full; the work is dropped.
        """
        self.start()
        job = _Job(func=func, args=args, description=description or getattr(func, "__name__", "job"))
        try:
            self._queue.put_nowait(job)
            return True
        except queue.Full:
            logger.warning(f"Notification queue full, dropping {job.description}")
            return False

    def emit(self, user_id: str, type: str, title: str, message: str) -> bool:
        return self.submit(
            self.store.create, user_id, type, title, message,
            description=f"{type} notification for {user_id}",
        )

    def _run(self) -> None:
        while True:
            job = self._queue.get()
            try:
                if job is _STOP:
                    return
                job.func(*job.args)
                self.delivered += 1
            except Exception as e:
                self.failed += 1
                logger.error(f"Notification delivery failed ({job.description}): {e}")
            finally:
                self._queue.task_done()


def format_price(value: Decimal) -> str:
    return f"{value:.2f}"


class PriceDropNotifier:
    """
    Tracker subscriber that tells every shopper who favorited a product about
    its price drop. Watcher lookup and delivery both run on the emitter's worker.
    """

    def __init__(self, emitter: NotificationEmitter, listings: ListingReader, watchers: WatcherStore):
        self.emitter = emitter
        self.listings = listings
        self.watchers = watchers

    def __call__(self, event: PriceDropEvent) -> None:
        self.emitter.submit(self.notify_watchers, event, description=f"price drop fan-out for {event.listing_id}")

    def notify_watchers(self, event: PriceDropEvent) -> int:
        listing = self.listings.get_by_id(event.listing_id)
        if listing is None:
            logger.warning(f"Listing {event.listing_id} not found, skipping price drop notifications")
            return 0

        product = listing.product_name or "An item you saved"
        store = f" at {listing.store_name}" if listing.store_name else ""
        title = f"Price drop: {event.percentage}% off"
        message = (
            f"{product}{store} dropped {event.percentage}% "
            f"from {format_price(event.old_price)} to {format_price(event.new_price)}"
        )

        user_ids = self.watchers.watchers_for_product(listing.product_id)
        for user_id in user_ids:
            self.emitter.emit(user_id, PRICE_DROP, title, message)
        logger.info(f"Queued {len(user_ids)} price drop notification(s) for listing {event.listing_id}")
        return len(user_ids)
