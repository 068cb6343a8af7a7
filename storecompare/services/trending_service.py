"""
Trending searches.

Counts how often each normalized search query is run. Increments of the same
query are serialized per key (a Redis transaction, or a per-counter lock in
process); increments of different queries never wait on each other.
"""
import itertools
import logging
import threading
import time
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

import redis

from storecompare.config import settings
from storecompare.errors import InvalidSearchQuery, UpstreamUnavailable
from storecompare.schemas.trending import TrendingCounter

logger = logging.getLogger(__name__)

COUNTS_KEY = "trending:counts"
LAST_SEARCHED_KEY = "trending:last_searched"
FIRST_SEEN_KEY = "trending:first_seen"


def normalize_query(query: str) -> str:
    return (query or "").strip().lower()


def _rank_key(count: int, last_searched: float, first_seen: float):
    return (-count, -last_searched, first_seen)


class _Counter:
    __slots__ = ("query", "count", "last_searched", "first_seen", "lock")

    def __init__(self, query: str, first_seen: int):
        self.query = query
        self.count = 0
        self.last_searched = 0.0
        self.first_seen = first_seen
        self.lock = threading.Lock()


class InMemoryTrendingStore:
    """Per-process counters for deployments without Redis."""

    def __init__(self):
        self._counters: Dict[str, _Counter] = {}
        self._sequence = itertools.count()
        self._create_lock = threading.Lock()

    def _counter(self, query: str) -> _Counter:
        counter = self._counters.get(query)
        if counter is None:
            # Only first-time creation is serialized; increments use the counter's own lock
            with self._create_lock:
                counter = self._counters.get(query)
                if counter is None:
                    counter = _Counter(query, next(self._sequence))
                    self._counters[query] = counter
        return counter

    def increment(self, query: str, searched_at: float) -> TrendingCounter:
        counter = self._counter(query)
        with counter.lock:
            counter.count += 1
            counter.last_searched = max(counter.last_searched, searched_at)
            return TrendingCounter(
                query=query,
                count=counter.count,
                last_searched=datetime.fromtimestamp(counter.last_searched, tz=timezone.utc),
            )

    def top(self, n: int) -> List[TrendingCounter]:
        snapshot = []
        for counter in list(self._counters.values()):
            with counter.lock:
                snapshot.append((counter.query, counter.count, counter.last_searched, counter.first_seen))
        snapshot.sort(key=lambda row: _rank_key(row[1], row[2], row[3]))
        return [
            TrendingCounter(
                query=query,
                count=count,
                last_searched=datetime.fromtimestamp(last_searched, tz=timezone.utc),
            )
            for query, count, last_searched, _ in snapshot[:n]
        ]


class RedisTrendingStore:
    """
    Counters in a Redis sorted set, with last-searched and first-seen times in
    hashes. The three writes of one increment run in a single MULTI/EXEC.
    """

    def __init__(self, client: redis.Redis):
        self.client = client

    def increment(self, query: str, searched_at: float) -> TrendingCounter:
        try:
            pipe = self.client.pipeline(transaction=True)
            pipe.zincrby(COUNTS_KEY, 1, query)
            pipe.hset(LAST_SEARCHED_KEY, query, searched_at)
            pipe.hsetnx(FIRST_SEEN_KEY, query, time.time_ns())
            count, _, _ = pipe.execute()
        except redis.RedisError as e:
            logger.error(f"Error incrementing trending counter for '{query}': {e}")
            raise UpstreamUnavailable(f"trending store unavailable: {e}") from e
        return TrendingCounter(
            query=query,
            count=int(count),
            last_searched=datetime.fromtimestamp(searched_at, tz=timezone.utc),
        )

    def top(self, n: int) -> List[TrendingCounter]:
        try:
            head = self.client.zrevrange(COUNTS_KEY, 0, n - 1, withscores=True)
            if not head:
                return []
            # Everything tied with the n-th count competes on the secondary keys
            floor = head[-1][1]
            members = self.client.zrangebyscore(COUNTS_KEY, floor, "+inf", withscores=True)
            queries = [member for member, _ in members]
            last_searched = self.client.hmget(LAST_SEARCHED_KEY, queries)
            first_seen = self.client.hmget(FIRST_SEEN_KEY, queries)
        except redis.RedisError as e:
            logger.error(f"Error reading trending counters: {e}")
            raise UpstreamUnavailable(f"trending store unavailable: {e}") from e

        rows = []
        for (query, score), last, first in zip(members, last_searched, first_seen):
            rows.append((query, int(score), float(last or 0), float(first or 0)))
        rows.sort(key=lambda row: _rank_key(row[1], row[2], row[3]))
        return [
            TrendingCounter(
                query=query,
                count=count,
                last_searched=datetime.fromtimestamp(last, tz=timezone.utc),
            )
            for query, count, last, _ in rows[:n]
        ]


class TrendingRanker:
    def __init__(self, store, clock: Optional[Callable[[], float]] = None):
        self.store = store
        self.clock = clock or time.time

    def record_search(self, query: str) -> TrendingCounter:
        """
        Count one execution of a search query.

        Raises:
            InvalidSearchQuery: If the query is blank after normalization.
        """
        normalized = normalize_query(query)
        if not normalized:
            raise InvalidSearchQuery("Search query must not be blank")
        return self.store.increment(normalized, self.clock())

    def top_n(self, n: int = settings.TRENDING_DEFAULT_LIMIT) -> List[TrendingCounter]:
        """Most searched queries, most recent first among equal counts."""
        if n <= 0:
            return []
        return self.store.top(n)
