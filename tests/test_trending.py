"""
Test the trending search counters (in-process and Redis-backed)
"""
import itertools
import threading
from unittest.mock import MagicMock

import pytest
import redis

from storecompare.errors import InvalidSearchQuery, UpstreamUnavailable
from storecompare.services.trending_service import (
    COUNTS_KEY,
    InMemoryTrendingStore,
    RedisTrendingStore,
    TrendingRanker,
    normalize_query,
)


@pytest.fixture
def ranker():
    ticks = itertools.count(1_700_000_000)
    return TrendingRanker(InMemoryTrendingStore(), clock=lambda: float(next(ticks)))


class TestNormalization:
    def test_case_and_whitespace_are_ignored(self, ranker):
        ranker.record_search("Milk")
        counter = ranker.record_search("milk ")
        assert counter.query == "milk"
        assert counter.count == 2

    def test_inner_whitespace_is_kept(self):
        assert normalize_query("  Oat  Milk ") == "oat  milk"

    @pytest.mark.parametrize("query", ["", "   ", "\t"])
    def test_blank_query_is_rejected(self, ranker, query):
        with pytest.raises(InvalidSearchQuery):
            ranker.record_search(query)


class TestTopN:
    def test_ordered_by_count_then_recency(self, ranker):
        for query in ["bread", "milk", "eggs", "milk", "bread", "apples"]:
            ranker.record_search(query)

        top = ranker.top_n(3)
        # bread and milk tie on count; bread was searched last
        assert [(c.query, c.count) for c in top] == [("bread", 2), ("milk", 2), ("apples", 1)]

    def test_last_searched_is_reported(self, ranker):
        ranker.record_search("milk")
        second = ranker.record_search("milk")
        assert ranker.top_n(1)[0].last_searched == second.last_searched

    def test_non_positive_n(self, ranker):
        ranker.record_search("milk")
        assert ranker.top_n(0) == []

    def test_empty(self, ranker):
        assert ranker.top_n(5) == []


class TestConcurrentIncrements:
    def test_no_updates_are_lost(self):
        ranker = TrendingRanker(InMemoryTrendingStore())
        threads_count, per_thread = 8, 500
        barrier = threading.Barrier(threads_count)

        def search():
            barrier.wait()
            for i in range(per_thread):
                ranker.record_search("Milk" if i % 2 else "milk ")
                ranker.record_search(f"item-{i % 5}")

        threads = [threading.Thread(target=search) for _ in range(threads_count)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        counts = {c.query: c.count for c in ranker.top_n(10)}
        assert counts["milk"] == threads_count * per_thread
        assert all(counts[f"item-{i}"] == threads_count * per_thread // 5 for i in range(5))


class TestRedisTrendingStore:
    def test_increment_runs_in_one_transaction(self):
        client = MagicMock()
        pipe = client.pipeline.return_value
        pipe.execute.return_value = [3.0, 1, 0]

        counter = TrendingRanker(RedisTrendingStore(client), clock=lambda: 1_700_000_000.0).record_search(" Milk")

        client.pipeline.assert_called_once_with(transaction=True)
        pipe.zincrby.assert_called_once_with(COUNTS_KEY, 1, "milk")
        assert counter.count == 3

    def test_top_breaks_count_ties_by_recency(self):
        client = MagicMock()
        client.zrevrange.return_value = [("milk", 5.0), ("bread", 2.0)]
        client.zrangebyscore.return_value = [("eggs", 2.0), ("bread", 2.0), ("milk", 5.0)]
        client.hmget.side_effect = [["300", "100", "200"], ["3", "1", "2"]]

        top = RedisTrendingStore(client).top(2)
        assert [(c.query, c.count) for c in top] == [("milk", 5), ("eggs", 2)]

    def test_redis_failure_is_upstream_unavailable(self):
        client = MagicMock()
        client.pipeline.return_value.execute.side_effect = redis.ConnectionError("refused")
        with pytest.raises(UpstreamUnavailable):
            RedisTrendingStore(client).increment("milk", 1.0)
