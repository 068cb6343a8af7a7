"""
Test price history tracking, price-drop events and the listing price write path
"""
import logging
import threading
from datetime import timedelta
from decimal import Decimal

import pytest

from conftest import T0, FakeListingStore, make_listing
from storecompare.errors import InvalidPrice, ListingNotFound, UpstreamUnavailable
from storecompare.services.listing_service import ListingService
from storecompare.services.price_history_service import PriceHistoryTracker, drop_percentage


@pytest.fixture
def events():
    return []


@pytest.fixture
def tracker(history_store, events):
    listings = FakeListingStore([make_listing("s1", "milk", "10.00")])
    return PriceHistoryTracker(history_store, listings=listings, subscribers=[events.append])


class TestDropPercentage:
    def test_whole_percent(self):
        assert drop_percentage(Decimal("10.00"), Decimal("8.00")) == 20

    def test_halves_round_up(self):
        assert drop_percentage(Decimal("8.00"), Decimal("7.00")) == 13

    def test_fractions_round_to_nearest(self):
        assert drop_percentage(Decimal("3.00"), Decimal("2.00")) == 33


class TestOnPriceChange:
    def test_unchanged_price_records_nothing(self, tracker, history_store, events):
        assert tracker.on_price_change("s1-milk", Decimal("10.00"), Decimal("10.00")) is None
        assert history_store.entries == []
        assert events == []

    def test_drop_records_entry_and_publishes_event(self, tracker, history_store, events):
        entry = tracker.on_price_change("s1-milk", Decimal("10.00"), Decimal("8.00"), T0)

        assert entry.id == "1"
        assert len(history_store.entries) == 1
        assert history_store.entries[0].old_price == Decimal("10.00")
        assert history_store.entries[0].new_price == Decimal("8.00")

        assert len(events) == 1
        assert events[0].percentage == 20
        assert events[0].magnitude == Decimal("2.00")
        assert events[0].occurred_at == T0

    def test_increase_is_recorded_without_event(self, tracker, history_store, events):
        tracker.on_price_change("s1-milk", Decimal("8.00"), Decimal("9.00"))
        assert len(history_store.entries) == 1
        assert events == []

    def test_rise_from_zero_is_recorded_without_event(self, tracker, history_store, events):
        tracker.on_price_change("s1-milk", Decimal("0"), Decimal("2.00"))
        assert len(history_store.entries) == 1
        assert events == []

    @pytest.mark.parametrize("old_price, new_price", [("-1", "2"), ("2", "-1")])
    def test_negative_price_is_rejected(self, tracker, history_store, old_price, new_price):
        with pytest.raises(InvalidPrice):
            tracker.on_price_change("s1-milk", Decimal(old_price), Decimal(new_price))
        assert history_store.entries == []

    def test_failing_subscriber_does_not_fail_the_change(self, history_store, caplog):
        def broken(event):
            raise RuntimeError("mail server down")

        tracker = PriceHistoryTracker(history_store, subscribers=[broken])
        with caplog.at_level(logging.ERROR):
            entry = tracker.on_price_change("s1-milk", Decimal("5"), Decimal("4"))

        assert entry is not None
        assert "mail server down" in caplog.text


class TestHistory:
    def test_most_recent_first(self, tracker):
        tracker.on_price_change("s1-milk", Decimal("10"), Decimal("9"), T0)
        tracker.on_price_change("s1-milk", Decimal("9"), Decimal("11"), T0 + timedelta(days=1))
        tracker.on_price_change("s1-milk", Decimal("11"), Decimal("7"), T0 + timedelta(days=2))

        history = tracker.history("s1-milk", limit=2)
        assert [e.new_price for e in history] == [Decimal("7"), Decimal("11")]

    def test_view_is_chronological_with_drop_flag(self, tracker):
        tracker.on_price_change("s1-milk", Decimal("10"), Decimal("12"), T0)
        tracker.on_price_change("s1-milk", Decimal("12"), Decimal("10"), T0 + timedelta(days=1))

        view = tracker.history_view("s1-milk")
        assert view.listing.id == "s1-milk"
        assert [p.new_price for p in view.history] == [Decimal("12"), Decimal("10")]
        assert view.price_dropped is True

    def test_view_without_changes(self, tracker):
        view = tracker.history_view("s1-milk")
        assert view.history == []
        assert view.price_dropped is False

    def test_view_of_unknown_listing(self, tracker):
        with pytest.raises(ListingNotFound):
            tracker.history_view("nope")


class TestListingService:
    @pytest.fixture
    def listings(self):
        return FakeListingStore([make_listing("s1", "milk", "10.00")])

    @pytest.fixture
    def service(self, listings, history_store, events):
        return ListingService(listings, PriceHistoryTracker(history_store, subscribers=[events.append]))

    def test_price_drop_is_stored_and_tracked(self, service, listings, history_store, events):
        response = service.update_price("s1-milk", Decimal("8.00"))

        assert response.price_changed is True
        assert response.previous_price == Decimal("10.00")
        assert response.listing.price == Decimal("8.00")
        assert response.history_entry_id == "1"
        assert listings.get_by_id("s1-milk").price == Decimal("8.00")
        assert history_store.entries[0].changed_at == listings.get_by_id("s1-milk").updated_at
        assert events[0].percentage == 20

    def test_same_price_is_a_no_op(self, service, listings, history_store):
        response = service.update_price("s1-milk", Decimal("10.00"))

        assert response.price_changed is False
        assert listings.update_calls == 0
        assert history_store.entries == []

    def test_negative_price(self, service):
        with pytest.raises(InvalidPrice):
            service.update_price("s1-milk", Decimal("-0.01"))

    def test_unknown_listing(self, service):
        with pytest.raises(ListingNotFound):
            service.update_price("s9-milk", Decimal("1"))


class RacingListingStore(FakeListingStore):
    """Holds the first two reads until both have happened, so two writers see the same price."""

    def __init__(self, listings):
        super().__init__(listings)
        self.barrier = threading.Barrier(2)
        self._reads = 0
        self._reads_lock = threading.Lock()

    def get_by_id(self, listing_id):
        listing = super().get_by_id(listing_id)
        with self._reads_lock:
            self._reads += 1
            held = self._reads <= 2
        if held:
            self.barrier.wait(5)
        return listing


class StaleListingStore(FakeListingStore):
    """Every conditional write loses to some other writer."""

    def update(self, listing_id, new_price, expected_price):
        return None


class TestConcurrentPriceUpdates:
    def test_racing_writers_record_consecutive_prices(self, history_store):
        listings = RacingListingStore([make_listing("s1", "milk", "10.00")])
        service = ListingService(listings, PriceHistoryTracker(history_store))
        errors = []

        def write(price):
            try:
                service.update_price("s1-milk", Decimal(price))
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=write, args=(price,)) for price in ("8.00", "9.00")]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        entries = sorted(history_store.entries, key=lambda e: e.changed_at)
        assert len(entries) == 2
        assert entries[0].old_price == Decimal("10.00")
        assert entries[1].old_price == entries[0].new_price
        assert entries[1].new_price == listings.get_by_id("s1-milk").price

    def test_gives_up_when_the_price_keeps_changing(self, history_store):
        listings = StaleListingStore([make_listing("s1", "milk", "10.00")])
        service = ListingService(listings, PriceHistoryTracker(history_store), max_attempts=3)

        with pytest.raises(UpstreamUnavailable):
            service.update_price("s1-milk", Decimal("8.00"))
        assert history_store.entries == []
