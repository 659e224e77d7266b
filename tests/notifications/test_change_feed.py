"""Tests for change notification and store polling."""

import logging
import threading
from unittest.mock import MagicMock

from faremarket.services.errors import CollaboratorUnavailableError
from faremarket.services.notifications import INSERT, UPDATE, ChangeFeed, StorePoller


class TestChangeFeed:
    """Test class for in-process change delivery."""

    def test_filters_by_collection_and_fields(self):
        feed = ChangeFeed()
        seen = []
        feed.on_change("rides", {"driver_id": "d1"}, seen.append)

        feed.publish("rides", INSERT, {"id": "r1", "driver_id": "d1"})
        feed.publish("rides", INSERT, {"id": "r2", "driver_id": "d2"})
        feed.publish("ride_requests", INSERT, {"id": "q1", "driver_id": "d1"})

        assert [e.record["id"] for e in seen] == ["r1"]
        assert seen[0].collection == "rides"
        assert seen[0].event_type == INSERT

    def test_list_filter_matches_any(self):
        feed = ChangeFeed()
        seen = []
        feed.on_change("rides", {"status": ["accepted", "en_route"]}, seen.append)

        feed.publish("rides", UPDATE, {"id": "r1", "status": "en_route"})
        feed.publish("rides", UPDATE, {"id": "r1", "status": "arrived"})

        assert len(seen) == 1

    def test_unsubscribe_stops_delivery(self):
        feed = ChangeFeed()
        callback = MagicMock()
        subscription = feed.on_change("rides", None, callback)

        subscription.unsubscribe()

        assert feed.publish("rides", INSERT, {"id": "r1"}) == 0
        assert feed.subscriber_count == 0
        assert subscription.active is False
        callback.assert_not_called()

    def test_failing_subscriber_does_not_block_others(self, caplog):
        feed = ChangeFeed()
        healthy = MagicMock()
        feed.on_change("rides", {}, MagicMock(side_effect=RuntimeError("boom")))
        feed.on_change("rides", {}, healthy)

        with caplog.at_level(logging.ERROR, logger="faremarket.services.notifications"):
            delivered = feed.publish("rides", INSERT, {"id": "r1"})

        assert delivered == 1
        healthy.assert_called_once()
        assert "Subscriber failed" in caplog.text


class TestStorePoller:
    """Test class for polling the store for changes made elsewhere."""

    def test_poll_publishes_new_and_changed_records(self, store):
        feed = ChangeFeed()
        seen = []
        feed.on_change("rides", {}, seen.append)
        poller = StorePoller(store, feed, ["rides"], interval=0.01)
        store.create("rides", {"id": "r1", "status": "accepted", "updated_at": "2024-05-15T10:00:00"})

        assert poller.poll_once() == 1
        assert poller.poll_once() == 0

        store.update("rides", "r1", {"status": "en_route", "updated_at": "2024-05-15T10:01:00"})
        assert poller.poll_once() == 1

        assert [(e.event_type, e.record["status"]) for e in seen] == [(INSERT, "accepted"), (UPDATE, "en_route")]

    def test_finished_records_are_published_once_and_forgotten(self, store):
        feed = ChangeFeed()
        seen = []
        feed.on_change("rides", {}, seen.append)
        poller = StorePoller(store, feed, ["rides"], interval=0.01)
        store.create("rides", {"id": "r1", "status": "in_progress", "updated_at": "2024-05-15T10:00:00"})
        store.create("rides", {"id": "r0", "status": "completed", "updated_at": "2024-05-15T09:00:00"})
        poller.poll_once()

        store.update("rides", "r1", {"status": "completed", "updated_at": "2024-05-15T10:20:00"})

        assert poller.poll_once() == 1
        assert poller.poll_once() == 0
        assert poller._seen["rides"] == {}
        assert [(e.record["id"], e.record["status"]) for e in seen] == [
            ("r1", "in_progress"),
            ("r1", "completed"),
        ]

    def test_background_thread_survives_outage(self):
        recovered = threading.Event()
        calls = []

        def query(collection, **filters):
            calls.append(collection)
            if len(calls) == 1:
                raise CollaboratorUnavailableError("down")
            recovered.set()
            return []

        store = MagicMock()
        store.query.side_effect = query
        poller = StorePoller(store, ChangeFeed(), ["rides"], interval=0.01)

        poller.start()
        try:
            assert recovered.wait(timeout=5)
        finally:
            poller.stop()

        assert len(calls) >= 2
        assert poller._thread is None
