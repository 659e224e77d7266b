"""
Change notification for FareMarket projections.

Services publish an event after every committed write. Projections
subscribe with a collection and an equality filter and get a handle back
that unsubscribes them. StorePoller feeds the same subscribers from the
store itself for writes made by other processes; its interval bounds how
stale a projection can get.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Dict, Any, List, Optional

from faremarket.config import settings
from faremarket.models.offer import OPEN_OFFER_STATUSES
from faremarket.models.ride import MONITORED_RIDE_STATUSES
from faremarket.models.ride_request import RideRequestStatus
from faremarket.services.errors import CollaboratorUnavailableError

logger = logging.getLogger(__name__)

INSERT = "insert"
UPDATE = "update"

# Statuses a record can still change from; pollers only fetch these
LIVE_STATUSES = {
    "ride_requests": [RideRequestStatus.SEARCHING.value],
    "ride_offers": OPEN_OFFER_STATUSES,
    "rides": MONITORED_RIDE_STATUSES,
}


@dataclass
class ChangeEvent:
    """A committed insert or update on one record."""
    collection: str
    event_type: str
    record: Dict[str, Any]


class Subscription:
    """Handle returned by ChangeFeed.on_change."""

    def __init__(self, feed: "ChangeFeed", collection: str, filters: Dict[str, Any],
                 callback: Callable[[ChangeEvent], None]):
        self.feed = feed
        self.collection = collection
        self.filters = filters
        self.callback = callback
        self.active = True

    def matches(self, event: ChangeEvent) -> bool:
        if event.collection != self.collection:
            return False
        for key, expected in self.filters.items():
            values = expected if isinstance(expected, (list, tuple, set)) else [expected]
            if event.record.get(key) not in values:
                return False
        return True

    def unsubscribe(self) -> None:
        self.feed._remove(self)
        self.active = False


class ChangeFeed:
    """In-process publish/subscribe of record changes, at-least-once."""

    def __init__(self):
        self._subscriptions: List[Subscription] = []
        self._lock = threading.Lock()

    def on_change(self, collection: str, filters: Optional[Dict[str, Any]],
                  callback: Callable[[ChangeEvent], None]) -> Subscription:
        """
        Register a callback for inserts and updates matching the filter.

        Args:
            collection: Collection to watch, e.g. "rides"
            filters: Field equality filter; a list value matches any member
            callback: Called with a ChangeEvent for each matching change

        Returns:
            Subscription: Call unsubscribe() to stop delivery
        """
        subscription = Subscription(self, collection, dict(filters or {}), callback)
        with self._lock:
            self._subscriptions.append(subscription)
        return subscription

    def publish(self, collection: str, event_type: str, record: Dict[str, Any]) -> int:
        """Deliver a change to every matching subscriber. Returns the delivery count."""
        event = ChangeEvent(collection, event_type, record)
        with self._lock:
            targets = [s for s in self._subscriptions if s.matches(event)]

        delivered = 0
        for subscription in targets:
            try:
                subscription.callback(event)
                delivered += 1
            except Exception:
                # Delivery continues past a failing subscriber
                logger.exception(f"Subscriber failed for {collection} {event_type}")
        return delivered

    def _remove(self, subscription: Subscription) -> None:
        with self._lock:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscriptions)


class StorePoller:
    """
    Polls store collections and republishes records whose updated_at moved.

    Only records in a live status are fetched. A record that leaves the
    live set is fetched once more, published, and forgotten.

    Use poll_once() from an existing loop, or start() for a daemon thread.
    """

    def __init__(self, store, feed: ChangeFeed, collections: List[str],
                 interval: Optional[float] = None):
        self.store = store
        self.feed = feed
        self.collections = collections
        self.interval = interval if interval is not None else settings.POLL_INTERVAL_SECONDS
        self._seen: Dict[str, Dict[str, str]] = {name: {} for name in collections}
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def poll_once(self) -> int:
        """Publish every new or changed record since the last poll."""
        published = 0
        for collection in self.collections:
            seen = self._seen[collection]
            live_statuses = LIVE_STATUSES.get(collection)
            present = set()
            for record in self.store.query(collection, status=live_statuses):
                record_id = record.get("id")
                present.add(record_id)
                stamp = record.get("updated_at") or record.get("created_at") or ""
                if record_id not in seen:
                    event_type = INSERT
                elif seen[record_id] != stamp:
                    event_type = UPDATE
                else:
                    continue
                seen[record_id] = stamp
                self.feed.publish(collection, event_type, record)
                published += 1

            if live_statuses is None:
                continue
            for record_id in [i for i in seen if i not in present]:
                del seen[record_id]
                record = self.store.find(collection, record_id)
                if record is not None:
                    self.feed.publish(collection, UPDATE, record)
                    published += 1
        return published

    def _run(self) -> None:
        while not self._stop.is_set():
            try:
                self.poll_once()
            except CollaboratorUnavailableError as e:
                logger.error(f"Polling failed, retrying in {self.interval}s: {str(e)}")
            self._stop.wait(self.interval)

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="faremarket-poller", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        if self._thread:
            self._thread.join(timeout=self.interval + 1)
            self._thread = None
