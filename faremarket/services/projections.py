"""
Read-only dashboard projections.

Each projection is a filtered, aggregated slice of the store. None of
them write; changes go through the request, offer and ride services.
The subscribe_* helpers register change feed callbacks so a dashboard
can refresh when a relevant record changes.
"""

import logging
from datetime import datetime, timedelta
from typing import Callable, Dict, Any, List, Optional

from faremarket.models.offer import OPEN_OFFER_STATUSES
from faremarket.models.ride import RideStatus, ACTIVE_RIDE_STATUSES, MONITORED_RIDE_STATUSES
from faremarket.models.ride_request import RideRequestStatus
from faremarket.models.user import Actor, AdminPermission
from faremarket.services.auth_service import AuthService
from faremarket.services.availability_gate import require_driver
from faremarket.services.errors import ForbiddenError, ValidationError
from faremarket.services.notifications import ChangeFeed, Subscription
from faremarket.services.ride_request_service import RideRequestService
from faremarket.services.ride_service import RideService
from faremarket.services.store import StoreClient

logger = logging.getLogger(__name__)

EARNINGS_PERIODS = ("today", "week", "month")


class Projections:
    """Driver, rider and admin dashboard views."""

    def __init__(self, store: Optional[StoreClient] = None, feed: Optional[ChangeFeed] = None,
                 clock: Callable[[], datetime] = datetime.now):
        self.store = store or StoreClient()
        self.feed = feed or ChangeFeed()
        self.clock = clock
        self.requests = RideRequestService(self.store, self.feed, clock=clock)
        self.rides = RideService(self.store, self.feed, clock=clock)

    def available_requests(self, actor: Actor) -> List[Dict[str, Any]]:
        """
        Searching, unexpired ride requests a driver can bid on, oldest first.

        Each entry carries `my_offer`, the driver's open offer on it or None.
        """
        require_driver(actor)
        my_offers = {
            offer["ride_request_id"]: offer
            for offer in self.store.query("ride_offers", driver_id=actor.id, status=OPEN_OFFER_STATUSES)
        }
        available = []
        for request in self.requests.list_searching_requests():
            entry = dict(request)
            entry["my_offer"] = my_offers.get(request["id"])
            available.append(entry)
        return available

    def active_rides(self, actor: Actor) -> List[Dict[str, Any]]:
        """The driver's rides between acceptance and completion."""
        require_driver(actor)
        return self.rides.list_driver_rides(actor.id, ACTIVE_RIDE_STATUSES)

    def rider_status(self, actor: Actor) -> Optional[Dict[str, Any]]:
        """
        The rider's latest request and, once matched, its ride.

        Returns:
            Dict with `request`, `ride`, `offers` and `seconds_until_expiry`,
            or None if the rider has never requested a ride
        """
        if actor is None or not actor.is_rider:
            raise ForbiddenError("Only riders have a ride status view.")

        history = self.requests.list_rider_requests(actor)
        if not history:
            return None
        latest = history[0]

        ride = None
        if latest.get("ride_id"):
            ride = self.store.find("rides", latest["ride_id"])
        if ride is None and latest["status"] == RideRequestStatus.MATCHED.value:
            ride = self.rides.get_ride_for_request(latest["id"])

        offers = []
        seconds_left = None
        if latest["status"] == RideRequestStatus.SEARCHING.value:
            offers = self.store.query("ride_offers", ride_request_id=latest["id"], status=OPEN_OFFER_STATUSES)
            offers.sort(key=lambda o: o.get("offered_fare", 0))
            expires_at = datetime.fromisoformat(latest["expires_at"])
            seconds_left = max(0, int((expires_at - self.clock()).total_seconds()))

        return {
            "request": latest,
            "ride": ride,
            "offers": offers,
            "seconds_until_expiry": seconds_left,
        }

    def earnings(self, actor: Actor, period: str = "today") -> Dict[str, Any]:
        """
        Sum a driver's completed rides since the start of the period.

        Args:
            actor: Driver
            period: today, week (from Sunday) or month

        Returns:
            Dict: total_earnings, total_rides, average_fare, total_distance, total_time
        """
        require_driver(actor)
        since = self._period_start(period)

        rides = [
            ride for ride in self.rides.list_driver_rides(actor.id, [RideStatus.COMPLETED.value])
            if ride.get("completed_at") and datetime.fromisoformat(ride["completed_at"]) >= since
        ]
        total = round(sum(ride.get("final_fare") or 0 for ride in rides), 2)
        return {
            "period": period,
            "since": since.isoformat(),
            "total_earnings": total,
            "total_rides": len(rides),
            "average_fare": round(total / len(rides), 2) if rides else 0,
            "total_distance": round(sum(ride.get("distance_miles") or 0 for ride in rides), 2),
            "total_time": sum(ride.get("duration_minutes") or 0 for ride in rides),
        }

    def admin_trip_monitor(self, actor: Actor, status: Optional[str] = None) -> Dict[str, Any]:
        """
        Every ride not yet completed or cancelled, with counts per status.

        Raises:
            ForbiddenError: Without the view_rides admin permission
            ValidationError: If the status filter is not a monitored status
        """
        AuthService.require_admin_permission(actor, AdminPermission.VIEW_RIDES)
        if status is not None and status not in MONITORED_RIDE_STATUSES:
            raise ValidationError(f"Status filter must be one of {', '.join(MONITORED_RIDE_STATUSES)}.")

        rides = self.rides.list_rides_by_status(MONITORED_RIDE_STATUSES)
        counts = {s: 0 for s in MONITORED_RIDE_STATUSES}
        for ride in rides:
            counts[ride["status"]] += 1
        if status is not None:
            rides = [ride for ride in rides if ride["status"] == status]
        return {"rides": rides, "counts": counts, "total": sum(counts.values())}

    def subscribe_available_requests(self, actor: Actor, callback) -> Subscription:
        require_driver(actor)
        return self.feed.on_change("ride_requests", {}, callback)

    def subscribe_active_rides(self, actor: Actor, callback) -> Subscription:
        require_driver(actor)
        return self.feed.on_change("rides", {"driver_id": actor.id}, callback)

    def subscribe_rider_status(self, actor: Actor, callback) -> List[Subscription]:
        return [
            self.feed.on_change("ride_requests", {"rider_id": actor.id}, callback),
            self.feed.on_change("rides", {"rider_id": actor.id}, callback),
        ]

    def subscribe_admin_monitor(self, actor: Actor, callback) -> Subscription:
        AuthService.require_admin_permission(actor, AdminPermission.VIEW_RIDES)
        return self.feed.on_change("rides", {}, callback)

    def _period_start(self, period: str) -> datetime:
        if period not in EARNINGS_PERIODS:
            raise ValidationError(f"Period must be one of {', '.join(EARNINGS_PERIODS)}.")
        start_of_today = self.clock().replace(hour=0, minute=0, second=0, microsecond=0)
        if period == "today":
            return start_of_today
        if period == "week":
            return start_of_today - timedelta(days=(start_of_today.weekday() + 1) % 7)
        return start_of_today.replace(day=1)
