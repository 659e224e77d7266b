"""Ride lifecycle state machine for matched rides."""

import logging
import math
from datetime import datetime
from typing import Callable, Dict, Any, List, Optional

from faremarket.models.payment import PaymentStatus
from faremarket.models.ride import RideStatus, RideTrigger, RIDE_TRANSITIONS
from faremarket.models.user import Actor, AdminPermission
from faremarket.services.auth_service import AuthService
from faremarket.services.availability_gate import require_driver
from faremarket.services.errors import (
    ForbiddenError,
    InvalidStateError,
    StatusConflictError,
    TerminalStateError,
    ValidationError,
)
from faremarket.services.notifications import ChangeFeed, UPDATE
from faremarket.services.store import StoreClient

logger = logging.getLogger(__name__)

# Triggers that may arrive again after the ride already completed
COMPLETION_TRIGGERS = (RideTrigger.COMPLETE, RideTrigger.CONFIRM_PAYMENT)

MAX_TRANSITION_ATTEMPTS = 3

UNPAID_STATUSES = [s.value for s in PaymentStatus if s != PaymentStatus.PAID]


class RideService:
    """
    Moves a matched ride through its statuses.

    pending/accepted -> en_route -> arrived -> in_progress -> completed,
    with cancelled reachable from every non-terminal status. Each write is
    conditional on the status it was computed from; a lost race re-reads
    the ride and re-applies the rules.
    """

    def __init__(self, store: Optional[StoreClient] = None, feed: Optional[ChangeFeed] = None,
                 clock: Callable[[], datetime] = datetime.now):
        self.store = store or StoreClient()
        self.feed = feed or ChangeFeed()
        self.clock = clock

    def get_ride(self, ride_id: str) -> Dict[str, Any]:
        """
        Raises:
            NotFoundError: If the ride does not exist
        """
        return self.store.get("rides", ride_id)

    def get_ride_for_request(self, request_id: str) -> Optional[Dict[str, Any]]:
        """Find the ride created from a ride request, if it was matched."""
        rides = self.store.query("rides", ride_request_id=request_id)
        return rides[0] if rides else None

    def list_driver_rides(self, driver_id: str, statuses: Optional[List[str]] = None) -> List[Dict[str, Any]]:
        rides = self.store.query("rides", driver_id=driver_id, status=statuses)
        rides.sort(key=lambda r: r.get("created_at", ""), reverse=True)
        return rides

    def list_rides_by_status(self, statuses: List[str]) -> List[Dict[str, Any]]:
        rides = self.store.query("rides", status=statuses)
        rides.sort(key=lambda r: r.get("created_at", ""), reverse=True)
        return rides

    def start_en_route(self, ride_id: str, actor: Actor) -> Dict[str, Any]:
        """Driver heads to the pickup."""
        self._require_assigned_driver(ride_id, actor)

        def fields(ride, now):
            return {} if ride.get("accepted_at") else {"accepted_at": now}

        return self._apply(ride_id, RideTrigger.START_EN_ROUTE, fields, actor)

    def mark_arrived(self, ride_id: str, actor: Actor) -> Dict[str, Any]:
        """Driver is at the pickup."""
        self._require_assigned_driver(ride_id, actor)
        return self._apply(ride_id, RideTrigger.MARK_ARRIVED, lambda ride, now: {}, actor)

    def start_trip(self, ride_id: str, actor: Actor) -> Dict[str, Any]:
        """Rider is on board."""
        self._require_assigned_driver(ride_id, actor)
        return self._apply(ride_id, RideTrigger.START_TRIP, lambda ride, now: {"started_at": now}, actor)

    def complete_ride(self, ride_id: str, actor: Actor, driver_notes: Optional[str] = None) -> Dict[str, Any]:
        """
        Driver marks the trip complete. A no-op on an already completed ride.

        Raises:
            ForbiddenError: If the actor is not the assigned, approved driver
            InvalidStateError: If the ride is not in progress
            TerminalStateError: If the ride was cancelled
        """
        self._require_assigned_driver(ride_id, actor)

        def fields(ride, now):
            update = {"completed_at": now}
            if driver_notes:
                update["driver_notes"] = driver_notes
            return update

        return self._apply(ride_id, RideTrigger.COMPLETE, fields, actor)

    def confirm_payment(self, ride_id: str, amount) -> Dict[str, Any]:
        """
        Apply a successful settlement from the payment collaborator.

        An in-progress ride completes with the settled fare. On a ride that
        is already completed the status is left alone; an unpaid ride is
        marked paid and a paid ride is not touched, so duplicate or late
        notifications are safe.

        Raises:
            ValidationError: If the amount is not positive
            InvalidStateError: If the trip has not started
            TerminalStateError: If the ride was cancelled
        """
        try:
            amount = round(float(amount), 2)
        except (TypeError, ValueError):
            raise ValidationError("Settled amount must be a number.")
        if not math.isfinite(amount) or amount <= 0:
            raise ValidationError("Settled amount must be greater than zero.")

        def fields(ride, now):
            update = {
                "payment_status": PaymentStatus.PAID.value,
                "settled_amount": amount,
            }
            current_fare = ride.get("final_fare") or 0
            if amount >= current_fare:
                update["final_fare"] = amount
            else:
                logger.warning(
                    f"Ride {ride_id} settled at {amount}, below final fare {current_fare}; keeping final fare")
            if ride["status"] != RideStatus.COMPLETED.value:
                update["completed_at"] = now
            return update

        return self._apply(ride_id, RideTrigger.CONFIRM_PAYMENT, fields, None)

    def record_payment_failure(self, ride_id: str) -> Dict[str, Any]:
        """Mark a failed settlement. The ride's status does not change, and a paid ride is never marked failed."""
        ride = self.get_ride(ride_id)
        if ride.get("payment_status") == PaymentStatus.PAID.value:
            logger.warning(f"Ignoring payment failure for already paid ride {ride_id}")
            return ride
        try:
            updated = self.store.update_if("rides", ride_id, {"payment_status": UNPAID_STATUSES}, {
                "payment_status": PaymentStatus.FAILED.value,
                "updated_at": self.clock().isoformat(),
            })
        except StatusConflictError as e:
            logger.warning(f"Ignoring payment failure for ride {ride_id}; it was paid in the meantime")
            return e.current
        logger.error(f"Payment failed for ride {ride_id}")
        self.feed.publish("rides", UPDATE, updated)
        return updated

    def cancel_ride(self, ride_id: str, actor: Actor, reason: Optional[str] = None) -> Dict[str, Any]:
        """
        Cancel a ride from any non-terminal status.

        The rider, the assigned driver, or an admin with the manage_rides
        permission may cancel.

        Raises:
            ForbiddenError: If the actor is not allowed to cancel this ride
            TerminalStateError: If the ride already completed or was cancelled
        """
        ride = self.get_ride(ride_id)
        if actor is not None and actor.is_driver:
            require_driver(actor)
            if ride.get("driver_id") != actor.id:
                raise ForbiddenError("You can only cancel rides assigned to you.")
        elif actor is not None and actor.is_rider:
            if ride.get("rider_id") != actor.id:
                raise ForbiddenError("You can only cancel your own rides.")
        else:
            AuthService.require_admin_permission(actor, AdminPermission.MANAGE_RIDES)

        def fields(ride, now):
            return {
                "cancelled_at": now,
                "cancellation_reason": reason,
                "cancelled_by": actor.user_type.value,
            }

        return self._apply(ride_id, RideTrigger.CANCEL, fields, actor)

    def _apply(self, ride_id: str, trigger: RideTrigger,
               build_fields: Callable[[Dict[str, Any], str], Dict[str, Any]],
               actor: Optional[Actor]) -> Dict[str, Any]:
        for _ in range(MAX_TRANSITION_ATTEMPTS):
            ride = self.get_ride(ride_id)
            current = RideStatus(ride["status"])
            now = self.clock().isoformat()

            if current == RideStatus.COMPLETED and trigger in COMPLETION_TRIGGERS:
                if trigger == RideTrigger.COMPLETE or ride.get("payment_status") == PaymentStatus.PAID.value:
                    logger.info(f"Ride {ride_id} already completed; {trigger.value} is a no-op")
                    return ride
                target = current
            else:
                target = self._next_status(current, trigger)

            update = build_fields(ride, now)
            update["updated_at"] = now
            if target != current:
                update["status"] = target.value
                update["status_history"] = list(ride.get("status_history") or []) + [
                    {"status": target.value, "at": now}
                ]

            try:
                updated = self.store.update_if_status("rides", ride_id, current.value, update)
            except StatusConflictError as e:
                logger.warning(
                    f"Ride {ride_id} moved to {e.current.get('status')} during {trigger.value}; retrying")
                continue

            by = actor.id if actor is not None else "payment"
            logger.info(f"Ride {ride_id}: {current.value} -> {target.value} ({trigger.value} by {by})")
            self.feed.publish("rides", UPDATE, updated)
            return updated

        raise InvalidStateError(f"Ride {ride_id} kept changing while applying {trigger.value}; try again.")

    @staticmethod
    def _next_status(current: RideStatus, trigger: RideTrigger) -> RideStatus:
        if current.is_terminal:
            raise TerminalStateError(f"Ride is already {current.value}; no further changes are allowed.")
        allowed_from, target = RIDE_TRANSITIONS[trigger]
        if current not in allowed_from:
            raise InvalidStateError(f"Cannot apply {trigger.value} to a ride with status {current.value}.")
        return target

    def _require_assigned_driver(self, ride_id: str, actor: Actor) -> Dict[str, Any]:
        require_driver(actor)
        ride = self.get_ride(ride_id)
        if ride.get("driver_id") != actor.id:
            raise ForbiddenError("This ride is not assigned to you.")
        return ride
