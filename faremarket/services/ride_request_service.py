"""Ride request tracker: the searching phase of a rider's request."""

import logging
import math
from datetime import datetime
from typing import Callable, Dict, Any, List, Optional

from faremarket.config import settings
from faremarket.models.location import Location
from faremarket.models.offer import OfferStatus, OPEN_OFFER_STATUSES, agreed_fare
from faremarket.models.payment import PaymentMethod
from faremarket.models.ride import Ride
from faremarket.models.ride_request import (
    RideRequest,
    RideRequestStatus,
    RideType,
    effective_status,
    is_expired,
)
from faremarket.models.user import Actor, AdminPermission
from faremarket.services.auth_service import AuthService
from faremarket.services.errors import (
    AlreadyMatchedError,
    CollaboratorUnavailableError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    StatusConflictError,
    ValidationError,
)
from faremarket.services.notifications import ChangeFeed, INSERT, UPDATE
from faremarket.services.store import StoreClient

logger = logging.getLogger(__name__)

SEARCHING = RideRequestStatus.SEARCHING.value


class RideRequestService:
    """Creates, cancels, expires and matches ride requests."""

    def __init__(self, store: Optional[StoreClient] = None, feed: Optional[ChangeFeed] = None,
                 clock: Callable[[], datetime] = datetime.now,
                 expiry_minutes: Optional[int] = None):
        self.store = store or StoreClient()
        self.feed = feed or ChangeFeed()
        self.clock = clock
        self.expiry_minutes = expiry_minutes if expiry_minutes is not None else settings.REQUEST_EXPIRY_MINUTES

    def create_request(self, actor: Actor, pickup, dropoff, fare_estimate,
                       ride_type: str = RideType.STANDARD.value,
                       payment_method: str = PaymentMethod.CARD.value,
                       notes: Optional[str] = None,
                       distance_miles: Optional[float] = None,
                       duration_minutes: Optional[int] = None) -> Dict[str, Any]:
        """
        Create a new ride request in the searching state.

        Args:
            actor: Requesting rider
            pickup: Pickup address text, dict or Location
            dropoff: Dropoff address text, dict or Location
            fare_estimate: (min, max) fare band from the fare estimator
            ride_type: standard, premium or shared
            payment_method: card or cash
            notes: Free-text notes for the driver
            distance_miles: Estimated distance, if known
            duration_minutes: Estimated duration, if known

        Returns:
            Dict: Ride request data

        Raises:
            ValidationError: If locations or the fare estimate are missing or invalid
            ForbiddenError: If the actor is not a rider
        """
        if actor is None or not actor.is_rider:
            raise ForbiddenError("Only riders can request rides.")

        pickup_location = Location.from_value(pickup)
        dropoff_location = Location.from_value(dropoff)
        if pickup_location is None or not pickup_location.address:
            raise ValidationError("Pickup location is required.")
        if dropoff_location is None or not dropoff_location.address:
            raise ValidationError("Dropoff location is required.")

        fare_min, fare_max = _parse_fare_estimate(fare_estimate)

        try:
            ride_type = RideType(ride_type).value
        except ValueError:
            raise ValidationError(f"Unknown ride type '{ride_type}'.")
        try:
            payment_method = PaymentMethod(payment_method).value
        except ValueError:
            raise ValidationError(f"Unknown payment method '{payment_method}'.")

        new_request = RideRequest(
            rider_id=actor.id,
            **pickup_location.as_fields("pickup"),
            **dropoff_location.as_fields("dropoff"),
            estimated_fare_min=fare_min,
            estimated_fare_max=fare_max,
            estimated_distance_miles=distance_miles,
            estimated_duration_minutes=duration_minutes,
            ride_type=ride_type,
            payment_method=payment_method,
            rider_notes=notes or None,
            expiry_minutes=self.expiry_minutes,
            created_at=self.clock().isoformat(),
        )

        saved = self.store.create("ride_requests", new_request.to_dict())
        logger.info(f"Ride request {saved['id']} created by rider {actor.id}, expires at {saved['expires_at']}")
        self.feed.publish("ride_requests", INSERT, saved)
        return saved

    def get_request(self, request_id: str) -> Dict[str, Any]:
        """
        Get a ride request with its effective status applied.

        Raises:
            NotFoundError: If the request does not exist
        """
        request = self.store.get("ride_requests", request_id)
        return self._with_effective_status(request)

    def is_expired(self, request: Dict[str, Any]) -> bool:
        return is_expired(request, self.clock())

    def effective_status(self, request: Dict[str, Any]) -> str:
        return effective_status(request, self.clock())

    def cancel_request(self, request_id: str, actor: Actor, reason: Optional[str] = None) -> Dict[str, Any]:
        """
        Cancel a searching ride request. The record is kept.

        Raises:
            NotFoundError: If the request does not exist
            ForbiddenError: If the actor is neither the owning rider nor an admin
            InvalidStateError: If the request is no longer searching
        """
        request = self.store.get("ride_requests", request_id)

        is_owner = actor is not None and actor.is_rider and request.get("rider_id") == actor.id
        if not is_owner and not AuthService.check_admin_permission(actor, AdminPermission.MANAGE_RIDES):
            raise ForbiddenError("You do not have permission to cancel this ride request.")

        status = self.effective_status(request)
        if status != SEARCHING:
            raise InvalidStateError(f"Cannot cancel ride request with status {status}.")

        now = self.clock().isoformat()
        fields = {
            "status": RideRequestStatus.CANCELLED.value,
            "cancelled_at": now,
            "cancellation_reason": reason,
            "updated_at": now,
        }
        try:
            updated = self.store.update_if_status("ride_requests", request_id, SEARCHING, fields)
        except StatusConflictError as e:
            current = e.current.get("status", "unknown")
            raise InvalidStateError(f"Cannot cancel ride request with status {current}.")

        logger.info(f"Ride request {request_id} cancelled by {actor.id}")
        self.feed.publish("ride_requests", UPDATE, updated)
        return updated

    def expire(self, request_id: str) -> Dict[str, Any]:
        """
        Persist the expired status of a searching request past its expiry.

        Raises:
            NotFoundError: If the request does not exist
            InvalidStateError: If the request is not searching or not yet expired
        """
        request = self.store.get("ride_requests", request_id)
        if request.get("status") != SEARCHING:
            raise InvalidStateError(f"Cannot expire ride request with status {request.get('status')}.")
        if not self.is_expired(request):
            raise InvalidStateError(f"Ride request {request_id} has not reached its expiry time.")
        return self._persist_expired(request)

    def _persist_expired(self, request: Dict[str, Any]) -> Dict[str, Any]:
        fields = {"status": RideRequestStatus.EXPIRED.value, "updated_at": self.clock().isoformat()}
        try:
            updated = self.store.update_if_status("ride_requests", request["id"], SEARCHING, fields)
        except StatusConflictError as e:
            # Someone else resolved it first; report what they left
            return e.current or self.store.get("ride_requests", request["id"])

        logger.info(f"Ride request {request['id']} expired")
        self.feed.publish("ride_requests", UPDATE, updated)
        return updated

    def list_searching_requests(self) -> List[Dict[str, Any]]:
        """Searching requests that have not expired, oldest first."""
        found = [r for r in self.store.query("ride_requests", status=SEARCHING) if not self.is_expired(r)]
        found.sort(key=lambda r: r.get("created_at", ""))
        return found

    def list_rider_requests(self, actor: Actor) -> List[Dict[str, Any]]:
        """A rider's requests, most recent first."""
        found = [self._with_effective_status(r)
                     for r in self.store.query("ride_requests", rider_id=actor.id)]
        found.sort(key=lambda r: r.get("created_at", ""), reverse=True)
        return found

    def match_to_offer(self, request_id: str, offer_id: str) -> Dict[str, Any]:
        """
        Close a searching request by accepting one offer and create the ride.

        The offer is claimed first with a write conditional on the status
        it was read with, then the request moves searching -> matched with
        a write conditional on its status, then the ride is inserted. Of
        any number of concurrent calls exactly one creates a ride. A step
        that fails undoes the steps before it.

        Returns:
            Dict: The created ride

        Raises:
            NotFoundError: If the request or offer does not exist, or they do not belong together
            AlreadyMatchedError: If the request was matched already or concurrently
            InvalidStateError: If the request is not searching (including expired) or the offer is not open
            CollaboratorUnavailableError: If the store failed part way; nothing stays matched
        """
        request = self.store.get("ride_requests", request_id)
        offer = self.store.get("ride_offers", offer_id)
        if offer.get("ride_request_id") != request_id:
            raise NotFoundError(f"Offer {offer_id} does not belong to ride request {request_id}")

        self._check_matchable(request)

        if offer.get("status") not in OPEN_OFFER_STATUSES:
            raise InvalidStateError(f"Cannot accept offer with status {offer.get('status')}.")

        now = self.clock().isoformat()
        open_status = offer["status"]
        try:
            claimed = self.store.update_if_status("ride_offers", offer_id, open_status, {
                "status": OfferStatus.ACCEPTED.value,
                "updated_at": now,
            })
        except StatusConflictError as e:
            current = e.current.get("status", "unknown")
            logger.warning(f"Offer {offer_id} moved to {current} before it could be accepted")
            raise InvalidStateError(f"Cannot accept offer with status {current}.")

        fare = agreed_fare(claimed, open_status)
        ride = Ride(
            ride_request_id=request_id,
            offer_id=offer_id,
            rider_id=request["rider_id"],
            driver_id=offer["driver_id"],
            pickup_address=request["pickup_address"],
            dropoff_address=request["dropoff_address"],
            pickup_latitude=request.get("pickup_latitude"),
            pickup_longitude=request.get("pickup_longitude"),
            dropoff_latitude=request.get("dropoff_latitude"),
            dropoff_longitude=request.get("dropoff_longitude"),
            estimated_fare_min=request.get("estimated_fare_min"),
            estimated_fare_max=request.get("estimated_fare_max"),
            final_fare=fare,
            payment_method=request.get("payment_method", PaymentMethod.CARD.value),
            distance_miles=request.get("estimated_distance_miles"),
            duration_minutes=request.get("estimated_duration_minutes"),
            rider_notes=request.get("rider_notes"),
            created_at=now,
        )

        try:
            matched = self.store.update_if_status("ride_requests", request_id, SEARCHING, {
                "status": RideRequestStatus.MATCHED.value,
                "matched_offer_id": offer_id,
                "ride_id": ride.id,
                "matched_at": now,
                "updated_at": now,
            })
        except StatusConflictError as e:
            current = e.current.get("status")
            logger.warning(f"Lost match race on ride request {request_id} (now {current})")
            if current == RideRequestStatus.MATCHED.value:
                self._release_offer(offer_id, OfferStatus.DECLINED.value, now)
                raise AlreadyMatchedError("This ride request was already accepted.")
            self._release_offer(offer_id, open_status, now)
            raise InvalidStateError(f"Cannot match ride request with status {current}.")
        except CollaboratorUnavailableError:
            self._release_offer(offer_id, open_status, now)
            raise

        try:
            saved_ride = self.store.create("rides", ride.to_dict())
        except CollaboratorUnavailableError:
            logger.error(f"Could not create the ride for request {request_id}; returning it to searching")
            self._reopen_request(request_id, now)
            self._release_offer(offer_id, open_status, now)
            raise

        self._decline_other_offers(request_id, offer_id, now)

        logger.info(f"Ride request {request_id} matched to offer {offer_id}; ride {saved_ride['id']} at {fare}")
        self.feed.publish("ride_offers", UPDATE, claimed)
        self.feed.publish("ride_requests", UPDATE, matched)
        self.feed.publish("rides", INSERT, saved_ride)
        return saved_ride

    def _check_matchable(self, request: Dict[str, Any]) -> None:
        status = request.get("status")
        if status == RideRequestStatus.MATCHED.value:
            raise AlreadyMatchedError("This ride request was already accepted.")
        if status != SEARCHING:
            raise InvalidStateError(f"Cannot match ride request with status {status}.")
        if self.is_expired(request):
            self._persist_expired(request)
            raise InvalidStateError("This ride request has expired.")

    def _release_offer(self, offer_id: str, status: str, now: str) -> None:
        """Move a claimed offer out of accepted after its match failed."""
        try:
            released = self.store.update_if_status("ride_offers", offer_id, OfferStatus.ACCEPTED.value, {
                "status": status,
                "updated_at": now,
            })
        except StatusConflictError as e:
            logger.warning(f"Offer {offer_id} left accepted as {e.current.get('status')} before release")
            return
        if status == OfferStatus.DECLINED.value:
            self.feed.publish("ride_offers", UPDATE, released)

    def _reopen_request(self, request_id: str, now: str) -> None:
        try:
            self.store.update_if_status("ride_requests", request_id, RideRequestStatus.MATCHED.value, {
                "status": SEARCHING,
                "matched_offer_id": None,
                "ride_id": None,
                "matched_at": None,
                "updated_at": now,
            })
        except StatusConflictError as e:
            logger.warning(f"Ride request {request_id} left matched as {e.current.get('status')} before reopening")

    def _decline_other_offers(self, request_id: str, winner_id: str, now: str) -> None:
        for other in self.store.query("ride_offers", ride_request_id=request_id, status=OPEN_OFFER_STATUSES):
            if other["id"] == winner_id:
                continue
            try:
                declined = self.store.update_if_status("ride_offers", other["id"], OPEN_OFFER_STATUSES, {
                    "status": OfferStatus.DECLINED.value,
                    "updated_at": now,
                })
            except StatusConflictError:
                continue
            self.feed.publish("ride_offers", UPDATE, declined)

    def _with_effective_status(self, request: Dict[str, Any]) -> Dict[str, Any]:
        status = self.effective_status(request)
        if status == request.get("status"):
            return request
        request = dict(request)
        request["status"] = status
        return request


def _parse_fare_estimate(fare_estimate):
    if fare_estimate is None:
        raise ValidationError("Fare estimate is required.")
    if isinstance(fare_estimate, dict):
        values = (fare_estimate.get("min"), fare_estimate.get("max"))
    else:
        try:
            values = tuple(fare_estimate)
        except TypeError:
            raise ValidationError("Fare estimate must be a (min, max) pair.")
    if len(values) != 2 or any(v is None for v in values):
        raise ValidationError("Fare estimate must be a (min, max) pair.")
    try:
        fare_min, fare_max = (round(float(v), 2) for v in values)
    except (TypeError, ValueError):
        raise ValidationError("Fare estimate values must be numbers.")
    if not (math.isfinite(fare_min) and math.isfinite(fare_max)) or fare_min <= 0 or fare_max < fare_min:
        raise ValidationError("Fare estimate must satisfy 0 < min <= max.")
    return fare_min, fare_max
