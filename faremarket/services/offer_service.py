"""Offer ledger: driver bids against searching ride requests."""

import logging
import math
from datetime import datetime
from typing import Callable, Dict, Any, List, Optional

from faremarket.models.offer import Offer, OfferStatus, OPEN_OFFER_STATUSES
from faremarket.models.ride_request import RideRequestStatus
from faremarket.models.user import Actor, AdminPermission
from faremarket.services.auth_service import AuthService
from faremarket.services.availability_gate import require_driver
from faremarket.services.errors import (
    ForbiddenError,
    InvalidStateError,
    StatusConflictError,
    ValidationError,
)
from faremarket.services.notifications import ChangeFeed, INSERT, UPDATE
from faremarket.services.ride_request_service import RideRequestService
from faremarket.services.store import StoreClient

logger = logging.getLogger(__name__)

PENDING = OfferStatus.PENDING.value
COUNTERED = OfferStatus.COUNTERED.value


class OfferService:
    """Records driver offers and resolves them through a single match."""

    def __init__(self, store: Optional[StoreClient] = None, feed: Optional[ChangeFeed] = None,
                 request_service: Optional[RideRequestService] = None,
                 clock: Callable[[], datetime] = datetime.now):
        self.store = store or StoreClient()
        self.feed = feed or ChangeFeed()
        self.clock = clock
        self.request_service = request_service or RideRequestService(self.store, self.feed, clock=clock)

    def submit_offer(self, request_id: str, actor: Actor, fare, message: Optional[str] = None) -> Dict[str, Any]:
        """
        Submit a priced offer against a searching ride request.

        A driver holds one offer per request. Submitting again while it is
        pending replaces its fare; once countered, accepted or declined it
        can no longer be changed.

        Args:
            request_id: ID of the ride request
            actor: Offering driver
            fare: Offered fare
            message: Optional note for the rider

        Returns:
            Dict: Offer data

        Raises:
            ForbiddenError: If the driver is not approved
            ValidationError: If fare <= 0
            NotFoundError: If the request does not exist
            InvalidStateError: If the request is not searching or the driver's offer is no longer pending
        """
        require_driver(actor)
        fare = _positive_fare(fare, "Offered fare")

        request = self.request_service.get_request(request_id)
        if request["status"] != RideRequestStatus.SEARCHING.value:
            raise InvalidStateError(f"Cannot submit an offer on a ride request with status {request['status']}.")

        now = self.clock().isoformat()
        offer = Offer(ride_request_id=request_id, driver_id=actor.id, offered_fare=fare, message=message,
                      created_at=now)
        try:
            saved = self.store.create("ride_offers", offer.to_dict())
        except StatusConflictError as e:
            return self._replace_pending(e.current, actor, fare, message, now)

        logger.info(f"Driver {actor.id} offered {fare} on request {request_id}")
        self.feed.publish("ride_offers", INSERT, saved)
        return saved

    def _replace_pending(self, existing: Dict[str, Any], actor: Actor, fare, message: Optional[str],
                         now: str) -> Dict[str, Any]:
        status = existing.get("status")
        if status == COUNTERED:
            raise InvalidStateError("The rider countered your offer; accept or decline the counter instead.")
        if status != PENDING:
            raise InvalidStateError(f"Your offer is already {status} and can no longer be changed.")
        try:
            updated = self.store.update_if_status("ride_offers", existing["id"], PENDING, {
                "offered_fare": fare,
                "message": message,
                "updated_at": now,
            })
        except StatusConflictError as e:
            current = e.current.get("status", "unknown")
            raise InvalidStateError(f"Your offer is already {current} and can no longer be changed.")
        logger.info(f"Driver {actor.id} replaced offer {updated['id']} on request {updated['ride_request_id']} "
                    f"with {fare}")
        self.feed.publish("ride_offers", UPDATE, updated)
        return updated

    def get_offer(self, offer_id: str) -> Dict[str, Any]:
        return self.store.get("ride_offers", offer_id)

    def accept_offer(self, offer_id: str, actor: Actor) -> Dict[str, Any]:
        """
        Accept an offer, matching its ride request.

        The owning rider accepts a pending offer. The offering driver
        accepts a countered offer, agreeing to the rider's counter fare.

        Returns:
            Dict: The created ride

        Raises:
            ForbiddenError: If the actor may not accept this offer
            InvalidStateError: If the offer or its request is in the wrong state
            AlreadyMatchedError: If the request was matched concurrently
        """
        offer = self.get_offer(offer_id)
        request = self.request_service.get_request(offer["ride_request_id"])

        if actor is not None and actor.is_driver:
            require_driver(actor)
            if offer["driver_id"] != actor.id:
                raise ForbiddenError("You can only respond to counter offers on your own offers.")
            if offer["status"] != COUNTERED:
                raise InvalidStateError(f"Cannot accept a counter on an offer with status {offer['status']}.")
        else:
            self._require_request_owner(request, actor)
            if offer["status"] != PENDING:
                raise InvalidStateError(f"Cannot accept offer with status {offer['status']}.")

        return self.request_service.match_to_offer(request["id"], offer_id)

    def counter_offer(self, offer_id: str, counter_fare, actor: Actor) -> Dict[str, Any]:
        """
        Propose a different fare back to the driver. One round only.

        Raises:
            ValidationError: If counter_fare <= 0
            ForbiddenError: If the actor does not own the ride request
            InvalidStateError: If the offer is not pending or the request is not searching
        """
        counter_fare = _positive_fare(counter_fare, "Counter offer")
        offer = self.get_offer(offer_id)
        request = self.request_service.get_request(offer["ride_request_id"])
        self._require_request_owner(request, actor)

        if request["status"] != RideRequestStatus.SEARCHING.value:
            raise InvalidStateError(f"Cannot counter an offer on a ride request with status {request['status']}.")
        if offer["status"] != PENDING:
            raise InvalidStateError(f"Cannot counter offer with status {offer['status']}.")

        try:
            updated = self.store.update_if_status("ride_offers", offer_id, PENDING, {
                "counter_offer": counter_fare,
                "status": COUNTERED,
                "updated_at": self.clock().isoformat(),
            })
        except StatusConflictError as e:
            current = e.current.get("status", "unknown")
            raise InvalidStateError(f"Cannot counter offer with status {current}.")

        logger.info(f"Rider {actor.id} countered offer {offer_id} with {counter_fare}")
        self.feed.publish("ride_offers", UPDATE, updated)
        return updated

    def decline_offer(self, offer_id: str, actor: Actor) -> Dict[str, Any]:
        """
        Decline an open offer. Declined is terminal for the offer.

        The rider declines offers on their own request; the driver declines
        a counter or withdraws their pending offer.

        Raises:
            ForbiddenError: If the actor is not a party to the offer
            InvalidStateError: If the offer is already accepted or declined
        """
        offer = self.get_offer(offer_id)

        if actor is not None and actor.is_driver:
            require_driver(actor)
            if offer["driver_id"] != actor.id:
                raise ForbiddenError("You can only decline your own offers.")
        else:
            request = self.store.get("ride_requests", offer["ride_request_id"])
            self._require_request_owner(request, actor)

        if offer["status"] not in OPEN_OFFER_STATUSES:
            raise InvalidStateError(f"Cannot decline offer with status {offer['status']}.")

        try:
            updated = self.store.update_if_status("ride_offers", offer_id, OPEN_OFFER_STATUSES, {
                "status": OfferStatus.DECLINED.value,
                "updated_at": self.clock().isoformat(),
            })
        except StatusConflictError as e:
            current = e.current.get("status", "unknown")
            raise InvalidStateError(f"Cannot decline offer with status {current}.")

        logger.info(f"Offer {offer_id} declined by {actor.id}")
        self.feed.publish("ride_offers", UPDATE, updated)
        return updated

    def list_offers_for_request(self, request_id: str, actor: Actor) -> List[Dict[str, Any]]:
        """Offers on a request, cheapest first. Visible to the owning rider and admins."""
        request = self.store.get("ride_requests", request_id)
        is_owner = actor is not None and request.get("rider_id") == actor.id
        if not is_owner and not AuthService.check_admin_permission(actor, AdminPermission.VIEW_RIDES):
            raise ForbiddenError("You do not have permission to view offers on this ride request.")

        offers = self.store.query("ride_offers", ride_request_id=request_id)
        offers.sort(key=lambda o: (o.get("offered_fare", 0), o.get("created_at", "")))
        return offers

    def list_driver_offers(self, actor: Actor, status: Optional[str] = None) -> List[Dict[str, Any]]:
        """A driver's own offers, most recent first."""
        require_driver(actor)
        offers = self.store.query("ride_offers", driver_id=actor.id, status=status)
        offers.sort(key=lambda o: o.get("updated_at", ""), reverse=True)
        return offers

    @staticmethod
    def _require_request_owner(request: Dict[str, Any], actor: Actor) -> None:
        if actor is None or not actor.is_rider or request.get("rider_id") != actor.id:
            raise ForbiddenError("Only the rider who made this request can respond to its offers.")


def _positive_fare(value, label: str) -> float:
    try:
        fare = round(float(value), 2)
    except (TypeError, ValueError):
        raise ValidationError(f"{label} must be a number.")
    if not math.isfinite(fare) or fare <= 0:
        raise ValidationError(f"{label} must be greater than zero.")
    return fare
