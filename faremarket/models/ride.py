"""Ride entity for the FareMarket application."""

from dataclasses import dataclass, asdict, field
from datetime import datetime
from enum import Enum
from typing import Optional, Dict, Any, List
from uuid import uuid4

from faremarket.models.payment import PaymentStatus


class RideStatus(Enum):
    """Possible statuses for a matched ride."""
    PENDING = "pending"
    ACCEPTED = "accepted"
    EN_ROUTE = "en_route"
    ARRIVED = "arrived"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (RideStatus.COMPLETED, RideStatus.CANCELLED)


ACTIVE_RIDE_STATUSES = [
    RideStatus.ACCEPTED.value,
    RideStatus.EN_ROUTE.value,
    RideStatus.ARRIVED.value,
    RideStatus.IN_PROGRESS.value,
]

MONITORED_RIDE_STATUSES = [RideStatus.PENDING.value] + ACTIVE_RIDE_STATUSES


class RideTrigger(Enum):
    """Events that move a ride forward."""
    START_EN_ROUTE = "start_en_route"
    MARK_ARRIVED = "mark_arrived"
    START_TRIP = "start_trip"
    COMPLETE = "complete"
    CONFIRM_PAYMENT = "confirm_payment"
    CANCEL = "cancel"


# trigger -> (statuses it may fire from, resulting status)
RIDE_TRANSITIONS = {
    RideTrigger.START_EN_ROUTE: ({RideStatus.PENDING, RideStatus.ACCEPTED}, RideStatus.EN_ROUTE),
    RideTrigger.MARK_ARRIVED: ({RideStatus.EN_ROUTE}, RideStatus.ARRIVED),
    RideTrigger.START_TRIP: ({RideStatus.ARRIVED}, RideStatus.IN_PROGRESS),
    RideTrigger.COMPLETE: ({RideStatus.IN_PROGRESS}, RideStatus.COMPLETED),
    RideTrigger.CONFIRM_PAYMENT: ({RideStatus.IN_PROGRESS}, RideStatus.COMPLETED),
    RideTrigger.CANCEL: (
        {RideStatus.PENDING, RideStatus.ACCEPTED, RideStatus.EN_ROUTE,
         RideStatus.ARRIVED, RideStatus.IN_PROGRESS},
        RideStatus.CANCELLED,
    ),
}


@dataclass
class Ride:
    """
    A matched trip between one rider and one driver.

    Attributes:
        ride_request_id: ID of the request this ride was matched from
        offer_id: ID of the accepted offer
        rider_id: ID of the rider
        driver_id: ID of the assigned driver
        final_fare: Agreed fare, raised only by payment settlement
        status: Current status of the ride
        status_history: Ordered record of every status the ride entered
    """
    ride_request_id: str
    offer_id: str
    rider_id: str
    driver_id: Optional[str]
    pickup_address: str
    dropoff_address: str
    final_fare: float
    pickup_latitude: Optional[float] = None
    pickup_longitude: Optional[float] = None
    dropoff_latitude: Optional[float] = None
    dropoff_longitude: Optional[float] = None
    estimated_fare_min: Optional[float] = None
    estimated_fare_max: Optional[float] = None
    settled_amount: Optional[float] = None
    payment_method: str = "card"
    payment_status: str = PaymentStatus.PENDING.value
    status: str = RideStatus.ACCEPTED.value
    distance_miles: Optional[float] = None
    duration_minutes: Optional[int] = None
    rider_notes: Optional[str] = None
    driver_notes: Optional[str] = None
    id: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    accepted_at: Optional[str] = None
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    cancelled_at: Optional[str] = None
    cancellation_reason: Optional[str] = None
    cancelled_by: Optional[str] = None
    status_history: List[Dict[str, str]] = field(default_factory=list)

    def __post_init__(self):
        """Initialize default values."""
        if self.id is None:
            self.id = str(uuid4())
        if self.created_at is None:
            self.created_at = datetime.now().isoformat()
        if self.updated_at is None:
            self.updated_at = self.created_at
        if self.status == RideStatus.ACCEPTED.value and self.accepted_at is None:
            self.accepted_at = self.created_at
        if not self.status_history:
            self.status_history = [{"status": self.status, "at": self.created_at}]

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
