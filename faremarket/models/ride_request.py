"""Ride request entity for the FareMarket application."""

from dataclasses import dataclass, asdict
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional, Dict, Any
from uuid import uuid4


class RideRequestStatus(Enum):
    """Possible statuses for a ride request."""
    SEARCHING = "searching"
    MATCHED = "matched"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class RideType(Enum):
    """Service levels a rider can request."""
    STANDARD = "standard"
    PREMIUM = "premium"
    SHARED = "shared"


@dataclass
class RideRequest:
    """
    A rider's open solicitation for transport, before a driver is matched.

    Attributes:
        rider_id: ID of the requesting rider
        pickup_address: Pickup address text
        dropoff_address: Dropoff address text
        estimated_fare_min: Low end of the fare band
        estimated_fare_max: High end of the fare band
        expiry_minutes: Search window used to derive expires_at
        id: Unique identifier for the request
        created_at: When the request was created
        expires_at: When the search window closes
        status: Current status of the request
    """
    rider_id: str
    pickup_address: str
    dropoff_address: str
    estimated_fare_min: float
    estimated_fare_max: float
    expiry_minutes: int = 15
    pickup_latitude: Optional[float] = None
    pickup_longitude: Optional[float] = None
    dropoff_latitude: Optional[float] = None
    dropoff_longitude: Optional[float] = None
    estimated_distance_miles: Optional[float] = None
    estimated_duration_minutes: Optional[int] = None
    ride_type: str = RideType.STANDARD.value
    payment_method: str = "card"
    rider_notes: Optional[str] = None
    id: Optional[str] = None
    created_at: Optional[str] = None
    expires_at: Optional[str] = None
    updated_at: Optional[str] = None
    status: str = RideRequestStatus.SEARCHING.value
    matched_offer_id: Optional[str] = None
    ride_id: Optional[str] = None
    matched_at: Optional[str] = None
    cancelled_at: Optional[str] = None
    cancellation_reason: Optional[str] = None

    def __post_init__(self):
        """Initialize default values."""
        if self.id is None:
            self.id = str(uuid4())
        created = datetime.fromisoformat(self.created_at) if self.created_at else datetime.now()
        self.created_at = created.isoformat()
        if self.updated_at is None:
            self.updated_at = self.created_at
        if self.expires_at is None:
            self.expires_at = (created + timedelta(minutes=max(0, self.expiry_minutes))).isoformat()

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data.pop("expiry_minutes")
        return data


def is_expired(request: Dict[str, Any], now: Optional[datetime] = None) -> bool:
    """
    Check whether a stored request has outlived its search window.

    Only searching requests can expire; a terminal request keeps its status.
    """
    if request.get("status") != RideRequestStatus.SEARCHING.value:
        return False
    expires_at = request.get("expires_at")
    if not expires_at:
        return False
    now = now or datetime.now()
    return now > datetime.fromisoformat(expires_at)


def effective_status(request: Dict[str, Any], now: Optional[datetime] = None) -> str:
    """Status as every reader must see it: searching past expiry reads as expired."""
    if is_expired(request, now):
        return RideRequestStatus.EXPIRED.value
    return request.get("status")
