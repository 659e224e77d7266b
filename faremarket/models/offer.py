"""Offer entity for the FareMarket application."""

from dataclasses import dataclass, asdict
from datetime import datetime
from enum import Enum
from typing import Optional, Dict, Any
from uuid import NAMESPACE_URL, uuid5


class OfferStatus(Enum):
    """Possible statuses for a driver's offer."""
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    COUNTERED = "countered"


OPEN_OFFER_STATUSES = [OfferStatus.PENDING.value, OfferStatus.COUNTERED.value]


@dataclass
class Offer:
    """
    A driver's proposed fare against a ride request.

    A driver holds one offer per request, so the ID is derived from the
    request and the driver.

    Attributes:
        ride_request_id: ID of the request being bid on
        driver_id: ID of the offering driver
        offered_fare: Fare proposed by the driver
        counter_offer: Fare proposed back by the rider, if countered
        message: Optional note from the driver
        status: Current status of the offer
    """
    ride_request_id: str
    driver_id: str
    offered_fare: float
    counter_offer: Optional[float] = None
    message: Optional[str] = None
    status: str = OfferStatus.PENDING.value
    id: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    def __post_init__(self):
        """Initialize default values."""
        if self.id is None:
            self.id = offer_id_for(self.ride_request_id, self.driver_id)
        if self.created_at is None:
            self.created_at = datetime.now().isoformat()
        if self.updated_at is None:
            self.updated_at = self.created_at

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def offer_id_for(ride_request_id: str, driver_id: str) -> str:
    return str(uuid5(NAMESPACE_URL, f"ride_offers/{ride_request_id}/{driver_id}"))


def agreed_fare(offer: Dict[str, Any], status: Optional[str] = None) -> float:
    """
    Fare a match settles on: the rider's counter once countered, else the driver's offer.

    `status` stands in for the record's own status, for an offer already marked accepted.
    """
    status = status or offer.get("status")
    if status == OfferStatus.COUNTERED.value and offer.get("counter_offer") is not None:
        return offer["counter_offer"]
    return offer["offered_fare"]
