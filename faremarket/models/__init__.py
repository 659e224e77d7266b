"""Entity models for the FareMarket application."""
from faremarket.models.user import Actor, AdminPermission, UserType
from faremarket.models.driver import DriverApplication, VerificationStatus
from faremarket.models.location import Location
from faremarket.models.payment import PaymentMethod, PaymentStatus
from faremarket.models.ride_request import RideRequest, RideRequestStatus, RideType
from faremarket.models.offer import Offer, OfferStatus
from faremarket.models.ride import Ride, RideStatus, RideTrigger


__all__ = [
    'Actor',
    'AdminPermission',
    'UserType',
    'DriverApplication',
    'VerificationStatus',
    'Location',
    'PaymentMethod',
    'PaymentStatus',
    'RideRequest',
    'RideRequestStatus',
    'RideType',
    'Offer',
    'OfferStatus',
    'Ride',
    'RideStatus',
    'RideTrigger',
]
