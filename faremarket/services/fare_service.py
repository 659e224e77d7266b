"""Fare estimation and geocoding stand-ins for FareMarket."""

import math
from typing import Tuple

from faremarket.models.location import Location

BASE_FARE = 3.50
PER_MILE_RATE = 2.20
MARKET_VARIANCE = 1.25
MIN_FARE_FLOOR = 8.00
MAX_FARE_FLOOR = 10.00
AVERAGE_SPEED_MPH = 18.0
EARTH_RADIUS_MILES = 3958.8


class FareService:
    """Fare estimation collaborator. Only seeds a request's fare band."""

    @staticmethod
    def estimate_fare(distance_miles: float, surge_multiplier: float = 1.0) -> Tuple[float, float]:
        """
        Estimate the fare band for a trip.

        Args:
            distance_miles: Trip distance in miles
            surge_multiplier: Demand multiplier applied to the distance fare

        Returns:
            Tuple[float, float]: (min_fare, max_fare)
        """
        min_total = BASE_FARE + (max(0.0, distance_miles) * PER_MILE_RATE * surge_multiplier)
        max_total = min_total * MARKET_VARIANCE
        return round(max(min_total, MIN_FARE_FLOOR), 2), round(max(max_total, MAX_FARE_FLOOR), 2)

    @staticmethod
    def estimate_trip(pickup: Location, dropoff: Location) -> Tuple[float, int]:
        """
        Estimate distance and duration between two resolved locations.

        Returns:
            Tuple[float, int]: distance (miles), duration (minutes)
        """
        if pickup.coordinates is None or dropoff.coordinates is None:
            raise ValueError("Both locations need coordinates to estimate a trip")

        lat1, lng1 = map(math.radians, pickup.coordinates)
        lat2, lng2 = map(math.radians, dropoff.coordinates)
        dlat = lat2 - lat1
        dlng = lng2 - lng1

        a = math.sin(dlat/2)**2 + math.cos(lat1) * \
            math.cos(lat2) * math.sin(dlng/2)**2
        c = 2 * math.atan2(math.sqrt(a), math.sqrt(1-a))
        distance = EARTH_RADIUS_MILES * c

        duration = int(distance * 60 / AVERAGE_SPEED_MPH)
        return round(distance, 2), max(1, duration)


def geocode_address(address: str) -> Location:
    """
    Resolve an address to coordinates.

    Stand-in for the mapping provider: a hash of the address gives
    stable coordinates around a fixed city centre.
    """
    address_hash = sum(ord(c) for c in address)

    base_lat, base_lng = 40.7128, -74.0060

    lat_offset = (address_hash % 100) / 1000.0
    lng_offset = ((address_hash // 100) % 100) / 1000.0

    return Location(
        address=address,
        latitude=round(base_lat + lat_offset - 0.05, 4),
        longitude=round(base_lng + lng_offset - 0.05, 4),
    )
