"""Tests for the fare estimator and geocoding stand-in."""

import pytest

from faremarket.models.location import Location
from faremarket.services.fare_service import FareService, geocode_address


@pytest.mark.parametrize("distance,expected", [
    (0, (8.00, 10.00)),
    (1, (8.00, 10.00)),
    (5, (14.50, 18.12)),
    (10, (25.50, 31.88)),
])
def test_estimate_fare_band(distance, expected):
    assert FareService.estimate_fare(distance) == expected


def test_surge_scales_distance_component():
    low, high = FareService.estimate_fare(10, surge_multiplier=2.0)
    assert low == 47.50
    assert high == 59.38


def test_estimate_trip():
    pickup = Location("A", 40.7128, -74.0060)
    dropoff = Location("B", 40.7306, -73.9866)

    distance, duration = FareService.estimate_trip(pickup, dropoff)

    assert 1.4 < distance < 1.8
    assert duration == int(distance * 60 / 18)


def test_estimate_trip_needs_coordinates():
    with pytest.raises(ValueError):
        FareService.estimate_trip(Location("A"), Location("B", 40.7, -74.0))


def test_geocode_is_stable():
    first = geocode_address("100 Main St")
    assert first == geocode_address("100 Main St")
    assert first.coordinates is not None
    assert first.address == "100 Main St"
