"""Tests for the driver dashboard projections."""

from datetime import datetime

import pytest

from faremarket.services.errors import ForbiddenError, ValidationError


@pytest.fixture
def complete_trip(market, rider, advance):
    """Run a full trip for a driver, finishing at the given time."""
    def _complete_trip(driver, fare, finished_at):
        market.clock.now = finished_at
        request = market.requests.create_request(
            rider, "100 Main St", "200 Elm St", (10, 50), distance_miles=5.0, duration_minutes=12)
        offer = market.offers.submit_offer(request["id"], driver, fare)
        ride = market.offers.accept_offer(offer["id"], rider)
        return advance(ride["id"], driver, "completed")
    return _complete_trip


class TestAvailableRequests:
    """Test class for the driver's list of requests to bid on."""

    def test_lists_searching_requests_oldest_first(self, market, rider, other_rider, driver, clock):
        first = market.requests.create_request(rider, "100 Main St", "200 Elm St", (20, 30))
        clock.advance(minutes=1)
        second = market.requests.create_request(other_rider, "1 Oak Ave", "2 Pine Rd", (12, 15))

        available = market.projections.available_requests(driver)

        assert [r["id"] for r in available] == [first["id"], second["id"]]
        assert all(r["my_offer"] is None for r in available)

    def test_marks_the_drivers_own_offer(self, market, driver, driver_b, open_request):
        market.offers.submit_offer(open_request["id"], driver_b, 21)
        mine = market.offers.submit_offer(open_request["id"], driver, 24)

        available = market.projections.available_requests(driver)

        assert available[0]["my_offer"]["id"] == mine["id"]

    def test_hides_matched_cancelled_and_expired(self, market, rider, other_rider, driver, open_request, clock):
        cancelled = market.requests.create_request(other_rider, "1 Oak Ave", "2 Pine Rd", (12, 15))
        market.requests.cancel_request(cancelled["id"], other_rider)
        offer = market.offers.submit_offer(open_request["id"], driver, 24)
        market.offers.accept_offer(offer["id"], rider)
        clock.advance(minutes=10)
        stale = market.requests.create_request(other_rider, "3 Ash St", "4 Birch St", (12, 15))

        assert [r["id"] for r in market.projections.available_requests(driver)] == [stale["id"]]
        clock.advance(minutes=16)
        assert market.projections.available_requests(driver) == []


class TestActiveRides:

    def test_active_rides_exclude_finished(self, market, driver, matched_ride, complete_trip, clock):
        complete_trip(driver, 30, clock())

        active = market.projections.active_rides(driver)

        assert [r["id"] for r in active] == [matched_ride["id"]]


class TestEarnings:
    """Test class for the earnings summary."""

    @pytest.fixture
    def history(self, driver, driver_b, complete_trip):
        complete_trip(driver, 40.00, datetime(2024, 4, 30, 18, 0))
        complete_trip(driver, 15.00, datetime(2024, 5, 5, 9, 0))
        # Saturday before the current week
        complete_trip(driver, 20.00, datetime(2024, 5, 11, 23, 30))
        complete_trip(driver, 22.50, datetime(2024, 5, 13, 7, 0))
        complete_trip(driver, 24.50, datetime(2024, 5, 15, 8, 0))
        complete_trip(driver_b, 99.00, datetime(2024, 5, 15, 8, 30))

    def test_today(self, market, driver, history, clock):
        clock.now = datetime(2024, 5, 15, 10, 0)

        summary = market.projections.earnings(driver, "today")

        assert summary["since"] == "2024-05-15T00:00:00"
        assert summary["total_earnings"] == 24.50
        assert summary["total_rides"] == 1

    def test_week_starts_sunday(self, market, driver, history, clock):
        clock.now = datetime(2024, 5, 15, 10, 0)

        summary = market.projections.earnings(driver, "week")

        assert summary["since"] == "2024-05-12T00:00:00"
        assert summary["total_earnings"] == 47.00
        assert summary["total_rides"] == 2
        assert summary["average_fare"] == 23.50
        assert summary["total_distance"] == 10.0
        assert summary["total_time"] == 24

    def test_month(self, market, driver, history, clock):
        clock.now = datetime(2024, 5, 15, 10, 0)

        summary = market.projections.earnings(driver, "month")

        assert summary["since"] == "2024-05-01T00:00:00"
        assert summary["total_earnings"] == 82.00
        assert summary["total_rides"] == 4
        assert summary["average_fare"] == 20.50

    def test_cancelled_rides_do_not_count(self, market, rider, driver, matched_ride):
        market.rides.cancel_ride(matched_ride["id"], rider)
        summary = market.projections.earnings(driver, "today")
        assert summary["total_rides"] == 0
        assert summary["average_fare"] == 0

    def test_unknown_period(self, market, driver):
        with pytest.raises(ValidationError):
            market.projections.earnings(driver, "decade")


class TestDashboardSubscriptions:
    """Dashboards refresh from change events instead of re-polling."""

    def test_available_requests_subscription(self, market, rider, driver):
        events = []
        subscription = market.projections.subscribe_available_requests(driver, events.append)

        market.requests.create_request(rider, "100 Main St", "200 Elm St", (20, 30))
        subscription.unsubscribe()
        market.requests.create_request(rider, "1 Oak Ave", "2 Pine Rd", (12, 15))

        assert len(events) == 1

    def test_active_rides_subscription_is_per_driver(self, market, rider, driver, driver_b, matched_ride):
        mine, theirs = [], []
        market.projections.subscribe_active_rides(driver, mine.append)
        market.projections.subscribe_active_rides(driver_b, theirs.append)

        market.rides.start_en_route(matched_ride["id"], driver)

        assert [e.record["status"] for e in mine] == ["en_route"]
        assert theirs == []

    def test_pending_driver_cannot_subscribe(self, market, pending_driver):
        with pytest.raises(ForbiddenError):
            market.projections.subscribe_available_requests(pending_driver, lambda event: None)
