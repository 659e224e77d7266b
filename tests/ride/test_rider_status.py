"""Tests for the rider's status projection."""

import pytest

from faremarket.services.errors import ForbiddenError


class TestRiderStatus:
    """Test class for what a rider sees while waiting and riding."""

    def test_no_requests(self, market, rider):
        assert market.projections.rider_status(rider) is None

    def test_searching_shows_open_offers_and_countdown(self, market, rider, driver, driver_b, open_request,
                                                       clock):
        declined = market.offers.submit_offer(open_request["id"], driver, 29)
        market.offers.decline_offer(declined["id"], rider)
        market.offers.submit_offer(open_request["id"], driver_b, 23)
        clock.advance(minutes=5, seconds=30)

        view = market.projections.rider_status(rider)

        assert view["request"]["id"] == open_request["id"]
        assert [o["offered_fare"] for o in view["offers"]] == [23]
        assert view["seconds_until_expiry"] == 570
        assert view["ride"] is None

    def test_matched_shows_ride(self, market, rider, driver, matched_ride, advance):
        advance(matched_ride["id"], driver, "en_route")

        view = market.projections.rider_status(rider)

        assert view["request"]["status"] == "matched"
        assert view["ride"]["status"] == "en_route"
        assert view["offers"] == []
        assert view["seconds_until_expiry"] is None

    def test_expired_request_reads_expired(self, market, rider, open_request, clock):
        clock.advance(minutes=30)

        view = market.projections.rider_status(rider)

        assert view["request"]["status"] == "expired"
        assert view["seconds_until_expiry"] is None

    def test_only_riders(self, market, driver):
        with pytest.raises(ForbiddenError):
            market.projections.rider_status(driver)

    def test_subscription_follows_request_and_ride(self, market, rider, other_rider, driver, open_request):
        events = []
        subscriptions = market.projections.subscribe_rider_status(rider, events.append)
        market.requests.create_request(other_rider, "1 Oak Ave", "2 Pine Rd", (12, 15))

        offer = market.offers.submit_offer(open_request["id"], driver, 24)
        ride = market.offers.accept_offer(offer["id"], rider)
        market.rides.start_en_route(ride["id"], driver)

        assert [(e.collection, e.record["status"]) for e in events] == [
            ("ride_requests", "matched"), ("rides", "accepted"), ("rides", "en_route")]

        for subscription in subscriptions:
            subscription.unsubscribe()
        market.rides.mark_arrived(ride["id"], driver)
        assert len(events) == 3
