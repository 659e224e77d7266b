"""Shared fixtures for FareMarket tests.

Every HTTP call the store client makes is intercepted by `responses` and
handed to the Flask store app, backed by a temporary database file, so
services run end to end without a live server.
"""

import re
from datetime import datetime, timedelta
from types import SimpleNamespace
from urllib.parse import urlsplit

import pytest
import responses

from faremarket.models.driver import VerificationStatus
from faremarket.models.user import Actor, AdminPermission, UserType
from faremarket.server.json_store import create_app
from faremarket.services.auth_service import AuthService
from faremarket.services.notifications import ChangeFeed
from faremarket.services.offer_service import OfferService
from faremarket.services.payment_service import PaymentService
from faremarket.services.projections import Projections
from faremarket.services.ride_request_service import RideRequestService
from faremarket.services.ride_service import RideService
from faremarket.services.store import StoreClient

TEST_STORE_URL = "http://store.test"

# Wednesday
TEST_NOW = datetime(2024, 5, 15, 10, 0, 0)

TEST_PICKUP = {"address": "100 Main St", "latitude": 40.7128, "longitude": -74.0060}
TEST_DROPOFF = {"address": "200 Elm St", "latitude": 40.7306, "longitude": -73.9866}
TEST_FARE_ESTIMATE = (20.00, 30.00)


class FakeClock:
    """Callable clock the tests move by hand."""

    def __init__(self, now=TEST_NOW):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


def _forward_to(app):
    def callback(request):
        url = urlsplit(request.url)
        body = request.body
        if isinstance(body, str):
            body = body.encode("utf-8")
        client = app.test_client()
        response = client.open(
            url.path,
            method=request.method,
            query_string=url.query,
            data=body,
            content_type=request.headers.get("Content-Type"),
        )
        return response.status_code, {}, response.get_data()
    return callback


@pytest.fixture
def store_app(tmp_path):
    """Flask store app over an empty database file."""
    app = create_app(str(tmp_path / "db.json"))
    app.config["TESTING"] = True
    return app


@pytest.fixture
def store(store_app):
    """StoreClient whose requests are served by the in-process store app."""
    url_pattern = re.compile(re.escape(TEST_STORE_URL) + r"/.*")
    with responses.RequestsMock(assert_all_requests_are_fired=False) as rsps:
        for method in (responses.GET, responses.POST, responses.PUT, responses.PATCH, responses.DELETE):
            rsps.add_callback(method, url_pattern, callback=_forward_to(store_app),
                              content_type="application/json")
        yield StoreClient(base_url=TEST_STORE_URL, timeout=5)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def market(store, clock):
    """Every service wired to one store, one change feed and one clock."""
    feed = ChangeFeed()
    requests_service = RideRequestService(store, feed, clock=clock, expiry_minutes=15)
    rides = RideService(store, feed, clock=clock)
    return SimpleNamespace(
        store=store,
        feed=feed,
        clock=clock,
        auth=AuthService(store),
        requests=requests_service,
        offers=OfferService(store, feed, requests_service, clock=clock),
        rides=rides,
        payments=PaymentService(rides),
        projections=Projections(store, feed, clock=clock),
    )


@pytest.fixture
def rider():
    return Actor(id="rider-1", user_type=UserType.RIDER, name="Riley Rider")


@pytest.fixture
def other_rider():
    return Actor(id="rider-2", user_type=UserType.RIDER, name="Robin Rider")


@pytest.fixture
def driver():
    return Actor(id="driver-1", user_type=UserType.DRIVER,
                 verification_status=VerificationStatus.APPROVED.value, name="Dana Driver")


@pytest.fixture
def driver_b():
    return Actor(id="driver-2", user_type=UserType.DRIVER,
                 verification_status=VerificationStatus.APPROVED.value, name="Drew Driver")


@pytest.fixture
def pending_driver():
    return Actor(id="driver-3", user_type=UserType.DRIVER,
                 verification_status=VerificationStatus.PENDING.value, name="Pat Pending")


@pytest.fixture
def admin():
    return Actor(id="admin-1", user_type=UserType.ADMIN,
                 permissions=[p.value for p in AdminPermission], name="Ada Admin")


@pytest.fixture
def viewer_admin():
    return Actor(id="admin-2", user_type=UserType.ADMIN,
                 permissions=[AdminPermission.VIEW_RIDES.value], name="Vic Viewer")


@pytest.fixture
def open_request(market, rider):
    """A searching ride request with a $20-$30 fare band."""
    return market.requests.create_request(rider, TEST_PICKUP, TEST_DROPOFF, TEST_FARE_ESTIMATE)


@pytest.fixture
def matched_ride(market, rider, driver, open_request):
    """A ride matched at $24.50, in the accepted status."""
    offer = market.offers.submit_offer(open_request["id"], driver, 24.50)
    return market.offers.accept_offer(offer["id"], rider)


@pytest.fixture
def advance(market):
    """Walk a ride forward through the driver's transitions up to a status."""
    def _advance(ride_id, driver, to_status):
        steps = [
            ("en_route", market.rides.start_en_route),
            ("arrived", market.rides.mark_arrived),
            ("in_progress", market.rides.start_trip),
            ("completed", market.rides.complete_ride),
        ]
        ride = None
        for status, step in steps:
            ride = step(ride_id, driver)
            if status == to_status:
                break
        return ride
    return _advance
