"""Utility functions for the CLI interface."""

from datetime import datetime
from functools import wraps
import json
import os
import sys
from typing import Optional, List

import click

from faremarket.models.user import Actor
from faremarket.services.auth_service import AuthService
from faremarket.services.errors import CollaboratorUnavailableError, FareMarketError
from faremarket.services.notifications import ChangeFeed
from faremarket.services.offer_service import OfferService
from faremarket.services.payment_service import PaymentService
from faremarket.services.projections import Projections
from faremarket.services.ride_request_service import RideRequestService
from faremarket.services.ride_service import RideService
from faremarket.services.store import StoreClient

# Config file to store auth token
CONFIG_DIR = os.getenv("FAREMARKET_CONFIG_DIR", os.path.expanduser("~/.faremarket"))
CONFIG_FILE = os.path.join(CONFIG_DIR, "config.json")


class Services:
    """One set of services sharing a store client and change feed."""

    def __init__(self, store: Optional[StoreClient] = None):
        self.store = store or StoreClient()
        self.feed = ChangeFeed()
        self.auth = AuthService(self.store)
        self.requests = RideRequestService(self.store, self.feed)
        self.offers = OfferService(self.store, self.feed, self.requests)
        self.rides = RideService(self.store, self.feed)
        self.payments = PaymentService(self.rides)
        self.projections = Projections(self.store, self.feed)


def get_services() -> Services:
    """Services for the current command, shared through the click context."""
    ctx = click.get_current_context()
    root = ctx.find_root()
    if root.obj is None:
        root.obj = Services()
    return root.obj


def save_token(token: str) -> None:
    """Save auth token to config file."""
    if not os.path.exists(CONFIG_DIR):
        os.makedirs(CONFIG_DIR)

    with open(CONFIG_FILE, 'w') as f:
        json.dump({"token": token}, f)


def get_token() -> Optional[str]:
    """Get auth token from config file."""
    if not os.path.exists(CONFIG_FILE):
        return None

    try:
        with open(CONFIG_FILE, 'r') as f:
            config = json.load(f)
            return config.get("token")
    except json.JSONDecodeError:
        return None


def clear_token() -> None:
    if os.path.exists(CONFIG_FILE):
        os.remove(CONFIG_FILE)


def fail(message: str) -> None:
    click.echo(message, err=True)
    sys.exit(1)


def handle_errors(f):
    """Print service errors the way a user should read them and exit non-zero."""
    @wraps(f)
    def wrapped(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except CollaboratorUnavailableError as e:
            fail(f"Service unavailable: {str(e)}. Please try again.")
        except FareMarketError as e:
            fail(f"Error: {str(e)}")
    return wrapped


def require_user_type(required_types: List[str]):
    """
    Decorator that resolves the signed-in actor and checks its user type.

    The wrapped command receives the Actor as its first argument.
    """
    def decorator(f):
        @wraps(f)
        @handle_errors
        def wrapped(*args, **kwargs):
            token = get_token()
            if not token:
                fail("You are not signed in. Please sign in first.")

            actor = get_services().auth.resolve_actor(token)
            if actor.user_type.value not in required_types:
                fail(f"Access denied: this command is for {' or '.join(required_types)} accounts.")
            return f(actor, *args, **kwargs)
        return wrapped
    return decorator


def money(value) -> str:
    if value is None:
        return "-"
    return f"${value:,.2f}"


def short_time(value: Optional[str]) -> str:
    if not value:
        return "-"
    try:
        return datetime.fromisoformat(value).strftime("%Y-%m-%d %H:%M")
    except ValueError:
        return value


def actor_label(actor: Actor) -> str:
    return f"{actor.name or actor.id} ({actor.user_type.value})"
