"""Driver dashboard commands for the FareMarket CLI."""

import time

import click
from tabulate import tabulate

from faremarket.cli_module.utils import get_services, money, require_user_type, short_time
from faremarket.config import settings
from faremarket.models.ride_request import RideRequestStatus
from faremarket.models.user import UserType
from faremarket.services.notifications import StorePoller
from faremarket.services.projections import EARNINGS_PERIODS


@click.group(name="driver")
def driver_group():
    """Driver dashboard commands."""
    pass


@driver_group.command(name="available")
@require_user_type([UserType.DRIVER.value])
def available(actor):
    """List ride requests you can make an offer on."""
    requests = get_services().projections.available_requests(actor)
    if not requests:
        click.echo("No ride requests are waiting for drivers right now.")
        return

    table = []
    for request in requests:
        mine = request["my_offer"]
        table.append([
            request["id"],
            request["pickup_address"],
            request["dropoff_address"],
            f"{money(request['estimated_fare_min'])} - {money(request['estimated_fare_max'])}",
            short_time(request["expires_at"]),
            f"{money(mine['offered_fare'])} ({mine['status']})" if mine else "-",
        ])
    click.echo(tabulate(table, headers=["Request ID", "Pickup", "Dropoff", "Estimate", "Expires", "My offer"],
                        tablefmt="simple"))


@driver_group.command(name="active")
@require_user_type([UserType.DRIVER.value])
def active(actor):
    """List your rides that are under way."""
    rides = get_services().projections.active_rides(actor)
    if not rides:
        click.echo("You have no active rides.")
        return
    table = [[r["id"], r["status"], r.get("pickup_address"), r.get("dropoff_address"), money(r.get("final_fare"))]
             for r in rides]
    click.echo(tabulate(table, headers=["Ride ID", "Status", "Pickup", "Dropoff", "Fare"], tablefmt="simple"))


@driver_group.command(name="earnings")
@click.option("--period", type=click.Choice(EARNINGS_PERIODS), default="today", help="Earnings period")
@require_user_type([UserType.DRIVER.value])
def earnings(actor, period):
    """Summarize completed rides for a period."""
    summary = get_services().projections.earnings(actor, period)
    click.echo(f"Earnings since {short_time(summary['since'])}:")
    click.echo(f"  Total: {money(summary['total_earnings'])}")
    click.echo(f"  Rides: {summary['total_rides']}")
    click.echo(f"  Average fare: {money(summary['average_fare'])}")
    click.echo(f"  Distance: {summary['total_distance']} mi")
    click.echo(f"  Time: {summary['total_time']} min")


@driver_group.command(name="watch")
@click.option("--interval", type=float, default=settings.POLL_INTERVAL_SECONDS, help="Seconds between polls")
@click.option("--duration", type=float, default=None, help="Stop after this many seconds")
@require_user_type([UserType.DRIVER.value])
def watch(actor, interval, duration):
    """Follow ride requests as they open and close (Ctrl+C to stop)."""
    services = get_services()
    open_ids = set()

    def show(event):
        request = event.record
        searching = services.requests.effective_status(request) == RideRequestStatus.SEARCHING.value
        if searching and request["id"] not in open_ids:
            open_ids.add(request["id"])
            click.echo(f"[new] {request['id']}: {request['pickup_address']} -> {request['dropoff_address']} "
                       f"({money(request['estimated_fare_min'])} - {money(request['estimated_fare_max'])})")
        elif not searching and request["id"] in open_ids:
            open_ids.discard(request["id"])
            click.echo(f"[gone] {request['id']}: {services.requests.effective_status(request)}")

    subscription = services.projections.subscribe_available_requests(actor, show)
    poller = StorePoller(services.store, services.feed, ["ride_requests"], interval)
    poller.poll_once()
    if duration is not None and duration <= 0:
        subscription.unsubscribe()
        return

    poller.start()
    deadline = None if duration is None else time.monotonic() + duration
    try:
        while deadline is None or time.monotonic() < deadline:
            time.sleep(min(interval, 1.0))
    except KeyboardInterrupt:
        click.echo("Stopped watching.")
    finally:
        poller.stop()
        subscription.unsubscribe()
