"""Ride lifecycle commands for the FareMarket CLI."""

import click
from tabulate import tabulate

from faremarket.cli_module.utils import get_services, money, require_user_type, short_time
from faremarket.models.user import UserType


@click.group(name="ride")
def ride_group():
    """Drive a matched ride from pickup to drop-off."""
    pass


def _report(ride):
    click.echo(f"Ride {ride['id']} is now {ride['status']}.")


@ride_group.command(name="en-route")
@click.argument("ride_id")
@require_user_type([UserType.DRIVER.value])
def en_route(actor, ride_id):
    """Head to the pickup."""
    _report(get_services().rides.start_en_route(ride_id, actor))


@ride_group.command(name="arrived")
@click.argument("ride_id")
@require_user_type([UserType.DRIVER.value])
def arrived(actor, ride_id):
    """Tell the rider you are at the pickup."""
    _report(get_services().rides.mark_arrived(ride_id, actor))


@ride_group.command(name="start")
@click.argument("ride_id")
@require_user_type([UserType.DRIVER.value])
def start(actor, ride_id):
    """Start the trip once the rider is on board."""
    _report(get_services().rides.start_trip(ride_id, actor))


@ride_group.command(name="complete")
@click.argument("ride_id")
@click.option("--notes", default=None, help="Notes about the trip")
@require_user_type([UserType.DRIVER.value])
def complete(actor, ride_id, notes):
    """Finish the trip."""
    ride = get_services().rides.complete_ride(ride_id, actor, notes)
    _report(ride)
    click.echo(f"Fare: {money(ride['final_fare'])}")


@ride_group.command(name="cancel")
@click.argument("ride_id")
@click.option("--reason", default=None, help="Why the ride is cancelled")
@click.option("--confirm", is_flag=True, help="Cancel without prompting")
@require_user_type([UserType.RIDER.value, UserType.DRIVER.value, UserType.ADMIN.value])
def cancel(actor, ride_id, reason, confirm):
    """Cancel a ride that has not finished."""
    if not confirm and not click.confirm("Are you sure you want to cancel this ride?"):
        click.echo("Ride was not cancelled.")
        return
    _report(get_services().rides.cancel_ride(ride_id, actor, reason))


@ride_group.command(name="show")
@click.argument("ride_id")
@require_user_type([UserType.RIDER.value, UserType.DRIVER.value, UserType.ADMIN.value])
def show(actor, ride_id):
    """Show a ride and its status history."""
    ride = get_services().rides.get_ride(ride_id)
    click.echo(f"Ride {ride['id']}")
    click.echo(f"  Status: {ride['status']}")
    click.echo(f"  From: {ride.get('pickup_address')}")
    click.echo(f"  To: {ride.get('dropoff_address')}")
    click.echo(f"  Fare: {money(ride.get('final_fare'))}")
    click.echo(f"  Payment: {ride.get('payment_status')}")
    history = [[entry["status"], short_time(entry["at"])] for entry in ride.get("status_history") or []]
    if history:
        click.echo(tabulate(history, headers=["Status", "At"], tablefmt="simple"))
