"""Ride request commands for the FareMarket CLI."""

import click
from tabulate import tabulate

from faremarket.cli_module.utils import get_services, money, require_user_type, short_time
from faremarket.models.payment import PaymentMethod
from faremarket.models.ride_request import RideType
from faremarket.models.user import UserType
from faremarket.services.fare_service import FareService, geocode_address


@click.group(name="request")
def request_group():
    """Ride request commands for riders."""
    pass


@request_group.command(name="create")
@click.option("--pickup", prompt="Pickup location", help="Pickup address")
@click.option("--dropoff", prompt="Dropoff location", help="Dropoff address")
@click.option("--ride-type", type=click.Choice([t.value for t in RideType]), default=RideType.STANDARD.value)
@click.option("--payment", "payment_method", type=click.Choice([m.value for m in PaymentMethod]),
              default=PaymentMethod.CARD.value)
@click.option("--notes", default=None, help="Notes for your driver")
@require_user_type([UserType.RIDER.value])
def create_request(actor, pickup, dropoff, ride_type, payment_method, notes):
    """Ask drivers for offers on a trip."""
    services = get_services()
    pickup_location = geocode_address(pickup)
    dropoff_location = geocode_address(dropoff)
    distance, duration = FareService.estimate_trip(pickup_location, dropoff_location)
    fare_band = FareService.estimate_fare(distance)

    request = services.requests.create_request(
        actor, pickup_location, dropoff_location, fare_band,
        ride_type=ride_type, payment_method=payment_method, notes=notes,
        distance_miles=distance, duration_minutes=duration,
    )

    click.echo("\nRide request created.\n")
    click.echo(f"Request ID: {request['id']}")
    click.echo(f"Estimated fare: {money(request['estimated_fare_min'])} - {money(request['estimated_fare_max'])}")
    click.echo(f"Distance: {distance} mi, about {duration} min")
    click.echo(f"Searching for drivers until {short_time(request['expires_at'])}.")
    click.echo("Use 'faremarket request status' to see offers.")


@request_group.command(name="cancel")
@click.argument("request_id")
@click.option("--reason", default=None, help="Why you are cancelling")
@require_user_type([UserType.RIDER.value, UserType.ADMIN.value])
def cancel_request(actor, request_id, reason):
    """Cancel a ride request that is still searching."""
    get_services().requests.cancel_request(request_id, actor, reason)
    click.echo(f"Ride request {request_id} cancelled.")


@request_group.command(name="status")
@require_user_type([UserType.RIDER.value])
def request_status(actor):
    """Show your latest ride request, its offers and its ride."""
    view = get_services().projections.rider_status(actor)
    if view is None:
        click.echo("You have no ride requests.")
        return

    request = view["request"]
    click.echo(f"Request {request['id']}: {request['status']}")
    click.echo(f"  {request['pickup_address']} -> {request['dropoff_address']}")
    if view["seconds_until_expiry"] is not None:
        minutes, seconds = divmod(view["seconds_until_expiry"], 60)
        click.echo(f"  Expires in {minutes}:{seconds:02d}")

    if view["offers"]:
        table = [[o["id"], money(o["offered_fare"]), money(o.get("counter_offer")), o["status"]]
                 for o in view["offers"]]
        click.echo(tabulate(table, headers=["Offer ID", "Fare", "Counter", "Status"], tablefmt="simple"))

    ride = view["ride"]
    if ride:
        click.echo(f"Ride {ride['id']}: {ride['status']} at {money(ride['final_fare'])}")


@request_group.command(name="offers")
@click.argument("request_id")
@require_user_type([UserType.RIDER.value, UserType.ADMIN.value])
def list_offers(actor, request_id):
    """List every offer made on a ride request."""
    offers = get_services().offers.list_offers_for_request(request_id, actor)
    if not offers:
        click.echo("No offers yet.")
        return
    table = [[o["id"], o["driver_id"], money(o["offered_fare"]), money(o.get("counter_offer")),
              o["status"], short_time(o.get("updated_at"))] for o in offers]
    click.echo(tabulate(table, headers=["Offer ID", "Driver", "Fare", "Counter", "Status", "Updated"],
                        tablefmt="simple"))
