"""Offer commands for the FareMarket CLI."""

import click
from tabulate import tabulate

from faremarket.cli_module.utils import get_services, money, require_user_type, short_time
from faremarket.models.user import UserType


@click.group(name="offer")
def offer_group():
    """Submit and respond to fare offers."""
    pass


@offer_group.command(name="submit")
@click.argument("request_id")
@click.option("--fare", type=float, prompt="Your fare", help="Fare you offer for the trip")
@click.option("--message", default=None, help="Note for the rider")
@require_user_type([UserType.DRIVER.value])
def submit_offer(actor, request_id, fare, message):
    """Offer a fare on a ride request (resubmitting replaces your pending offer)."""
    offer = get_services().offers.submit_offer(request_id, actor, fare, message)
    click.echo(f"Offer {offer['id']} of {money(offer['offered_fare'])} submitted.")


@offer_group.command(name="accept")
@click.argument("offer_id")
@require_user_type([UserType.RIDER.value, UserType.DRIVER.value])
def accept_offer(actor, offer_id):
    """Accept an offer (riders) or a counter offer (drivers)."""
    ride = get_services().offers.accept_offer(offer_id, actor)
    click.echo(f"Matched! Ride {ride['id']} is {ride['status']} at {money(ride['final_fare'])}.")


@offer_group.command(name="counter")
@click.argument("offer_id")
@click.option("--fare", type=float, prompt="Counter fare", help="Fare you propose instead")
@require_user_type([UserType.RIDER.value])
def counter_offer(actor, offer_id, fare):
    """Propose a different fare to the driver (one round)."""
    offer = get_services().offers.counter_offer(offer_id, fare, actor)
    click.echo(f"Countered offer {offer['id']} with {money(offer['counter_offer'])}.")


@offer_group.command(name="decline")
@click.argument("offer_id")
@require_user_type([UserType.RIDER.value, UserType.DRIVER.value])
def decline_offer(actor, offer_id):
    """Decline an offer or a counter offer."""
    get_services().offers.decline_offer(offer_id, actor)
    click.echo(f"Offer {offer_id} declined.")


@offer_group.command(name="mine")
@click.option("--status", default=None, help="Filter by offer status")
@require_user_type([UserType.DRIVER.value])
def my_offers(actor, status):
    """List the offers you have made."""
    offers = get_services().offers.list_driver_offers(actor, status)
    if not offers:
        click.echo("You have no offers." + (f" with status '{status}'" if status else ""))
        return
    table = [[o["id"], o["ride_request_id"], money(o["offered_fare"]), money(o.get("counter_offer")),
              o["status"], short_time(o.get("updated_at"))] for o in offers]
    click.echo(tabulate(table, headers=["Offer ID", "Request", "Fare", "Counter", "Status", "Updated"],
                        tablefmt="simple"))
