"""Payment settlement commands for the FareMarket CLI."""

import click

from faremarket.cli_module.utils import get_services, handle_errors, money


@click.group(name="payment")
def payment_group():
    """Payment processor callbacks."""
    pass


@payment_group.command(name="settle")
@click.argument("ride_id")
@click.option("--amount", type=float, required=True, help="Settled amount")
@click.option("--failed", is_flag=True, help="Report a failed capture")
@click.option("--reference", default=None, help="Processor reference")
@handle_errors
def settle(ride_id, amount, failed, reference):
    """Report a settlement for a ride."""
    ride = get_services().payments.handle_settlement(ride_id, amount, succeeded=not failed, reference=reference)
    click.echo(f"Ride {ride['id']}: {ride['status']}, payment {ride.get('payment_status')}, "
               f"fare {money(ride.get('final_fare'))}")
