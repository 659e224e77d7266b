"""Admin commands for the FareMarket CLI."""

import click
from tabulate import tabulate

from faremarket.cli_module.utils import get_services, money, require_user_type, short_time
from faremarket.models.driver import VerificationStatus
from faremarket.models.ride import MONITORED_RIDE_STATUSES
from faremarket.models.user import UserType


@click.group(name="admin")
def admin_group():
    """Admin commands."""
    pass


@admin_group.command(name="trips")
@click.option("--status", type=click.Choice(MONITORED_RIDE_STATUSES), default=None, help="Only this status")
@require_user_type([UserType.ADMIN.value])
def trips(actor, status):
    """Monitor rides that have not finished."""
    monitor = get_services().projections.admin_trip_monitor(actor, status)
    counts = ", ".join(f"{name}: {count}" for name, count in monitor["counts"].items())
    click.echo(f"{monitor['total']} rides in progress ({counts})")
    if not monitor["rides"]:
        return
    table = [[r["id"], r["status"], r["rider_id"], r["driver_id"], money(r.get("final_fare")),
              short_time(r.get("updated_at"))] for r in monitor["rides"]]
    click.echo(tabulate(table, headers=["Ride ID", "Status", "Rider", "Driver", "Fare", "Updated"],
                        tablefmt="simple"))


@admin_group.command(name="approve-driver")
@click.argument("driver_id")
@click.option("--status", type=click.Choice([s.value for s in VerificationStatus]),
              default=VerificationStatus.APPROVED.value, help="New verification status")
@require_user_type([UserType.ADMIN.value])
def approve_driver(actor, driver_id, status):
    """Set a driver's verification status."""
    get_services().auth.set_verification_status(actor, driver_id, status)
    click.echo(f"Driver {driver_id} is now {status}.")
