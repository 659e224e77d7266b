"""Main CLI entry point for FareMarket."""

import logging

import click

from faremarket.cli_module.commands.admin_commands import admin_group
from faremarket.cli_module.commands.auth_commands import auth_group
from faremarket.cli_module.commands.driver_commands import driver_group
from faremarket.cli_module.commands.offer_commands import offer_group
from faremarket.cli_module.commands.payment_commands import payment_group
from faremarket.cli_module.commands.request_commands import request_group
from faremarket.cli_module.commands.ride_commands import ride_group
from faremarket.config import settings

# Set context settings to properly display help for all commands
CONTEXT_SETTINGS = {
    "help_option_names": ["-h", "--help"],
    "max_content_width": 120,
    "show_default": True
}


@click.group(context_settings=CONTEXT_SETTINGS)
def cli():
    """FareMarket CLI: riders post trips, drivers bid, one offer wins."""
    pass


cli.add_command(auth_group)
cli.add_command(request_group)
cli.add_command(offer_group)
cli.add_command(ride_group)
cli.add_command(driver_group)
cli.add_command(admin_group)
cli.add_command(payment_group)


def main():
    """Entry point for the application."""
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    cli()


if __name__ == '__main__':
    main()
