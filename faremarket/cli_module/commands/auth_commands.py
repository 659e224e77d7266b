"""Authentication commands for the FareMarket CLI."""

import click

from faremarket.cli_module.utils import (
    actor_label,
    clear_token,
    fail,
    get_services,
    get_token,
    handle_errors,
    save_token,
)
from faremarket.models.user import UserType


@click.group(name="auth")
def auth_group():
    """Account registration and sign-in commands."""
    pass


@auth_group.command(name="register")
@click.option("--email", prompt="Email", help="Account email")
@click.option("--password", prompt=True, hide_input=True, confirmation_prompt=True, help="Account password")
@click.option("--first-name", prompt="First name", help="First name")
@click.option("--last-name", prompt="Last name", help="Last name")
@click.option("--type", "user_type", type=click.Choice([t.value for t in UserType]),
              default=UserType.RIDER.value, help="Account type")
@click.option("--permission", "permissions", multiple=True, help="Admin permission (admins only)")
@click.option("--code", "admin_code", default=None, help="Admin registration code (admins only)")
@handle_errors
def register(email, password, first_name, last_name, user_type, permissions, admin_code):
    """Create an account and sign in."""
    result = get_services().auth.register(email, password, first_name, last_name,
                                          user_type=user_type, permissions=list(permissions),
                                          admin_code=admin_code)
    save_token(result["token"])
    click.echo(f"Registered {email} as a {user_type}.")
    if user_type == UserType.DRIVER.value:
        click.echo("Your driver application is pending. An admin must approve it before you can bid on rides.")


@auth_group.command(name="signin")
@click.option("--email", prompt="Email", help="Account email")
@click.option("--password", prompt=True, hide_input=True, help="Account password")
@handle_errors
def signin(email, password):
    """Sign in with email and password."""
    result = get_services().auth.sign_in(email, password)
    save_token(result["token"])
    click.echo(f"Signed in as {result['user']['email']}.")


@auth_group.command(name="signout")
def signout():
    """Forget the saved session."""
    clear_token()
    click.echo("Signed out.")


@auth_group.command(name="whoami")
@handle_errors
def whoami():
    """Show the signed-in account."""
    token = get_token()
    if not token:
        fail("You are not signed in.")
    actor = get_services().auth.resolve_actor(token)
    click.echo(f"Signed in as {actor_label(actor)}")
    if actor.is_driver:
        click.echo(f"Verification status: {actor.verification_status}")
    if actor.is_admin:
        click.echo(f"Permissions: {', '.join(actor.permissions) or 'none'}")
