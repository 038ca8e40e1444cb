"""
`withings auth` command group.

Commands for obtaining, inspecting and removing OAuth tokens:
- login: browser flow with a loopback callback listener
- authorize-url / exchange: the same flow, run by hand
- refresh: force a refresh grant
- token: print a usable access token
- status: show what is stored and where it came from
- logout: delete stored tokens
"""

import logging

import click

from ..oauth.coordinator import OAuthCoordinator
from ..oauth.exceptions import InputRequiredError
from ..oauth.exit_codes import ExitCode, ExitError
from ..options import (
    DEFAULT_LISTEN_ADDR,
    AuthorizeURLOptions,
    ExchangeOptions,
    LoginOptions,
    LogoutOptions,
)
from .prompts import confirm, read_line
from .utils import get_options, handle_errors, write_output

logger = logging.getLogger(__name__)


@click.group()
def auth() -> None:
    """Manage OAuth tokens."""


@auth.command()
@click.option("--redirect-uri", default="", help="Override redirect URI")
@click.option("--scope", default="", help="Override OAuth scopes (comma-separated)")
@click.option(
    "--listen",
    default=DEFAULT_LISTEN_ADDR,
    show_default=True,
    help="Callback listen address",
)
@click.option("--no-open", is_flag=True, help="Print URL instead of opening a browser")
@click.pass_context
@handle_errors
def login(ctx: click.Context, redirect_uri: str, scope: str, listen: str, no_open: bool) -> None:
    """Start browser OAuth flow and store tokens."""
    options = get_options(ctx)
    coordinator = OAuthCoordinator(options)
    coordinator.login(
        LoginOptions(
            redirect_uri=redirect_uri,
            scope=scope,
            listen=listen,
            no_open=no_open,
        )
    )
    write_output(options, "Authentication successful. Tokens saved.")


@auth.command("authorize-url")
@click.option("--redirect-uri", default="", help="Override redirect URI")
@click.option("--scope", default="", help="Override OAuth scopes (comma-separated)")
@click.pass_context
@handle_errors
def authorize_url(ctx: click.Context, redirect_uri: str, scope: str) -> None:
    """Print the OAuth authorize URL."""
    options = get_options(ctx)
    url = OAuthCoordinator(options).authorize_url(
        AuthorizeURLOptions(redirect_uri=redirect_uri, scope=scope)
    )
    if options.json:
        write_output(options, {"authorize_url": url})
    else:
        write_output(options, url)


@auth.command()
@click.option("--code", default="", help="Authorization code from the redirect")
@click.option("--redirect-uri", default="", help="Override redirect URI")
@click.pass_context
@handle_errors
def exchange(ctx: click.Context, code: str, redirect_uri: str) -> None:
    """Exchange an authorization code for tokens."""
    options = get_options(ctx)
    if not code:
        try:
            code = read_line("Authorization code: ", options.no_input)
        except InputRequiredError as e:
            raise ExitError(ExitCode.USAGE, e) from e

    OAuthCoordinator(options).exchange(
        ExchangeOptions(code=code, redirect_uri=redirect_uri)
    )
    write_output(options, "Authentication successful. Tokens saved.")


@auth.command()
@click.pass_context
@handle_errors
def refresh(ctx: click.Context) -> None:
    """Refresh the access token."""
    options = get_options(ctx)
    OAuthCoordinator(options).refresh()
    write_output(options, "Access token refreshed.")


@auth.command()
@click.pass_context
@handle_errors
def token(ctx: click.Context) -> None:
    """Print a usable access token, refreshing it if needed."""
    options = get_options(ctx)
    access_token = OAuthCoordinator(options).ensure_access_token()
    if options.json:
        write_output(options, {"access_token": access_token})
    else:
        click.echo(access_token)


@auth.command()
@click.pass_context
@handle_errors
def status(ctx: click.Context) -> None:
    """Show token scopes and expiry."""
    options = get_options(ctx)
    snapshot = OAuthCoordinator(options).status()
    if options.json:
        write_output(options, snapshot.to_dict())
    else:
        write_output(options, snapshot.to_lines())


@auth.command()
@click.option("--force", is_flag=True, help="Skip the confirmation prompt")
@click.pass_context
@handle_errors
def logout(ctx: click.Context, force: bool) -> None:
    """Delete stored tokens."""
    options = get_options(ctx)
    removed = OAuthCoordinator(options).logout(
        LogoutOptions(force=force),
        lambda prompt: confirm(prompt, options.no_input),
    )
    if removed:
        write_output(options, "Tokens removed.")
