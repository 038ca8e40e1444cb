"""
CLI utility functions for the Withings CLI.

This module provides helpers for printing output and for mapping failures
to exit codes at the command boundary.
"""

import functools
import json
import logging
import sys
from typing import Any

import click

from ..oauth.exceptions import WithingsAuthError
from ..oauth.exit_codes import ExitError, exit_code_for
from ..options import GlobalOptions

logger = logging.getLogger(__name__)


def get_options(ctx: click.Context) -> GlobalOptions:
    """Get the GlobalOptions from context."""
    return ctx.obj["options"]


def print_error(message: str, no_color: bool = False) -> None:
    """Print a single-line error message to stderr."""
    line = " ".join(str(message).split())
    click.secho(f"Error: {line}", fg=None if no_color else "red", err=True)


def write_output(options: GlobalOptions, value: Any) -> None:
    """
    Write command output honouring --quiet and --json.

    Strings print as-is, lists print one item per line, dicts print as
    "key: value" lines (or a JSON object with --json).
    """
    if options.quiet:
        return

    if options.json:
        if isinstance(value, str):
            value = {"message": value}
        click.echo(json.dumps(value, indent=2, sort_keys=True))
        return

    if isinstance(value, dict):
        for key, item in value.items():
            click.echo(f"{key}: {item}")
    elif isinstance(value, (list, tuple)):
        for item in value:
            click.echo(item)
    else:
        click.echo(value)


def handle_errors(func):
    """Render OAuth failures as one stderr line and exit with their class."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except (ExitError, WithingsAuthError) as e:
            ctx = click.get_current_context(silent=True)
            no_color = bool(ctx and ctx.obj and "options" in ctx.obj and get_options(ctx).no_color)
            logger.debug(f"Command failed: {e!r}")
            print_error(str(e), no_color=no_color)
            sys.exit(int(exit_code_for(e)))

    return wrapper
