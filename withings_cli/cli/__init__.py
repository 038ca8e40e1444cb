"""
Click CLI implementation for the Withings CLI.

The root group parses the global flags into a GlobalOptions value and
passes it to every command through the click context object.
"""

import logging
import sys
from typing import Optional

import click

from ..options import DEFAULT_CLOUD, VALID_CLOUDS, GlobalOptions
from .auth_commands import auth

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(verbose: int) -> None:
    """Set the root log level from the -v count."""
    if verbose >= 2:
        level = logging.DEBUG
    elif verbose == 1:
        level = logging.INFO
    else:
        level = logging.WARNING
    logging.getLogger().setLevel(level)


@click.group()
@click.version_option(package_name="withings-cli", prog_name="withings")
@click.option("--verbose", "-v", count=True, help="Increase diagnostic verbosity (repeatable)")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-error output")
@click.option("--json", "output_json", is_flag=True, help="Machine-readable JSON output")
@click.option("--plain", is_flag=True, help="Stable line-based output (no tables, no colors)")
@click.option("--no-color", is_flag=True, help="Disable ANSI color")
@click.option("--no-input", is_flag=True, help="Disable prompts")
@click.option(
    "--config",
    "config_path",
    default="",
    envvar="WITHINGS_CONFIG",
    help="User config file path",
)
@click.option(
    "--cloud",
    type=click.Choice(VALID_CLOUDS),
    default=DEFAULT_CLOUD,
    show_default=True,
    envvar="WITHINGS_CLOUD",
    help="API cloud",
)
@click.option("--base-url", default="", envvar="WITHINGS_BASE_URL", help="Override API base URL")
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: int,
    quiet: bool,
    output_json: bool,
    plain: bool,
    no_color: bool,
    no_input: bool,
    config_path: str,
    cloud: str,
    base_url: str,
) -> None:
    """
    Interact with Withings Health Solutions data and OAuth tokens.
    """
    ctx.ensure_object(dict)

    if output_json and plain:
        raise click.UsageError("--json and --plain cannot be combined")
    if quiet and verbose > 0:
        raise click.UsageError("--quiet and --verbose cannot be combined")

    configure_logging(verbose)

    ctx.obj["options"] = GlobalOptions(
        verbose=verbose,
        quiet=quiet,
        json=output_json,
        plain=plain,
        no_color=no_color or plain,
        no_input=no_input,
        config=config_path,
        cloud=cloud,
        base_url=base_url,
    )


cli.add_command(auth)


def main(argv: Optional[list] = None) -> None:
    """Console entry point."""
    logging.basicConfig(level=logging.WARNING, format=LOG_FORMAT, stream=sys.stderr)
    try:
        cli.main(args=argv, prog_name="withings", standalone_mode=False)
    except click.exceptions.Abort:
        click.echo("\nInterrupted by user", err=True)
        sys.exit(130)
    except click.ClickException as e:
        e.show()
        sys.exit(e.exit_code)

