"""
Options passed explicitly from the command layer into the OAuth core.

Nothing here is global: the CLI builds these values once per invocation
and hands them down through every call.
"""

from dataclasses import dataclass
from typing import Optional

DEFAULT_CLOUD = "eu"
DEFAULT_LISTEN_ADDR = "127.0.0.1:9876"
VALID_CLOUDS = ("eu", "us")


@dataclass
class GlobalOptions:
    """
    Settings shared by every command.

    Attributes:
        verbose: Diagnostic verbosity (repeat count of -v)
        quiet: Suppress non-error output
        json: Machine-readable JSON output
        plain: Stable line-based output
        no_color: Disable ANSI color
        no_input: Never prompt
        config: User config file override (empty = default location)
        cloud: Withings cloud, "eu" or "us"
        base_url: API base URL override
    """

    verbose: int = 0
    quiet: bool = False
    json: bool = False
    plain: bool = False
    no_color: bool = False
    no_input: bool = False
    config: str = ""
    cloud: str = DEFAULT_CLOUD
    base_url: str = ""


@dataclass
class LoginOptions:
    """Options for the interactive browser login."""

    redirect_uri: str = ""
    scope: str = ""
    listen: str = DEFAULT_LISTEN_ADDR
    no_open: bool = False


@dataclass
class LogoutOptions:
    """Options for removing stored tokens."""

    force: bool = False


@dataclass
class ExchangeOptions:
    """Options for exchanging a manually obtained authorization code."""

    code: str = ""
    redirect_uri: str = ""


@dataclass
class AuthorizeURLOptions:
    """Options for printing the authorize URL."""

    redirect_uri: str = ""
    scope: str = ""
    state: Optional[str] = None
