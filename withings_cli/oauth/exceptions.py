"""
OAuth exception classes for the Withings CLI.

This module defines the exception hierarchy for all OAuth-related errors.
Two of the classes are origin markers: NetworkError and APIError. The exit
code classifiers in exit_codes.py match on them by type, never on messages.
"""


class WithingsAuthError(Exception):
    """Base exception for all Withings OAuth errors."""

    pass


class ConfigurationError(WithingsAuthError):
    """Missing or invalid client credentials, redirect URI or flags."""

    pass


class InputRequiredError(WithingsAuthError):
    """Interactive input was needed but prompting is disabled."""

    def __init__(self, message: str = "input required but prompting disabled"):
        super().__init__(message)


class AuthorizationError(WithingsAuthError):
    """OAuth authorization flow error (state mismatch, denial, timeout)."""

    pass


class TokenNotAvailableError(WithingsAuthError):
    """No usable access token and nothing to refresh it with."""

    pass


class NetworkError(WithingsAuthError):
    """Transport failure talking to the token endpoint."""

    pass


class APIError(WithingsAuthError):
    """Token endpoint answered with a non-2xx status or a failure status."""

    pass


class ConfigStoreError(WithingsAuthError):
    """Config file read or write failed."""

    pass


class AuthServerError(WithingsAuthError):
    """The loopback callback listener failed to start or stop."""

    pass


def join_errors(primary: Exception, secondary: Exception) -> Exception:
    """
    Combine two failures without discarding either.

    The result keeps the primary error's type so classification still
    applies, carries both messages, and chains the secondary as its cause.
    """
    try:
        joined = type(primary)(f"{primary}; {secondary}")
    except TypeError:
        joined = WithingsAuthError(f"{primary}; {secondary}")
    joined.__cause__ = secondary
    return joined
