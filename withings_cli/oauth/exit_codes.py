"""
Exit classification for CLI failures.

Every failure that leaves the CLI is tagged with exactly one exit class.
Classification is by type only: the NetworkError and APIError markers
surface as their own classes, everything else falls back to a class that
depends on where the failure happened.
"""

from enum import IntEnum

from .exceptions import (
    APIError,
    AuthorizationError,
    ConfigurationError,
    InputRequiredError,
    NetworkError,
    TokenNotAvailableError,
)


class ExitCode(IntEnum):
    """Process exit codes."""

    SUCCESS = 0
    FAILURE = 1
    USAGE = 2
    AUTH = 3
    NETWORK = 4
    API = 5


class ExitError(Exception):
    """
    Couples an exit code with the error that caused it.

    Attributes:
        code: Exit class for the process
        error: Underlying error
    """

    def __init__(self, code: ExitCode, error: Exception):
        super().__init__(str(error))
        self.code = code
        self.error = error
        self.__cause__ = error


def classify_token_error(error: Exception) -> ExitError:
    """Classify a failure from the code exchange path."""
    if isinstance(error, ExitError):
        return error
    if isinstance(error, NetworkError):
        return ExitError(ExitCode.NETWORK, error)
    if isinstance(error, APIError):
        return ExitError(ExitCode.API, error)
    return ExitError(ExitCode.FAILURE, error)


def classify_refresh_error(error: Exception) -> ExitError:
    """Classify a failure from the refresh grant path."""
    if isinstance(error, ExitError):
        return error
    if isinstance(error, NetworkError):
        return ExitError(ExitCode.NETWORK, error)
    if isinstance(error, APIError):
        return ExitError(ExitCode.API, error)
    return ExitError(ExitCode.AUTH, error)


def exit_code_for(error: Exception) -> ExitCode:
    """Map any error reaching the CLI boundary to its exit code."""
    if isinstance(error, ExitError):
        return error.code
    if isinstance(error, (ConfigurationError, InputRequiredError)):
        return ExitCode.USAGE
    if isinstance(error, (AuthorizationError, TokenNotAvailableError)):
        return ExitCode.AUTH
    if isinstance(error, NetworkError):
        return ExitCode.NETWORK
    if isinstance(error, APIError):
        return ExitCode.API
    return ExitCode.FAILURE
