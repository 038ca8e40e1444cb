"""
OAuth 2.0 module for Withings API integration.

This module provides the OAuth 2.0 Authorization Code flow with a local
loopback callback listener, token refresh, and the line-preserving config
store that holds the tokens.

Public API:
    login: Interactive browser login
    logout: Remove stored tokens
    status: Snapshot of stored tokens
    ensure_access_token: Usable access token for API calls
    OAuthCoordinator: High-level OAuth interface
    TokenManager: Token lifecycle management
    ConfigStore: Line-preserving key/value file store
    OAuthCredentials: Client credentials from the environment

Exceptions:
    WithingsAuthError: Base exception
    ConfigurationError: Missing credentials or bad flags
    AuthorizationError: Authorization flow error
    TokenNotAvailableError: No usable or refreshable token
    NetworkError: Transport failure (marker)
    APIError: Token endpoint failure (marker)
    ConfigStoreError: Config file I/O failure
    AuthServerError: Callback listener failure
"""

from .auth_server import (
    AuthSession,
    OAuthCallbackServer,
    build_authorize_url,
    wait_for_auth_code,
)
from .config import OAuthCredentials
from .config_store import ConfigSources, ConfigStore, load_config_sources
from .coordinator import OAuthCoordinator, ensure_access_token, login, logout, status
from .exceptions import (
    APIError,
    AuthorizationError,
    AuthServerError,
    ConfigStoreError,
    ConfigurationError,
    InputRequiredError,
    NetworkError,
    TokenNotAvailableError,
    WithingsAuthError,
)
from .exit_codes import ExitCode, ExitError, classify_refresh_error, classify_token_error
from .token_exchange import TokenBody
from .token_manager import AuthStatus, TokenManager, TokenState

__all__ = [
    # Operations
    "login",
    "logout",
    "status",
    "ensure_access_token",
    # Coordinator
    "OAuthCoordinator",
    # Token lifecycle
    "TokenManager",
    "TokenState",
    "TokenBody",
    "AuthStatus",
    # Config
    "OAuthCredentials",
    "ConfigStore",
    "ConfigSources",
    "load_config_sources",
    # Authorization server
    "AuthSession",
    "OAuthCallbackServer",
    "build_authorize_url",
    "wait_for_auth_code",
    # Exit classification
    "ExitCode",
    "ExitError",
    "classify_token_error",
    "classify_refresh_error",
    # Exceptions
    "WithingsAuthError",
    "ConfigurationError",
    "InputRequiredError",
    "AuthorizationError",
    "TokenNotAvailableError",
    "NetworkError",
    "APIError",
    "ConfigStoreError",
    "AuthServerError",
]
