"""
OAuth coordinator for high-level OAuth operations.

This module provides the interface the command layer uses: login, logout,
status and obtaining a usable access token, plus the manual
authorize-url / exchange / refresh steps.
"""

import logging
import threading
from typing import Callable, Mapping, Optional

from ..options import (
    AuthorizeURLOptions,
    ExchangeOptions,
    GlobalOptions,
    LoginOptions,
    LogoutOptions,
)
from .auth_server import build_authorize_url, random_state, wait_for_auth_code
from .config import (
    OAuthCredentials,
    account_base_url,
    build_local_redirect_uri,
)
from .config_store import ConfigSources, load_config_sources
from .exceptions import ConfigurationError, WithingsAuthError
from .exit_codes import ExitCode, ExitError, classify_token_error
from .token_exchange import exchange_token
from .token_manager import AuthStatus, TokenManager, persist_tokens, remove_token_keys

logger = logging.getLogger(__name__)

ConfirmFn = Callable[[str], bool]


def _usage(error: Exception) -> ExitError:
    return ExitError(ExitCode.USAGE, error)


class OAuthCoordinator:
    """
    High-level coordinator for OAuth operations.

    Example:
        coordinator = OAuthCoordinator(GlobalOptions(cloud="eu"))
        token = coordinator.ensure_access_token()
    """

    def __init__(
        self,
        options: GlobalOptions,
        sources: Optional[ConfigSources] = None,
        environ: Optional[Mapping[str, str]] = None,
    ):
        """
        Initialize OAuth coordinator.

        Args:
            options: Global CLI options
            sources: Preloaded config stores (loaded from disk if not provided)
            environ: Environment mapping (defaults to os.environ)
        """
        self.options = options
        self.environ = environ
        self.sources = sources or load_config_sources(options.config)
        self.token_manager = TokenManager(options, self.sources, environ)

    def _credentials(self, redirect_override: str = "") -> OAuthCredentials:
        credentials = OAuthCredentials.from_env(redirect_override, self.environ)
        try:
            credentials.require_client_credentials()
        except ConfigurationError as e:
            raise _usage(e) from e
        return credentials

    def _exchange_and_persist(self, credentials: OAuthCredentials, code: str) -> None:
        try:
            token = exchange_token(
                self.token_manager.token_url,
                credentials.client_id,
                credentials.client_secret,
                code,
                credentials.redirect_uri,
            )
        except WithingsAuthError as e:
            raise classify_token_error(e) from e

        persist_tokens(self.sources.user, token)

    def login(
        self,
        login_options: LoginOptions,
        cancel: Optional[threading.Event] = None,
    ) -> None:
        """
        Run the interactive authorization-code flow and store the tokens.

        Client credentials are checked before anything touches the network.
        Without a redirect URI override, a loopback URI is derived from the
        listen address.

        Args:
            login_options: Login flags
            cancel: Optional event that aborts the callback wait

        Raises:
            ExitError: USAGE for missing credentials, NETWORK/API/FAILURE for
                exchange failures
            AuthorizationError: Callback failure or timeout
        """
        credentials = self._credentials(login_options.redirect_uri)
        if not credentials.redirect_uri:
            credentials.redirect_uri = build_local_redirect_uri(login_options.listen)

        state = random_state()
        authorize_url = build_authorize_url(
            account_base_url(self.options.cloud),
            credentials.client_id,
            credentials.redirect_uri,
            login_options.scope,
            state,
        )

        code = wait_for_auth_code(
            credentials.redirect_uri,
            login_options.listen,
            state,
            authorize_url,
            open_browser=not login_options.no_open,
            cancel=cancel,
        )

        self._exchange_and_persist(credentials, code)
        logger.info("Authorization complete")

    def authorize_url(self, url_options: AuthorizeURLOptions) -> str:
        """Build the authorize URL for a manual flow."""
        credentials = self._credentials(url_options.redirect_uri)
        if not credentials.redirect_uri:
            raise _usage(ConfigurationError("missing redirect URI"))

        return build_authorize_url(
            account_base_url(self.options.cloud),
            credentials.client_id,
            credentials.redirect_uri,
            url_options.scope,
            url_options.state or random_state(),
        )

    def exchange(self, exchange_options: ExchangeOptions) -> None:
        """Exchange a manually obtained authorization code and store the tokens."""
        if not exchange_options.code:
            raise _usage(ConfigurationError("authorization code required"))

        credentials = self._credentials(exchange_options.redirect_uri)
        if not credentials.redirect_uri:
            raise _usage(ConfigurationError("missing redirect URI"))

        self._exchange_and_persist(credentials, exchange_options.code)

    def refresh(self) -> str:
        """Force a refresh grant regardless of the current expiry."""
        return self.token_manager.refresh_access_token()

    def ensure_access_token(self) -> str:
        """Get a usable access token, refreshing if needed."""
        return self.token_manager.ensure_access_token()

    def status(self) -> AuthStatus:
        return self.token_manager.status()

    def logout(self, logout_options: LogoutOptions, confirm: ConfirmFn) -> bool:
        """
        Remove stored tokens from the user config.

        Args:
            logout_options: Logout flags
            confirm: Confirmation prompt; called unless --force

        Returns:
            True if tokens were removed, False if the user declined
        """
        if not logout_options.force:
            try:
                proceed = confirm("Delete stored tokens? [y/N]: ")
            except WithingsAuthError as e:
                raise _usage(e) from e
            if not proceed:
                logger.info("Logout cancelled")
                return False

        remove_token_keys(self.sources.user)
        self.sources.user.save()
        logger.info(f"Tokens removed from {self.sources.user.path}")
        return True


def login(
    options: GlobalOptions,
    login_options: LoginOptions,
    cancel: Optional[threading.Event] = None,
) -> None:
    OAuthCoordinator(options).login(login_options, cancel)


def logout(options: GlobalOptions, logout_options: LogoutOptions, confirm: ConfirmFn) -> bool:
    return OAuthCoordinator(options).logout(logout_options, confirm)


def status(options: GlobalOptions) -> AuthStatus:
    return OAuthCoordinator(options).status()


def ensure_access_token(options: GlobalOptions) -> str:
    """Entry point for data commands: a usable access token or ExitError."""
    return TokenManager(options).ensure_access_token()
