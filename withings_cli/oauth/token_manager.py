"""
Token manager for Withings OAuth.

This module manages the token lifecycle:
- Resolving the access and refresh tokens across three tiers
  (environment override, project config, user config)
- Deciding whether the current access token is still usable
- Running a refresh grant when it is not
- Persisting tokens to the user config as one batch

Refreshed tokens are only written back when the refresh token came from
the user config. Tokens supplied through environment variables are never
persisted.
"""

import logging
import os
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Mapping, Optional

from ..options import GlobalOptions
from .config import (
    ENV_ACCESS_TOKEN,
    ENV_REFRESH_TOKEN,
    OAuthCredentials,
    api_base_url,
    token_endpoint,
)
from .config_store import (
    CONFIG_KEY_ACCESS_TOKEN,
    CONFIG_KEY_REFRESH_TOKEN,
    CONFIG_KEY_SCOPE,
    CONFIG_KEY_TOKEN_EXPIRES_AT,
    CONFIG_KEY_TOKEN_OBTAINED_AT,
    CONFIG_KEY_TOKEN_TYPE,
    CONFIG_KEY_USER_ID,
    TOKEN_KEYS,
    ConfigSources,
    ConfigStore,
    load_config_sources,
)
from .exceptions import TokenNotAvailableError, WithingsAuthError
from .exit_codes import ExitCode, ExitError, classify_refresh_error
from .token_exchange import TokenBody, refresh_token

logger = logging.getLogger(__name__)

TOKEN_REFRESH_SKEW = timedelta(seconds=30)

SOURCE_ENV = "env"
SOURCE_PROJECT = "project"
SOURCE_USER = "user"
SOURCE_NONE = "none"

STATUS_UNKNOWN_TEXT = "unknown"
RFC3339_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


@dataclass
class ResolvedValue:
    """A value together with the tier that produced it."""

    value: str
    source: str


@dataclass
class TokenState:
    """
    Current token view after tier resolution.

    Attributes:
        access_token: Winning access token (may be empty)
        access_source: Tier the access token came from
        refresh_token: Winning refresh token (may be empty)
        refresh_source: Tier the refresh token came from
        expires_at: Access token expiry, None when unknown
    """

    access_token: str = ""
    access_source: str = SOURCE_NONE
    refresh_token: str = ""
    refresh_source: str = SOURCE_NONE
    expires_at: Optional[datetime] = None


def resolve_value_source(env_value: str, project_value: str, user_value: str) -> ResolvedValue:
    """First non-empty value in env > project > user order."""
    if env_value:
        return ResolvedValue(env_value, SOURCE_ENV)
    if project_value:
        return ResolvedValue(project_value, SOURCE_PROJECT)
    if user_value:
        return ResolvedValue(user_value, SOURCE_USER)
    return ResolvedValue("", SOURCE_NONE)


def format_time(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).strftime(RFC3339_FORMAT)


def parse_time(value: str) -> Optional[datetime]:
    """
    Parse an RFC 3339 timestamp.

    Returns:
        Timezone-aware datetime, or None for empty or unparseable input
    """
    if not value:
        return None
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def build_token_state(
    project: ConfigStore,
    user: ConfigStore,
    environ: Optional[Mapping[str, str]] = None,
) -> TokenState:
    """Resolve access and refresh tokens independently across the tiers."""
    env = os.environ if environ is None else environ

    access = resolve_value_source(
        env.get(ENV_ACCESS_TOKEN, ""),
        project.value(CONFIG_KEY_ACCESS_TOKEN),
        user.value(CONFIG_KEY_ACCESS_TOKEN),
    )
    refresh = resolve_value_source(
        env.get(ENV_REFRESH_TOKEN, ""),
        project.value(CONFIG_KEY_REFRESH_TOKEN),
        user.value(CONFIG_KEY_REFRESH_TOKEN),
    )

    return TokenState(
        access_token=access.value,
        access_source=access.source,
        refresh_token=refresh.value,
        refresh_source=refresh.source,
        # Expiry always comes from the user store
        expires_at=parse_time(user.value(CONFIG_KEY_TOKEN_EXPIRES_AT)),
    )


def should_refresh(expires_at: Optional[datetime], now: Optional[datetime] = None) -> bool:
    """True once now >= expires_at - skew. Unknown expiry never refreshes."""
    if expires_at is None:
        return False
    now = now or datetime.now(timezone.utc)
    return now >= expires_at - TOKEN_REFRESH_SKEW


def usable_access_token(state: TokenState, now: Optional[datetime] = None) -> str:
    """Current access token if it can be used as-is, else empty."""
    if not state.access_token:
        return ""
    if should_refresh(state.expires_at, now):
        return ""
    return state.access_token


def should_persist_refreshed_tokens(refresh_source: str) -> bool:
    return refresh_source == SOURCE_USER


def persist_tokens(store: ConfigStore, token: TokenBody, now: Optional[datetime] = None) -> None:
    """
    Write a token record to a store as one batch, then save once.

    An empty refresh token in the response keeps the stored one.

    Raises:
        ConfigStoreError: If the file cannot be written
    """
    obtained_at = now or datetime.now(timezone.utc)
    expires_at = obtained_at + timedelta(seconds=token.expires_in)

    store.set(CONFIG_KEY_ACCESS_TOKEN, token.access_token)
    if token.refresh_token:
        store.set(CONFIG_KEY_REFRESH_TOKEN, token.refresh_token)
    store.set(CONFIG_KEY_TOKEN_TYPE, token.token_type)
    store.set(CONFIG_KEY_SCOPE, token.scope)
    store.set(CONFIG_KEY_USER_ID, token.user_id)
    store.set(CONFIG_KEY_TOKEN_EXPIRES_AT, format_time(expires_at))
    store.set(CONFIG_KEY_TOKEN_OBTAINED_AT, format_time(obtained_at))
    store.save()
    logger.info(f"Tokens saved to {store.path}")


def remove_token_keys(store: ConfigStore) -> None:
    for key in TOKEN_KEYS:
        store.unset(key)


def _resolve_plain(project: ConfigStore, user: ConfigStore, key: str) -> str:
    return project.value(key) or user.value(key)


@dataclass
class AuthStatus:
    """Snapshot of the stored authorization, for `auth status`."""

    access_token: str
    access_source: str
    refresh_token: str
    refresh_source: str
    scope: str
    token_type: str
    user_id: str
    expires_at: Optional[datetime]
    expired: bool

    @property
    def expires_at_text(self) -> str:
        if self.expires_at is None:
            return STATUS_UNKNOWN_TEXT
        return format_time(self.expires_at)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "access_token_present": bool(self.access_token),
            "refresh_token_present": bool(self.refresh_token),
            "access_token_source": self.access_source,
            "refresh_token_source": self.refresh_source,
            "scope": self.scope,
            "token_type": self.token_type,
            "user_id": self.user_id,
            "token_expires_at": self.expires_at_text,
            "expired": self.expired,
        }

    def to_lines(self) -> List[str]:
        def present(value: str) -> str:
            return "present" if value else "absent"

        return [
            f"Access token: {present(self.access_token)} ({self.access_source})",
            f"Refresh token: {present(self.refresh_token)} ({self.refresh_source})",
            f"Scope: {self.scope or STATUS_UNKNOWN_TEXT}",
            f"Token type: {self.token_type or STATUS_UNKNOWN_TEXT}",
            f"User ID: {self.user_id or STATUS_UNKNOWN_TEXT}",
            f"Expires at: {self.expires_at_text}",
            f"Expired: {str(self.expired).lower()}",
        ]


def build_auth_status(
    project: ConfigStore,
    user: ConfigStore,
    environ: Optional[Mapping[str, str]] = None,
    now: Optional[datetime] = None,
) -> AuthStatus:
    state = build_token_state(project, user, environ)
    now = now or datetime.now(timezone.utc)
    return AuthStatus(
        access_token=state.access_token,
        access_source=state.access_source,
        refresh_token=state.refresh_token,
        refresh_source=state.refresh_source,
        scope=_resolve_plain(project, user, CONFIG_KEY_SCOPE),
        token_type=_resolve_plain(project, user, CONFIG_KEY_TOKEN_TYPE),
        user_id=_resolve_plain(project, user, CONFIG_KEY_USER_ID),
        expires_at=state.expires_at,
        expired=state.expires_at is not None and now > state.expires_at,
    )


class TokenManager:
    """
    Manages the token lifecycle for one CLI invocation.

    Responsibilities:
    - Provide a usable access token to API callers
    - Refresh it when stale or absent
    - Write refreshed tokens back to the user config when eligible

    Example:
        manager = TokenManager(GlobalOptions())
        token = manager.ensure_access_token()
    """

    def __init__(
        self,
        options: GlobalOptions,
        sources: Optional[ConfigSources] = None,
        environ: Optional[Mapping[str, str]] = None,
    ):
        """
        Initialize token manager.

        Args:
            options: Global CLI options
            sources: Preloaded config stores (loaded from disk if not provided)
            environ: Environment mapping (defaults to os.environ)
        """
        self.options = options
        self.environ = os.environ if environ is None else environ
        self.sources = sources or load_config_sources(options.config)

    @property
    def token_url(self) -> str:
        return token_endpoint(api_base_url(self.options.base_url, self.options.cloud))

    def token_state(self) -> TokenState:
        return build_token_state(self.sources.project, self.sources.user, self.environ)

    def ensure_access_token(self) -> str:
        """
        Get a usable access token, refreshing if necessary.

        Returns:
            Access token string

        Raises:
            ExitError: AUTH when no token can be obtained, NETWORK/API when
                the refresh grant fails
        """
        state = self.token_state()
        token = usable_access_token(state)
        if token:
            logger.debug(f"Using access token from {state.access_source}")
            return token

        logger.info("Access token missing or stale, refreshing")
        return self.refresh_access_token(state)

    def refresh_access_token(self, state: Optional[TokenState] = None) -> str:
        """
        Run the refresh grant and return the new access token.

        Preconditions (refresh token present, client credentials set) are
        checked before any network call.
        """
        state = state or self.token_state()
        if not state.refresh_token:
            raise ExitError(
                ExitCode.AUTH,
                TokenNotAvailableError(
                    "authentication required. Run `withings auth login` first."
                ),
            )

        credentials = OAuthCredentials.from_env(environ=self.environ)
        if not credentials.complete:
            raise ExitError(
                ExitCode.AUTH,
                TokenNotAvailableError("missing client ID or secret"),
            )

        try:
            token = refresh_token(
                self.token_url,
                credentials.client_id,
                credentials.client_secret,
                state.refresh_token,
            )
        except WithingsAuthError as e:
            raise classify_refresh_error(e) from e

        if should_persist_refreshed_tokens(state.refresh_source):
            persist_tokens(self.sources.user, token)
        else:
            logger.debug(
                f"Refresh token came from {state.refresh_source}; not persisting"
            )

        return token.access_token

    def status(self) -> AuthStatus:
        return build_auth_status(self.sources.project, self.sources.user, self.environ)
