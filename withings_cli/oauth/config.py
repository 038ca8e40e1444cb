"""
OAuth configuration for the Withings CLI.

Client credentials come exclusively from the environment so that secrets
never land in a config file. The redirect URI may additionally be
overridden by a command-line flag. This module also resolves the account
and API endpoints for the selected Withings cloud.
"""

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from .exceptions import ConfigurationError

ENV_CLIENT_ID = "WITHINGS_CLIENT_ID"
ENV_CLIENT_SECRET = "WITHINGS_CLIENT_SECRET"
ENV_REDIRECT_URI = "WITHINGS_REDIRECT_URI"
ENV_ACCESS_TOKEN = "WITHINGS_ACCESS_TOKEN"
ENV_REFRESH_TOKEN = "WITHINGS_REFRESH_TOKEN"

DEFAULT_AUTH_SCOPE = "user.metrics,user.activity"

WITHINGS_ACCOUNT_EU = "https://account.withings.com"
WITHINGS_ACCOUNT_US = "https://account.us.withingsmed.com"
WITHINGS_AUTHORIZE_PATH = "/oauth2_user/authorize2"

WITHINGS_API_EU = "https://wbsapi.withings.net"
WITHINGS_API_US = "https://wbsapi.us.withingsmed.net"
WITHINGS_TOKEN_PATH = "/v2/oauth2"

# Withings reports success in the JSON body, not the HTTP status.
WITHINGS_STATUS_OK = 0


@dataclass
class OAuthCredentials:
    """
    Client credentials for the Withings OAuth app.

    Attributes:
        client_id: App client ID from the Withings developer portal
        client_secret: App client secret
        redirect_uri: Registered redirect URI (empty = derive from listen address)
    """

    client_id: str = ""
    client_secret: str = ""
    redirect_uri: str = ""

    @classmethod
    def from_env(
        cls,
        redirect_override: str = "",
        environ: Optional[Mapping[str, str]] = None,
    ) -> "OAuthCredentials":
        """
        Resolve credentials from environment variables.

        Precedence for the redirect URI is flag override, then
        WITHINGS_REDIRECT_URI, then empty.

        Args:
            redirect_override: Value of the --redirect-uri flag
            environ: Environment mapping (defaults to os.environ)

        Returns:
            OAuthCredentials instance (fields may be empty)
        """
        env = os.environ if environ is None else environ
        return cls(
            client_id=env.get(ENV_CLIENT_ID, ""),
            client_secret=env.get(ENV_CLIENT_SECRET, ""),
            redirect_uri=redirect_override or env.get(ENV_REDIRECT_URI, ""),
        )

    @property
    def complete(self) -> bool:
        """True when both client ID and secret are set."""
        return bool(self.client_id) and bool(self.client_secret)

    def require_client_credentials(self) -> None:
        """
        Fail before any network activity if the ID or secret is missing.

        Raises:
            ConfigurationError: If either value is empty
        """
        if not self.complete:
            raise ConfigurationError(
                f"missing client ID or secret (set {ENV_CLIENT_ID} and {ENV_CLIENT_SECRET})"
            )


def build_local_redirect_uri(listen_addr: str) -> str:
    """Default loopback redirect URI for a listen address."""
    return f"http://{listen_addr}/callback"


def account_base_url(cloud: str) -> str:
    """Account (authorize) host for the selected cloud."""
    if cloud == "us":
        return WITHINGS_ACCOUNT_US
    return WITHINGS_ACCOUNT_EU


def api_base_url(base_override: str, cloud: str) -> str:
    """API host, honouring an explicit --base-url override."""
    if base_override:
        return base_override.rstrip("/")
    if cloud == "us":
        return WITHINGS_API_US
    return WITHINGS_API_EU


def token_endpoint(base_url: str) -> str:
    """Token endpoint below an API base URL."""
    return base_url.rstrip("/") + WITHINGS_TOKEN_PATH
