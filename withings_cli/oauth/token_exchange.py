"""
Token endpoint client for Withings OAuth.

Both grants (authorization code and refresh token) POST a form-encoded
body to the same endpoint and get the same response shape back:

    {"status": 0, "body": {"access_token": ..., "refresh_token": ...,
                           "expires_in": 10800, "token_type": "Bearer",
                           "scope": "...", "userid": 12345}}

A non-zero status is a provider failure even on HTTP 200. Transport
failures are raised as NetworkError, everything the endpoint answered
badly is raised as APIError. Nothing is retried.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict

import requests

from .config import WITHINGS_STATUS_OK
from .exceptions import APIError, NetworkError

logger = logging.getLogger(__name__)

TOKEN_REQUEST_TIMEOUT = 30  # seconds

OAUTH_ACTION_REQUEST_TOKEN = "requesttoken"
OAUTH_GRANT_AUTHORIZATION = "authorization_code"
OAUTH_GRANT_REFRESH = "refresh_token"
OAUTH_CONTENT_TYPE_FORM = "application/x-www-form-urlencoded"


@dataclass
class TokenBody:
    """
    Tokens returned by the token endpoint.

    Attributes:
        access_token: Short-lived access token for API calls
        refresh_token: Token for the next refresh grant (may be empty)
        expires_in: Access token lifetime in seconds
        token_type: Token type (typically "Bearer")
        scope: Granted scopes
        user_id: Withings user ID, as text
    """

    access_token: str
    refresh_token: str = ""
    expires_in: int = 0
    token_type: str = ""
    scope: str = ""
    user_id: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TokenBody":
        """
        Build from the ``body`` object of a token response.

        ``userid`` arrives as a JSON string or number; both become text.

        Raises:
            APIError: If the body is not an object or has malformed fields
        """
        if not isinstance(data, dict):
            raise APIError("decode token response: body is not an object")

        user_id = data.get("userid")
        if user_id is None:
            user_id = ""
        elif isinstance(user_id, bool) or not isinstance(user_id, (str, int, float)):
            raise APIError(f"decode token response: invalid userid {user_id!r}")

        try:
            expires_in = int(data.get("expires_in") or 0)
        except (TypeError, ValueError) as e:
            raise APIError(f"decode token response: invalid expires_in: {e}") from e

        return cls(
            access_token=str(data.get("access_token") or ""),
            refresh_token=str(data.get("refresh_token") or ""),
            expires_in=expires_in,
            token_type=str(data.get("token_type") or ""),
            scope=str(data.get("scope") or ""),
            user_id=str(user_id),
        )


def exchange_token(
    token_url: str,
    client_id: str,
    client_secret: str,
    code: str,
    redirect_uri: str,
) -> TokenBody:
    """
    Exchange an authorization code for tokens.

    Raises:
        NetworkError: Transport failure
        APIError: Non-2xx response or provider failure status
    """
    logger.info("Exchanging authorization code for tokens")
    values = {
        "action": OAUTH_ACTION_REQUEST_TOKEN,
        "grant_type": OAUTH_GRANT_AUTHORIZATION,
        "client_id": client_id,
        "client_secret": client_secret,
        "code": code,
        "redirect_uri": redirect_uri,
    }
    return do_token_request(token_url, values)


def refresh_token(
    token_url: str,
    client_id: str,
    client_secret: str,
    refresh: str,
) -> TokenBody:
    """
    Run the refresh grant.

    Raises:
        NetworkError: Transport failure
        APIError: Non-2xx response or provider failure status
    """
    logger.info("Refreshing access token")
    values = {
        "action": OAUTH_ACTION_REQUEST_TOKEN,
        "grant_type": OAUTH_GRANT_REFRESH,
        "client_id": client_id,
        "client_secret": client_secret,
        "refresh_token": refresh,
    }
    return do_token_request(token_url, values)


def do_token_request(token_url: str, values: Dict[str, str]) -> TokenBody:
    """POST a token grant and decode the response."""
    logger.debug(f"POST {token_url} grant_type={values.get('grant_type')}")
    try:
        response = requests.post(
            token_url,
            data=values,
            headers={"Content-Type": OAUTH_CONTENT_TYPE_FORM},
            timeout=TOKEN_REQUEST_TIMEOUT,
        )
    except requests.RequestException as e:
        logger.error(f"Network error calling token endpoint: {e}")
        raise NetworkError(f"token request: {e}") from e

    payload = response.text or ""
    ensure_token_http_status(response.status_code, payload)
    return decode_token_response(payload)


def ensure_token_http_status(status_code: int, payload: str) -> None:
    if status_code < 200 or status_code >= 300:
        logger.error(f"Token endpoint returned HTTP {status_code}")
        raise APIError(
            f"token request failed: HTTP {status_code}: {payload.strip()}"
        )


def decode_token_response(payload: str) -> TokenBody:
    """
    Decode a token response payload.

    The provider's ``status`` must be the success sentinel. Otherwise the
    message comes from ``error``, then ``detail``, then the raw body.

    Raises:
        APIError: If the payload is not JSON or reports a failure
    """
    try:
        decoded = json.loads(payload)
    except ValueError as e:
        raise APIError(f"decode token response: {e}") from e

    if not isinstance(decoded, dict):
        raise APIError("decode token response: payload is not an object")

    status = decoded.get("status", WITHINGS_STATUS_OK)
    if status != WITHINGS_STATUS_OK:
        message = decoded.get("error") or decoded.get("detail") or payload.strip()
        raise APIError(f"withings API error: {status}: {message}")

    return TokenBody.from_dict(decoded.get("body") or {})
