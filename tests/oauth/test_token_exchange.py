"""Tests for the token endpoint client."""

import json
from unittest import mock

import pytest
import requests

from withings_cli.oauth.exceptions import APIError, NetworkError
from withings_cli.oauth.token_exchange import (
    TOKEN_REQUEST_TIMEOUT,
    TokenBody,
    decode_token_response,
    exchange_token,
    refresh_token,
)

TOKEN_URL = "https://wbsapi.withings.net/v2/oauth2"


def make_response(payload, status_code=200):
    response = mock.MagicMock()
    response.status_code = status_code
    response.text = payload if isinstance(payload, str) else json.dumps(payload)
    return response


@pytest.fixture
def success_payload():
    return {
        "status": 0,
        "body": {
            "access_token": "new_access",
            "refresh_token": "new_refresh",
            "expires_in": 10800,
            "token_type": "Bearer",
            "scope": "user.metrics",
            "userid": 12345,
        },
    }


class TestTokenBody:
    """Tests for TokenBody.from_dict."""

    def test_numeric_userid_becomes_text(self):
        token = TokenBody.from_dict({"access_token": "a", "userid": 42})
        assert token.user_id == "42"

    def test_string_userid_kept(self):
        token = TokenBody.from_dict({"access_token": "a", "userid": "42"})
        assert token.user_id == "42"

    def test_missing_fields_default(self):
        token = TokenBody.from_dict({"access_token": "a"})

        assert token.refresh_token == ""
        assert token.expires_in == 0
        assert token.user_id == ""

    def test_invalid_userid_rejected(self):
        with pytest.raises(APIError, match="userid"):
            TokenBody.from_dict({"access_token": "a", "userid": {"id": 1}})

    def test_invalid_expires_in_rejected(self):
        with pytest.raises(APIError, match="expires_in"):
            TokenBody.from_dict({"access_token": "a", "expires_in": "soon"})


class TestDecodeTokenResponse:
    """Tests for decode_token_response."""

    def test_success(self, success_payload):
        token = decode_token_response(json.dumps(success_payload))

        assert token.access_token == "new_access"
        assert token.refresh_token == "new_refresh"
        assert token.expires_in == 10800
        assert token.user_id == "12345"

    def test_missing_status_is_success(self):
        token = decode_token_response(json.dumps({"body": {"access_token": "a"}}))
        assert token.access_token == "a"

    def test_failure_status_uses_error_field(self):
        with pytest.raises(APIError, match="withings API error: 503: invalid code"):
            decode_token_response(json.dumps({"status": 503, "error": "invalid code"}))

    def test_failure_status_falls_back_to_detail(self):
        with pytest.raises(APIError, match="401: bad client"):
            decode_token_response(json.dumps({"status": 401, "detail": "bad client"}))

    def test_failure_status_falls_back_to_raw_body(self):
        payload = json.dumps({"status": 293})
        with pytest.raises(APIError) as exc_info:
            decode_token_response(payload)
        assert payload in str(exc_info.value)

    def test_malformed_json(self):
        with pytest.raises(APIError, match="decode token response"):
            decode_token_response("<html>oops</html>")

    def test_non_object_payload(self):
        with pytest.raises(APIError, match="not an object"):
            decode_token_response("[1, 2]")


class TestTokenRequests:
    """Tests for the two grants over HTTP."""

    @mock.patch("requests.post")
    def test_exchange_token_sends_form(self, mock_post, success_payload):
        mock_post.return_value = make_response(success_payload)

        token = exchange_token(TOKEN_URL, "cid", "secret", "the_code", "http://127.0.0.1:9876/callback")

        assert token.access_token == "new_access"
        mock_post.assert_called_once()
        args, kwargs = mock_post.call_args
        assert args[0] == TOKEN_URL
        assert kwargs["data"] == {
            "action": "requesttoken",
            "grant_type": "authorization_code",
            "client_id": "cid",
            "client_secret": "secret",
            "code": "the_code",
            "redirect_uri": "http://127.0.0.1:9876/callback",
        }
        assert kwargs["headers"]["Content-Type"] == "application/x-www-form-urlencoded"
        assert kwargs["timeout"] == TOKEN_REQUEST_TIMEOUT

    @mock.patch("requests.post")
    def test_refresh_token_sends_form(self, mock_post, success_payload):
        mock_post.return_value = make_response(success_payload)

        refresh_token(TOKEN_URL, "cid", "secret", "old_refresh")

        data = mock_post.call_args[1]["data"]
        assert data["grant_type"] == "refresh_token"
        assert data["refresh_token"] == "old_refresh"
        assert data["action"] == "requesttoken"
        assert "code" not in data

    @mock.patch("requests.post")
    def test_transport_failure_is_network_error(self, mock_post):
        mock_post.side_effect = requests.ConnectionError("connection refused")

        with pytest.raises(NetworkError, match="token request"):
            refresh_token(TOKEN_URL, "cid", "secret", "r")

    @mock.patch("requests.post")
    def test_timeout_is_network_error(self, mock_post):
        mock_post.side_effect = requests.Timeout("read timed out")

        with pytest.raises(NetworkError):
            exchange_token(TOKEN_URL, "cid", "secret", "c", "http://x/cb")

    @mock.patch("requests.post")
    def test_http_error_includes_status_and_body(self, mock_post):
        mock_post.return_value = make_response("service unavailable\n", status_code=503)

        with pytest.raises(APIError, match="HTTP 503: service unavailable"):
            refresh_token(TOKEN_URL, "cid", "secret", "r")

    @mock.patch("requests.post")
    def test_provider_failure_on_http_200(self, mock_post):
        mock_post.return_value = make_response({"status": 503, "error": "Invalid Params"})

        with pytest.raises(APIError, match="Invalid Params"):
            refresh_token(TOKEN_URL, "cid", "secret", "r")
