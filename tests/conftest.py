"""Shared fixtures for the Withings CLI tests."""

import pytest

from withings_cli.oauth.config import (
    ENV_ACCESS_TOKEN,
    ENV_CLIENT_ID,
    ENV_CLIENT_SECRET,
    ENV_REDIRECT_URI,
    ENV_REFRESH_TOKEN,
)

WITHINGS_ENV_VARS = (
    ENV_ACCESS_TOKEN,
    ENV_CLIENT_ID,
    ENV_CLIENT_SECRET,
    ENV_REDIRECT_URI,
    ENV_REFRESH_TOKEN,
    "WITHINGS_CONFIG",
    "WITHINGS_CLOUD",
    "WITHINGS_BASE_URL",
)


@pytest.fixture(autouse=True)
def clean_withings_env(monkeypatch):
    """Keep the developer's real credentials out of every test."""
    for name in WITHINGS_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def client_env(monkeypatch):
    """Valid client credentials in the environment."""
    monkeypatch.setenv(ENV_CLIENT_ID, "test_client_id")
    monkeypatch.setenv(ENV_CLIENT_SECRET, "test_client_secret")
