"""Tests for the `withings auth` commands."""

import json
from pathlib import Path
from unittest import mock

import pytest
import requests
from click.testing import CliRunner

from withings_cli.cli import cli
from withings_cli.oauth.config_store import ConfigStore
from withings_cli.oauth.exceptions import AuthorizationError


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def workdir(tmp_path: Path, monkeypatch) -> Path:
    """Run each command from an empty project directory."""
    project = tmp_path / "project"
    project.mkdir()
    monkeypatch.chdir(project)
    return project


@pytest.fixture
def user_config(tmp_path: Path) -> Path:
    return tmp_path / "home" / "config.toml"


@pytest.fixture
def token_response():
    response = mock.MagicMock()
    response.status_code = 200
    response.text = json.dumps(
        {
            "status": 0,
            "body": {
                "access_token": "cli_access",
                "refresh_token": "cli_refresh",
                "expires_in": 10800,
                "token_type": "Bearer",
                "scope": "user.metrics",
                "userid": 9,
            },
        }
    )
    return response


def run(runner, user_config, *args):
    return runner.invoke(cli, ["--config", str(user_config), *args])


class TestGlobalFlags:
    """Tests for flag validation on the root group."""

    def test_json_and_plain_conflict(self, runner, workdir, user_config):
        result = run(runner, user_config, "--json", "--plain", "auth", "status")
        assert result.exit_code == 2

    def test_quiet_and_verbose_conflict(self, runner, workdir, user_config):
        result = run(runner, user_config, "-q", "-v", "auth", "status")
        assert result.exit_code == 2

    def test_unknown_cloud(self, runner, workdir, user_config):
        result = run(runner, user_config, "--cloud", "mars", "auth", "status")
        assert result.exit_code == 2


class TestTokenCommand:
    """Tests for `auth token`."""

    def test_env_token(self, runner, workdir, user_config, monkeypatch):
        monkeypatch.setenv("WITHINGS_ACCESS_TOKEN", "env_token")

        with mock.patch("requests.post") as mock_post:
            result = run(runner, user_config, "auth", "token")

        assert result.exit_code == 0
        assert result.output.strip() == "env_token"
        mock_post.assert_not_called()

    def test_project_token(self, runner, workdir, user_config):
        (workdir / "withings-cli.toml").write_text('access_token = "abc"\n', encoding="utf-8")

        result = run(runner, user_config, "--json", "auth", "token")

        assert result.exit_code == 0
        assert json.loads(result.output) == {"access_token": "abc"}

    def test_not_logged_in(self, runner, workdir, user_config):
        with mock.patch("requests.post") as mock_post:
            result = run(runner, user_config, "auth", "token")

        assert result.exit_code == 3
        assert "Error: authentication required" in result.output
        mock_post.assert_not_called()


class TestRefreshCommand:
    """Tests for `auth refresh`."""

    def test_refresh_persists(self, runner, workdir, user_config, client_env, token_response):
        user_config.parent.mkdir(parents=True)
        user_config.write_text('refresh_token = "old"\n', encoding="utf-8")

        with mock.patch("requests.post", return_value=token_response) as mock_post:
            result = run(runner, user_config, "auth", "refresh")

        assert result.exit_code == 0
        assert "Access token refreshed." in result.output
        mock_post.assert_called_once()
        assert ConfigStore.load(user_config).value("access_token") == "cli_access"

    def test_refresh_network_error(self, runner, workdir, user_config, client_env, monkeypatch):
        monkeypatch.setenv("WITHINGS_REFRESH_TOKEN", "r")

        with mock.patch("requests.post", side_effect=requests.ConnectionError("refused")):
            result = run(runner, user_config, "auth", "refresh")

        assert result.exit_code == 4
        assert "Error: token request" in result.output


class TestLoginCommand:
    """Tests for `auth login`."""

    def test_login_success(self, runner, workdir, user_config, client_env, token_response):
        with mock.patch(
            "withings_cli.oauth.coordinator.wait_for_auth_code", return_value="code"
        ), mock.patch("requests.post", return_value=token_response):
            result = run(runner, user_config, "auth", "login", "--no-open")

        assert result.exit_code == 0
        assert "Authentication successful. Tokens saved." in result.output
        assert ConfigStore.load(user_config).value("refresh_token") == "cli_refresh"

    def test_login_missing_credentials(self, runner, workdir, user_config):
        result = run(runner, user_config, "auth", "login", "--no-open")

        assert result.exit_code == 2
        assert "missing client ID or secret" in result.output

    def test_login_state_mismatch_is_auth(self, runner, workdir, user_config, client_env):

        with mock.patch(
            "withings_cli.oauth.coordinator.wait_for_auth_code",
            side_effect=AuthorizationError("state mismatch"),
        ):
            result = run(runner, user_config, "auth", "login", "--no-open")

        assert result.exit_code == 3
        assert "Error: state mismatch" in result.output


class TestManualCommands:
    """Tests for `auth authorize-url` and `auth exchange`."""

    def test_authorize_url(self, runner, workdir, user_config, client_env):
        result = run(
            runner, user_config, "auth", "authorize-url", "--redirect-uri", "http://localhost/cb"
        )

        assert result.exit_code == 0
        assert result.output.startswith("https://account.withings.com/oauth2_user/authorize2?")

    def test_exchange_without_code_and_no_input(self, runner, workdir, user_config, client_env):
        result = run(
            runner, user_config, "--no-input", "auth", "exchange", "--redirect-uri", "http://x/cb"
        )

        assert result.exit_code == 2
        assert "input required" in result.output

    def test_exchange_with_code(self, runner, workdir, user_config, client_env, token_response):
        with mock.patch("requests.post", return_value=token_response):
            result = run(
                runner,
                user_config,
                "auth",
                "exchange",
                "--code",
                "c",
                "--redirect-uri",
                "http://x/cb",
            )

        assert result.exit_code == 0
        assert ConfigStore.load(user_config).value("access_token") == "cli_access"


class TestStatusAndLogout:
    """Tests for `auth status` and `auth logout`."""

    @pytest.fixture
    def stored(self, user_config: Path) -> Path:
        user_config.parent.mkdir(parents=True)
        user_config.write_text(
            'access_token = "a"\nrefresh_token = "r"\nscope = "user.metrics"\n'
            'token_expires_at = "2099-01-01T00:00:00Z"\n',
            encoding="utf-8",
        )
        return user_config

    def test_status_plain(self, runner, workdir, stored):
        result = run(runner, stored, "auth", "status")

        assert result.exit_code == 0
        assert "Access token: present (user)" in result.output
        assert "Expires at: 2099-01-01T00:00:00Z" in result.output
        assert "Expired: false" in result.output

    def test_status_json(self, runner, workdir, stored):
        result = run(runner, stored, "--json", "auth", "status")

        payload = json.loads(result.output)
        assert payload["refresh_token_present"] is True
        assert payload["scope"] == "user.metrics"

    def test_logout_force(self, runner, workdir, stored):
        result = run(runner, stored, "auth", "logout", "--force")

        assert result.exit_code == 0
        assert "Tokens removed." in result.output
        assert stored.read_text(encoding="utf-8") == "\n"

    def test_logout_without_tty_is_usage(self, runner, workdir, stored):
        result = run(runner, stored, "auth", "logout")

        assert result.exit_code == 2
        assert ConfigStore.load(stored).value("access_token") == "a"

    def test_quiet_suppresses_output(self, runner, workdir, stored):
        result = run(runner, stored, "-q", "auth", "logout", "--force")

        assert result.exit_code == 0
        assert result.output == ""
