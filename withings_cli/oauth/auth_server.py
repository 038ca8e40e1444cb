"""
OAuth callback server for the Withings CLI.

This module provides the short-lived loopback HTTP listener that captures
the OAuth redirect during `withings auth login`.

Lifecycle of one login:
1. Generate a random state value and the authorize URL
2. Start the listener on the configured host:port, serving only the
   redirect URI's path
3. Open the browser (or print the URL)
4. Wait for exactly one outcome: a code, an error, or the timeout
5. Shut the listener down, on every path

The callback handler hands its result to the waiting thread through two
single-slot queues, one for the code and one for errors. Only the first
outcome is consumed. A repeated callback after that may block its request
thread on the full slot; the login outcome is already decided by then and
the thread dies with the process.
"""

import logging
import queue
import secrets
import socket
import sys
import threading
import time
import webbrowser
from typing import Optional, Tuple
from urllib.parse import urlencode, urlparse, urlunparse

from flask import Flask, Response, request
from werkzeug.serving import make_server

from .config import DEFAULT_AUTH_SCOPE, WITHINGS_AUTHORIZE_PATH
from .exceptions import (
    AuthServerError,
    AuthorizationError,
    ConfigurationError,
    join_errors,
)

logger = logging.getLogger(__name__)

AUTH_CALLBACK_TIMEOUT = 120  # seconds
AUTH_SHUTDOWN_TIMEOUT = 5  # seconds
AUTH_STATE_SIZE_BYTES = 16
AUTH_POLL_INTERVAL = 0.1


def random_state() -> str:
    """Random hex state value for CSRF protection of the callback."""
    return secrets.token_hex(AUTH_STATE_SIZE_BYTES)


def build_authorize_url(
    base_url: str,
    client_id: str,
    redirect_uri: str,
    scope: str,
    state: str,
) -> str:
    """
    Generate the Withings authorization URL.

    Args:
        base_url: Account base URL for the selected cloud
        client_id: App client ID
        redirect_uri: Redirect URI registered for the app
        scope: Comma-separated scopes (default scope when empty)
        state: CSRF state value

    Returns:
        Complete authorization URL with query parameters

    Raises:
        ConfigurationError: If base_url is not an absolute URL
    """
    parsed = urlparse(base_url)
    if not parsed.scheme or not parsed.netloc:
        raise ConfigurationError(f"invalid authorize base URL: {base_url!r}")

    params = {
        "response_type": "code",
        "client_id": client_id,
        "redirect_uri": redirect_uri,
        "scope": scope or DEFAULT_AUTH_SCOPE,
        "state": state,
    }
    return urlunparse(
        (parsed.scheme, parsed.netloc, WITHINGS_AUTHORIZE_PATH, "", urlencode(params), "")
    )


def callback_path(redirect_uri: str) -> str:
    """Path segment of the redirect URI, defaulting to '/'."""
    try:
        parsed = urlparse(redirect_uri)
    except ValueError as e:
        raise ConfigurationError(f"invalid redirect URI: {e}") from e
    return parsed.path or "/"


def parse_listen_addr(listen_addr: str) -> Tuple[str, int]:
    """Split a host:port listen address."""
    host, sep, port = listen_addr.rpartition(":")
    if not sep or not port.isdigit():
        raise ConfigurationError(f"invalid listen address: {listen_addr!r}")
    port_number = int(port)
    if not 0 <= port_number <= 65535:
        raise ConfigurationError(f"invalid listen port: {port_number}")
    return host.strip("[]") or "127.0.0.1", port_number


class AuthSession:
    """
    In-memory handoff between the callback handler and the login flow.

    Attributes:
        state: Expected state value
        code_slot: Single-slot queue receiving the authorization code
        error_slot: Single-slot queue receiving a callback failure
    """

    def __init__(self, state: str):
        self.state = state
        self.code_slot: "queue.Queue[str]" = queue.Queue(maxsize=1)
        self.error_slot: "queue.Queue[Exception]" = queue.Queue(maxsize=1)
        self._delivered = threading.Event()

    def deliver_code(self, code: str) -> None:
        self.code_slot.put(code)
        self._delivered.set()

    def deliver_error(self, error: Exception) -> None:
        self.error_slot.put(error)
        self._delivered.set()

    def _take(self) -> Optional[str]:
        try:
            return self.code_slot.get_nowait()
        except queue.Empty:
            pass
        try:
            error = self.error_slot.get_nowait()
        except queue.Empty:
            return None
        raise error

    def wait(
        self,
        timeout: float = AUTH_CALLBACK_TIMEOUT,
        cancel: Optional[threading.Event] = None,
    ) -> str:
        """
        Wait for the first callback outcome.

        Args:
            timeout: Seconds before giving up
            cancel: Optional event that aborts the wait when set

        Returns:
            Authorization code

        Raises:
            AuthorizationError: Callback failure, timeout or cancellation
        """
        logger.info(f"Waiting for OAuth callback (timeout: {timeout}s)")
        deadline = time.monotonic() + timeout
        while True:
            code = self._take()
            if code is not None:
                return code
            if cancel is not None and cancel.is_set():
                raise AuthorizationError("authorization cancelled")
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                logger.warning(f"Timeout waiting for callback after {timeout}s")
                raise AuthorizationError("authorization timed out")
            self._delivered.wait(min(remaining, AUTH_POLL_INTERVAL))


class OAuthCallbackServer:
    """
    Local HTTP server to handle the OAuth redirect.

    The server:
    1. Binds the listen address and serves one registered path
    2. Validates state, then reports the code or the error to the session
    3. Is shut down by the login flow, with a bounded wait
    """

    def __init__(self, listen_addr: str, path: str, session: AuthSession):
        """
        Initialize callback server.

        Args:
            listen_addr: host:port to bind
            path: Callback path taken from the redirect URI
            session: Handoff receiving the callback outcome
        """
        self.listen_addr = listen_addr
        self.path = path
        self.session = session
        self.app = Flask(__name__)
        self.app.logger.setLevel(logging.WARNING)
        logging.getLogger("werkzeug").setLevel(logging.WARNING)
        self.server = None
        self.thread: Optional[threading.Thread] = None

        self.app.add_url_rule(
            self.path,
            "oauth_callback",
            self._handle_callback,
            methods=["GET"],
        )

    def _handle_callback(self) -> Response:
        """Handle the OAuth redirect from Withings."""
        logger.info("Received OAuth callback")

        if request.args.get("state") != self.session.state:
            logger.error("OAuth callback state mismatch")
            self.session.deliver_error(AuthorizationError("state mismatch"))
            return Response("state mismatch\n", status=400, content_type="text/plain")

        error = request.args.get("error")
        if error:
            logger.error(f"OAuth error: {error}")
            self.session.deliver_error(AuthorizationError(f"authorization failed: {error}"))
            return Response(f"{error}\n", status=400, content_type="text/plain")

        code = request.args.get("code")
        if not code:
            logger.error("No authorization code in callback")
            self.session.deliver_error(AuthorizationError("missing code"))
            return Response("missing code\n", status=400, content_type="text/plain")

        self.session.deliver_code(code)
        logger.info("Authorization code received")
        return Response(
            "Auth complete. You can close this tab.\n",
            status=200,
            content_type="text/plain",
        )

    @property
    def port(self) -> int:
        if self.server is None:
            return parse_listen_addr(self.listen_addr)[1]
        return self.server.server_address[1]

    def start(self) -> None:
        """
        Bind and serve in a background thread.

        Raises:
            ConfigurationError: If the listen address is malformed
            AuthServerError: If the address cannot be bound
        """
        host, port = parse_listen_addr(self.listen_addr)
        family = socket.AF_INET6 if ":" in host else socket.AF_INET
        # werkzeug exits the process on bind failures, so bind here first
        try:
            listener = socket.create_server((host, port), family=family)
        except OSError as e:
            raise AuthServerError(f"start auth server on {self.listen_addr}: {e}") from e

        try:
            self.server = make_server(host, port, self.app, threaded=True, fd=listener.fileno())
        finally:
            listener.close()

        self.thread = threading.Thread(target=self.server.serve_forever, daemon=True)
        self.thread.start()
        logger.info(f"OAuth callback server listening on {host}:{self.port}{self.path}")

    def stop(self, timeout: float = AUTH_SHUTDOWN_TIMEOUT) -> None:
        """
        Shut the server down, waiting at most `timeout` seconds.

        Raises:
            AuthServerError: If the serve loop does not stop in time
        """
        if self.server is None:
            return
        server, self.server = self.server, None
        logger.info("OAuth callback server shutting down")

        stopper = threading.Thread(target=server.shutdown, daemon=True)
        stopper.start()
        stopper.join(timeout)
        if stopper.is_alive():
            raise AuthServerError(f"shutdown auth server: not stopped within {timeout}s")

        server.server_close()
        if self.thread is not None:
            self.thread.join(timeout)


def handle_auth_open(authorize_url: str, open_browser: bool = True) -> None:
    """Open the browser on the authorize URL, or print it to stderr."""
    if not open_browser:
        print(f"Open this URL:\n{authorize_url}", file=sys.stderr)
        return

    try:
        opened = webbrowser.open(authorize_url)
    except webbrowser.Error as e:
        logger.warning(f"Could not open browser automatically: {e}")
        print(f"Failed to open browser: {e}", file=sys.stderr)
        print(f"Open this URL:\n{authorize_url}", file=sys.stderr)
        return

    if not opened:
        print("Failed to open browser: no usable browser found", file=sys.stderr)
        print(f"Open this URL:\n{authorize_url}", file=sys.stderr)


def _stop_after_failure(server: OAuthCallbackServer, failure: BaseException) -> None:
    try:
        server.stop()
    except AuthServerError as shutdown_error:
        raise join_errors(failure, shutdown_error) from shutdown_error


def wait_for_auth_code(
    redirect_uri: str,
    listen_addr: str,
    state: str,
    authorize_url: str,
    open_browser: bool = True,
    timeout: float = AUTH_CALLBACK_TIMEOUT,
    cancel: Optional[threading.Event] = None,
) -> str:
    """
    Run the browser half of the authorization flow.

    Starts the callback listener, sends the user to the authorize URL and
    waits for the redirect. The listener is stopped exactly once on every
    exit path; a shutdown failure is joined with the wait failure.

    Args:
        redirect_uri: Redirect URI sent to Withings
        listen_addr: host:port to bind the listener to
        state: Expected state value
        authorize_url: URL the user must visit
        open_browser: Open the browser instead of printing the URL
        timeout: Seconds to wait for the callback
        cancel: Optional event that aborts the wait

    Returns:
        Authorization code

    Raises:
        AuthorizationError: State mismatch, provider error, missing code,
            timeout or cancellation
        AuthServerError: Listener failed to start or stop
    """
    session = AuthSession(state)
    server = OAuthCallbackServer(listen_addr, callback_path(redirect_uri), session)
    server.start()

    try:
        handle_auth_open(authorize_url, open_browser)
        code = session.wait(timeout, cancel)
    except BaseException as failure:
        _stop_after_failure(server, failure)
        raise

    server.stop()
    return code
