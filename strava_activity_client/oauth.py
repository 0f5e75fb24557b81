"""Local Strava OAuth helper and redirect parsing."""

from __future__ import annotations

import logging
import secrets
import socket
import threading
import time
import urllib.parse
import webbrowser
from dataclasses import dataclass, field
from typing import Optional

from flask import Flask, abort, request
from flask.typing import ResponseReturnValue
from werkzeug.serving import BaseWSGIServer, make_server

from .client import ActivityClient, _mask_token
from .config import OAUTH_PORT, PRINT_TOKENS_DEFAULT
from .errors import AuthenticationFailed
from .models import OAuthCredential

LOGGER = logging.getLogger(__name__)


@dataclass
class OAuthSession:
    """Mutable state for one browser authorisation round trip."""

    expected_state: str = field(default_factory=lambda: secrets.token_urlsafe(16))
    auth_code: Optional[str] = None
    auth_error: Optional[str] = None
    auth_event: threading.Event = field(default_factory=threading.Event)
    server: Optional[BaseWSGIServer] = None

    def reset(self) -> None:
        """Reset state for a new OAuth flow."""
        self.expected_state = secrets.token_urlsafe(16)
        self.auth_code = None
        self.auth_error = None
        self.auth_event.clear()
        self.server = None


# Module-level session instance used by Flask routes and flow functions
_session = OAuthSession()

# Flask app
app = Flask(__name__)


def extract_authorization_code(
    url: str, expected_state: str | None = None
) -> Optional[str]:
    """Return the ``code`` carried by an OAuth redirect URL.

    Works for both web callbacks and app deep links
    (``myapp://auth/callback?code=...``). Returns None when the URL has no
    code.

    Raises:
        AuthenticationFailed: The redirect reports an error (for example the
            athlete denied access) or its ``state`` does not match.
    """
    query = urllib.parse.parse_qs(urllib.parse.urlsplit(url).query)
    error = query.get("error", [None])[0]
    if error:
        raise AuthenticationFailed(f"Authorisation denied: {error}")
    if expected_state is not None:
        state = query.get("state", [None])[0]
        if state != expected_state:
            raise AuthenticationFailed("Invalid OAuth state in redirect")
    code = query.get("code", [None])[0]
    return code or None


@app.route("/callback")
def callback() -> ResponseReturnValue:
    try:
        code = extract_authorization_code(
            request.url, expected_state=_session.expected_state
        )
    except AuthenticationFailed as exc:
        LOGGER.error("Authorisation callback rejected: %s", exc)
        _session.auth_error = str(exc)
        _session.auth_event.set()
        abort(400, description=str(exc))
    _session.auth_code = code
    LOGGER.info("Authorisation code received via callback.")
    _session.auth_event.set()
    return "Authorisation received! You can close this window now."


def _run_flask(port: int) -> None:
    """Start the Flask server and store reference in session."""
    _session.server = make_server("localhost", port, app)
    _session.server.serve_forever()


def wait_for_port(port: int, host: str = "localhost", timeout: int = 10) -> bool:
    """Return True once ``host:port`` accepts TCP connections or timeout elapses."""

    start = time.time()
    while time.time() - start < timeout:
        try:
            with socket.create_connection((host, port), timeout=1):
                return True
        except OSError:
            time.sleep(0.1)
    return False


def _shutdown_server(flask_thread: threading.Thread) -> None:
    """Shutdown the OAuth server and wait for thread to finish."""
    if _session.server:
        _session.server.shutdown()
    flask_thread.join(timeout=5)


def start_oauth_flow(
    client: ActivityClient,
    *,
    print_tokens: bool = PRINT_TOKENS_DEFAULT,
    wait_timeout: int = 60,
    port: int = OAUTH_PORT,
) -> OAuthCredential:
    """Run the browser login end-to-end and store the resulting credential.

    Raises:
        AuthenticationFailed: The callback never arrived, was rejected, or the
            code exchange failed.
    """
    _session.reset()
    flask_thread = threading.Thread(target=_run_flask, args=(port,), daemon=True)
    flask_thread.start()

    LOGGER.info("Waiting for callback server to start on port %s...", port)
    try:
        if not wait_for_port(port):
            raise AuthenticationFailed(f"Callback server did not start on port {port}")

        auth_url = client.get_authorization_url(state=_session.expected_state)
        LOGGER.info("Opening browser for authorisation...")
        webbrowser.open(auth_url)

        if not _session.auth_event.wait(timeout=wait_timeout):
            raise AuthenticationFailed("Timeout waiting for authorisation code")
        if _session.auth_error:
            raise AuthenticationFailed(_session.auth_error)
        if not _session.auth_code:
            raise AuthenticationFailed("Authorisation code was not received")
    finally:
        LOGGER.info("Shutting down local OAuth server.")
        _shutdown_server(flask_thread)

    credential = client.exchange_code_for_token(_session.auth_code)
    if print_tokens:
        LOGGER.warning("Printing raw Strava tokens. Handle with care!")
        LOGGER.info("Access Token: %s", credential.access_token)
        LOGGER.info("Refresh Token: %s", credential.refresh_token)
    else:
        LOGGER.info(
            "Stored tokens access_token=%s refresh_token=%s",
            _mask_token(credential.access_token),
            _mask_token(credential.refresh_token),
        )
    LOGGER.info("Expires At: %s", credential.expires_at)
    return credential
