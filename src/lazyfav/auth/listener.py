"""
Authorization listener — a single-use loopback HTTP server that catches the
Spotify redirect and hands the authorization code to the waiting login flow.

Lifecycle::

    IDLE -> LISTENING -> CODE_CAPTURED | NO_CODE -> STOPPED

Usage::

    with AuthorizationListener(port=8888, expected_state=state) as listener:
        # ... send the user to the authorize URL with listener.redirect_uri ...
        code = await listener.wait_for_code(timeout=300)
"""

from __future__ import annotations

import enum
import html
import logging
import threading
from http.server import BaseHTTPRequestHandler, HTTPServer
from types import TracebackType
from typing import Any
from urllib.parse import parse_qs, urlparse

from lazyfav.auth.oneshot import CellState, OneShot
from lazyfav.errors import ListenerError

logger = logging.getLogger("lazyfav.auth.listener")

_PAGE = """<!DOCTYPE html>
<html>
<head>
    <title>LazyFav - {title}</title>
    <style>
        body {{ font-family: -apple-system, BlinkMacSystemFont, sans-serif;
               display: flex; justify-content: center; align-items: center;
               height: 100vh; margin: 0; background: {background}; }}
        .card {{ background: white; padding: 40px; border-radius: 12px;
                box-shadow: 0 4px 6px rgba(0,0,0,0.1); text-align: center; }}
        h1 {{ color: {color}; margin-bottom: 10px; }}
        p {{ color: #666; }}
    </style>
</head>
<body>
    <div class="card">
        <h1>{title}</h1>
        <p>{message}</p>
    </div>
</body>
</html>
"""


class ListenerState(str, enum.Enum):
    IDLE = "idle"
    LISTENING = "listening"
    CODE_CAPTURED = "code_captured"
    NO_CODE = "no_code"
    STOPPED = "stopped"


class _CallbackServer(HTTPServer):
    """HTTPServer that knows which listener it reports to."""

    def __init__(self, address: tuple[str, int], listener: AuthorizationListener) -> None:
        self.listener = listener
        super().__init__(address, _CallbackHandler)


class _CallbackHandler(BaseHTTPRequestHandler):
    """Handles the provider redirect; everything else is a 404."""

    server: _CallbackServer

    def do_GET(self) -> None:
        parsed = urlparse(self.path)
        listener = self.server.listener

        if parsed.path != listener.path:
            self._send_page(404, "Not Found", "Nothing to see here.", ok=False)
            return

        params = parse_qs(parsed.query)
        status, title, message, ok = listener._handle_callback(params)
        self._send_page(status, title, message, ok=ok)

    def _send_page(self, status: int, title: str, message: str, *, ok: bool) -> None:
        page = _PAGE.format(
            title=html.escape(title),
            message=html.escape(message),
            background="#f0fdf4" if ok else "#fef2f2",
            color="#16a34a" if ok else "#dc2626",
        )
        body = page.encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "text/html; charset=utf-8")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, format: str, *args: Any) -> None:
        logger.debug("callback %s - %s", self.address_string(), format % args)


class AuthorizationListener:
    """One-shot loopback endpoint for the OAuth2 redirect."""

    def __init__(
        self,
        host: str = "127.0.0.1",
        port: int = 8888,
        path: str = "/callback",
        *,
        expected_state: str | None = None,
    ) -> None:
        self.host = host
        self.port = port
        self.path = path
        self.expected_state = expected_state
        self.state = ListenerState.IDLE
        self._cell: OneShot[str] = OneShot()
        self._server: _CallbackServer | None = None
        self._thread: threading.Thread | None = None

    @property
    def redirect_uri(self) -> str:
        return f"http://{self.host}:{self.port}{self.path}"

    def start(self) -> None:
        """Bind the socket and serve in a background thread.

        Raises:
            ListenerError: If the address cannot be bound.
        """
        if self.state is not ListenerState.IDLE:
            raise RuntimeError(f"listener cannot start from state {self.state.value}")

        try:
            self._server = _CallbackServer((self.host, self.port), self)
        except OSError as e:
            self.state = ListenerState.STOPPED
            raise ListenerError(f"Could not listen on {self.host}:{self.port}: {e}") from e

        # port 0 means the OS picked one
        self.port = self._server.server_address[1]
        self.state = ListenerState.LISTENING
        self._thread = threading.Thread(
            target=self._serve, name="lazyfav-callback", daemon=True
        )
        self._thread.start()
        logger.info("Listening for Spotify callback on %s", self.redirect_uri)

    def _serve(self) -> None:
        assert self._server is not None
        try:
            self._server.serve_forever(poll_interval=0.1)
        except Exception:
            logger.exception("Callback server crashed")
        finally:
            self._cell.close("callback listener stopped before an authorization code arrived")

    def _handle_callback(self, params: dict[str, list[str]]) -> tuple[int, str, str, bool]:
        """Decide the response for a request on the redirect path.

        Runs on the server thread. Returns ``(status, title, message, ok)``.
        """
        code = params.get("code", [None])[0]
        error = params.get("error", [None])[0]

        if self._cell.done:
            if self._cell.state is CellState.COMPLETED:
                return 200, "Already connected", "You can close this window.", True
            return 400, "Login failed", "This login attempt has ended. Run LazyFav again.", False

        if code and self.expected_state is not None:
            got_state = params.get("state", [None])[0]
            if got_state != self.expected_state:
                logger.warning("Rejected callback with mismatched state")
                self._fail("state mismatch in authorization callback (possible CSRF)")
                return 400, "Login failed", "The login request could not be verified.", False

        if code:
            if self._cell.try_complete(code):
                self.state = ListenerState.CODE_CAPTURED
                logger.debug("Authorization code captured")
                return 200, "Spotify auth complete", "You can close this window.", True
            return 200, "Already connected", "You can close this window.", True

        reason = error or "no authorization code in callback"
        self._fail(f"authorization failed: {reason}")
        return 400, "Login failed", f"Error: {reason}", False

    def _fail(self, reason: str) -> None:
        if not self._cell.done:
            self._cell.close(reason)
            self.state = ListenerState.NO_CODE

    async def wait_for_code(self, timeout: float | None = 300) -> str:
        """Suspend until the redirect delivers a code.

        Raises:
            ListenerError: On denial, state mismatch, listener shutdown or timeout.
        """
        if self.state is ListenerState.IDLE:
            raise RuntimeError("listener was not started")
        return await self._cell.wait(timeout)

    def stop(self) -> None:
        """Shut the server down and release the port. Safe to call twice."""
        if self._server is not None:
            self._server.shutdown()
            self._server.server_close()
            self._server = None
        if self._thread is not None:
            self._thread.join(timeout=5)
            self._thread = None
        self._cell.close("callback listener stopped")
        self.state = ListenerState.STOPPED
        logger.debug("Callback listener stopped")

    def __enter__(self) -> AuthorizationListener:
        self.start()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.stop()
