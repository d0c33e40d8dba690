"""Local HTTP listener that receives the OAuth redirect.

The listener runs on its own daemon thread from the moment it is armed until
it is shut down. It talks to the waiting flow only through a
``CallbackState``, which owns three single-use channels:

- ``outcome``: an asyncio future resolved exactly once with the
  authorization code or the error that aborted the redirect;
- a one-slot render queue through which the flow hands back the page to
  show once the exchange has finished;
- a ``rendered`` event set after that page has been written to the browser.
"""

from __future__ import annotations

import asyncio
import logging
import queue
import secrets
import threading
from collections.abc import Callable
from dataclasses import dataclass
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from urllib.parse import parse_qs, urlparse

from gsuite_mcp.auth.pages import error_page
from gsuite_mcp.config import CALLBACK_PATH, OAUTH_RESULT_TIMEOUT
from gsuite_mcp.utils.errors import (
    CSRFError,
    PortUnavailableError,
    ProviderDeniedError,
    ProviderIOError,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PendingAttempt:
    """One outstanding authorization attempt.

    ``deadline`` is expressed in event-loop time (``loop.time()``).
    """

    state_token: str
    redirect_port: int
    deadline: float

    @property
    def redirect_uri(self) -> str:
        return f"http://localhost:{self.redirect_port}{CALLBACK_PATH}"


@dataclass(frozen=True)
class RenderOutcome:
    """Page to write back to the browser."""

    status: int
    html: str
    honored: bool = True


class CallbackState:
    """Signal channels between the listener thread and the waiting flow."""

    def __init__(
        self,
        state_token: str,
        loop: asyncio.AbstractEventLoop,
        result_timeout: float = OAUTH_RESULT_TIMEOUT,
    ) -> None:
        self._state_token = state_token
        self._loop = loop
        self._result_timeout = result_timeout
        self._lock = threading.Lock()
        self._consumed = False
        self._render: queue.Queue[RenderOutcome] = queue.Queue(maxsize=1)
        self._rendered = threading.Event()
        self.outcome: asyncio.Future[str] = loop.create_future()

    @property
    def consumed(self) -> bool:
        return self._consumed

    def handle_redirect(self, params: dict[str, str]) -> RenderOutcome:
        """Process the provider redirect. Runs on the listener thread.

        Only the first call is honored; the state token is spent on it
        whether or not it matched.
        """
        with self._lock:
            if self._consumed:
                return RenderOutcome(
                    409,
                    error_page(
                        "Already Handled",
                        "This sign-in attempt has already been processed.",
                    ),
                    honored=False,
                )
            self._consumed = True

        returned_state = params.get("state", "")
        if not secrets.compare_digest(
            returned_state.encode("utf-8"), self._state_token.encode("utf-8")
        ):
            # Don't leak state values in error details
            self._deliver_error(
                CSRFError(
                    "Invalid state parameter - possible CSRF attack",
                    details={"hint": "Request may have been tampered with"},
                )
            )
            return RenderOutcome(
                400,
                error_page("Authentication Error", "Invalid or expired OAuth state parameter"),
            )

        error = params.get("error")
        if error:
            description = params.get("error_description", "")
            self._deliver_error(ProviderDeniedError(error, description))
            return RenderOutcome(
                400, error_page("Authentication Failed", description or error)
            )

        code = params.get("code")
        if not code:
            self._deliver_error(
                ProviderIOError(
                    "No authorization code received",
                    details={"params": sorted(params)},
                )
            )
            return RenderOutcome(
                400,
                error_page("Authentication Error", "No authorization code received from Google"),
            )

        self._deliver(code)

        try:
            return self._render.get(timeout=self._result_timeout)
        except queue.Empty:
            return RenderOutcome(504, error_page("Timeout", "Token exchange took too long"))

    def post_render(self, outcome: RenderOutcome) -> None:
        """Hand the final page to the waiting request handler."""
        try:
            self._render.put_nowait(outcome)
        except queue.Full:
            logger.debug("Render outcome already posted; ignoring")

    def mark_rendered(self) -> None:
        self._rendered.set()

    def wait_rendered(self, timeout: float) -> bool:
        """Block until the page was written, or ``timeout`` seconds pass."""
        return self._rendered.wait(timeout)

    def _deliver(self, code: str) -> None:
        self._call_in_loop(lambda: self.outcome.set_result(code))

    def _deliver_error(self, error: Exception) -> None:
        self._call_in_loop(lambda: self.outcome.set_exception(error))

    def _call_in_loop(self, setter: Callable[[], None]) -> None:
        def _set_once() -> None:
            if not self.outcome.done():
                setter()

        try:
            self._loop.call_soon_threadsafe(_set_once)
        except RuntimeError:
            # Event loop already closed: the flow gave up waiting
            logger.debug("OAuth redirect arrived after the flow ended")


class CallbackServer(ThreadingHTTPServer):
    """HTTP server whose handler reports into a ``CallbackState``."""

    daemon_threads = True

    def __init__(self, address: tuple[str, int]) -> None:
        super().__init__(address, CallbackHandler)
        self.callback: CallbackState | None = None


class CallbackHandler(BaseHTTPRequestHandler):
    """HTTP request handler for the OAuth redirect path."""

    server: CallbackServer

    def do_GET(self) -> None:  # noqa: N802
        parsed = urlparse(self.path)
        callback = self.server.callback

        if parsed.path != CALLBACK_PATH or callback is None:
            self.send_response(404)
            self.end_headers()
            return

        params = {key: values[0] for key, values in parse_qs(parsed.query).items()}
        outcome = callback.handle_redirect(params)

        try:
            body = outcome.html.encode("utf-8")
            self.send_response(outcome.status)
            self.send_header("Content-Type", "text/html; charset=utf-8")
            self.send_header("Content-Length", str(len(body)))
            self.end_headers()
            self.wfile.write(body)
        except OSError as e:
            logger.warning("Could not write OAuth result page: %s", e)
        finally:
            if outcome.honored:
                callback.mark_rendered()

    def log_message(self, format: str, *args: object) -> None:  # noqa: A002
        logger.debug("OAuth callback server: %s", format % args)


class CallbackListener:
    """Short-lived local listener for one authorization attempt."""

    def __init__(self, port: int, host: str = "localhost") -> None:
        """Bind the listener.

        Raises:
            PortUnavailableError: If the port cannot be bound. No other
                port is tried.
        """
        try:
            self._server = CallbackServer((host, port))
        except OSError as e:
            logger.error("Failed to bind OAuth callback port %d: %s", port, e)
            raise PortUnavailableError(port, str(e)) from e

        self._thread: threading.Thread | None = None
        logger.debug("OAuth callback server bound to port %d", self.port)

    @property
    def port(self) -> int:
        return int(self._server.server_address[1])

    def arm(self, callback: CallbackState) -> None:
        """Attach the callback state and start serving on a daemon thread."""
        self._server.callback = callback
        self._thread = threading.Thread(
            target=self._server.serve_forever,
            kwargs={"poll_interval": 0.1},
            name="oauth-callback",
            daemon=True,
        )
        self._thread.start()

    def shutdown(self) -> None:
        """Stop serving and release the port. Blocking."""
        if self._thread is not None:
            self._server.shutdown()
            self._thread.join()
        self._server.server_close()
        logger.debug("OAuth callback server on port %d stopped", self.port)


__all__ = [
    "PendingAttempt",
    "RenderOutcome",
    "CallbackState",
    "CallbackServer",
    "CallbackHandler",
    "CallbackListener",
]
