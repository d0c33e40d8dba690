"""Interactive OAuth 2.0 authorization-code flow.

One ``OAuthFlow.run()`` call performs a complete, identity-agnostic login:

1. bind a local listener on the callback port (no fallback port search);
2. generate a CSRF state token, build the authorization URL, serve the
   redirect path, and open the system browser;
3. wait for the redirect, the deadline, or caller cancellation;
4. exchange the authorization code for tokens;
5. ask the userinfo endpoint which account the user actually picked;
6. persist the credential under that identity;
7. render the outcome page to the browser tab and shut the listener down.

The user may choose any Google account in the browser, so the identity is
only known after step 5.

Security considerations:
- The state token is single-use and compared in constant time
- Offline access with forced consent so Google always returns a refresh token
- Credential files are written owner-only by the credential store
"""

from __future__ import annotations

import asyncio
import logging
import os
import secrets
import sys
import webbrowser
from collections.abc import Callable
from typing import Any

from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import Flow
from googleapiclient.discovery import build

from gsuite_mcp import config
from gsuite_mcp.auth.callback import (
    CallbackListener,
    CallbackState,
    PendingAttempt,
    RenderOutcome,
)
from gsuite_mcp.auth.models import CredentialRecord
from gsuite_mcp.auth.pages import error_page, success_page
from gsuite_mcp.auth.storage import CredentialStore
from gsuite_mcp.utils.errors import AuthTimeoutError, ProviderIOError, StoreIOError

logger = logging.getLogger(__name__)

# Google may grant a subset of the requested scopes
os.environ.setdefault("OAUTHLIB_RELAX_TOKEN_SCOPE", "1")


class OAuthFlow:
    """Drives one interactive authorization-code exchange at a time.

    The flow itself is not serialized; ``AuthManager`` holds the lock that
    guarantees a single in-flight login per process.

    Example:
        >>> flow = OAuthFlow(CredentialStore())
        >>> identity = await flow.run()
    """

    def __init__(
        self,
        store: CredentialStore,
        client_config: dict[str, Any] | None = None,
        scopes: list[str] | None = None,
        port: int | None = None,
        callback_timeout: float = config.OAUTH_CALLBACK_TIMEOUT,
        result_timeout: float = config.OAUTH_RESULT_TIMEOUT,
        shutdown_timeout: float = config.OAUTH_SHUTDOWN_TIMEOUT,
        browser_opener: Callable[[str], bool] = webbrowser.open,
    ) -> None:
        """Initialize the flow.

        Args:
            store: Where the resulting credential is saved.
            client_config: google-auth-oauthlib client config. Loaded with
                ``config.load_client_config()`` on first use when omitted.
            scopes: Scopes to request. Defaults to ``config.DEFAULT_SCOPES``.
            port: Callback port. Defaults to ``config.oauth_port()``; 0 picks
                an ephemeral port.
            callback_timeout: Seconds to wait for the browser redirect.
            result_timeout: Seconds the redirect handler waits for the
                exchange before rendering a timeout page.
            shutdown_timeout: Bound on waiting for page delivery and for
                listener shutdown.
            browser_opener: Callable that opens a URL, returning success.
        """
        self._store = store
        self._client_config = client_config
        self._scopes = list(scopes or config.DEFAULT_SCOPES)
        self._port = port
        self._callback_timeout = callback_timeout
        self._result_timeout = result_timeout
        self._shutdown_timeout = shutdown_timeout
        self._browser_opener = browser_opener

    @property
    def client_config(self) -> dict[str, Any]:
        if self._client_config is None:
            self._client_config = config.load_client_config()
        return self._client_config

    @property
    def scopes(self) -> list[str]:
        return list(self._scopes)

    def build_flow(self, redirect_uri: str) -> Flow:
        """Create a google-auth-oauthlib ``Flow`` bound to a redirect URI."""
        return Flow.from_client_config(
            self.client_config,
            scopes=self._scopes,
            redirect_uri=redirect_uri,
        )

    def create_auth_url(self, flow: Flow, state: str) -> str:
        """Build the authorization URL for the consent page.

        Args:
            flow: Flow created by ``build_flow``.
            state: CSRF state token echoed back on the redirect.

        Returns:
            The full authorization URL.
        """
        auth_url, _ = flow.authorization_url(
            state=state,
            access_type="offline",
            prompt="consent",
        )
        logger.debug("Created auth URL with state: %s", state[:8] + "...")
        return auth_url

    def exchange_code(self, flow: Flow, code: str) -> Credentials:
        """Exchange an authorization code for tokens. Blocking.

        Raises:
            ProviderIOError: If the exchange fails for any reason. It is
                never retried; the code is single-use.
        """
        try:
            flow.fetch_token(code=code)
        except Exception as e:
            logger.error("Failed to exchange authorization code: %s", e)
            raise ProviderIOError(
                f"Failed to exchange code for token: {e}",
                details={"error_type": type(e).__name__},
            ) from e

        logger.info("Successfully exchanged authorization code for tokens")
        return flow.credentials

    def fetch_identity(self, credentials: Credentials) -> str:
        """Return the email address the credentials were issued for. Blocking.

        Raises:
            ProviderIOError: If the userinfo call fails or has no email.
        """
        try:
            service = build("oauth2", "v2", credentials=credentials, cache_discovery=False)
            userinfo = service.userinfo().get().execute()
        except Exception as e:
            logger.error("Failed to fetch userinfo: %s", e)
            raise ProviderIOError(
                f"Failed to get authenticated email: {e}",
                details={"error_type": type(e).__name__},
            ) from e

        email = userinfo.get("email") if isinstance(userinfo, dict) else None
        if not email:
            raise ProviderIOError(
                "Userinfo response did not include an email address",
                details={"hint": "Make sure the userinfo.email scope is granted"},
            )
        return str(email)

    async def run(self) -> str:
        """Run one complete interactive login.

        Returns:
            The identity (email) the user authenticated as.

        Raises:
            PortUnavailableError: If the callback port cannot be bound.
            CSRFError: If the redirect state does not match.
            ProviderDeniedError: If the provider reported an error.
            AuthTimeoutError: If no redirect arrives before the deadline.
            ProviderIOError: If the code exchange or userinfo call fails.
            StoreIOError: If the credential cannot be saved.
            asyncio.CancelledError: If the calling task is cancelled while
                waiting for the redirect.
        """
        port = self._port if self._port is not None else config.oauth_port()
        listener = CallbackListener(port)
        loop = asyncio.get_running_loop()

        try:
            attempt = PendingAttempt(
                state_token=secrets.token_hex(config.STATE_TOKEN_BYTES),
                redirect_port=listener.port,
                deadline=loop.time() + self._callback_timeout,
            )
            callback = CallbackState(attempt.state_token, loop, self._result_timeout)
            flow = self.build_flow(attempt.redirect_uri)
            auth_url = self.create_auth_url(flow, attempt.state_token)

            listener.arm(callback)
            logger.info("Waiting for OAuth redirect on port %d", attempt.redirect_port)
            _print_auth_instructions(auth_url)
            self._open_browser(auth_url)

            code = await self._await_code(callback, attempt)
            return await self._complete(flow, callback, code)

        finally:
            await self._shutdown(listener)

    async def _await_code(self, callback: CallbackState, attempt: PendingAttempt) -> str:
        loop = asyncio.get_running_loop()
        remaining = max(0.0, attempt.deadline - loop.time())
        try:
            return await asyncio.wait_for(callback.outcome, timeout=remaining)
        except TimeoutError:
            logger.warning("No OAuth redirect within %gs", self._callback_timeout)
            raise AuthTimeoutError(self._callback_timeout) from None

    async def _complete(self, flow: Flow, callback: CallbackState, code: str) -> str:
        completion = asyncio.ensure_future(self._exchange_and_persist(flow, callback, code))
        try:
            return await asyncio.shield(completion)
        except asyncio.CancelledError:
            # The code is single-use: finish the exchange before propagating
            if not completion.done():
                logger.info("Cancelled during token exchange; letting it finish")
                await asyncio.wait([completion])
            if not completion.cancelled() and completion.exception() is not None:
                logger.warning(
                    "Token exchange failed after cancellation: %s", completion.exception()
                )
            raise

    async def _exchange_and_persist(
        self, flow: Flow, callback: CallbackState, code: str
    ) -> str:
        try:
            credentials = await asyncio.to_thread(self.exchange_code, flow, code)
            identity = await asyncio.to_thread(self.fetch_identity, credentials)
            record = CredentialRecord.from_credentials(identity, credentials, self._scopes)
            self._store.save(record)
        except Exception as e:
            message = getattr(e, "message", None) or str(e)
            callback.post_render(RenderOutcome(500, error_page("Authentication Failed", message)))
            await asyncio.to_thread(callback.wait_rendered, self._shutdown_timeout)
            raise

        try:
            others = self._store.other_identities(identity)
        except StoreIOError as e:
            logger.warning("Could not list other accounts: %s", e)
            others = []

        callback.post_render(RenderOutcome(200, success_page(identity, others)))
        if not await asyncio.to_thread(callback.wait_rendered, self._shutdown_timeout):
            logger.warning("Browser did not receive the result page in time")

        print(f"✓ Successfully authenticated: {identity}", file=sys.stderr)
        logger.info("Successfully authenticated %s", identity)
        return identity

    def _open_browser(self, auth_url: str) -> None:
        try:
            opened = self._browser_opener(auth_url)
        except (webbrowser.Error, OSError) as e:
            logger.warning("Couldn't open browser automatically: %s", e)
            return
        if not opened:
            logger.warning("Couldn't open browser automatically; use the URL above")

    async def _shutdown(self, listener: CallbackListener) -> None:
        try:
            await asyncio.wait_for(
                asyncio.to_thread(listener.shutdown), timeout=self._shutdown_timeout
            )
        except TimeoutError:
            logger.warning(
                "OAuth callback server did not stop within %gs", self._shutdown_timeout
            )


def _print_auth_instructions(auth_url: str) -> None:
    """Print the authorization URL to stderr (stdout carries MCP traffic)."""
    print(
        "\n=== Authentication Required ===\n"
        "Opening browser to authenticate with Google...\n"
        "Choose any Google account you want to use.\n"
        f"If browser doesn't open, visit:\n{auth_url}\n"
        "================================\n",
        file=sys.stderr,
    )


__all__ = [
    "OAuthFlow",
]
