"""Account resolution: pick, refresh, or acquire credentials for one identity.

``AuthManager`` is constructed once per process and owns the process-wide
state the subsystem needs: the single-flight lock serializing interactive
logins, and the HTTP client used to reach the token endpoint. Tests build
independent managers with their own store and flow.
"""

from __future__ import annotations

import asyncio
import logging

import requests
from google.auth.exceptions import RefreshError, TransportError
from google.auth.transport.requests import AuthorizedSession, Request
from google.oauth2.credentials import Credentials

from gsuite_mcp.auth.models import CredentialRecord
from gsuite_mcp.auth.oauth import OAuthFlow
from gsuite_mcp.auth.storage import CredentialStore
from gsuite_mcp.utils.errors import (
    NeedsLoginError,
    NoAccountsError,
    NoCredentialsError,
    ProviderIOError,
    RefreshFailedError,
    StoreIOError,
    WrongAccountError,
)

logger = logging.getLogger(__name__)


class AuthManager:
    """Resolves a ready-to-use credential for exactly one identity.

    Resolution policy:

    - With an identity hint: load and refresh it. If it is not stored,
      non-interactive callers get ``NeedsLoginError``; interactive callers
      run the OAuth flow and must come back with that same identity,
      otherwise ``WrongAccountError``.
    - Without a hint: use the default (first) stored identity. With none
      stored, non-interactive callers get ``NoAccountsError``; interactive
      callers run the OAuth flow and use whichever identity it returns.

    Attributes:
        store: The credential store.
        flow: The interactive OAuth flow engine.
    """

    def __init__(
        self,
        store: CredentialStore | None = None,
        flow: OAuthFlow | None = None,
        session: requests.Session | None = None,
    ) -> None:
        """Initialize the manager.

        Args:
            store: Credential store. Defaults to the configured directory.
            flow: OAuth flow engine. Defaults to one writing into ``store``.
            session: HTTP session used for token refresh.
        """
        self.store = store if store is not None else CredentialStore()
        self.flow = flow if flow is not None else OAuthFlow(self.store)
        self._session = session if session is not None else requests.Session()
        self._request = Request(session=self._session)
        # Only one interactive login may run at a time
        self._auth_lock = asyncio.Lock()

    @property
    def login_in_progress(self) -> bool:
        return self._auth_lock.locked()

    async def authenticate(self) -> str:
        """Run the interactive flow under the single-flight lock.

        Returns:
            The identity that was authenticated.
        """
        async with self._auth_lock:
            return await self.flow.run()

    async def get_credentials(
        self, identity: str | None = None, interactive: bool = False
    ) -> Credentials:
        """Return refreshed credentials for one identity.

        Args:
            identity: Account to use. None selects the default account.
            interactive: Whether a browser login may be started.

        Returns:
            Valid google-auth credentials.

        Raises:
            NeedsLoginError: Hinted identity missing, non-interactive.
            NoAccountsError: Nothing stored, no hint, non-interactive.
            WrongAccountError: Interactive login returned another identity.
            RefreshFailedError: The stored refresh token no longer works.
            StoreIOError: The credential slot is unreadable or corrupt.
            AuthFlowError: The interactive login aborted.
        """
        if identity:
            return await self._resolve_hinted(identity, interactive)
        return await self._resolve_default(interactive)

    async def get_session(
        self, identity: str | None = None, interactive: bool = False
    ) -> AuthorizedSession:
        """Return an authenticated HTTP transport for one identity."""
        credentials = await self.get_credentials(identity, interactive)
        return AuthorizedSession(credentials)

    async def _resolve_hinted(self, identity: str, interactive: bool) -> Credentials:
        try:
            return await self._load_and_refresh(identity)
        except NoCredentialsError:
            if not interactive:
                raise NeedsLoginError(identity) from None

        async with self._auth_lock:
            # Another caller may have logged this account in while we waited
            if self.store.has(identity):
                return await self._load_and_refresh(identity)

            authenticated = await self.flow.run()

        if authenticated != identity:
            logger.warning(
                "Requested credentials for %s but user signed in as %s",
                identity,
                authenticated,
            )
            raise WrongAccountError(identity, authenticated)
        return await self._load_and_refresh(identity)

    async def _resolve_default(self, interactive: bool) -> Credentials:
        default = self.store.default_identity()
        if default is not None:
            return await self._load_and_refresh(default)

        if not interactive:
            raise NoAccountsError()

        async with self._auth_lock:
            default = self.store.default_identity()
            if default is None:
                default = await self.flow.run()

        return await self._load_and_refresh(default)

    async def _load_and_refresh(self, identity: str) -> Credentials:
        record = self.store.load(identity)
        return await asyncio.to_thread(self.refresh, record)

    def refresh(self, record: CredentialRecord) -> Credentials:
        """Turn a stored record into usable credentials, refreshing if expired.

        A still-valid access token is returned unchanged without touching the
        token endpoint. Validity is judged from the stored expiry with a 10
        second margin, not google-auth's own (much earlier) refresh threshold.
        A record without an access token is always refreshed. When refresh
        yields a new access token the record is saved again; failing to save
        is only a warning because the caller already holds a working token.

        Raises:
            RefreshFailedError: If the token is expired and cannot be refreshed.
            ProviderIOError: If the token endpoint is unreachable.
        """
        credentials = record.to_credentials()

        if not record.is_expired():
            return credentials

        if not record.refresh_token:
            raise RefreshFailedError(record.identity, "no refresh token stored")

        try:
            credentials.refresh(self._request)
        except RefreshError as e:
            logger.error("Token refresh failed for %s: %s", record.identity, e)
            raise RefreshFailedError(record.identity, str(e)) from e
        except TransportError as e:
            logger.error("Token endpoint unreachable for %s: %s", record.identity, e)
            raise ProviderIOError(
                f"Network error refreshing token for {record.identity}: {e}",
                details={"identity": record.identity, "error_type": type(e).__name__},
            ) from e

        if credentials.token != record.access_token:
            try:
                self.store.save(record.with_credentials(credentials))
            except StoreIOError as e:
                logger.warning(
                    "Failed to save refreshed token for %s: %s", record.identity, e
                )
            else:
                logger.debug("Refreshed and saved token for %s", record.identity)

        return credentials


__all__ = [
    "AuthManager",
]
