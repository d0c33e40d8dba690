"""Tests for account resolution and refresh-on-load.

Tests cover:
- Refresh only when the access token has expired
- Persisting refreshed tokens, tolerating save failures
- Hinted and default resolution, interactive and not
- Single-flight interactive login
"""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta
from unittest.mock import patch

import pytest
from google.auth.exceptions import RefreshError, TransportError
from google.auth.transport.requests import AuthorizedSession
from google.oauth2.credentials import Credentials

from gsuite_mcp.auth.manager import AuthManager
from gsuite_mcp.utils.errors import (
    AuthTimeoutError,
    NeedsLoginError,
    NoAccountsError,
    ProviderIOError,
    RefreshFailedError,
    StoreIOError,
    WrongAccountError,
)

EXPIRED = timedelta(hours=-1)


class StubFlow:
    """OAuth flow stand-in that "logs in" as a fixed identity."""

    def __init__(self, store, record_factory, identity: str = "alice@example.com", error=None):
        self.store = store
        self.record_factory = record_factory
        self.identity = identity
        self.error = error
        self.calls = 0
        self.active = 0
        self.max_active = 0

    async def run(self) -> str:
        self.calls += 1
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(0.05)
            if self.error is not None:
                raise self.error
            self.store.save(
                self.record_factory(identity=self.identity, access_token=f"token-{self.identity}")
            )
            return self.identity
        finally:
            self.active -= 1


def _fake_refresh(self, request) -> None:
    self.token = "ya29.refreshed"
    self.expiry = datetime.now(UTC).replace(tzinfo=None) + timedelta(hours=1)


@pytest.fixture
def stub_flow(store, record_factory) -> StubFlow:
    """Fixture providing a flow that logs in as alice@example.com."""
    return StubFlow(store, record_factory)


@pytest.fixture
def manager(store, stub_flow) -> AuthManager:
    """Fixture providing an AuthManager over the temp store and stub flow."""
    return AuthManager(store=store, flow=stub_flow)


class TestRefresh:
    """Tests for AuthManager.refresh."""

    def test_valid_token_is_not_refreshed(self, manager, record_factory) -> None:
        """Test that an unexpired token is returned without a network call."""
        record = record_factory()

        with patch.object(Credentials, "refresh", autospec=True) as mock_refresh:
            credentials = manager.refresh(record)

        mock_refresh.assert_not_called()
        assert credentials.token == record.access_token

    def test_unknown_expiry_is_not_refreshed(self, manager, record_factory) -> None:
        """Test that a record without expiry is used as-is."""
        record = record_factory(expires_in=None)

        with patch.object(Credentials, "refresh", autospec=True) as mock_refresh:
            credentials = manager.refresh(record)

        mock_refresh.assert_not_called()
        assert credentials.token == record.access_token

    def test_expired_token_is_refreshed_and_saved(self, manager, store, record_factory) -> None:
        """Test that refresh replaces the stored access token and expiry."""
        record = record_factory(expires_in=EXPIRED)
        store.save(record)

        with patch.object(
            Credentials, "refresh", autospec=True, side_effect=_fake_refresh
        ) as mock_refresh:
            credentials = manager.refresh(record)

        mock_refresh.assert_called_once()
        assert credentials.token == "ya29.refreshed"

        stored = store.load(record.identity)
        assert stored.access_token == "ya29.refreshed"
        assert stored.refresh_token == record.refresh_token
        assert stored.expiry > datetime.now(UTC)

    def test_expired_without_refresh_token_fails(self, manager, record_factory) -> None:
        """Test that an expired record with no refresh token needs a new login."""
        record = record_factory(refresh_token="", expires_in=EXPIRED)

        with pytest.raises(RefreshFailedError) as exc_info:
            manager.refresh(record)

        assert exc_info.value.identity == record.identity
        assert "gsuite-mcp auth" in exc_info.value.details["hint"]

    def test_rejected_refresh_raises_refresh_failed(self, manager, record_factory) -> None:
        """Test that a revoked grant becomes RefreshFailedError."""
        record = record_factory(expires_in=EXPIRED)

        with patch.object(
            Credentials, "refresh", autospec=True, side_effect=RefreshError("invalid_grant")
        ):
            with pytest.raises(RefreshFailedError, match="invalid_grant"):
                manager.refresh(record)

    def test_unreachable_endpoint_raises_provider_io(self, manager, record_factory) -> None:
        """Test that a transport failure becomes ProviderIOError."""
        record = record_factory(expires_in=EXPIRED)

        with patch.object(
            Credentials, "refresh", autospec=True, side_effect=TransportError("timeout")
        ):
            with pytest.raises(ProviderIOError):
                manager.refresh(record)

    def test_save_failure_after_refresh_is_not_fatal(self, manager, store, record_factory) -> None:
        """Test that the refreshed token is returned even if it cannot be saved."""
        record = record_factory(expires_in=EXPIRED)

        with (
            patch.object(Credentials, "refresh", autospec=True, side_effect=_fake_refresh),
            patch.object(store, "save", side_effect=StoreIOError("read-only")),
        ):
            credentials = manager.refresh(record)

        assert credentials.token == "ya29.refreshed"

    def test_token_inside_google_auth_threshold_is_not_refreshed(
        self, manager, record_factory
    ) -> None:
        """Test that a token with minutes left is used without a network call."""
        record = record_factory(expires_in=timedelta(minutes=2))

        with patch.object(Credentials, "refresh", autospec=True) as mock_refresh:
            credentials = manager.refresh(record)

        mock_refresh.assert_not_called()
        assert credentials.token == record.access_token

    def test_token_within_skew_is_refreshed(self, manager, record_factory) -> None:
        """Test that a token a few seconds from expiry is refreshed early."""
        record = record_factory(expires_in=timedelta(seconds=5))

        with patch.object(
            Credentials, "refresh", autospec=True, side_effect=_fake_refresh
        ) as mock_refresh:
            credentials = manager.refresh(record)

        mock_refresh.assert_called_once()
        assert credentials.token == "ya29.refreshed"

    def test_missing_access_token_is_refreshed(self, manager, store, record_factory) -> None:
        """Test that a record stored without an access token is refreshed."""
        record = record_factory(access_token="", expires_in=None)
        store.save(record)

        with patch.object(
            Credentials, "refresh", autospec=True, side_effect=_fake_refresh
        ) as mock_refresh:
            credentials = manager.refresh(record)

        mock_refresh.assert_called_once()
        assert credentials.token == "ya29.refreshed"
        assert store.load(record.identity).access_token == "ya29.refreshed"


class TestResolveHinted:
    """Tests for resolution with an identity hint."""

    @pytest.mark.asyncio
    async def test_stored_identity_is_used(self, manager, store, record_factory) -> None:
        """Test that a stored identity resolves without login."""
        store.save(record_factory(identity="bob@example.com", access_token="bob-token"))

        credentials = await manager.get_credentials("bob@example.com")

        assert credentials.token == "bob-token"
        assert manager.flow.calls == 0

    @pytest.mark.asyncio
    async def test_missing_identity_non_interactive(self, manager) -> None:
        """Test that a missing identity asks for a login instead of opening a browser."""
        with pytest.raises(NeedsLoginError) as exc_info:
            await manager.get_credentials("bob@example.com")

        assert exc_info.value.identity == "bob@example.com"
        assert manager.flow.calls == 0

    @pytest.mark.asyncio
    async def test_missing_identity_interactive_logs_in(self, manager, store) -> None:
        """Test that an interactive caller triggers the flow for a missing identity."""
        credentials = await manager.get_credentials("alice@example.com", interactive=True)

        assert credentials.token == "token-alice@example.com"
        assert manager.flow.calls == 1
        assert store.list_identities() == ["alice@example.com"]

    @pytest.mark.asyncio
    async def test_login_as_other_account_is_rejected(self, manager, store) -> None:
        """Test that signing in as the wrong account raises WrongAccountError."""
        with pytest.raises(WrongAccountError) as exc_info:
            await manager.get_credentials("bob@example.com", interactive=True)

        assert exc_info.value.requested == "bob@example.com"
        assert exc_info.value.actual == "alice@example.com"
        # The account that did sign in stays stored
        assert store.list_identities() == ["alice@example.com"]

    @pytest.mark.asyncio
    async def test_expired_identity_is_refreshed(self, manager, store, record_factory) -> None:
        """Test that resolution refreshes an expired stored token."""
        store.save(record_factory(expires_in=EXPIRED))

        with patch.object(Credentials, "refresh", autospec=True, side_effect=_fake_refresh):
            credentials = await manager.get_credentials("alice@example.com")

        assert credentials.token == "ya29.refreshed"

    @pytest.mark.asyncio
    async def test_corrupt_slot_is_not_treated_as_missing(self, manager, store) -> None:
        """Test that a corrupt slot surfaces StoreIOError even when interactive."""
        store.base_dir.mkdir(parents=True)
        (store.base_dir / "alice@example.com.json").write_text("{")

        with pytest.raises(StoreIOError):
            await manager.get_credentials("alice@example.com", interactive=True)

        assert manager.flow.calls == 0


class TestResolveDefault:
    """Tests for resolution without a hint."""

    @pytest.mark.asyncio
    async def test_first_identity_is_default(self, manager, store, record_factory) -> None:
        """Test that the lexically first identity is used."""
        store.save(record_factory(identity="zed@example.com", access_token="zed-token"))
        store.save(record_factory(identity="amy@example.com", access_token="amy-token"))

        credentials = await manager.get_credentials()

        assert credentials.token == "amy-token"

    @pytest.mark.asyncio
    async def test_no_accounts_non_interactive(self, manager) -> None:
        """Test that an empty store reports NoAccountsError."""
        with pytest.raises(NoAccountsError) as exc_info:
            await manager.get_credentials()

        assert "hint" in exc_info.value.details
        assert manager.flow.calls == 0

    @pytest.mark.asyncio
    async def test_no_accounts_interactive_logs_in(self, manager) -> None:
        """Test that an interactive caller accepts whichever account signs in."""
        credentials = await manager.get_credentials(interactive=True)

        assert credentials.token == "token-alice@example.com"
        assert manager.flow.calls == 1

    @pytest.mark.asyncio
    async def test_flow_failure_propagates(self, store, record_factory) -> None:
        """Test that a failed login is raised to the caller."""
        flow = StubFlow(store, record_factory, error=AuthTimeoutError(300))
        manager = AuthManager(store=store, flow=flow)

        with pytest.raises(AuthTimeoutError):
            await manager.get_credentials(interactive=True)

        assert store.list_identities() == []
        assert manager.login_in_progress is False


class TestSingleFlight:
    """Tests for serialized interactive logins."""

    @pytest.mark.asyncio
    async def test_concurrent_default_logins_run_one_flow(self, manager, store) -> None:
        """Test that concurrent callers share a single browser login."""
        results = await asyncio.gather(
            manager.get_credentials(interactive=True),
            manager.get_credentials(interactive=True),
        )

        assert [c.token for c in results] == ["token-alice@example.com"] * 2
        assert manager.flow.calls == 1
        assert store.list_identities() == ["alice@example.com"]

    @pytest.mark.asyncio
    async def test_concurrent_hinted_logins_run_one_flow(self, manager) -> None:
        """Test that waiting callers re-check the store after the lock."""
        await asyncio.gather(
            manager.get_credentials("alice@example.com", interactive=True),
            manager.get_credentials("alice@example.com", interactive=True),
            manager.get_credentials("alice@example.com", interactive=True),
        )

        assert manager.flow.calls == 1

    @pytest.mark.asyncio
    async def test_flows_never_overlap(self, store, record_factory) -> None:
        """Test that explicit logins are serialized."""
        flow = StubFlow(store, record_factory)
        manager = AuthManager(store=store, flow=flow)

        await asyncio.gather(manager.authenticate(), manager.authenticate())

        assert flow.calls == 2
        assert flow.max_active == 1

    @pytest.mark.asyncio
    async def test_login_in_progress_while_authenticating(self, manager) -> None:
        """Test the login_in_progress indicator."""
        task = asyncio.ensure_future(manager.authenticate())
        await asyncio.sleep(0.01)

        assert manager.login_in_progress is True
        assert await task == "alice@example.com"
        assert manager.login_in_progress is False


class TestSession:
    """Tests for AuthManager.get_session."""

    @pytest.mark.asyncio
    async def test_session_carries_credentials(self, manager, store, record_factory) -> None:
        """Test that the authorized session wraps resolved credentials."""
        store.save(record_factory())

        session = await manager.get_session()

        assert isinstance(session, AuthorizedSession)
        assert session.credentials.token == "ya29.access"
