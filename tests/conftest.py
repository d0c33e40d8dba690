"""Pytest configuration and fixtures for gsuite-mcp tests."""

from __future__ import annotations

import os
import threading
import urllib.error
import urllib.request
from collections.abc import Callable, Iterator
from datetime import UTC, datetime, timedelta
from pathlib import Path
from unittest.mock import patch
from urllib.parse import parse_qs, urlencode, urlparse

import pytest
from google.oauth2.credentials import Credentials

from gsuite_mcp.auth.models import CredentialRecord
from gsuite_mcp.auth.storage import CredentialStore

TOKEN_URI = "https://oauth2.googleapis.com/token"

CLIENT_CONFIG = {
    "installed": {
        "client_id": "test-client-id.apps.googleusercontent.com",
        "client_secret": "test-client-secret",
        "auth_uri": "https://accounts.google.com/o/oauth2/v2/auth",
        "token_uri": TOKEN_URI,
    }
}


@pytest.fixture(autouse=True)
def isolated_config_dir(tmp_path: Path) -> Iterator[Path]:
    """Point the config directory at a temp dir and clear client env vars."""
    config_root = tmp_path / "config"
    env = {
        "GSUITE_MCP_CONFIG_DIR": str(config_root),
        "GOOGLE_CLIENT_ID": "",
        "GOOGLE_CLIENT_SECRET": "",
        "GSUITE_MCP_OAUTH_PORT": "",
    }
    with patch.dict(os.environ, env, clear=False):
        yield config_root


@pytest.fixture(autouse=True)
def reset_auth_manager() -> Iterator[None]:
    """Make sure no test leaks an installed AuthManager."""
    from gsuite_mcp.services import set_auth_manager

    set_auth_manager(None)
    yield
    set_auth_manager(None)


@pytest.fixture
def store(tmp_path: Path) -> CredentialStore:
    """Fixture providing a credential store in a fresh temp directory."""
    return CredentialStore(tmp_path / "credentials")


@pytest.fixture
def client_config() -> dict:
    """Fixture providing an installed-app OAuth client config."""
    return {"installed": dict(CLIENT_CONFIG["installed"])}


def make_record(
    identity: str = "alice@example.com",
    access_token: str = "ya29.access",
    refresh_token: str = "1//refresh",
    expires_in: timedelta | None = timedelta(hours=1),
    scopes: list[str] | None = None,
) -> CredentialRecord:
    """Build a credential record; negative ``expires_in`` makes it expired."""
    expiry = None
    if expires_in is not None:
        expiry = (datetime.now(UTC) + expires_in).replace(microsecond=0)
    return CredentialRecord(
        identity=identity,
        access_token=access_token,
        refresh_token=refresh_token,
        token_endpoint=TOKEN_URI,
        client_id="test-client-id.apps.googleusercontent.com",
        client_secret="test-client-secret",
        granted_scopes=scopes if scopes is not None else ["openid", "email"],
        expiry=expiry,
    )


def make_credentials(token: str = "ya29.fresh", refresh_token: str | None = "1//fresh") -> Credentials:
    """Build google-auth credentials as a code exchange would return them."""
    return Credentials(
        token=token,
        refresh_token=refresh_token,
        token_uri=TOKEN_URI,
        client_id="test-client-id.apps.googleusercontent.com",
        client_secret="test-client-secret",
        scopes=["openid", "https://www.googleapis.com/auth/userinfo.email"],
        expiry=datetime.now(UTC).replace(tzinfo=None) + timedelta(hours=1),
    )


class FakeBrowser:
    """Stands in for the system browser.

    When asked to open the authorization URL it follows the redirect back to
    the local listener on a background thread, the way Google would after
    the user consents. ``params_for`` maps the real state token to the query
    parameters of the redirect; returning None means the user never finishes.
    """

    def __init__(self, params_for: Callable[[str], dict[str, str] | None] | None = None) -> None:
        self.params_for = params_for or (lambda state: {"state": state, "code": "auth-code"})
        self.opened: list[str] = []
        self.responses: list[tuple[int, str]] = []
        self._threads: list[threading.Thread] = []

    @property
    def redirect_uri(self) -> str:
        return parse_qs(urlparse(self.opened[-1]).query)["redirect_uri"][0]

    def __call__(self, url: str) -> bool:
        self.opened.append(url)
        query = parse_qs(urlparse(url).query)
        params = self.params_for(query["state"][0])
        if params is None:
            return True

        target = f"{query['redirect_uri'][0]}?{urlencode(params)}"
        thread = threading.Thread(target=self._visit, args=(target,), daemon=True)
        thread.start()
        self._threads.append(thread)
        return True

    def _visit(self, url: str) -> None:
        try:
            with urllib.request.urlopen(url, timeout=10) as response:
                self.responses.append((response.status, response.read().decode()))
        except urllib.error.HTTPError as e:
            self.responses.append((e.code, e.read().decode()))

    def join(self) -> None:
        for thread in self._threads:
            thread.join(timeout=10)


@pytest.fixture
def browser() -> FakeBrowser:
    """Fixture providing a browser that completes the consent immediately."""
    return FakeBrowser()


@pytest.fixture
def record_factory() -> Callable[..., CredentialRecord]:
    """Fixture providing the ``make_record`` factory."""
    return make_record


@pytest.fixture
def credentials_factory() -> Callable[..., Credentials]:
    """Fixture providing the ``make_credentials`` factory."""
    return make_credentials


@pytest.fixture
def browser_factory() -> type[FakeBrowser]:
    """Fixture providing the ``FakeBrowser`` class for custom redirects."""
    return FakeBrowser
