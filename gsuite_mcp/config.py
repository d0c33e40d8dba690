"""Configuration for gsuite-mcp.

There is no configuration file to write by hand: accounts are discovered
from the credentials directory, and the only required input is the OAuth
client secret downloaded from Google Cloud Console (or the equivalent
``GOOGLE_CLIENT_ID`` / ``GOOGLE_CLIENT_SECRET`` environment variables).

Layout (overridable with ``GSUITE_MCP_CONFIG_DIR``)::

    ~/.config/gsuite-mcp/
        client_secret.json
        credentials/
            alice@example.com.json
            bob@example.com.json
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

from gsuite_mcp.utils.errors import ConfigurationError

logger = logging.getLogger(__name__)

SERVER_NAME = "gsuite-mcp"
SERVER_VERSION = "0.1.0"

# Google OAuth endpoints
GOOGLE_AUTH_URI = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URI = "https://oauth2.googleapis.com/token"

CALLBACK_PATH = "/oauth2callback"
DEFAULT_OAUTH_PORT = 8000

# Random bytes in the CSRF state token
STATE_TOKEN_BYTES = 16

# Seconds
OAUTH_CALLBACK_TIMEOUT = 300.0
OAUTH_RESULT_TIMEOUT = 10.0
OAUTH_SHUTDOWN_TIMEOUT = 5.0

# OAuth scopes for Gmail, Calendar, Docs, Tasks, Drive, Sheets, and Contacts
DEFAULT_SCOPES = [
    # OpenID Connect scopes (required to learn the authenticated email)
    "openid",
    "https://www.googleapis.com/auth/userinfo.email",
    # Gmail
    "https://www.googleapis.com/auth/gmail.modify",
    "https://www.googleapis.com/auth/gmail.compose",
    "https://www.googleapis.com/auth/gmail.labels",
    "https://www.googleapis.com/auth/gmail.settings.basic",
    # Calendar
    "https://www.googleapis.com/auth/calendar",
    "https://www.googleapis.com/auth/calendar.events",
    # Docs
    "https://www.googleapis.com/auth/documents",
    # Tasks
    "https://www.googleapis.com/auth/tasks",
    # Drive
    "https://www.googleapis.com/auth/drive",
    # Sheets
    "https://www.googleapis.com/auth/spreadsheets",
    # Contacts (People API)
    "https://www.googleapis.com/auth/contacts",
]


def config_dir() -> Path:
    """Return the configuration root directory."""
    override = os.getenv("GSUITE_MCP_CONFIG_DIR")
    if override:
        return Path(override).expanduser()
    return Path.home() / ".config" / SERVER_NAME


def credentials_dir() -> Path:
    """Return the directory holding one credential file per account."""
    return config_dir() / "credentials"


def client_secret_path() -> Path:
    """Return the path of the OAuth client secret file."""
    return config_dir() / "client_secret.json"


def oauth_port() -> int:
    """Get the OAuth callback port.

    Returns:
        ``GSUITE_MCP_OAUTH_PORT`` when set, otherwise 8000.

    Raises:
        ConfigurationError: If the override is not a valid port number.
    """
    raw = os.getenv("GSUITE_MCP_OAUTH_PORT", "").strip()
    if not raw:
        return DEFAULT_OAUTH_PORT
    try:
        port = int(raw)
    except ValueError:
        port = -1
    if not 0 <= port <= 65535:
        raise ConfigurationError(
            f"Invalid GSUITE_MCP_OAUTH_PORT value: {raw}",
            details={"hint": "Use an integer between 0 and 65535"},
        )
    return port


def load_client_config() -> dict[str, Any]:
    """Load the OAuth client configuration.

    Reads ``client_secret.json`` from the config directory. When the file is
    absent, falls back to ``GOOGLE_CLIENT_ID`` / ``GOOGLE_CLIENT_SECRET``.

    Returns:
        Client configuration in the format expected by google-auth-oauthlib
        (a single ``installed`` or ``web`` section).

    Raises:
        ConfigurationError: If no usable client configuration is found.
    """
    path = client_secret_path()
    if path.exists():
        try:
            data = json.loads(path.read_text())
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigurationError(
                f"Could not read client secret at {path}: {e}",
                details={"path": str(path)},
            ) from e

        for client_type in ("installed", "web"):
            section = data.get(client_type) if isinstance(data, dict) else None
            if isinstance(section, dict) and section.get("client_id"):
                section.setdefault("auth_uri", GOOGLE_AUTH_URI)
                section.setdefault("token_uri", GOOGLE_TOKEN_URI)
                logger.debug("Loaded %s client config from %s", client_type, path)
                return {client_type: section}

        raise ConfigurationError(
            f"Client secret at {path} has no 'installed' or 'web' client",
            details={"path": str(path)},
        )

    client_id = os.getenv("GOOGLE_CLIENT_ID")
    client_secret = os.getenv("GOOGLE_CLIENT_SECRET")
    if client_id and client_secret:
        # "installed" = Desktop app client type, required by Google for
        # loopback redirect flows.
        return {
            "installed": {
                "client_id": client_id,
                "client_secret": client_secret,
                "auth_uri": GOOGLE_AUTH_URI,
                "token_uri": GOOGLE_TOKEN_URI,
            }
        }

    raise ConfigurationError(
        f"client_secret.json not found at {path}",
        details={
            "hint": "Download it from Google Cloud Console, or set "
            "GOOGLE_CLIENT_ID and GOOGLE_CLIENT_SECRET"
        },
    )


__all__ = [
    "SERVER_NAME",
    "SERVER_VERSION",
    "GOOGLE_AUTH_URI",
    "GOOGLE_TOKEN_URI",
    "CALLBACK_PATH",
    "DEFAULT_OAUTH_PORT",
    "DEFAULT_SCOPES",
    "config_dir",
    "credentials_dir",
    "client_secret_path",
    "oauth_port",
    "load_client_config",
]
