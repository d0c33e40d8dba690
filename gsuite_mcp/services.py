"""Authenticated Google API access for tool handlers.

Tool handlers never touch tokens directly. They name an optional account
and receive either an authenticated transport/service or one of the errors
from ``gsuite_mcp.utils.errors``.

The process-wide ``AuthManager`` is installed once at startup with
``set_auth_manager()`` and looked up lazily at call time.
"""

from __future__ import annotations

import logging
from typing import Any

from google.auth.transport.requests import AuthorizedSession
from googleapiclient.discovery import Resource, build

from gsuite_mcp.auth.manager import AuthManager
from gsuite_mcp.utils.errors import ConfigurationError, ValidationError

logger = logging.getLogger(__name__)

_auth_manager: AuthManager | None = None


def set_auth_manager(manager: AuthManager | None) -> None:
    """Install (or clear) the process-wide auth manager."""
    global _auth_manager
    _auth_manager = manager


def get_auth_manager() -> AuthManager:
    """Return the installed auth manager.

    Raises:
        ConfigurationError: If startup never installed one.
    """
    if _auth_manager is None:
        raise ConfigurationError(
            "Authentication subsystem not initialized",
            details={"hint": "Restart gsuite-mcp and check server startup logs"},
        )
    return _auth_manager


def resolve_account(arguments: dict[str, Any] | None) -> str | None:
    """Extract the optional ``account`` tool argument.

    Returns:
        The requested account, or None to use the default account.

    Raises:
        ValidationError: If ``account`` is present but not a string.
    """
    if not arguments:
        return None
    account = arguments.get("account")
    if account is None:
        return None
    if not isinstance(account, str):
        raise ValidationError(
            "account must be an email address string",
            field="account",
            details={"type": type(account).__name__},
        )
    account = account.strip()
    return account or None


async def get_authorized_session(
    account: str | None = None, interactive: bool = False
) -> AuthorizedSession:
    """Return an authenticated HTTP transport for an account."""
    return await get_auth_manager().get_session(account, interactive)


async def build_service(
    api: str,
    version: str,
    account: str | None = None,
    interactive: bool = False,
) -> Resource:
    """Build a google-api-python-client service for an account.

    Args:
        api: API name, e.g. ``"gmail"`` or ``"drive"``.
        version: API version, e.g. ``"v1"`` or ``"v3"``.
        account: Account to use; None uses the default account.
        interactive: Whether a browser login may be started.
    """
    credentials = await get_auth_manager().get_credentials(account, interactive)
    service = build(api, version, credentials=credentials, cache_discovery=False)
    logger.debug("Built %s %s service for %s", api, version, account or "default account")
    return service


__all__ = [
    "set_auth_manager",
    "get_auth_manager",
    "resolve_account",
    "get_authorized_session",
    "build_service",
]
