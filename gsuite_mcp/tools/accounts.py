"""Account tools - list authenticated accounts and check their status.

These tools never start a browser login: the MCP server runs
non-interactively, so missing accounts are reported with a hint to run
``gsuite-mcp auth`` instead.
"""

from __future__ import annotations

import logging
from typing import Any

from gsuite_mcp.services import get_auth_manager
from gsuite_mcp.tools.base import (
    build_error_response,
    build_success_response,
    error_response_from,
)
from gsuite_mcp.utils.errors import GsuiteMCPError

logger = logging.getLogger(__name__)


async def gsuite_list_accounts() -> dict[str, Any]:
    """List Google accounts with stored credentials.

    Returns:
        Success: {status, data: {accounts, default}, count}
        Error: {status, error, error_code}
    """
    try:
        store = get_auth_manager().store
        accounts = store.list_identities()
    except GsuiteMCPError as e:
        logger.error("Failed to list accounts: %s", e)
        return error_response_from(e)

    if not accounts:
        return build_success_response(
            data={"accounts": [], "default": None},
            message="No authenticated accounts. Run 'gsuite-mcp auth' to sign in.",
            count=0,
        )

    return build_success_response(
        data={"accounts": accounts, "default": accounts[0]},
        count=len(accounts),
    )


async def gsuite_auth_status(account: str | None = None) -> dict[str, Any]:
    """Check whether an account (or the default account) is usable.

    Loads and, if needed, refreshes the stored credential.

    Args:
        account: Account email; None checks the default account.

    Returns:
        Success: {status, data: {authenticated, account, scopes, expiry}}
        Error: {status, error, error_code, hint?}
    """
    try:
        manager = get_auth_manager()
        identity = account or manager.store.default_identity()
        credentials = await manager.get_credentials(account, interactive=False)
    except GsuiteMCPError as e:
        logger.warning("Auth status check failed: %s", e)
        return error_response_from(e)
    except Exception as e:
        logger.error("Unexpected error checking auth status: %s", e)
        return build_error_response(
            error=f"Failed to check authentication status: {e}",
            error_code="StatusCheckError",
        )

    expiry = credentials.expiry.isoformat() + "Z" if credentials.expiry else None
    return build_success_response(
        data={
            "authenticated": True,
            "account": identity,
            "scopes": sorted(credentials.scopes or []),
            "expiry": expiry,
        },
        message=f"Authenticated as {identity}",
    )


__all__ = [
    "gsuite_list_accounts",
    "gsuite_auth_status",
]
