"""FastMCP server for gsuite-mcp.

The server runs non-interactively: tools resolve accounts from the
credential store and never open a browser. Accounts are added out of band
with ``gsuite-mcp auth``.

Registered tools:
- gsuite_list_accounts: accounts with stored credentials and the default
- gsuite_auth_status: whether an account's credentials are usable
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from mcp.server.fastmcp import FastMCP
from mcp.types import ToolAnnotations

from gsuite_mcp.config import SERVER_NAME
from gsuite_mcp.services import get_auth_manager
from gsuite_mcp.tools import gsuite_auth_status, gsuite_list_accounts

logger = logging.getLogger(__name__)


# =============================================================================
# Lifespan Context Manager
# =============================================================================


@asynccontextmanager
async def server_lifespan(server: FastMCP) -> AsyncIterator[dict[str, Any]]:
    """Lifespan context manager for server startup/shutdown.

    Logs the accounts available at startup so a missing login is visible
    in the server log before the first tool call fails.

    Args:
        server: The FastMCP server instance.

    Yields:
        Empty context dict (no shared state needed).
    """
    logger.info("gsuite-mcp server starting up...")

    try:
        accounts = get_auth_manager().store.list_identities()
    except Exception as e:
        logger.warning("Could not list authenticated accounts: %s", e)
    else:
        if accounts:
            logger.info("Authenticated accounts: %s", ", ".join(accounts))
        else:
            logger.warning("No authenticated accounts; run 'gsuite-mcp auth'")

    yield {}

    logger.info("gsuite-mcp server shutting down...")


# =============================================================================
# Account Tool Wrappers
# =============================================================================


def _register_account_tools(mcp: FastMCP) -> None:
    """Register account tools with the FastMCP server.

    Args:
        mcp: The FastMCP server instance.
    """

    @mcp.tool(
        name="gsuite_list_accounts",
        annotations=ToolAnnotations(
            readOnlyHint=True,
            destructiveHint=False,
            idempotentHint=True,
        ),
    )
    async def gsuite_list_accounts_tool() -> dict[str, Any]:
        """List Google accounts that have stored credentials.

        The first account (alphabetically) is the default used when a tool
        call does not name an account.

        Returns:
            Success: {status, data: {accounts, default}, count}
        """
        return await gsuite_list_accounts()

    @mcp.tool(
        name="gsuite_auth_status",
        annotations=ToolAnnotations(
            readOnlyHint=True,
            destructiveHint=False,
            idempotentHint=True,
        ),
    )
    async def gsuite_auth_status_tool(account: str | None = None) -> dict[str, Any]:
        """Check whether a Google account is authenticated and usable.

        Refreshes the stored access token if it has expired.

        Args:
            account: Account email. Omit to check the default account.

        Returns:
            Success: {status, data: {authenticated, account, scopes, expiry}}
            Error: {status, error, error_code, hint}
        """
        return await gsuite_auth_status(account)


# =============================================================================
# Server Factory
# =============================================================================


def create_server() -> FastMCP:
    """Create and configure the FastMCP server instance.

    Returns:
        Configured FastMCP server instance.
    """
    server = FastMCP(
        name=SERVER_NAME,
        lifespan=server_lifespan,
    )

    _register_account_tools(server)
    logger.info(
        "gsuite-mcp server created with %d tools registered",
        len(server._tool_manager.list_tools()),
    )

    return server


# Create the module-level server instance
mcp = create_server()


__all__ = [
    "create_server",
    "mcp",
    "server_lifespan",
]
