"""Entry point for gsuite-mcp."""

from __future__ import annotations

import asyncio
import logging
import os
import sys

from dotenv import load_dotenv

from gsuite_mcp import __version__, config
from gsuite_mcp.utils.errors import GsuiteMCPError

USAGE = """\
gsuite-mcp - MCP server for Google Workspace

Usage:
  gsuite-mcp [serve]      Start the MCP server (STDIO transport)
  gsuite-mcp init         Create the config directory and show setup steps
  gsuite-mcp auth         Sign in to a Google account
  gsuite-mcp accounts     List authenticated accounts
  gsuite-mcp help         Show this help
  gsuite-mcp version      Show the version

Environment:
  GSUITE_MCP_CONFIG_DIR   Config directory (default ~/.config/gsuite-mcp)
  GSUITE_MCP_OAUTH_PORT   OAuth callback port (default 8000)
  LOG_LEVEL               DEBUG, INFO, WARNING, ERROR, CRITICAL
"""


def configure_logging() -> None:
    """Configure logging to stderr (STDIO-safe).

    Sends all logs to stderr so they don't interfere with MCP's
    STDIO transport which uses stdout for JSON-RPC messages.

    Respects LOG_LEVEL env var (DEBUG, INFO, WARNING, ERROR, CRITICAL).
    """
    log_level_str = os.getenv("LOG_LEVEL", "INFO").upper()
    log_level = logging.getLevelNamesMapping().get(log_level_str, logging.INFO)
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )
    # Reduce noise from Google libraries
    logging.getLogger("googleapiclient").setLevel(logging.WARNING)
    logging.getLogger("google.auth").setLevel(logging.WARNING)


def _fail(error: GsuiteMCPError) -> None:
    print(f"Error: {error.message}", file=sys.stderr)
    hint = error.details.get("hint")
    if hint:
        print(f"Hint: {hint}", file=sys.stderr)
    sys.exit(1)


def run_init() -> None:
    """Create the credentials directory and print first-run instructions."""
    creds_dir = config.credentials_dir()
    try:
        creds_dir.mkdir(mode=0o700, parents=True, exist_ok=True)
    except OSError as e:
        print(f"Error: could not create {creds_dir}: {e}", file=sys.stderr)
        sys.exit(1)

    print(f"Created {creds_dir}")
    print()
    print("Next steps:")
    print("  1. In Google Cloud Console, create an OAuth client (Desktop app)")
    print(f"  2. Save its JSON as {config.client_secret_path()}")
    print("     (or set GOOGLE_CLIENT_ID and GOOGLE_CLIENT_SECRET)")
    print(f"  3. Add http://localhost:{config.DEFAULT_OAUTH_PORT}"
          f"{config.CALLBACK_PATH} as an authorized redirect URI")
    print("  4. Run 'gsuite-mcp auth' to sign in")


def run_auth() -> None:
    """Run one interactive login and report the account."""
    from gsuite_mcp.auth import AuthManager

    try:
        identity = asyncio.run(AuthManager().authenticate())
    except GsuiteMCPError as e:
        _fail(e)
    except KeyboardInterrupt:
        print("\nAuthentication cancelled.", file=sys.stderr)
        sys.exit(1)

    print(f"Authenticated as {identity}")


def run_accounts() -> None:
    """Print authenticated accounts, marking the default."""
    from gsuite_mcp.auth import CredentialStore

    try:
        accounts = CredentialStore().list_identities()
    except GsuiteMCPError as e:
        _fail(e)

    if not accounts:
        print("No authenticated accounts. Run 'gsuite-mcp auth' to sign in.")
        return

    for i, identity in enumerate(accounts):
        marker = " (default)" if i == 0 else ""
        print(f"  {identity}{marker}")


def run_server() -> None:
    """Validate client configuration and serve MCP over STDIO."""
    logger = logging.getLogger(__name__)

    try:
        config.load_client_config()
    except GsuiteMCPError as e:
        logger.error("Configuration validation failed: %s", e)
        _fail(e)

    # Import server after environment is validated
    from gsuite_mcp.auth import AuthManager
    from gsuite_mcp.server import mcp
    from gsuite_mcp.services import set_auth_manager

    set_auth_manager(AuthManager())

    logger.info("Starting gsuite-mcp server with STDIO transport")
    mcp.run(transport="stdio")


def main(argv: list[str] | None = None) -> None:
    """Main entry point.

    Loads environment, configures logging, and dispatches the subcommand.
    With no subcommand the MCP server is started.
    """
    # Load .env file if present
    load_dotenv()

    # Configure logging first
    configure_logging()

    args = sys.argv[1:] if argv is None else argv
    command = args[0] if args else "serve"

    match command:
        case "serve":
            run_server()
        case "init":
            run_init()
        case "auth":
            run_auth()
        case "accounts":
            run_accounts()
        case "help" | "-h" | "--help":
            print(USAGE)
        case "version" | "--version":
            print(f"gsuite-mcp {__version__}")
        case _:
            print(f"Unknown command: {command}\n", file=sys.stderr)
            print(USAGE, file=sys.stderr)
            sys.exit(1)


if __name__ == "__main__":
    main()
