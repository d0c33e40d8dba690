"""Authentication and account resolution for gsuite-mcp.

This package provides:

- A credential store with one owner-only JSON file per Google account
- An interactive OAuth 2.0 authorization-code flow with a local callback
  listener and CSRF protection
- An account resolver that refreshes stored credentials on load and starts
  a browser login only for interactive callers

Usage:
    >>> from gsuite_mcp.auth import AuthManager
    >>>
    >>> manager = AuthManager()
    >>> # Use the default account, never opening a browser
    >>> creds = await manager.get_credentials()
    >>>
    >>> # A specific account, logging in if needed
    >>> creds = await manager.get_credentials("me@example.com", interactive=True)
"""

from gsuite_mcp.auth.manager import AuthManager
from gsuite_mcp.auth.models import CredentialRecord
from gsuite_mcp.auth.oauth import OAuthFlow
from gsuite_mcp.auth.storage import CredentialStore

__all__ = [
    "AuthManager",
    "CredentialRecord",
    "CredentialStore",
    "OAuthFlow",
]
