"""Utility helpers shared across gsuite-mcp.

Currently this is the exception hierarchy used by the auth subsystem and the
tool layer.
"""

from gsuite_mcp.utils.errors import (
    AuthenticationError,
    AuthFlowError,
    AuthTimeoutError,
    ConfigurationError,
    CSRFError,
    GsuiteMCPError,
    NeedsLoginError,
    NoAccountsError,
    NoCredentialsError,
    PortUnavailableError,
    ProviderDeniedError,
    ProviderIOError,
    RefreshFailedError,
    StoreIOError,
    TokenError,
    ValidationError,
    WrongAccountError,
)

__all__ = [
    "GsuiteMCPError",
    "ConfigurationError",
    "ValidationError",
    "StoreIOError",
    "AuthenticationError",
    "NoCredentialsError",
    "NoAccountsError",
    "NeedsLoginError",
    "WrongAccountError",
    "ProviderIOError",
    "TokenError",
    "RefreshFailedError",
    "AuthFlowError",
    "CSRFError",
    "ProviderDeniedError",
    "AuthTimeoutError",
    "PortUnavailableError",
]
