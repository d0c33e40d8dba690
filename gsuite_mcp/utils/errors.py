"""Custom exception hierarchy for the gsuite-mcp credential broker.

Every failure the authentication subsystem can surface has its own class so
callers can tell "run the login command" conditions (``NoAccountsError``,
``NeedsLoginError``) apart from transport problems (``ProviderIOError``,
``StoreIOError``) without string matching.
"""

from __future__ import annotations

LOGIN_HINT = "Run 'gsuite-mcp auth' and sign in with the account you want to use"


class GsuiteMCPError(Exception):
    """Base exception for all gsuite-mcp errors.

    Attributes:
        message: Human-readable error description.
        details: Optional dictionary containing additional error context.
    """

    def __init__(self, message: str, details: dict[str, object] | None = None) -> None:
        """Initialize the exception.

        Args:
            message: Human-readable error description.
            details: Optional dictionary containing additional error context.
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        """Return string representation of the error."""
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigurationError(GsuiteMCPError):
    """Raised when the OAuth client or environment is misconfigured."""


class ValidationError(GsuiteMCPError):
    """Exception raised for input validation errors.

    Attributes:
        field: The name of the field that failed validation, if applicable.
    """

    def __init__(
        self,
        message: str,
        field: str | None = None,
        details: dict[str, object] | None = None,
    ) -> None:
        super().__init__(message, details)
        self.field = field


class StoreIOError(GsuiteMCPError):
    """Raised when a credential slot cannot be read, parsed, or written.

    Distinct from ``NoCredentialsError``: the slot exists (or should be
    writable) but something is wrong with it.
    """


class AuthenticationError(GsuiteMCPError):
    """Exception raised for OAuth and credential-related errors."""


class NoCredentialsError(AuthenticationError):
    """No credential slot exists for the requested identity."""

    def __init__(self, identity: str) -> None:
        super().__init__(f"No credentials for {identity}", details={"identity": identity})
        self.identity = identity


class NoAccountsError(AuthenticationError):
    """The credential store holds no identities at all."""

    def __init__(self) -> None:
        super().__init__(
            "No authenticated accounts",
            details={"hint": "Run 'gsuite-mcp auth' to authenticate"},
        )


class NeedsLoginError(AuthenticationError):
    """A non-interactive caller asked for an identity that is not stored."""

    def __init__(self, identity: str) -> None:
        super().__init__(
            f"No credentials for {identity}",
            details={"identity": identity, "hint": LOGIN_HINT},
        )
        self.identity = identity


class WrongAccountError(AuthenticationError):
    """An interactive login completed for a different identity than requested."""

    def __init__(self, requested: str, actual: str) -> None:
        super().__init__(
            f"Authenticated as {actual}; need credentials for {requested}",
            details={"requested": requested, "authenticated": actual, "hint": LOGIN_HINT},
        )
        self.requested = requested
        self.actual = actual


class ProviderIOError(AuthenticationError):
    """Transport or parsing failure talking to the identity provider."""


class TokenError(AuthenticationError):
    """Exception raised for token handling errors."""


class RefreshFailedError(TokenError):
    """A stored refresh token could not mint a new access token.

    Typical causes are a revoked grant or a record saved without a
    refresh token whose access token has since expired.
    """

    def __init__(self, identity: str, reason: str) -> None:
        super().__init__(
            f"Failed to refresh token for {identity}: {reason}",
            details={"identity": identity, "hint": LOGIN_HINT},
        )
        self.identity = identity


class AuthFlowError(AuthenticationError):
    """The interactive authorization-code flow aborted before completing."""


class CSRFError(AuthFlowError):
    """The redirect carried a state parameter that does not match."""


class ProviderDeniedError(AuthFlowError):
    """The identity provider redirected back with an ``error`` parameter."""

    def __init__(self, error: str, description: str = "") -> None:
        message = f"OAuth error: {error}"
        if description:
            message = f"{message} - {description}"
        super().__init__(
            message,
            details={"oauth_error": error, "error_description": description},
        )
        self.error = error
        self.description = description


class AuthTimeoutError(AuthFlowError):
    """No redirect arrived before the flow's deadline."""

    def __init__(self, timeout_seconds: float) -> None:
        super().__init__(
            f"Authentication timed out after {timeout_seconds:g}s - please try again",
            details={"timeout_seconds": timeout_seconds},
        )


class PortUnavailableError(AuthFlowError):
    """The local callback listener could not bind its port."""

    def __init__(self, port: int, reason: str) -> None:
        super().__init__(
            f"Failed to listen on port {port}: {reason}",
            details={"port": port, "hint": "Set GSUITE_MCP_OAUTH_PORT to a free port"},
        )
        self.port = port


__all__ = [
    "LOGIN_HINT",
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
