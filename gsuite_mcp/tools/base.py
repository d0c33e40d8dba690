"""Base utilities for gsuite-mcp tools.

Standardized response builders shared by all tools, plus the mapping from
auth-subsystem exceptions to actionable error responses.
"""

from __future__ import annotations

import logging
from typing import Any

from gsuite_mcp.utils.errors import GsuiteMCPError

logger = logging.getLogger(__name__)


# =============================================================================
# Standard Response Keys
# =============================================================================


class ResponseKeys:
    """Standard keys for tool responses."""

    STATUS = "status"
    DATA = "data"
    MESSAGE = "message"
    COUNT = "count"
    ERROR = "error"
    ERROR_CODE = "error_code"


# =============================================================================
# Response Builders
# =============================================================================


def build_success_response(
    data: Any,
    message: str | None = None,
    count: int | None = None,
) -> dict[str, Any]:
    """Build standardized success response.

    Args:
        data: Tool-specific payload.
        message: Optional human-readable message.
        count: Optional item count.

    Returns:
        Standardized success response dict.
    """
    response: dict[str, Any] = {
        ResponseKeys.STATUS: "success",
        ResponseKeys.DATA: data,
    }
    if message:
        response[ResponseKeys.MESSAGE] = message
    if count is not None:
        response[ResponseKeys.COUNT] = count
    return response


def build_error_response(
    error: str,
    error_code: str | None = None,
    details: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Build standardized error response.

    Args:
        error: Human-readable error message.
        error_code: Optional error code for programmatic handling.
        details: Optional additional error details.

    Returns:
        Standardized error response dict.
    """
    response: dict[str, Any] = {
        ResponseKeys.STATUS: "error",
        ResponseKeys.ERROR: error,
    }
    if error_code:
        response[ResponseKeys.ERROR_CODE] = error_code
    if details:
        response.update(details)
    return response


def error_response_from(error: GsuiteMCPError) -> dict[str, Any]:
    """Turn a gsuite-mcp exception into an error response.

    The exception class name becomes the error code, and a ``hint`` detail
    (e.g. "run 'gsuite-mcp auth'") is passed through so clients can show
    actionable guidance.
    """
    details: dict[str, Any] = {}
    hint = error.details.get("hint")
    if hint:
        details["hint"] = hint
    return build_error_response(
        error=error.message,
        error_code=type(error).__name__,
        details=details,
    )


__all__ = [
    "ResponseKeys",
    "build_success_response",
    "build_error_response",
    "error_response_from",
]
