"""gsuite-mcp tools package.

Account tools built on the auth subsystem, and the response builders every
tool shares.
"""

from gsuite_mcp.tools.accounts import gsuite_auth_status, gsuite_list_accounts
from gsuite_mcp.tools.base import (
    build_error_response,
    build_success_response,
    error_response_from,
)

__all__ = [
    # Base utilities
    "build_error_response",
    "build_success_response",
    "error_response_from",
    # Account tools
    "gsuite_auth_status",
    "gsuite_list_accounts",
]
