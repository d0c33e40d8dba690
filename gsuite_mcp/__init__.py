"""gsuite-mcp: multi-account Google Workspace credentials for MCP servers."""

from gsuite_mcp.config import SERVER_VERSION as __version__

__all__ = ["__version__"]
