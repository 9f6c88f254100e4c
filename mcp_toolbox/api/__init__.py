"""HTTP API for the MCP toolbox."""

from mcp_toolbox.api.main import create_app

__all__ = ["create_app"]
