"""MCP Toolbox - discovers tools on remote MCP servers and exports toolbox configurations."""

__version__ = "1.0.0"
