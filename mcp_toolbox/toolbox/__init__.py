"""
Toolbox selection and export.

Client-side half of the system: tracks servers and their cached tools for an
editing session, lets the user select tools across servers and turns the
selection into an exportable configuration or TOOLBOX node items.
"""

from mcp_toolbox.toolbox.adapter import (
    ToolboxNodeData,
    ToolboxToolItem,
    ToolStatus,
    adapt_mcp_tool,
    adapt_mcp_tools,
    add_tools_to_toolbox,
    create_toolbox_from_mcp,
    group_tools_by_server,
    merge_with_mcp_tools,
)
from mcp_toolbox.toolbox.api_client import McpApiClient
from mcp_toolbox.toolbox.export import create_config, create_tool_key
from mcp_toolbox.toolbox.state import LogItem, LogLevel, McpController, McpState, reduce

__all__ = [
    # Export
    "create_tool_key",
    "create_config",
    # Adapter
    "ToolboxToolItem",
    "ToolboxNodeData",
    "ToolStatus",
    "adapt_mcp_tool",
    "adapt_mcp_tools",
    "add_tools_to_toolbox",
    "create_toolbox_from_mcp",
    "group_tools_by_server",
    "merge_with_mcp_tools",
    # Controller
    "McpApiClient",
    "McpController",
    "McpState",
    "LogItem",
    "LogLevel",
    "reduce",
]
