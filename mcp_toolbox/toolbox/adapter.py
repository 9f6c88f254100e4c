"""
Toolbox node adapter.

Turns discovered MCP tools into the item format stored on the graph editor's
TOOLBOX node, and writes a confirmed selection back into an existing list.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from mcp_toolbox.mcp.models import ToolRecord
from mcp_toolbox.toolbox.export import create_tool_key


class ToolStatus(str, Enum):
    """Status badge of a toolbox item."""

    ACTIVE = "active"
    REVIEW = "review"
    DRAFT = "draft"
    MISSING_KEY = "missing_key"


@dataclass
class ToolboxToolItem:
    """One tool on a TOOLBOX node. ``id`` is the tool key."""

    id: str
    name: str
    source: str = ""
    status: ToolStatus = ToolStatus.ACTIVE
    icon: str | None = None
    mcp_server_name: str | None = None
    mcp_server_url: str | None = None
    description: str | None = None
    input_schema: Any = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "source": self.source,
            "status": self.status.value,
        }
        for key in ("icon", "mcp_server_name", "mcp_server_url", "description", "input_schema"):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        return data


@dataclass
class ToolboxNodeData:
    """Data payload of a TOOLBOX node."""

    tools: list[ToolboxToolItem] = field(default_factory=list)
    label: str = "TOOLBOX"
    mcp_enabled: bool = True
    is_loading: bool = False
    error: str | None = None
    mcp_servers: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "label": self.label,
            "tools": [tool.to_dict() for tool in self.tools],
            "mcpEnabled": self.mcp_enabled,
            "isLoading": self.is_loading,
            "mcpServers": list(self.mcp_servers),
        }
        if self.error:
            data["error"] = self.error
        return data


# First match wins.
_ICON_RULES: tuple[tuple[tuple[str, ...], str], ...] = (
    (("search", "find"), "🔍"),
    (("read", "get"), "📖"),
    (("write", "create", "add"), "✏️"),
    (("delete", "remove"), "🗑️"),
    (("file", "document"), "📄"),
    (("database", "sql"), "🗃️"),
    (("api", "http", "request"), "🌐"),
    (("email", "mail"), "📧"),
    (("image", "photo"), "🖼️"),
    (("code", "script"), "💻"),
    (("browser", "web"), "🌍"),
    (("navigate", "click"), "🖱️"),
    (("screenshot",), "📸"),
)
DEFAULT_ICON = "🔧"


def tool_icon(tool: ToolRecord) -> str:
    """Pick an icon from the tool name."""
    name = tool.name.lower()
    for words, icon in _ICON_RULES:
        if any(word in name for word in words):
            return icon
    return DEFAULT_ICON


def adapt_mcp_tool(tool: ToolRecord) -> ToolboxToolItem:
    """Convert a discovered tool into a full toolbox item."""
    return ToolboxToolItem(
        id=create_tool_key(tool),
        name=tool.display_name or tool.name,
        source=tool.mcp_server_name,
        status=ToolStatus.ACTIVE,
        icon=tool_icon(tool),
        mcp_server_name=tool.mcp_server_name,
        mcp_server_url=tool.mcp_server_url,
        description=tool.description,
        input_schema=tool.input_schema,
    )


def adapt_mcp_tools(
    tools: Iterable[ToolRecord], max_tools_per_node: int | None = None
) -> list[ToolboxToolItem]:
    """Convert many tools, keeping at most ``max_tools_per_node`` when set."""
    adapted = [adapt_mcp_tool(tool) for tool in tools]
    if max_tools_per_node and len(adapted) > max_tools_per_node:
        adapted = adapted[:max_tools_per_node]
    return adapted


def group_tools_by_server(items: Iterable[ToolboxToolItem]) -> dict[str, list[ToolboxToolItem]]:
    """Group toolbox items by their server display name."""
    groups: dict[str, list[ToolboxToolItem]] = {}
    for item in items:
        groups.setdefault(item.mcp_server_name or "Unknown Server", []).append(item)
    return groups


def create_toolbox_from_mcp(
    tools: Sequence[ToolRecord],
    max_tools_per_node: int | None = None,
    is_loading: bool = False,
    error: str | None = None,
) -> ToolboxNodeData:
    """Build TOOLBOX node data for a set of discovered tools."""
    servers: list[str] = []
    for tool in tools:
        if tool.mcp_server_url not in servers:
            servers.append(tool.mcp_server_url)
    return ToolboxNodeData(
        tools=adapt_mcp_tools(tools, max_tools_per_node),
        is_loading=is_loading,
        error=error,
        mcp_servers=servers,
    )


def merge_with_mcp_tools(
    existing: Iterable[ToolboxToolItem],
    tools: Iterable[ToolRecord],
    max_tools_per_node: int | None = None,
) -> list[ToolboxToolItem]:
    """
    Merge freshly discovered tools into an existing list.

    Unlike ``add_tools_to_toolbox`` an MCP item replaces an existing item
    with the same id, which is what a refresh wants.
    """
    merged: dict[str, ToolboxToolItem] = {item.id: item for item in existing}
    for item in adapt_mcp_tools(tools, max_tools_per_node):
        merged[item.id] = item
    return list(merged.values())


def add_tools_to_toolbox(
    existing_items: Iterable[ToolboxToolItem],
    new_tools: Iterable[ToolRecord],
) -> list[ToolboxToolItem]:
    """
    Append a selection to a toolbox's items.

    Tools whose key is already present are skipped, so adding the same
    selection twice leaves the list unchanged. The caller commits the
    returned list to the node and clears the selection.
    """
    items = list(existing_items)
    seen = {item.id for item in items}
    for tool in new_tools:
        key = create_tool_key(tool)
        if key in seen:
            continue
        seen.add(key)
        items.append(
            ToolboxToolItem(
                id=key,
                name=tool.display_name or tool.name,
                source=tool.mcp_server_name,
                status=ToolStatus.ACTIVE,
            )
        )
    return items
