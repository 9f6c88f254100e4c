"""
Tool keys and exported toolbox configuration.

Two key shapes exist on purpose:

- tool key ``<url>::<name>`` identifies a tool for selection, caching and
  dedup inside the toolbox;
- interrupt key ``<url>::<name>::<server name>`` is what the exported
  ``interrupt_config`` is keyed by and what downstream consumers read.

Both always use the normalized server URL and never the display name.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from mcp_toolbox.mcp.errors import InvalidInputError
from mcp_toolbox.mcp.models import ToolRecord
from mcp_toolbox.mcp.urls import normalize_server_url

KEY_SEPARATOR = "::"


def create_tool_key(tool: ToolRecord | dict[str, Any]) -> str:
    """Return ``normalized_url::name`` for a tool."""
    url, name = normalize_server_url(_field(tool, "mcp_server_url")), _field(tool, "name")
    if not url:
        raise InvalidInputError("tool.mcp_server_url is required")
    if not name:
        raise InvalidInputError("tool.name is required")
    return f"{url}{KEY_SEPARATOR}{name}"


def key_belongs_to(key: str, url: str) -> bool:
    """True when ``key`` is a tool key under server ``url``."""
    return key.startswith(f"{normalize_server_url(url)}{KEY_SEPARATOR}")


def rekey(key: str, old_url: str, new_url: str) -> str:
    """Move a tool key from ``old_url`` to ``new_url``; other keys pass through."""
    old = normalize_server_url(old_url)
    if not key_belongs_to(key, old):
        return key
    return f"{normalize_server_url(new_url)}{key[len(old):]}"


def create_config(tools: Iterable[ToolRecord | dict[str, Any]]) -> dict[str, Any]:
    """
    Build the exportable toolbox configuration.

    Tool order is kept as given and nothing is deduplicated. One missing
    name or url aborts the whole export.

    Returns:
        ``{"tools": [...], "interrupt_config": {key: True}}``
    """
    exported: list[dict[str, str]] = []
    interrupt_config: dict[str, bool] = {}

    for tool in tools:
        name = _field(tool, "name")
        url = normalize_server_url(_field(tool, "mcp_server_url"))
        server_name = _field(tool, "mcp_server_name")
        if not name:
            raise InvalidInputError("tool.name is required")
        if not url:
            raise InvalidInputError("tool.mcp_server_url is required")

        exported.append(
            {
                "name": name,
                "display_name": _field(tool, "display_name") or name,
                "mcp_server_name": server_name,
                "mcp_server_url": url,
            }
        )
        interrupt_config[KEY_SEPARATOR.join((url, name, server_name))] = True

    return {"tools": exported, "interrupt_config": interrupt_config}


def _field(tool: ToolRecord | dict[str, Any], name: str) -> str:
    value = tool.get(name) if isinstance(tool, dict) else getattr(tool, name, None)
    return value if isinstance(value, str) else ""
