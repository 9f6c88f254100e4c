"""
Data model shared by the registry, discovery engine and toolbox layer.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any


class TransportType(str, Enum):
    """MCP transport types accepted on a server record."""

    STREAMABLE_HTTP = "streamable-http"
    SSE = "sse"

    @classmethod
    def parse(cls, value: Any) -> TransportType | None:
        """Return the matching transport, or None for anything unrecognised."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        try:
            return cls(value)
        except ValueError:
            return None


def sanitize_headers(value: Any) -> dict[str, str] | None:
    """
    Clean a user-supplied header mapping.

    Keys and values are trimmed; non-string or empty entries are dropped.
    Returns None when nothing usable remains.
    """
    if not isinstance(value, dict):
        return None
    headers: dict[str, str] = {}
    for key, item in value.items():
        name = key.strip() if isinstance(key, str) else ""
        text = item.strip() if isinstance(item, str) else ""
        if not name or not text:
            continue
        headers[name] = text
    return headers or None


@dataclass
class ServerRecord:
    """A registered MCP server. ``url`` is always stored normalized."""

    name: str
    url: str
    transport: TransportType | None = None
    headers: dict[str, str] | None = None
    config: Any = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary, leaving out unset optional fields."""
        data: dict[str, Any] = {"name": self.name, "url": self.url}
        if self.transport is not None:
            data["transport"] = self.transport.value
        if self.headers:
            data["headers"] = dict(self.headers)
        if self.config is not None:
            data["config"] = self.config
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ServerRecord:
        """Build a record from a JSON payload without validating it."""
        return cls(
            name=data.get("name") if isinstance(data.get("name"), str) else "",
            url=data.get("url") if isinstance(data.get("url"), str) else "",
            transport=TransportType.parse(data.get("transport")),
            headers=sanitize_headers(data.get("headers")),
            config=data.get("config"),
        )

    def copy(self, **changes: Any) -> ServerRecord:
        """Return a copy with ``changes`` applied."""
        return replace(self, **changes)


@dataclass
class ToolRecord:
    """
    A tool advertised by an MCP server.

    Identity is ``(mcp_server_url, name)``; ``display_name`` is for people only.
    """

    name: str
    display_name: str
    mcp_server_name: str
    mcp_server_url: str
    description: str | None = None
    input_schema: Any = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "name": self.name,
            "display_name": self.display_name,
            "mcp_server_name": self.mcp_server_name,
            "mcp_server_url": self.mcp_server_url,
        }
        if self.description:
            data["description"] = self.description
        if self.input_schema is not None:
            data["input_schema"] = self.input_schema
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ToolRecord:
        name = data.get("name") or ""
        return cls(
            name=name,
            display_name=data.get("display_name") or name,
            mcp_server_name=data.get("mcp_server_name") or "",
            mcp_server_url=data.get("mcp_server_url") or "",
            description=data.get("description") or None,
            input_schema=data.get("input_schema"),
        )


@dataclass
class ServerError:
    """Per-server failure reported by a batch discovery."""

    url: str
    message: str

    def to_dict(self) -> dict[str, str]:
        return {"url": self.url, "message": self.message}


@dataclass
class AggregateResult:
    """Merged outcome of discovering tools on every registered server."""

    tools: list[ToolRecord] = field(default_factory=list)
    errors: list[ServerError] = field(default_factory=list)
    server_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the wire shape; ``errors`` is omitted when empty."""
        data: dict[str, Any] = {
            "tools": [tool.to_dict() for tool in self.tools],
            "serverCount": self.server_count,
        }
        if self.errors:
            data["errors"] = [error.to_dict() for error in self.errors]
        return data
