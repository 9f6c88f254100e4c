"""
MCP Server Registry.

In-memory store of server records keyed by normalized URL. The registry is
the only thing allowed to create, rename or delete a server; everything else
holds read-only copies. Contents live as long as the process.

Usage:
    registry = ServerRegistry()
    registry.add(ServerRecord(name="Agent Builder", url="https://tools.example.com/"))
    registry.update("https://tools.example.com", next_url="https://tools2.example.com")
"""

from __future__ import annotations

import threading
from typing import Any

import structlog

from mcp_toolbox.mcp.errors import ConflictError, InvalidInputError, NotFoundError
from mcp_toolbox.mcp.models import ServerRecord, TransportType
from mcp_toolbox.mcp.urls import is_http_url, normalize_server_url

logger = structlog.get_logger(__name__)


class ServerRegistry:
    """Keyed store of MCP server records."""

    def __init__(self) -> None:
        self._servers: dict[str, ServerRecord] = {}
        self._lock = threading.RLock()
        self._logger = logger.bind(component="ServerRegistry")

    def __len__(self) -> int:
        return len(self._servers)

    def __contains__(self, url: object) -> bool:
        return isinstance(url, str) and normalize_server_url(url) in self._servers

    def list(self) -> list[ServerRecord]:
        """Return all servers in insertion order."""
        with self._lock:
            return [server.copy() for server in self._servers.values()]

    def get(self, url: str) -> ServerRecord | None:
        """Look up a server by any equivalent spelling of its URL."""
        with self._lock:
            server = self._servers.get(normalize_server_url(url))
            return server.copy() if server else None

    def add(self, record: ServerRecord) -> ServerRecord:
        """
        Register a new server.

        Raises:
            InvalidInputError: name or url is empty, or url is not http(s)
            ConflictError: a server with the same normalized url exists
        """
        name = (record.name or "").strip()
        url = normalize_server_url(record.url)

        if not name:
            raise InvalidInputError("Server name is required")
        if not url:
            raise InvalidInputError("Server URL is required")
        if not is_http_url(url):
            raise InvalidInputError("Server URL must be http/https")

        with self._lock:
            if url in self._servers:
                raise ConflictError("MCP server URL must be unique")
            server = record.copy(name=name, url=url)
            self._servers[url] = server

        self._logger.info("Server registered", name=name, url=url)
        return server.copy()

    def update(
        self,
        current_url: str,
        *,
        next_url: str | None = None,
        name: str | None = None,
        transport: TransportType | None = None,
        headers: dict[str, str] | None = None,
        config: Any = None,
    ) -> ServerRecord:
        """
        Update a server, optionally moving it to a new URL.

        Fields passed as None keep their current value. When ``next_url``
        normalizes to a different key the entry is re-keyed in place: the old
        key disappears and the new one takes its position in the listing.

        Raises:
            InvalidInputError: current_url is empty or the target url is not http(s)
            NotFoundError: no server under current_url
            ConflictError: the target url belongs to another server
        """
        url = normalize_server_url(current_url)
        if not url:
            raise InvalidInputError("url is required")

        with self._lock:
            existing = self._servers.get(url)
            if existing is None:
                raise NotFoundError("Server not found")

            final_url = normalize_server_url(next_url) or url
            if not is_http_url(final_url):
                raise InvalidInputError("Server URL must be http/https")
            if final_url != url and final_url in self._servers:
                raise ConflictError("MCP server URL must be unique")

            updated = ServerRecord(
                name=(name or "").strip() or existing.name,
                url=final_url,
                transport=transport if transport is not None else existing.transport,
                headers=headers if headers is not None else existing.headers,
                config=config if config is not None else existing.config,
            )

            if final_url == url:
                self._servers[url] = updated
            else:
                self._servers = {
                    (final_url if key == url else key): (updated if key == url else server)
                    for key, server in self._servers.items()
                }

        if final_url != url:
            self._logger.info("Server moved", old_url=url, new_url=final_url)
        else:
            self._logger.info("Server updated", url=url)
        return updated.copy()

    def remove(self, url: str) -> bool:
        """
        Delete a server.

        Raises:
            InvalidInputError: url is empty
            NotFoundError: no server under url
        """
        key = normalize_server_url(url)
        if not key:
            raise InvalidInputError("url is required")

        with self._lock:
            if self._servers.pop(key, None) is None:
                raise NotFoundError("Server not found")

        self._logger.info("Server removed", url=key)
        return True

    def clear(self) -> None:
        """Drop every registration."""
        with self._lock:
            self._servers.clear()
