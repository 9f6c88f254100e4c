"""
Tool Catalog.

Fans discovery out over every registered server and merges the results.
A failing server never takes the batch down with it: its error is reported
next to the tools of the servers that answered.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence

import structlog

from mcp_toolbox.mcp.client import ToolDiscovery
from mcp_toolbox.mcp.models import AggregateResult, ServerError, ServerRecord, ToolRecord
from mcp_toolbox.mcp.registry import ServerRegistry
from mcp_toolbox.mcp.urls import normalize_server_url

logger = structlog.get_logger(__name__)


class ToolCatalog:
    """Aggregates tool discovery across servers."""

    def __init__(self, registry: ServerRegistry, discovery: ToolDiscovery | None = None):
        self.registry = registry
        self.discovery = discovery or ToolDiscovery()

    async def discover(self, server: ServerRecord) -> list[ToolRecord]:
        """Discover the tools of a single server."""
        return await self.discovery.discover(server)

    async def _discover_one(self, server: ServerRecord) -> tuple[list[ToolRecord], str | None]:
        try:
            return await self.discovery.discover(server), None
        except Exception as e:
            return [], getattr(e, "message", None) or str(e) or "Request failed"

    async def discover_all(
        self, servers: Sequence[ServerRecord] | None = None
    ) -> AggregateResult:
        """
        Discover tools on every server concurrently.

        Tools are ordered by server, then by each server's own listing order.
        Never raises for a per-server failure.

        Args:
            servers: Servers to query; defaults to everything in the registry
        """
        targets = list(servers) if servers is not None else self.registry.list()

        outcomes = await asyncio.gather(*(self._discover_one(server) for server in targets))

        result = AggregateResult(server_count=len(targets))
        for server, (tools, error) in zip(targets, outcomes):
            result.tools.extend(tools)
            if error is not None:
                result.errors.append(
                    ServerError(url=normalize_server_url(server.url), message=error)
                )

        logger.info(
            "Batch discovery complete",
            servers=result.server_count,
            tools=len(result.tools),
            failed=len(result.errors),
        )
        return result
