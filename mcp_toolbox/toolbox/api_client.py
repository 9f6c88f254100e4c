"""
HTTP client for the toolbox API.

Used by the controller to talk to the server-side registry and discovery
endpoints. Error responses are turned back into the same exception types the
server raised.
"""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from mcp_toolbox.mcp.errors import (
    ConflictError,
    DiscoveryError,
    InvalidInputError,
    McpToolboxError,
    NotFoundError,
)
from mcp_toolbox.mcp.models import AggregateResult, ServerError, ServerRecord, ToolRecord

logger = structlog.get_logger(__name__)

_ERRORS_BY_STATUS: dict[int, type[McpToolboxError]] = {
    400: InvalidInputError,
    404: NotFoundError,
    409: ConflictError,
    502: DiscoveryError,
}


class McpApiClient:
    """Thin async wrapper over the ``/servers`` and ``/tools`` endpoints."""

    def __init__(self, client: httpx.AsyncClient):
        self._client = client

    @classmethod
    def from_url(cls, base_url: str, timeout_seconds: float = 30.0) -> McpApiClient:
        return cls(httpx.AsyncClient(base_url=base_url, timeout=timeout_seconds))

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            raise McpToolboxError(str(e) or "Request failed") from e

        try:
            body = response.json()
        except ValueError:
            body = None

        if response.is_success:
            if body is None:
                raise McpToolboxError("Empty response")
            return body

        message = body.get("detail") if isinstance(body, dict) else None
        if not isinstance(message, str) or not message:
            message = f"Request failed with HTTP {response.status_code}"
        error_type = _ERRORS_BY_STATUS.get(response.status_code, McpToolboxError)
        raise error_type(message)

    async def list_servers(self) -> list[ServerRecord]:
        body = await self._request("GET", "/servers")
        return [ServerRecord.from_dict(item) for item in body]

    async def create_server(self, server: ServerRecord) -> ServerRecord:
        body = await self._request("POST", "/servers", json=server.to_dict())
        return ServerRecord.from_dict(body)

    async def update_server(
        self,
        url: str,
        *,
        next_url: str | None = None,
        name: str | None = None,
        transport: str | None = None,
        headers: dict[str, str] | None = None,
        config: Any = None,
    ) -> ServerRecord:
        payload: dict[str, Any] = {"url": url}
        if next_url:
            payload["nextUrl"] = next_url
        if name:
            payload["name"] = name
        if transport:
            payload["transport"] = transport
        if headers is not None:
            payload["headers"] = headers
        if config is not None:
            payload["config"] = config
        body = await self._request("PUT", "/servers", json=payload)
        return ServerRecord.from_dict(body)

    async def delete_server(self, url: str) -> bool:
        body = await self._request("DELETE", "/servers", params={"url": url})
        return bool(body.get("ok"))

    async def list_tools(self, server: ServerRecord) -> list[ToolRecord]:
        payload: dict[str, Any] = {"url": server.url, "name": server.name}
        if server.headers:
            payload["headers"] = server.headers
        if server.config is not None:
            payload["config"] = server.config
        body = await self._request("POST", "/tools", json=payload)
        return [ToolRecord.from_dict(item) for item in body.get("tools") or []]

    async def list_all_tools(self) -> AggregateResult:
        body = await self._request("GET", "/tools/all")
        return AggregateResult(
            tools=[ToolRecord.from_dict(item) for item in body.get("tools") or []],
            errors=[
                ServerError(url=item.get("url", ""), message=item.get("message", ""))
                for item in body.get("errors") or []
            ],
            server_count=int(body.get("serverCount") or 0),
        )
