"""
MCP Tool Discovery.

Lists the tools exposed by a remote MCP server. Servers in the wild speak
slightly different dialects, so discovery walks an ordered cascade of
strategies and the first one that answers wins:

    1. sdk       - MCP streamable-HTTP session, ``tools/list``
    2. rest-get  - ``GET {endpoint}/tools/list``
    3. json-rpc  - ``POST {endpoint}`` with a ``tools/list`` JSON-RPC envelope

When every strategy fails the error of the last one is raised as a
``DiscoveryError``. Strategies for one server run one after another; only
different servers are queried concurrently (see ``ToolCatalog``).
"""

from __future__ import annotations

import asyncio
import json
import re
from collections.abc import Awaitable, Callable, Sequence
from contextlib import AsyncExitStack, asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncIterator

import httpx
import structlog
from mcp import types as mcp_types
from mcp.client.session import ClientSession
from mcp.client.streamable_http import create_mcp_http_client, streamable_http_client

from mcp_toolbox import __version__
from mcp_toolbox.mcp.errors import DiscoveryError
from mcp_toolbox.mcp.models import ServerRecord, ToolRecord
from mcp_toolbox.mcp.urls import PROVIDER_HOST, normalize_server_url
from mcp_toolbox.observability import get_tracer, truncate

logger = structlog.get_logger(__name__)

DEFAULT_TIMEOUT_SECONDS = 8.0
CLIENT_NAME = "mcp-toolbox-proxy"

_BEARER_RE = re.compile(r"^Bearer\s+(.+)$", re.IGNORECASE)


# ═══════════════════════════════════════════════════════════════════════════════
# Endpoint and payload helpers
# ═══════════════════════════════════════════════════════════════════════════════


def read_bearer(headers: dict[str, str] | None) -> str:
    """Extract the token from an ``Authorization: Bearer <token>`` header."""
    if not headers:
        return ""
    for key, value in headers.items():
        if key.lower() != "authorization":
            continue
        text = value.strip() if isinstance(value, str) else ""
        match = _BEARER_RE.match(text)
        return match.group(1).strip() if match else ""
    return ""


def build_endpoint(server: ServerRecord) -> str:
    """
    Build the URL discovery requests go to.

    For the aliasing provider host the path gets a ``/mcp`` suffix and a
    bearer token is repeated as the ``api_key`` query parameter. An opaque
    ``config`` object is passed JSON-encoded as the ``config`` parameter.
    """
    url = httpx.URL(normalize_server_url(server.url))

    if url.host == PROVIDER_HOST:
        path = url.path.rstrip("/")
        if not path.endswith("/mcp"):
            url = url.copy_with(path=f"{path}/mcp")
        token = read_bearer(server.headers)
        if token:
            url = url.copy_set_param("api_key", token)

    if server.config is not None:
        url = url.copy_set_param("config", json.dumps(server.config, separators=(",", ":")))

    return str(url)


def append_path(endpoint: str, suffix: str) -> str:
    """Append a path segment, keeping the query string."""
    url = httpx.URL(endpoint)
    path = url.path.rstrip("/")
    return str(url.copy_with(path=f"{path}/{suffix.lstrip('/')}"))


def parse_tools(payload: Any) -> list[Any]:
    """
    Pull the raw tool list out of a response body.

    Accepts a bare list, ``{"tools": [...]}`` or ``{"result": {"tools": [...]}}``.
    Anything else counts as zero tools.
    """
    if not payload:
        return []
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        if isinstance(payload.get("tools"), list):
            return payload["tools"]
        result = payload.get("result")
        if isinstance(result, dict) and isinstance(result.get("tools"), list):
            return result["tools"]
    return []


def _read_string(value: Any) -> str:
    return value if isinstance(value, str) else ""


def map_tool(raw: Any, server: ServerRecord) -> ToolRecord | None:
    """Convert one raw tool entry; entries without a name are dropped."""
    if not isinstance(raw, dict):
        return None
    name = _read_string(raw.get("name"))
    if not name:
        return None

    display_name = (
        _read_string(raw.get("display_name"))
        or _read_string(raw.get("displayName"))
        or name
    )

    input_schema = None
    for key in ("input_schema", "inputSchema", "inputSchemaJson", "parameters"):
        if raw.get(key) is not None:
            input_schema = raw[key]
            break

    return ToolRecord(
        name=name,
        display_name=display_name,
        mcp_server_name=server.name,
        mcp_server_url=server.url,
        description=_read_string(raw.get("description")) or None,
        input_schema=input_schema,
    )


def map_tools(items: Sequence[Any], server: ServerRecord) -> list[ToolRecord]:
    """Map a raw tool list, silently skipping malformed entries."""
    tools = []
    for raw in items:
        tool = map_tool(raw, server)
        if tool is not None:
            tools.append(tool)
    return tools


# ═══════════════════════════════════════════════════════════════════════════════
# Strategies
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass
class DiscoveryRequest:
    """Everything a strategy needs to query one server."""

    server: ServerRecord
    endpoint: str
    headers: dict[str, str] = field(default_factory=dict)
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    http_client: httpx.AsyncClient | None = None

    @asynccontextmanager
    async def client(self) -> AsyncIterator[httpx.AsyncClient]:
        """Yield the shared HTTP client, or a short-lived one."""
        if self.http_client is not None:
            yield self.http_client
            return
        async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
            yield client


DiscoveryStrategy = Callable[[DiscoveryRequest], Awaitable[list[Any]]]


async def _send(request: DiscoveryRequest, method: str, url: str, **kwargs: Any) -> Any:
    """Issue one HTTP call and return the decoded body (None if not JSON)."""
    try:
        async with request.client() as client:
            response = await client.request(
                method, url, timeout=request.timeout_seconds, **kwargs
            )
    except httpx.TimeoutException as e:
        raise DiscoveryError("Request timed out", url=request.server.url) from e
    except httpx.HTTPError as e:
        raise DiscoveryError(str(e) or "Request failed", url=request.server.url) from e

    if not response.is_success:
        raise DiscoveryError(f"HTTP {response.status_code}", url=request.server.url)

    try:
        return response.json()
    except ValueError:
        return None


async def list_via_sdk(request: DiscoveryRequest) -> list[Any]:
    """Open an MCP session on the endpoint and call ``tools/list``."""

    async def _list() -> list[Any]:
        stack = AsyncExitStack()
        try:
            http_client = await stack.enter_async_context(
                create_mcp_http_client(
                    headers=request.headers or None,
                    timeout=httpx.Timeout(request.timeout_seconds),
                )
            )
            read_stream, write_stream, _get_session_id = await stack.enter_async_context(
                streamable_http_client(request.endpoint, http_client=http_client)
            )
            session = await stack.enter_async_context(
                ClientSession(
                    read_stream,
                    write_stream,
                    client_info=mcp_types.Implementation(name=CLIENT_NAME, version=__version__),
                )
            )
            await session.initialize()
            result = await session.list_tools()
            return [tool.model_dump(exclude_none=True) for tool in result.tools]
        finally:
            try:
                await stack.aclose()
            except Exception as e:
                logger.debug("MCP session close failed", url=request.server.url, error=str(e))

    try:
        return await asyncio.wait_for(_list(), timeout=request.timeout_seconds)
    except asyncio.TimeoutError as e:
        raise DiscoveryError("Request timed out", url=request.server.url) from e


async def list_via_get(request: DiscoveryRequest) -> list[Any]:
    """``GET {endpoint}/tools/list``."""
    body = await _send(
        request,
        "GET",
        append_path(request.endpoint, "tools/list"),
        headers={**request.headers, "accept": "application/json"},
    )
    return parse_tools(body)


async def list_via_rpc(request: DiscoveryRequest) -> list[Any]:
    """``POST {endpoint}`` with a JSON-RPC ``tools/list`` request."""
    body = await _send(
        request,
        "POST",
        request.endpoint,
        headers={
            **request.headers,
            "content-type": "application/json",
            "accept": "application/json",
        },
        json={"jsonrpc": "2.0", "id": 1, "method": "tools/list", "params": {}},
    )
    return parse_tools(body)


DEFAULT_STRATEGIES: tuple[DiscoveryStrategy, ...] = (list_via_sdk, list_via_get, list_via_rpc)

STRATEGY_NAMES: dict[DiscoveryStrategy, str] = {
    list_via_sdk: "sdk",
    list_via_get: "rest-get",
    list_via_rpc: "json-rpc",
}


def _strategy_name(strategy: DiscoveryStrategy) -> str:
    if strategy in STRATEGY_NAMES:
        return STRATEGY_NAMES[strategy]
    return getattr(strategy, "__name__", None) or repr(strategy)


def _error_message(error: BaseException) -> str:
    if isinstance(error, DiscoveryError):
        return error.message
    return str(error) or "Request failed"


# ═══════════════════════════════════════════════════════════════════════════════
# Engine
# ═══════════════════════════════════════════════════════════════════════════════


class ToolDiscovery:
    """
    Discovery engine for a single server.

    Stateless apart from its configuration: every call queries the server
    afresh and never touches the registry.
    """

    def __init__(
        self,
        strategies: Sequence[DiscoveryStrategy] | None = None,
        http_client: httpx.AsyncClient | None = None,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    ):
        self.strategies = list(strategies if strategies is not None else DEFAULT_STRATEGIES)
        self.http_client = http_client
        self.timeout_seconds = timeout_seconds
        self._tracer = get_tracer("mcp-discovery")

    def build_request(self, server: ServerRecord) -> DiscoveryRequest:
        server = server.copy(url=normalize_server_url(server.url))
        return DiscoveryRequest(
            server=server,
            endpoint=build_endpoint(server),
            headers=dict(server.headers or {}),
            timeout_seconds=self.timeout_seconds,
            http_client=self.http_client,
        )

    async def discover(self, server: ServerRecord) -> list[ToolRecord]:
        """
        List the tools of ``server``.

        Raises:
            DiscoveryError: every strategy failed; carries the last error message
        """
        try:
            request = self.build_request(server)
        except httpx.InvalidURL as e:
            raise DiscoveryError(f"Invalid server URL: {e}", url=server.url) from e
        log = logger.bind(server_url=request.server.url)

        with self._tracer.start_as_current_span("mcp.discover") as span:
            span.set_attribute("mcp.server.url", request.server.url)

            last_error: BaseException | None = None
            for strategy in self.strategies:
                name = _strategy_name(strategy)
                try:
                    items = await strategy(request)
                except Exception as e:
                    last_error = e
                    log.debug("Discovery strategy failed", strategy=name, error=_error_message(e))
                    continue

                tools = map_tools(items, request.server)
                span.set_attribute("mcp.strategy", name)
                span.set_attribute("mcp.tool_count", len(tools))
                log.debug("Tools discovered", strategy=name, count=len(tools))
                return tools

            message = _error_message(last_error) if last_error else "Request failed"
            span.set_attribute("mcp.error", True)
            span.set_attribute("mcp.error_message", truncate(message, 200))
            log.warning("Tool discovery failed", error=message)
            raise DiscoveryError(message, url=request.server.url)
