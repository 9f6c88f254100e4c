"""
Toolbox editing session state.

The state is a plain value updated by a pure ``reduce(state, action)``
function; ``McpController`` owns one state instance, performs the API calls
and dispatches actions around them. Nothing here depends on a UI framework
and nothing is persisted.

Per-URL caches (tools, errors, loading flags) and the selection are keyed by
normalized server URL. When a server moves to a new URL every one of them
moves with it.

Usage:
    controller = McpController(McpApiClient.from_url("http://localhost:3001"))
    await controller.refresh_servers()
    tools = await controller.fetch_tools(controller.state.servers[0])
    controller.toggle_tool(tools[0])
    config = controller.selected_config()
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, AsyncIterator

import structlog

from mcp_toolbox.mcp.errors import ConflictError
from mcp_toolbox.mcp.models import AggregateResult, ServerRecord, ToolRecord
from mcp_toolbox.mcp.urls import normalize_server_url
from mcp_toolbox.toolbox.api_client import McpApiClient
from mcp_toolbox.toolbox.export import create_config, create_tool_key, key_belongs_to, rekey

logger = structlog.get_logger(__name__)


class LogLevel(str, Enum):
    INFO = "info"
    ERROR = "error"


@dataclass(frozen=True)
class LogItem:
    """One entry of the activity feed."""

    ts: str
    level: LogLevel
    message: str
    server_url: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"ts": self.ts, "level": self.level.value, "message": self.message}
        if self.server_url:
            data["serverUrl"] = self.server_url
        return data


@dataclass(frozen=True)
class McpState:
    """Snapshot of an editing session. Treat as immutable."""

    servers: tuple[ServerRecord, ...] = ()
    tools_by_url: dict[str, list[ToolRecord]] = field(default_factory=dict)
    tool_error_by_url: dict[str, str | None] = field(default_factory=dict)
    tool_loading_by_url: dict[str, bool] = field(default_factory=dict)
    active_url: str | None = None
    selected_keys: frozenset[str] = frozenset()
    logs: tuple[LogItem, ...] = ()

    @property
    def server_urls(self) -> set[str]:
        return {normalize_server_url(server.url) for server in self.servers}

    @property
    def selected_tools(self) -> list[ToolRecord]:
        """Selected tools, recomputed from the cache in server order."""
        tools = []
        for server in self.servers:
            for tool in self.tools_by_url.get(normalize_server_url(server.url), []):
                if create_tool_key(tool) in self.selected_keys:
                    tools.append(tool)
        return tools


# ═══════════════════════════════════════════════════════════════════════════════
# Actions
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class SetServers:
    servers: tuple[ServerRecord, ...]


@dataclass(frozen=True)
class AddServer:
    server: ServerRecord


@dataclass(frozen=True)
class UpdateServer:
    current_url: str
    server: ServerRecord


@dataclass(frozen=True)
class RemoveServer:
    url: str


@dataclass(frozen=True)
class SetActiveUrl:
    url: str | None


@dataclass(frozen=True)
class FetchToolsStart:
    url: str


@dataclass(frozen=True)
class FetchToolsSuccess:
    url: str
    tools: tuple[ToolRecord, ...]


@dataclass(frozen=True)
class FetchToolsFailure:
    url: str
    message: str


@dataclass(frozen=True)
class FetchToolsEnd:
    url: str


@dataclass(frozen=True)
class ToggleTool:
    key: str


@dataclass(frozen=True)
class ClearSelection:
    pass


@dataclass(frozen=True)
class Log:
    item: LogItem


Action = (
    SetServers
    | AddServer
    | UpdateServer
    | RemoveServer
    | SetActiveUrl
    | FetchToolsStart
    | FetchToolsSuccess
    | FetchToolsFailure
    | FetchToolsEnd
    | ToggleTool
    | ClearSelection
    | Log
)


# ═══════════════════════════════════════════════════════════════════════════════
# Reducer
# ═══════════════════════════════════════════════════════════════════════════════


def _move_key(mapping: dict[str, Any], old: str, new: str, default: Any = None) -> dict[str, Any]:
    moved = {key: value for key, value in mapping.items() if key != old}
    moved[new] = mapping.get(old, default)
    return moved


def _without(mapping: dict[str, Any], key: str) -> dict[str, Any]:
    return {k: v for k, v in mapping.items() if k != key}


def _restamp(tools: Iterable[ToolRecord], url: str) -> list[ToolRecord]:
    """Point cached tools at ``url`` so their keys match the server they are cached under."""
    return [
        tool if normalize_server_url(tool.mcp_server_url) == url else replace(tool, mcp_server_url=url)
        for tool in tools
    ]


def _set_servers(state: McpState, action: SetServers) -> McpState:
    servers = tuple(s.copy(url=normalize_server_url(s.url)) for s in action.servers)
    active = state.active_url
    if active is None and servers:
        active = servers[0].url
    return replace(state, servers=servers, active_url=active)


def _add_server(state: McpState, action: AddServer) -> McpState:
    server = action.server.copy(url=normalize_server_url(action.server.url))
    return replace(state, servers=state.servers + (server,), active_url=server.url)


def _update_server(state: McpState, action: UpdateServer) -> McpState:
    current = normalize_server_url(action.current_url)
    updated = action.server.copy(url=normalize_server_url(action.server.url))
    servers = tuple(
        updated if normalize_server_url(s.url) == current else s for s in state.servers
    )
    active = updated.url if state.active_url == current else state.active_url
    state = replace(state, servers=servers, active_url=active)

    if updated.url == current:
        return state
    tools_by_url = _move_key(state.tools_by_url, current, updated.url, [])
    tools_by_url[updated.url] = _restamp(tools_by_url[updated.url], updated.url)
    return replace(
        state,
        tools_by_url=tools_by_url,
        tool_error_by_url=_move_key(state.tool_error_by_url, current, updated.url),
        tool_loading_by_url=_move_key(state.tool_loading_by_url, current, updated.url, False),
        selected_keys=frozenset(rekey(k, current, updated.url) for k in state.selected_keys),
    )


def _remove_server(state: McpState, action: RemoveServer) -> McpState:
    current = normalize_server_url(action.url)
    servers = tuple(s for s in state.servers if normalize_server_url(s.url) != current)
    active = state.active_url
    if active == current:
        active = servers[0].url if servers else None
    return replace(
        state,
        servers=servers,
        active_url=active,
        tools_by_url=_without(state.tools_by_url, current),
        tool_error_by_url=_without(state.tool_error_by_url, current),
        tool_loading_by_url=_without(state.tool_loading_by_url, current),
        selected_keys=frozenset(k for k in state.selected_keys if not key_belongs_to(k, current)),
    )


def _set_active_url(state: McpState, action: SetActiveUrl) -> McpState:
    url = normalize_server_url(action.url) if action.url else None
    return replace(state, active_url=url)


def _fetch_start(state: McpState, action: FetchToolsStart) -> McpState:
    return replace(
        state,
        tool_loading_by_url={**state.tool_loading_by_url, action.url: True},
        tool_error_by_url={**state.tool_error_by_url, action.url: None},
    )


def _fetch_success(state: McpState, action: FetchToolsSuccess) -> McpState:
    return replace(
        state, tools_by_url={**state.tools_by_url, action.url: _restamp(action.tools, action.url)}
    )


def _fetch_failure(state: McpState, action: FetchToolsFailure) -> McpState:
    return replace(
        state,
        tools_by_url={**state.tools_by_url, action.url: []},
        tool_error_by_url={**state.tool_error_by_url, action.url: action.message},
    )


def _fetch_end(state: McpState, action: FetchToolsEnd) -> McpState:
    return replace(state, tool_loading_by_url={**state.tool_loading_by_url, action.url: False})


def _toggle_tool(state: McpState, action: ToggleTool) -> McpState:
    return replace(state, selected_keys=state.selected_keys ^ {action.key})


def _clear_selection(state: McpState, action: ClearSelection) -> McpState:
    return replace(state, selected_keys=frozenset())


def _log(state: McpState, action: Log) -> McpState:
    return replace(state, logs=(action.item,) + state.logs)


_REDUCERS: dict[type, Callable[[McpState, Any], McpState]] = {
    SetServers: _set_servers,
    AddServer: _add_server,
    UpdateServer: _update_server,
    RemoveServer: _remove_server,
    SetActiveUrl: _set_active_url,
    FetchToolsStart: _fetch_start,
    FetchToolsSuccess: _fetch_success,
    FetchToolsFailure: _fetch_failure,
    FetchToolsEnd: _fetch_end,
    ToggleTool: _toggle_tool,
    ClearSelection: _clear_selection,
    Log: _log,
}


def reduce(state: McpState, action: Action) -> McpState:
    """Return the state that results from applying ``action``."""
    try:
        handler = _REDUCERS[type(action)]
    except KeyError:
        raise TypeError(f"Unknown action: {type(action).__name__}") from None
    return handler(state, action)


# ═══════════════════════════════════════════════════════════════════════════════
# Controller
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass
class _Fetch:
    """An in-flight tools/list request. ``url`` is None once its server is deleted."""

    url: str | None
    task: asyncio.Task | None = None


class McpController:
    """
    Orchestrates one editing session.

    Registry changes go through the API first and are mirrored locally only
    once the server accepted them. Every failure is written to the activity
    log before it is re-raised.
    """

    def __init__(self, api: McpApiClient, initial: McpState | None = None):
        self.api = api
        self._state = initial or McpState()
        self._listeners: list[Callable[[McpState], None]] = []
        self._inflight: dict[str, _Fetch] = {}

    @property
    def state(self) -> McpState:
        return self._state

    @property
    def selected_tools(self) -> list[ToolRecord]:
        return self._state.selected_tools

    def subscribe(self, listener: Callable[[McpState], None]) -> Callable[[], None]:
        """Call ``listener`` after every state change; returns an unsubscribe function."""
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    def dispatch(self, action: Action) -> McpState:
        self._state = reduce(self._state, action)
        for listener in list(self._listeners):
            listener(self._state)
        return self._state

    def log(self, level: LogLevel, message: str, server_url: str | None = None) -> None:
        item = LogItem(
            ts=datetime.now(timezone.utc).isoformat(),
            level=level,
            message=message,
            server_url=server_url,
        )
        self.dispatch(Log(item))
        if level == LogLevel.ERROR:
            logger.warning(message, server_url=server_url)
        else:
            logger.info(message, server_url=server_url)

    def _fail(self, message: str, error: Exception, server_url: str | None = None) -> None:
        self.log(LogLevel.ERROR, f"{message}: {_message(error)}", server_url)

    # Servers ---------------------------------------------------------------

    async def refresh_servers(self) -> list[ServerRecord]:
        """Reload the server list from the registry."""
        try:
            servers = await self.api.list_servers()
        except Exception as e:
            self._fail("Failed to load servers", e)
            raise
        self.dispatch(SetServers(tuple(servers)))
        return list(self._state.servers)

    async def add_server(self, server: ServerRecord) -> ServerRecord:
        url = normalize_server_url(server.url)
        payload = server.copy(name=(server.name or "").strip(), url=url)
        try:
            if url in self._state.server_urls:
                raise ConflictError("MCP server URL must be unique")
            created = await self.api.create_server(payload)
        except Exception as e:
            self._fail("Failed to add server", e, url)
            raise
        self.dispatch(AddServer(created))
        created_url = normalize_server_url(created.url)
        self.log(LogLevel.INFO, f"Server added: {created.name}", created_url)
        return created.copy(url=created_url)

    async def update_server(self, url: str, server: ServerRecord) -> ServerRecord:
        current = normalize_server_url(url)
        next_url = normalize_server_url(server.url)
        try:
            if current != next_url and next_url in self._state.server_urls:
                raise ConflictError("MCP server URL must be unique")
            updated = await self.api.update_server(
                current,
                next_url=next_url,
                name=server.name,
                transport=server.transport.value if server.transport else None,
                headers=server.headers,
                config=server.config,
            )
        except Exception as e:
            self._fail("Failed to update server", e, current)
            raise
        self.dispatch(UpdateServer(current, updated))
        updated_url = normalize_server_url(updated.url)
        if updated_url != current:
            self._move_fetch(current, updated_url)
        self.log(LogLevel.INFO, f"Server updated: {updated.name}", updated_url)
        return updated.copy(url=updated_url)

    async def remove_server(self, url: str) -> None:
        current = normalize_server_url(url)
        try:
            await self.api.delete_server(current)
        except Exception as e:
            self._fail("Failed to delete server", e, current)
            raise
        self.dispatch(RemoveServer(current))
        self._move_fetch(current, None)
        self.log(LogLevel.INFO, "Server deleted", current)

    def set_active_url(self, url: str | None) -> None:
        self.dispatch(SetActiveUrl(url))

    # Tools -----------------------------------------------------------------

    @asynccontextmanager
    async def _loading(self, fetch: _Fetch) -> AsyncIterator[None]:
        self.dispatch(FetchToolsStart(fetch.url))
        try:
            yield
        finally:
            if fetch.url is not None:
                self.dispatch(FetchToolsEnd(fetch.url))

    async def _fetch_tools(self, server: ServerRecord, fetch: _Fetch) -> list[ToolRecord]:
        if fetch.url is None:
            return []
        async with self._loading(fetch):
            self.log(LogLevel.INFO, "Fetching tools/list", fetch.url)
            try:
                tools = await self.api.list_tools(server.copy(url=fetch.url))
            except Exception as e:
                if fetch.url is not None:
                    self.dispatch(FetchToolsFailure(fetch.url, _message(e)))
                self._fail("tools/list failed", e, fetch.url)
                raise
            # The server was deleted while the request was in flight
            if fetch.url is None:
                return tools
            self.dispatch(FetchToolsSuccess(fetch.url, tuple(tools)))
            self.log(LogLevel.INFO, f"Tools loaded: {len(tools)}", fetch.url)
            return list(self._state.tools_by_url[fetch.url])

    def _forget(self, fetch: _Fetch) -> None:
        if fetch.url is not None and self._inflight.get(fetch.url) is fetch:
            del self._inflight[fetch.url]

    def _move_fetch(self, old_url: str, new_url: str | None) -> None:
        """Retarget an in-flight fetch after its server moved (or was removed when None)."""
        fetch = self._inflight.pop(old_url, None)
        if fetch is None:
            return
        fetch.url = new_url
        if new_url is not None:
            self._inflight[new_url] = fetch

    async def fetch_tools(self, server: ServerRecord) -> list[ToolRecord]:
        """
        Discover the tools of one server and cache them.

        Concurrent calls for the same URL share a single request and all
        receive its result (or its error). Results are written under the
        server's URL at completion time, so a server that moves mid-request
        gets its tools and a deleted one gets nothing.
        """
        url = normalize_server_url(server.url)
        fetch = self._inflight.get(url)
        if fetch is None or fetch.task.done():
            fetch = _Fetch(url)
            fetch.task = asyncio.ensure_future(self._fetch_tools(server, fetch))
            self._inflight[url] = fetch
            fetch.task.add_done_callback(lambda _done, fetch=fetch: self._forget(fetch))
        return await asyncio.shield(fetch.task)

    async def refresh_all(self) -> AggregateResult:
        """Repopulate every server's cache from one batch discovery."""
        try:
            result = await self.api.list_all_tools()
        except Exception as e:
            self._fail("Batch tools/list failed", e)
            raise

        grouped: dict[str, list[ToolRecord]] = {}
        for tool in result.tools:
            grouped.setdefault(normalize_server_url(tool.mcp_server_url), []).append(tool)
        failed = {normalize_server_url(error.url): error.message for error in result.errors}

        for url in self._state.server_urls | set(grouped):
            if url in failed:
                continue
            self.dispatch(FetchToolsStart(url))
            self.dispatch(FetchToolsSuccess(url, tuple(grouped.get(url, []))))
            self.dispatch(FetchToolsEnd(url))
        for url, message in failed.items():
            self.dispatch(FetchToolsFailure(url, message))
            self.log(LogLevel.ERROR, f"tools/list failed: {message}", url)

        self.log(
            LogLevel.INFO,
            f"Tools loaded: {len(result.tools)} from {result.server_count} servers",
        )
        return result

    def toggle_tool(self, tool: ToolRecord | dict[str, Any]) -> None:
        self.dispatch(ToggleTool(create_tool_key(tool)))

    def clear_selection(self) -> None:
        self.dispatch(ClearSelection())

    def selected_config(self) -> dict[str, Any]:
        """Export configuration for the current selection."""
        return create_config(self.selected_tools)


def _message(error: BaseException) -> str:
    return getattr(error, "message", None) or str(error) or "Request failed"

