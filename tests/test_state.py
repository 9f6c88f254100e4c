"""Tests for the toolbox session reducer and controller."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from mcp_toolbox.mcp.errors import ConflictError, DiscoveryError, McpToolboxError
from mcp_toolbox.mcp.models import AggregateResult, ServerError, ServerRecord, ToolRecord
from mcp_toolbox.toolbox.api_client import McpApiClient
from mcp_toolbox.toolbox.state import (
    AddServer,
    ClearSelection,
    FetchToolsEnd,
    FetchToolsFailure,
    FetchToolsStart,
    FetchToolsSuccess,
    LogItem,
    LogLevel,
    McpController,
    McpState,
    RemoveServer,
    SetServers,
    ToggleTool,
    UpdateServer,
    reduce,
)

A = "https://a.example.com"
B = "https://b.example.com"


def server(url, name="Server"):
    return ServerRecord(name=name, url=url)


def tool(name, url=A, server_name="Server"):
    return ToolRecord(name=name, display_name=name, mcp_server_name=server_name, mcp_server_url=url)


def loaded_state():
    """Two servers, A with two cached tools and one selected."""
    state = reduce(McpState(), SetServers((server(A, "A"), server(B, "B"))))
    state = reduce(state, FetchToolsSuccess(A, (tool("x"), tool("y"))))
    state = reduce(state, FetchToolsFailure(B, "HTTP 500"))
    return reduce(state, ToggleTool(f"{A}::x"))


class TestReducer:
    """Test pure state transitions."""

    def test_set_servers_normalizes_and_focuses_first(self):
        state = reduce(McpState(), SetServers((server(A + "/"), server(B))))

        assert [s.url for s in state.servers] == [A, B]
        assert state.active_url == A

    def test_add_server_becomes_active(self):
        state = reduce(loaded_state(), AddServer(server("https://c.example.com/")))

        assert state.active_url == "https://c.example.com"
        assert len(state.servers) == 3

    def test_fetch_lifecycle(self):
        state = reduce(McpState(), FetchToolsStart(A))
        assert state.tool_loading_by_url[A] is True
        assert state.tool_error_by_url[A] is None

        state = reduce(state, FetchToolsFailure(A, "HTTP 404"))
        state = reduce(state, FetchToolsEnd(A))

        assert state.tool_loading_by_url[A] is False
        assert state.tool_error_by_url[A] == "HTTP 404"
        assert state.tools_by_url[A] == []

    def test_toggle_twice_restores_selection(self):
        state = loaded_state()

        toggled = reduce(reduce(state, ToggleTool(f"{A}::y")), ToggleTool(f"{A}::y"))

        assert toggled.selected_keys == state.selected_keys

    def test_selected_tools_come_from_cache(self):
        assert [t.name for t in loaded_state().selected_tools] == ["x"]

    def test_url_migration_moves_everything(self):
        new = "https://a2.example.com"

        state = reduce(loaded_state(), UpdateServer(A, server(new + "/", "A")))

        assert [s.url for s in state.servers] == [new, B]
        assert A not in state.tools_by_url
        assert [t.name for t in state.tools_by_url[new]] == ["x", "y"]
        assert A not in state.tool_error_by_url
        assert state.selected_keys == frozenset({f"{new}::x"})
        assert state.active_url == new

    def test_update_without_move_keeps_caches(self):
        state = reduce(loaded_state(), UpdateServer(A, server(A, "Renamed")))

        assert state.servers[0].name == "Renamed"
        assert len(state.tools_by_url[A]) == 2
        assert state.selected_keys == frozenset({f"{A}::x"})

    def test_remove_server_drops_caches_and_selection(self):
        state = reduce(loaded_state(), RemoveServer(A + "/"))

        assert [s.url for s in state.servers] == [B]
        assert A not in state.tools_by_url
        assert state.selected_keys == frozenset()
        assert state.active_url == B

    def test_clear_selection(self):
        assert reduce(loaded_state(), ClearSelection()).selected_keys == frozenset()

    def test_moved_tools_point_at_new_url(self):
        new = "https://a2.example.com"

        state = reduce(loaded_state(), UpdateServer(A, server(new, "A")))

        assert all(t.mcp_server_url == new for t in state.tools_by_url[new])
        assert [t.name for t in state.selected_tools] == ["x"]

    def test_log_item_wire_shape(self):
        item = LogItem(ts="2026-01-01T00:00:00+00:00", level=LogLevel.ERROR, message="boom", server_url=A)

        assert item.to_dict() == {
            "ts": "2026-01-01T00:00:00+00:00",
            "level": "error",
            "message": "boom",
            "serverUrl": A,
        }

    def test_unknown_action(self):
        with pytest.raises(TypeError):
            reduce(McpState(), object())


@pytest.fixture
def api():
    return AsyncMock(spec=McpApiClient)


class TestControllerServers:
    """Test registry operations through the controller."""

    @pytest.mark.asyncio
    async def test_refresh_servers(self, api):
        api.list_servers.return_value = [server(A, "A"), server(B, "B")]
        controller = McpController(api)

        await controller.refresh_servers()

        assert [s.url for s in controller.state.servers] == [A, B]

    @pytest.mark.asyncio
    async def test_refresh_failure_is_logged(self, api):
        api.list_servers.side_effect = McpToolboxError("connection refused")
        controller = McpController(api)

        with pytest.raises(McpToolboxError):
            await controller.refresh_servers()

        log = controller.state.logs[0]
        assert log.level == LogLevel.ERROR
        assert log.message == "Failed to load servers: connection refused"

    @pytest.mark.asyncio
    async def test_add_duplicate_is_rejected_locally(self, api):
        controller = McpController(api, reduce(McpState(), SetServers((server(A),))))

        with pytest.raises(ConflictError):
            await controller.add_server(server(A + "/"))

        api.create_server.assert_not_awaited()
        assert controller.state.logs[0].level == LogLevel.ERROR

    @pytest.mark.asyncio
    async def test_add_server(self, api):
        api.create_server.side_effect = lambda s: s
        controller = McpController(api)

        created = await controller.add_server(server(A + "/", " A "))

        assert created.url == A
        assert controller.state.active_url == A
        assert controller.state.logs[0].message == "Server added: A"

    @pytest.mark.asyncio
    async def test_update_moves_caches(self, api):
        new = "https://a2.example.com"
        api.update_server.return_value = server(new, "A")
        controller = McpController(api, loaded_state())

        await controller.update_server(A, server(new, "A"))

        api.update_server.assert_awaited_once()
        assert api.update_server.await_args.kwargs["next_url"] == new
        assert controller.state.selected_keys == frozenset({f"{new}::x"})

    @pytest.mark.asyncio
    async def test_update_onto_existing_url_is_rejected(self, api):
        controller = McpController(api, loaded_state())

        with pytest.raises(ConflictError):
            await controller.update_server(A, server(B, "A"))

        api.update_server.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_remove_server(self, api):
        api.delete_server.return_value = True
        controller = McpController(api, loaded_state())

        await controller.remove_server(A)

        assert [s.url for s in controller.state.servers] == [B]
        assert controller.state.logs[0].message == "Server deleted"

    @pytest.mark.asyncio
    async def test_subscribers_see_every_change(self, api):
        api.list_servers.return_value = [server(A)]
        controller = McpController(api)
        listener = MagicMock()
        unsubscribe = controller.subscribe(listener)

        await controller.refresh_servers()
        unsubscribe()
        controller.clear_selection()

        assert listener.call_count == 1


class TestControllerTools:
    """Test tool fetching, coalescing and selection export."""

    @pytest.mark.asyncio
    async def test_fetch_tools_populates_cache(self, api):
        api.list_tools.return_value = [tool("x"), tool("y")]
        controller = McpController(api)

        tools = await controller.fetch_tools(server(A + "/"))

        assert [t.name for t in tools] == ["x", "y"]
        assert len(controller.state.tools_by_url[A]) == 2
        assert controller.state.tool_loading_by_url[A] is False
        assert controller.state.logs[0].message == "Tools loaded: 2"

    @pytest.mark.asyncio
    async def test_failure_clears_loading_and_records_error(self, api):
        api.list_tools.side_effect = DiscoveryError("HTTP 502")
        controller = McpController(api)

        with pytest.raises(DiscoveryError):
            await controller.fetch_tools(server(A))

        assert controller.state.tool_loading_by_url[A] is False
        assert controller.state.tool_error_by_url[A] == "HTTP 502"
        assert controller.state.tools_by_url[A] == []
        assert controller.state.logs[0].message == "tools/list failed: HTTP 502"

    @pytest.mark.asyncio
    async def test_concurrent_fetches_share_one_request(self, api):
        release = asyncio.Event()

        async def slow_list(s):
            await release.wait()
            return [tool("x")]

        api.list_tools.side_effect = slow_list
        controller = McpController(api)

        first = asyncio.ensure_future(controller.fetch_tools(server(A)))
        second = asyncio.ensure_future(controller.fetch_tools(server(A + "/")))
        await asyncio.sleep(0)
        release.set()
        results = await asyncio.gather(first, second)

        assert api.list_tools.await_count == 1
        assert results[0] == results[1]

    @pytest.fixture
    def blocked_fetch(self, api):
        """``list_tools`` that signals when it starts and waits to be released."""
        started = asyncio.Event()
        release = asyncio.Event()

        async def slow_list(s):
            started.set()
            await release.wait()
            return [tool("x", s.url, "A")]

        api.list_tools.side_effect = slow_list
        return started, release

    @pytest.mark.asyncio
    async def test_server_moved_during_fetch(self, api, blocked_fetch):
        started, release = blocked_fetch
        new = "https://a2.example.com"
        api.update_server.return_value = server(new, "A")
        controller = McpController(api, reduce(McpState(), SetServers((server(A, "A"),))))

        pending = asyncio.ensure_future(controller.fetch_tools(server(A)))
        await started.wait()
        await controller.update_server(A, server(new, "A"))
        release.set()
        tools = await pending

        state = controller.state
        assert state.tool_loading_by_url == {new: False}
        assert A not in state.tools_by_url
        assert [t.name for t in state.tools_by_url[new]] == ["x"]
        assert tools[0].mcp_server_url == new

        controller.toggle_tool(tools[0])
        assert [t.name for t in controller.selected_tools] == ["x"]

    @pytest.mark.asyncio
    async def test_server_removed_during_fetch(self, api, blocked_fetch):
        started, release = blocked_fetch
        api.delete_server.return_value = True
        controller = McpController(api, reduce(McpState(), SetServers((server(A, "A"),))))

        pending = asyncio.ensure_future(controller.fetch_tools(server(A)))
        await started.wait()
        await controller.remove_server(A)
        release.set()
        await pending

        state = controller.state
        assert A not in state.tools_by_url
        assert A not in state.tool_loading_by_url
        assert A not in state.tool_error_by_url

    @pytest.mark.asyncio
    async def test_fetch_after_completion_queries_again(self, api):
        api.list_tools.return_value = []
        controller = McpController(api)

        await controller.fetch_tools(server(A))
        await controller.fetch_tools(server(A))

        assert api.list_tools.await_count == 2

    @pytest.mark.asyncio
    async def test_refresh_all(self, api):
        api.list_all_tools.return_value = AggregateResult(
            tools=[tool("x"), tool("y")],
            errors=[ServerError(url=B, message="HTTP 500")],
            server_count=2,
        )
        controller = McpController(api, reduce(McpState(), SetServers((server(A), server(B)))))

        await controller.refresh_all()

        assert len(controller.state.tools_by_url[A]) == 2
        assert controller.state.tool_error_by_url[B] == "HTTP 500"
        assert controller.state.tool_loading_by_url[A] is False
        assert controller.state.logs[0].message == "Tools loaded: 2 from 2 servers"

    @pytest.mark.asyncio
    async def test_selected_config(self, api):
        controller = McpController(api, loaded_state())
        controller.toggle_tool(tool("y"))

        config = controller.selected_config()

        assert [t["name"] for t in config["tools"]] == ["x", "y"]
        assert f"{A}::x::Server" in config["interrupt_config"]
