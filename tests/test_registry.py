"""Tests for the in-memory server registry."""

import pytest

from mcp_toolbox.mcp.errors import ConflictError, InvalidInputError, NotFoundError
from mcp_toolbox.mcp.models import ServerRecord, TransportType
from mcp_toolbox.mcp.registry import ServerRegistry


@pytest.fixture
def registry():
    return ServerRegistry()


class TestAdd:
    """Test server registration."""

    def test_add_normalizes_url(self, registry):
        server = registry.add(ServerRecord(name="  Builder ", url="https://tools.example.com/"))

        assert server.name == "Builder"
        assert server.url == "https://tools.example.com"
        assert "https://tools.example.com/" in registry
        assert len(registry) == 1

    def test_duplicate_url_conflicts(self, registry):
        registry.add(ServerRecord(name="A", url="https://tools.example.com"))

        with pytest.raises(ConflictError, match="must be unique"):
            registry.add(ServerRecord(name="B", url=" https://tools.example.com/ "))
        assert len(registry) == 1

    def test_alias_conflicts_with_canonical(self, registry):
        registry.add(ServerRecord(name="A", url="https://server.smithery.ai/x"))

        with pytest.raises(ConflictError):
            registry.add(ServerRecord(name="B", url="https://smithery.ai/server/x"))

    @pytest.mark.parametrize(
        "name,url,message",
        [
            ("", "https://example.com", "Server name is required"),
            ("   ", "https://example.com", "Server name is required"),
            ("A", "", "Server URL is required"),
            ("A", "ftp://example.com", "Server URL must be http/https"),
            ("A", "example.com", "Server URL must be http/https"),
        ],
    )
    def test_invalid_input(self, registry, name, url, message):
        with pytest.raises(InvalidInputError) as exc_info:
            registry.add(ServerRecord(name=name, url=url))
        assert exc_info.value.message == message
        assert len(registry) == 0

    def test_list_preserves_order_and_copies(self, registry):
        registry.add(ServerRecord(name="A", url="https://a.example.com"))
        registry.add(ServerRecord(name="B", url="https://b.example.com"))

        servers = registry.list()
        servers[0].name = "mutated"

        assert [s.name for s in registry.list()] == ["A", "B"]


class TestUpdate:
    """Test server updates and URL migration."""

    def test_update_keeps_unspecified_fields(self, registry):
        registry.add(
            ServerRecord(
                name="A",
                url="https://a.example.com",
                transport=TransportType.SSE,
                headers={"X-Key": "1"},
                config={"p": 1},
            )
        )

        updated = registry.update("https://a.example.com/", name="Renamed")

        assert updated.name == "Renamed"
        assert updated.transport == TransportType.SSE
        assert updated.headers == {"X-Key": "1"}
        assert updated.config == {"p": 1}

    def test_migration_rekeys_in_place(self, registry):
        registry.add(ServerRecord(name="A", url="https://a.example.com"))
        registry.add(ServerRecord(name="B", url="https://b.example.com"))
        registry.add(ServerRecord(name="C", url="https://c.example.com"))

        updated = registry.update("https://b.example.com", next_url="https://b2.example.com/")

        assert updated.url == "https://b2.example.com"
        assert "https://b.example.com" not in registry
        assert [s.url for s in registry.list()] == [
            "https://a.example.com",
            "https://b2.example.com",
            "https://c.example.com",
        ]
        assert len(registry) == 3

    def test_migration_onto_existing_url_conflicts(self, registry):
        registry.add(ServerRecord(name="A", url="https://a.example.com"))
        registry.add(ServerRecord(name="B", url="https://b.example.com"))

        with pytest.raises(ConflictError):
            registry.update("https://a.example.com", next_url="https://b.example.com/")

        assert registry.get("https://a.example.com").name == "A"

    def test_same_url_after_normalization_is_not_a_move(self, registry):
        registry.add(ServerRecord(name="A", url="https://a.example.com"))

        updated = registry.update("https://a.example.com", next_url=" https://a.example.com/ ")

        assert updated.url == "https://a.example.com"
        assert len(registry) == 1

    def test_unknown_server(self, registry):
        with pytest.raises(NotFoundError, match="Server not found"):
            registry.update("https://missing.example.com", name="x")

    def test_empty_url(self, registry):
        with pytest.raises(InvalidInputError, match="url is required"):
            registry.update("  ", name="x")

    def test_non_http_target(self, registry):
        registry.add(ServerRecord(name="A", url="https://a.example.com"))

        with pytest.raises(InvalidInputError, match="http/https"):
            registry.update("https://a.example.com", next_url="ftp://a.example.com")


class TestRemove:
    """Test server deletion."""

    def test_remove(self, registry):
        registry.add(ServerRecord(name="A", url="https://a.example.com"))

        assert registry.remove("https://a.example.com/") is True
        assert len(registry) == 0
        assert registry.get("https://a.example.com") is None

    def test_remove_missing(self, registry):
        with pytest.raises(NotFoundError):
            registry.remove("https://a.example.com")

    def test_remove_empty(self, registry):
        with pytest.raises(InvalidInputError):
            registry.remove("")
