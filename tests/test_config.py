"""Tests for server seeding and runtime settings."""

import pytest

from mcp_toolbox.mcp.config import (
    ServerSeedEntry,
    expand_bash_vars,
    load_server_seed,
    load_server_seed_from_env,
    seed_registry,
)
from mcp_toolbox.mcp.models import TransportType
from mcp_toolbox.mcp.registry import ServerRegistry
from mcp_toolbox.settings import load_settings

SEED_YAML = """
servers:
  builder:
    name: Agent Builder
    url: https://tools.example.com/
    transport: streamable-http
    headers:
      Authorization: Bearer ${SEED_TOKEN:-fallback}
    config:
      profile: default
  weather:
    url: https://smithery.ai/server/acme/weather
    transport: carrier-pigeon
  disabled:
    url: https://off.example.com
    enabled: false
  broken:
    name: No URL
"""


class TestExpandBashVars:
    """Test environment variable expansion."""

    def test_default_when_unset(self, monkeypatch):
        monkeypatch.delenv("SEED_TOKEN", raising=False)
        assert expand_bash_vars("Bearer ${SEED_TOKEN:-fallback}") == "Bearer fallback"

    def test_value_when_set(self, monkeypatch):
        monkeypatch.setenv("SEED_TOKEN", "real")
        assert expand_bash_vars("Bearer ${SEED_TOKEN:-fallback}") == "Bearer real"

    def test_empty_value_with_dash_operator(self, monkeypatch):
        monkeypatch.setenv("SEED_TOKEN", "")
        assert expand_bash_vars("${SEED_TOKEN-fallback}") == ""
        assert expand_bash_vars("${SEED_TOKEN:-fallback}") == "fallback"

    def test_plain_strings_untouched(self):
        assert expand_bash_vars("https://example.com") == "https://example.com"


class TestLoadServerSeed:
    """Test YAML seed loading."""

    @pytest.fixture
    def seed_file(self, tmp_path):
        path = tmp_path / "mcp_servers.yaml"
        path.write_text(SEED_YAML)
        return path

    def test_missing_file(self, tmp_path):
        assert load_server_seed(tmp_path / "missing.yaml") == []
        assert load_server_seed(None) == []

    def test_entries(self, seed_file):
        entries = load_server_seed(seed_file)

        assert [e.server_id for e in entries] == ["builder", "weather", "disabled"]
        assert entries[0].transport == TransportType.STREAMABLE_HTTP
        assert entries[1].transport is None
        assert entries[2].enabled is False

    def test_seed_registry(self, seed_file, monkeypatch):
        monkeypatch.delenv("SEED_TOKEN", raising=False)
        registry = ServerRegistry()

        added = seed_registry(registry, load_server_seed(seed_file))

        assert added == 2
        servers = registry.list()
        assert [s.url for s in servers] == [
            "https://tools.example.com",
            "https://server.smithery.ai/acme/weather",
        ]
        assert servers[0].name == "Agent Builder"
        assert servers[0].headers == {"Authorization": "Bearer fallback"}
        assert servers[0].config == {"profile": "default"}
        assert servers[1].name == "weather"

    def test_seed_skips_duplicates(self):
        registry = ServerRegistry()
        entries = [
            ServerSeedEntry(server_id="a", url="https://a.example.com"),
            ServerSeedEntry(server_id="b", url="https://a.example.com/"),
            ServerSeedEntry(server_id="c", url="not-a-url"),
        ]

        assert seed_registry(registry, entries) == 1
        assert len(registry) == 1


class TestEnvSeed:
    """Test MCP_SERVER_<NAME>_* variables."""

    def test_env_entries(self, monkeypatch):
        monkeypatch.setenv("MCP_SERVER_AGENT_BUILDER_URL", "https://tools.example.com")
        monkeypatch.setenv("MCP_SERVER_AGENT_BUILDER_TRANSPORT", "sse")
        monkeypatch.setenv("MCP_SERVER_OFF_URL", "https://off.example.com")
        monkeypatch.setenv("MCP_SERVER_OFF_ENABLED", "false")

        entries = {e.server_id: e for e in load_server_seed_from_env()}

        assert entries["agent-builder"].url == "https://tools.example.com"
        assert entries["agent-builder"].transport == TransportType.SSE
        assert entries["off"].enabled is False


class TestSettings:
    """Test runtime settings."""

    def test_defaults(self, monkeypatch):
        for name in (
            "MCP_TOOLBOX_HOST",
            "MCP_TOOLBOX_PORT",
            "MCP_TOOLBOX_DISCOVERY_TIMEOUT",
            "MCP_TOOLBOX_CORS_ORIGINS",
            "MCP_TOOLBOX_SERVERS_FILE",
            "MCP_TOOLBOX_LOG_LEVEL",
        ):
            monkeypatch.delenv(name, raising=False)

        settings = load_settings(env_file=None)

        assert settings.port == 3001
        assert settings.discovery_timeout_seconds == 8.0
        assert settings.cors_origins == ["*"]
        assert settings.servers_file is None

    def test_overrides(self, monkeypatch):
        monkeypatch.setenv("MCP_TOOLBOX_PORT", "8080")
        monkeypatch.setenv("MCP_TOOLBOX_DISCOVERY_TIMEOUT", "2.5")
        monkeypatch.setenv("MCP_TOOLBOX_CORS_ORIGINS", "http://a.test, http://b.test")
        monkeypatch.setenv("MCP_TOOLBOX_LOG_LEVEL", "debug")

        settings = load_settings(env_file=None)

        assert settings.port == 8080
        assert settings.discovery_timeout_seconds == 2.5
        assert settings.cors_origins == ["http://a.test", "http://b.test"]
        assert settings.log_level == "DEBUG"
