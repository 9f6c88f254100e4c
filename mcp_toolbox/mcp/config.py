"""
MCP Server Seed Configuration.

Loads an initial list of MCP servers from a YAML file or environment
variables so a fresh process does not start with an empty registry. Seeding
only fills the in-memory registry; nothing is written back.

YAML layout:
    servers:
      agent-builder:
        name: Agent Builder          # optional, defaults to the key
        url: https://tools.example.com/
        transport: streamable-http   # optional
        headers:
          Authorization: Bearer ${AGENT_BUILDER_TOKEN:-}
        config: {profile: default}   # optional, opaque
        enabled: true

Usage:
    from mcp_toolbox.mcp.config import load_server_seed, seed_registry

    seed_registry(registry, load_server_seed("config/mcp_servers.yaml"))
"""

from __future__ import annotations

import os
import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import structlog
import yaml

from mcp_toolbox.mcp.errors import McpToolboxError
from mcp_toolbox.mcp.models import ServerRecord, TransportType, sanitize_headers
from mcp_toolbox.mcp.registry import ServerRegistry

logger = structlog.get_logger(__name__)


def expand_bash_vars(value: str) -> str:
    """Expand bash-style environment variables with default values.

    Handles the following patterns:
    - $VAR or ${VAR} - standard variable expansion
    - ${VAR:-default} - use default if VAR is unset or empty
    - ${VAR-default} - use default if VAR is unset (but not if empty)

    Args:
        value: String potentially containing bash variable references

    Returns:
        String with all variables expanded
    """
    if not value or "$" not in value:
        return value

    pattern = r"\$\{([^}:-]+)(:-|-)?([^}]*)?\}"

    def replace_var(match: re.Match) -> str:
        var_name = match.group(1)
        operator = match.group(2)
        default = match.group(3) or ""

        env_value = os.environ.get(var_name)

        if operator == ":-":
            return env_value if env_value else default
        elif operator == "-":
            return env_value if env_value is not None else default
        else:
            return env_value or ""

    result = re.sub(pattern, replace_var, value)

    # Remaining $VAR references
    return os.path.expandvars(result)


@dataclass
class ServerSeedEntry:
    """One server declared in configuration."""

    server_id: str
    url: str
    name: str = ""
    transport: TransportType | None = None
    headers: dict[str, str] = field(default_factory=dict)
    config: Any = None
    enabled: bool = True

    def to_record(self) -> ServerRecord:
        """Convert to a ServerRecord, expanding environment references."""
        headers = {key: expand_bash_vars(value) for key, value in self.headers.items()}
        return ServerRecord(
            name=self.name or self.server_id,
            url=expand_bash_vars(self.url),
            transport=self.transport,
            headers=sanitize_headers(headers),
            config=self.config,
        )


def load_server_seed(config_path: str | Path | None) -> list[ServerSeedEntry]:
    """
    Load server entries from a YAML file.

    A missing file yields an empty list. Entries without a url are skipped.
    """
    if config_path is None:
        return []
    config_path = Path(config_path)

    if not config_path.exists():
        logger.warning("MCP server seed file not found", path=str(config_path))
        return []

    logger.info("Loading MCP server seed", path=str(config_path))

    with open(config_path) as f:
        data = yaml.safe_load(f)

    if not isinstance(data, dict):
        return []

    entries: list[ServerSeedEntry] = []
    for server_id, server_data in (data.get("servers") or {}).items():
        if not isinstance(server_data, dict):
            continue

        url = server_data.get("url")
        if not isinstance(url, str) or not url.strip():
            logger.warning("Seed server has no url, skipping", server_id=server_id)
            continue

        transport_str = server_data.get("transport")
        transport = TransportType.parse(transport_str)
        if transport_str is not None and transport is None:
            logger.warning(
                "Unknown transport type, ignoring",
                server_id=server_id,
                transport=transport_str,
            )

        entries.append(
            ServerSeedEntry(
                server_id=str(server_id),
                url=url,
                name=str(server_data.get("name") or ""),
                transport=transport,
                headers=dict(sanitize_headers(server_data.get("headers")) or {}),
                config=server_data.get("config"),
                enabled=bool(server_data.get("enabled", True)),
            )
        )

    logger.info(
        "MCP server seed loaded",
        total_servers=len(entries),
        enabled_servers=len([e for e in entries if e.enabled]),
    )
    return entries


def load_server_seed_from_env() -> list[ServerSeedEntry]:
    """
    Load server entries from environment variables.

    Environment variable format:
    - MCP_SERVER_{NAME}_URL: Server URL (required)
    - MCP_SERVER_{NAME}_TRANSPORT: streamable-http or sse
    - MCP_SERVER_{NAME}_ENABLED: true/false
    """
    env_prefix = "MCP_SERVER_"
    server_names: set[str] = set()

    for key in os.environ:
        if key.startswith(env_prefix) and key.endswith("_URL"):
            name = key[len(env_prefix):-len("_URL")]
            if name:
                server_names.add(name)

    entries: list[ServerSeedEntry] = []
    for name in sorted(server_names):
        prefix = f"{env_prefix}{name}_"
        entries.append(
            ServerSeedEntry(
                server_id=name.lower().replace("_", "-"),
                url=os.environ[f"{prefix}URL"],
                transport=TransportType.parse(os.getenv(f"{prefix}TRANSPORT")),
                enabled=os.getenv(f"{prefix}ENABLED", "true").lower() == "true",
            )
        )
    return entries


def seed_registry(registry: ServerRegistry, entries: Iterable[ServerSeedEntry]) -> int:
    """
    Register every enabled entry.

    Invalid or duplicate entries are logged and skipped.

    Returns:
        Number of servers added
    """
    added = 0
    for entry in entries:
        if not entry.enabled:
            continue
        try:
            registry.add(entry.to_record())
            added += 1
        except McpToolboxError as e:
            logger.warning("Skipping seed server", server_id=entry.server_id, error=e.message)
    return added
