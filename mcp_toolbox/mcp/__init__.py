"""
MCP (Model Context Protocol) Discovery Layer.

Keeps track of registered MCP servers and lists the tools they expose.

Architecture:
    ServerRegistry -> ToolCatalog -> ToolDiscovery -> strategies (sdk / GET / JSON-RPC)

Components:
    - ServerRegistry: In-memory server records keyed by normalized URL
    - ToolDiscovery: Per-server discovery cascade
    - ToolCatalog: Concurrent discovery across all servers
    - load_server_seed: Optional startup list of servers from YAML
"""

from mcp_toolbox.mcp.catalog import ToolCatalog
from mcp_toolbox.mcp.client import (
    DEFAULT_STRATEGIES,
    DiscoveryRequest,
    ToolDiscovery,
    build_endpoint,
    list_via_get,
    list_via_rpc,
    list_via_sdk,
    map_tool,
    parse_tools,
)
from mcp_toolbox.mcp.config import (
    ServerSeedEntry,
    load_server_seed,
    load_server_seed_from_env,
    seed_registry,
)
from mcp_toolbox.mcp.errors import (
    ConflictError,
    DiscoveryError,
    InvalidInputError,
    McpToolboxError,
    NotFoundError,
)
from mcp_toolbox.mcp.models import (
    AggregateResult,
    ServerError,
    ServerRecord,
    ToolRecord,
    TransportType,
)
from mcp_toolbox.mcp.registry import ServerRegistry
from mcp_toolbox.mcp.urls import is_http_url, normalize_server_url, normalize_url

__all__ = [
    # Models
    "ServerRecord",
    "ToolRecord",
    "TransportType",
    "AggregateResult",
    "ServerError",
    # Errors
    "McpToolboxError",
    "InvalidInputError",
    "ConflictError",
    "NotFoundError",
    "DiscoveryError",
    # URLs
    "normalize_url",
    "normalize_server_url",
    "is_http_url",
    # Registry
    "ServerRegistry",
    # Discovery
    "ToolDiscovery",
    "DiscoveryRequest",
    "DEFAULT_STRATEGIES",
    "build_endpoint",
    "list_via_sdk",
    "list_via_get",
    "list_via_rpc",
    "map_tool",
    "parse_tools",
    # Catalog
    "ToolCatalog",
    # Config
    "ServerSeedEntry",
    "load_server_seed",
    "load_server_seed_from_env",
    "seed_registry",
]
