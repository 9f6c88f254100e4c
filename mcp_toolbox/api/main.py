"""FastAPI API Server for the MCP Toolbox.

Provides REST API endpoints for:
- MCP server registration (in-memory)
- Tool discovery for one server or for every registered server
- Health checks

Usage:
    python -m mcp_toolbox.main --port 3001
"""

from __future__ import annotations

import time
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any

import structlog
from fastapi import FastAPI, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from mcp_toolbox import __version__
from mcp_toolbox.mcp.catalog import ToolCatalog
from mcp_toolbox.mcp.client import ToolDiscovery
from mcp_toolbox.mcp.config import load_server_seed, load_server_seed_from_env, seed_registry
from mcp_toolbox.mcp.errors import InvalidInputError, McpToolboxError
from mcp_toolbox.mcp.models import ServerRecord, TransportType, sanitize_headers
from mcp_toolbox.mcp.registry import ServerRegistry
from mcp_toolbox.mcp.urls import is_http_url, normalize_server_url
from mcp_toolbox.observability import init_observability, shutdown_observability
from mcp_toolbox.settings import Settings

logger = structlog.get_logger(__name__)

DEFAULT_SERVER_NAME = "MCP Server"


# ═══════════════════════════════════════════════════════════════════════════════
# Request/Response Models
# ═══════════════════════════════════════════════════════════════════════════════


class ServerCreateRequest(BaseModel):
    """Server registration payload. Fields are validated by the registry."""

    name: Any = Field(None, description="Display name of the server")
    url: Any = Field(None, description="Server URL (http/https)")
    transport: Any = Field(None, description="streamable-http or sse")
    headers: dict[str, Any] | None = Field(None, description="Custom request headers")
    config: Any = Field(None, description="Opaque server configuration")


class ServerUpdateRequest(BaseModel):
    """Server update payload; omitted fields keep their value."""

    model_config = ConfigDict(populate_by_name=True)

    url: Any = Field(None, description="Current server URL")
    next_url: Any = Field(None, description="New server URL")
    next_url_camel: Any = Field(None, alias="nextUrl")
    new_url: Any = Field(None, alias="newUrl")
    name: Any = None
    transport: Any = None
    headers: dict[str, Any] | None = None
    config: Any = None

    @property
    def target_url(self) -> str:
        for value in (self.next_url_camel, self.new_url, self.next_url):
            if _read_string(value):
                return _read_string(value)
        return ""


class ToolsRequest(BaseModel):
    """Single-server discovery payload."""

    url: Any = Field(None, description="Server URL")
    name: Any = None
    headers: dict[str, Any] | None = None
    config: Any = None


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    timestamp: str
    version: str = __version__
    components: dict[str, Any] = Field(default_factory=dict)


def _read_string(value: Any) -> str:
    return value if isinstance(value, str) else ""


# ═══════════════════════════════════════════════════════════════════════════════
# Application State
# ═══════════════════════════════════════════════════════════════════════════════


class AppState:
    """Application state container."""

    def __init__(self, registry: ServerRegistry, catalog: ToolCatalog, settings: Settings):
        self.start_time = datetime.now(timezone.utc)
        self.request_count = 0
        self.registry = registry
        self.catalog = catalog
        self.settings = settings


def _state(request: Request) -> AppState:
    return request.app.state.toolbox


# ═══════════════════════════════════════════════════════════════════════════════
# Application Factory
# ═══════════════════════════════════════════════════════════════════════════════


def create_app(
    registry: ServerRegistry | None = None,
    catalog: ToolCatalog | None = None,
    settings: Settings | None = None,
) -> FastAPI:
    """
    Build the API application.

    Args:
        registry: Server registry to serve; a fresh empty one by default
        catalog: Discovery aggregator; built over ``registry`` by default
        settings: Runtime settings; defaults apply when omitted
    """
    settings = settings or Settings()
    registry = registry if registry is not None else ServerRegistry()
    if catalog is None:
        catalog = ToolCatalog(
            registry, ToolDiscovery(timeout_seconds=settings.discovery_timeout_seconds)
        )
    app_state = AppState(registry, catalog, settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Seed the registry from configuration and start tracing."""
        logger.info("API server starting up")
        init_observability()

        entries = load_server_seed(settings.servers_file) + load_server_seed_from_env()
        if entries:
            added = seed_registry(registry, entries)
            logger.info("MCP servers seeded", configured=len(entries), added=added)

        yield

        logger.info("API server shutting down")
        shutdown_observability()

    app = FastAPI(
        title="MCP Toolbox API",
        description="Discovers tools on MCP servers for the toolbox editor",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.toolbox = app_state

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def add_request_id(request: Request, call_next):
        """Add request ID to all requests."""
        request_id = str(uuid.uuid4())[:8]
        request.state.request_id = request_id

        start_time = time.time()
        response: Response = await call_next(request)
        duration_ms = int((time.time() - start_time) * 1000)

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Response-Time"] = f"{duration_ms}ms"

        app_state.request_count += 1

        logger.info(
            "Request completed",
            request_id=request_id,
            method=request.method,
            path=request.url.path,
            status=response.status_code,
            duration_ms=duration_ms,
        )

        return response

    @app.exception_handler(McpToolboxError)
    async def toolbox_error_handler(request: Request, exc: McpToolboxError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.warning("Request failed", path=request.url.path, error=exc.message)
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"detail": "Request body must be a JSON object"},
        )

    _register_routes(app)
    return app


# ═══════════════════════════════════════════════════════════════════════════════
# Routes
# ═══════════════════════════════════════════════════════════════════════════════


def _register_routes(app: FastAPI) -> None:
    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    async def health_check(request: Request) -> HealthResponse:
        """Basic health check endpoint."""
        state = _state(request)
        return HealthResponse(
            status="healthy",
            timestamp=datetime.now(timezone.utc).isoformat(),
            components={"registry": {"status": "healthy", "servers": len(state.registry)}},
        )

    @app.get("/servers", tags=["Servers"])
    async def list_servers(request: Request) -> list[dict[str, Any]]:
        """List registered servers in registration order."""
        return [server.to_dict() for server in _state(request).registry.list()]

    @app.post("/servers", status_code=status.HTTP_201_CREATED, tags=["Servers"])
    async def create_server(request: Request, body: ServerCreateRequest) -> dict[str, Any]:
        """Register a server."""
        record = ServerRecord(
            name=_read_string(body.name),
            url=_read_string(body.url),
            transport=TransportType.parse(body.transport),
            headers=sanitize_headers(body.headers),
            config=body.config,
        )
        return _state(request).registry.add(record).to_dict()

    @app.put("/servers", tags=["Servers"])
    async def update_server(request: Request, body: ServerUpdateRequest) -> dict[str, Any]:
        """Update a server, optionally moving it to ``nextUrl``."""
        updated = _state(request).registry.update(
            _read_string(body.url),
            next_url=body.target_url or None,
            name=_read_string(body.name) or None,
            transport=TransportType.parse(body.transport),
            headers=sanitize_headers(body.headers),
            config=body.config,
        )
        return updated.to_dict()

    @app.delete("/servers", tags=["Servers"])
    async def delete_server(request: Request, url: str | None = None) -> dict[str, Any]:
        """Delete a server; ``url`` comes from the query string or a JSON body."""
        if not url:
            try:
                payload = await request.json()
            except ValueError:
                payload = None
            url = _read_string(payload.get("url")) if isinstance(payload, dict) else ""
        if not url:
            raise InvalidInputError("url is required")
        _state(request).registry.remove(url)
        return {"ok": True}

    @app.post("/tools", tags=["Tools"])
    async def list_tools(request: Request, body: ToolsRequest) -> dict[str, Any]:
        """
        Discover the tools of one server.

        The server does not have to be registered; missing name, headers and
        config are taken from the registration when there is one.
        """
        state = _state(request)
        url = normalize_server_url(_read_string(body.url))
        if not url:
            raise InvalidInputError("url is required")
        if not is_http_url(url):
            raise InvalidInputError("Server URL must be http/https")

        saved = state.registry.get(url)
        headers = sanitize_headers(body.headers)
        server = ServerRecord(
            name=_read_string(body.name).strip() or (saved.name if saved else "") or DEFAULT_SERVER_NAME,
            url=url,
            transport=saved.transport if saved else None,
            headers=headers if headers is not None else (saved.headers if saved else None),
            config=body.config if body.config is not None else (saved.config if saved else None),
        )

        tools = await state.catalog.discover(server)
        return {"tools": [tool.to_dict() for tool in tools]}

    @app.get("/tools/all", tags=["Tools"])
    async def list_all_tools(request: Request) -> dict[str, Any]:
        """Discover tools on every registered server; failures are reported per server."""
        result = await _state(request).catalog.discover_all()
        return result.to_dict()
