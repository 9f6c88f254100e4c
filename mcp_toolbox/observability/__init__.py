"""Observability module for the MCP toolbox.

Provides OpenTelemetry tracing for discovery calls. Tracing stays a no-op
unless an OTLP endpoint is configured.

Quick Start:
    from mcp_toolbox.observability import init_observability, get_tracer

    init_observability()
    tracer = get_tracer("mcp-discovery")
"""

from mcp_toolbox.observability.tracing import (
    get_tracer,
    init_otel_tracing,
    is_otel_enabled,
    shutdown_tracing,
    truncate,
)


def init_observability() -> None:
    """Initialize all observability components."""
    init_otel_tracing()


def shutdown_observability() -> None:
    """Shutdown all observability components."""
    shutdown_tracing()


__all__ = [
    "init_observability",
    "shutdown_observability",
    "init_otel_tracing",
    "get_tracer",
    "is_otel_enabled",
    "shutdown_tracing",
    "truncate",
]
