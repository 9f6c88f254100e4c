#!/usr/bin/env python
"""MCP Toolbox - Main Entry Point.

Starts the API server that registers MCP servers and discovers their tools.

Usage:
    python -m mcp_toolbox.main
    python -m mcp_toolbox.main --port 8080
    python -m mcp_toolbox.main --servers-file config/mcp_servers.yaml
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

import structlog

from mcp_toolbox.settings import Settings, load_settings


def configure_logging(level: str = "INFO") -> None:
    """Configure structlog to route through Python logging."""
    # format_exc_info is left out: ConsoleRenderer formats exceptions itself
    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    structlog.configure(
        processors=shared_processors + [
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)

    formatter = structlog.stdlib.ProcessorFormatter(
        processor=structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()),
        foreign_pre_chain=shared_processors,
    )
    console_handler.setFormatter(formatter)

    root_logger.addHandler(console_handler)


logger = structlog.get_logger(__name__)


async def run_api_mode(settings: Settings) -> None:
    """Run the API server."""
    import uvicorn

    from mcp_toolbox.api.main import create_app

    logger.info("Starting API server", host=settings.host, port=settings.port)

    config = uvicorn.Config(
        create_app(settings=settings),
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )
    server = uvicorn.Server(config)
    await server.serve()


def main():
    """Main entry point."""
    settings = load_settings()

    parser = argparse.ArgumentParser(
        description="MCP Toolbox API server",
    )
    parser.add_argument(
        "--host",
        default=settings.host,
        help=f"Bind address (default: {settings.host})",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=settings.port,
        help=f"API server port (default: {settings.port})",
    )
    parser.add_argument(
        "--servers-file",
        default=settings.servers_file,
        help="YAML file with MCP servers to register at startup",
    )
    parser.add_argument(
        "--log-level",
        default=settings.log_level,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help=f"Log level (default: {settings.log_level})",
    )

    args = parser.parse_args()
    settings.host = args.host
    settings.port = args.port
    settings.servers_file = args.servers_file
    settings.log_level = args.log_level

    configure_logging(settings.log_level)

    try:
        asyncio.run(run_api_mode(settings))
    except KeyboardInterrupt:
        logger.info("Shutting down...")


if __name__ == "__main__":
    main()
