"""
Runtime settings.

Read from environment variables, after loading ``.env.local`` from the project
root when it exists.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

ENV_FILE = Path(__file__).parent.parent / ".env.local"


@dataclass
class Settings:
    """Process-wide configuration."""

    host: str = "0.0.0.0"
    port: int = 3001
    discovery_timeout_seconds: float = 8.0
    cors_origins: list[str] = field(default_factory=lambda: ["*"])
    servers_file: str | None = None
    log_level: str = "INFO"


def _split(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def load_settings(env_file: Path | None = ENV_FILE) -> Settings:
    """Build Settings from the environment."""
    if env_file is not None and env_file.exists():
        load_dotenv(env_file)

    defaults = Settings()
    return Settings(
        host=os.getenv("MCP_TOOLBOX_HOST", defaults.host),
        port=int(os.getenv("MCP_TOOLBOX_PORT", str(defaults.port))),
        discovery_timeout_seconds=float(
            os.getenv("MCP_TOOLBOX_DISCOVERY_TIMEOUT", str(defaults.discovery_timeout_seconds))
        ),
        cors_origins=_split(os.getenv("MCP_TOOLBOX_CORS_ORIGINS", "")) or defaults.cors_origins,
        servers_file=os.getenv("MCP_TOOLBOX_SERVERS_FILE") or None,
        log_level=os.getenv("MCP_TOOLBOX_LOG_LEVEL", defaults.log_level).upper(),
    )
