"""
Error taxonomy for the MCP toolbox.

Every failure surfaced to a caller is one of these. Each error carries the
HTTP status the API layer answers with, so route handlers never have to
translate messages themselves.
"""

from __future__ import annotations


class McpToolboxError(Exception):
    """Base class for toolbox errors."""

    status_code: int = 500

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class InvalidInputError(McpToolboxError):
    """Malformed request: empty required field or non-http URL."""

    status_code = 400


class ConflictError(McpToolboxError):
    """A server with the same normalized URL is already registered."""

    status_code = 409


class NotFoundError(McpToolboxError):
    """No server is registered under the given URL."""

    status_code = 404


class DiscoveryError(McpToolboxError):
    """Every discovery strategy failed for a server."""

    status_code = 502

    def __init__(self, message: str, url: str | None = None):
        self.url = url
        super().__init__(message)
