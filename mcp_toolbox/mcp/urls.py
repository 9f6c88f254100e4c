"""
Server URL normalization.

All registry keys, tool keys and cache keys go through these helpers so that
``https://example.com/`` and ``https://example.com`` name the same server.
None of the functions here raise on bad input.
"""

from __future__ import annotations

from urllib.parse import urlsplit

# Short-form aliases (https://smithery.ai/server/<name>) resolve to the
# provider's canonical endpoint host.
ALIAS_HOST = "smithery.ai"
ALIAS_PATH_PREFIX = "/server/"
PROVIDER_HOST = "server.smithery.ai"

_QUOTES = ("`", '"', "'")


def _clean_once(value: str) -> str:
    value = value.strip()
    for quote in _QUOTES:
        if len(value) >= 2 and value.startswith(quote) and value.endswith(quote):
            value = value[1:-1].strip()
            break
    return value[:-1] if value.endswith("/") else value


def normalize_url(url: str | None) -> str:
    """
    Trim whitespace, unwrap a pair of quotes and drop a trailing slash.

    The cleanup is repeated until the value stops changing, so the result is
    always a fixed point (``normalize_url(normalize_url(x)) == normalize_url(x)``).
    """
    value = url or ""
    while True:
        cleaned = _clean_once(value)
        if cleaned == value:
            return cleaned
        value = cleaned


def normalize_server_url(url: str | None) -> str:
    """
    Canonicalize a server URL.

    Applies ``normalize_url`` and then expands the provider alias form
    ``https://smithery.ai/server/<qualified-name>`` to
    ``https://server.smithery.ai/<qualified-name>``. Input that does not parse
    as a URL only gets the basic cleanup.
    """
    value = normalize_url(url)
    try:
        parts = urlsplit(value)
        hostname = parts.hostname
    except ValueError:
        return value

    if hostname == ALIAS_HOST and parts.path.startswith(ALIAS_PATH_PREFIX):
        qualified_name = parts.path[len(ALIAS_PATH_PREFIX):]
        return f"https://{PROVIDER_HOST}/{qualified_name}".rstrip("/")
    return value


def is_http_url(url: str | None) -> bool:
    """Return True when ``url`` parses with an http or https scheme and a host."""
    if not url:
        return False
    try:
        parts = urlsplit(url)
        return parts.scheme in ("http", "https") and bool(parts.netloc)
    except ValueError:
        return False
