import logging
import os
from typing import Any

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.semconv.resource import ResourceAttributes

from mcp_toolbox import __version__

# Setup logging
logger = logging.getLogger(__name__)

# Max attribute value length accepted by most OTLP backends
MAX_ATTR_LENGTH = 4096

_tracer_provider: TracerProvider | None = None
_otel_enabled: bool = False


def _get_service_config() -> dict[str, str]:
    """Get service configuration from environment."""
    return {
        "service_name": os.getenv("OTEL_SERVICE_NAME", "mcp-toolbox"),
        "service_version": __version__,
        "deployment_env": os.getenv("MCP_TOOLBOX_ENV", "development"),
    }


def _get_exporter_config() -> dict[str, str | None]:
    """Get OTLP exporter configuration from environment."""
    return {
        "endpoint": os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT"),
        "headers": os.getenv("OTEL_EXPORTER_OTLP_HEADERS"),
    }


def _should_enable_otel() -> bool:
    """Check if OTEL should be enabled."""
    config = _get_exporter_config()
    enabled_env = os.getenv("OTEL_TRACING_ENABLED", "true").lower() != "false"
    return enabled_env and bool(config["endpoint"])


def _parse_headers(raw: str | None) -> dict[str, str]:
    """Parse ``key=value,key2=value2`` exporter headers."""
    headers: dict[str, str] = {}
    for pair in (raw or "").split(","):
        key, sep, value = pair.partition("=")
        if sep and key.strip():
            headers[key.strip()] = value.strip()
    return headers


def truncate(val: Any, max_len: int = MAX_ATTR_LENGTH) -> str:
    """Truncate string to max length."""
    str_val = str(val)
    if len(str_val) <= max_len:
        return str_val
    return str_val[: max_len - 3] + "..."


def init_otel_tracing() -> bool:
    """Initialize the OpenTelemetry SDK with an OTLP/HTTP exporter."""
    global _tracer_provider, _otel_enabled  # noqa: PLW0603

    if not _should_enable_otel():
        logger.info("[OtelTracing] OTEL tracing disabled - no exporter endpoint")
        _otel_enabled = False
        return False

    if _tracer_provider:
        logger.info("[OtelTracing] Tracer provider already initialized")
        return True

    config = _get_exporter_config()
    svc_config = _get_service_config()

    try:
        endpoint = config["endpoint"].rstrip("/")
        trace_url = endpoint if endpoint.endswith("/v1/traces") else f"{endpoint}/v1/traces"
        logger.info(f"[OtelTracing] Trace endpoint: {trace_url}")

        exporter = OTLPSpanExporter(endpoint=trace_url, headers=_parse_headers(config["headers"]))

        resource = Resource.create(
            {
                ResourceAttributes.SERVICE_NAME: svc_config["service_name"],
                ResourceAttributes.SERVICE_VERSION: svc_config["service_version"],
                ResourceAttributes.DEPLOYMENT_ENVIRONMENT: svc_config["deployment_env"],
            }
        )

        _tracer_provider = TracerProvider(resource=resource)
        _tracer_provider.add_span_processor(BatchSpanProcessor(exporter))
        trace.set_tracer_provider(_tracer_provider)

        _otel_enabled = True
        logger.info(f"[OtelTracing] Initialized: {svc_config['service_name']}")
        return True

    except Exception as e:
        logger.error(f"[OtelTracing] Failed to initialize: {e}")
        return False


def shutdown_tracing() -> None:
    """Flush and shut down the tracer provider, if one was started."""
    global _tracer_provider, _otel_enabled  # noqa: PLW0603

    if _tracer_provider is None:
        return
    try:
        _tracer_provider.shutdown()
    except Exception as e:
        logger.warning(f"[OtelTracing] Shutdown failed: {e}")
    _tracer_provider = None
    _otel_enabled = False


def get_tracer(component: str | None = None):
    """Get the tracer instance."""
    svc_config = _get_service_config()
    return trace.get_tracer(component or svc_config["service_name"], svc_config["service_version"])


def is_otel_enabled() -> bool:
    """Check if OTEL is enabled."""
    return _otel_enabled
