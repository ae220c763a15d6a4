"""OpenTelemetry tracing configuration for the council engine.

Tracing is off unless explicitly enabled. When off, spans are no-ops from
the OpenTelemetry API's default provider.

Environment Variables:
    COUNCIL_OTEL_ENABLED: Set to "1" to enable tracing (default: disabled)
    COUNCIL_REQUIRE_OTEL: Set to "1" to fail startup if tracing cannot initialize
    COUNCIL_OTEL_SERVICE_NAME: Service name for spans (default: "council")
    COUNCIL_OTEL_EXPORTER: Exporter type - "otlp" or "console" (default: "otlp")
    COUNCIL_OTEL_EXPORTER_OTLP_ENDPOINT: OTLP endpoint URL (optional)
    COUNCIL_OTEL_EXPORTER_OTLP_PROTOCOL: "grpc" or "http" (default: "grpc")
    COUNCIL_OTEL_TEST_CAPTURE: Set to "1" to use an in-memory exporter for tests

Generated text and prompts are never attached to spans.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

from opentelemetry import trace

if TYPE_CHECKING:
    from opentelemetry.sdk.trace import ReadableSpan, TracerProvider
    from opentelemetry.sdk.trace.export import SpanExporter

logger = logging.getLogger(__name__)

TRACER_NAME = "council"
GENERATION_SPAN_NAME = "council.generation"

_tracer_provider: TracerProvider | None = None
_is_configured: bool = False
_test_exporter: Any = None


class TracingConfigError(Exception):
    """Raised when tracing configuration fails and COUNCIL_REQUIRE_OTEL=1."""


def _get_env_bool(key: str, default: bool = False) -> bool:
    val = os.environ.get(key, "").strip().lower()
    if val in ("1", "true", "yes"):
        return True
    return default


def _get_env_str(key: str, default: str = "") -> str:
    return os.environ.get(key, default).strip()


def _create_otlp_exporter(protocol: str, endpoint: str | None) -> Any:
    """Create OTLP exporter based on protocol."""
    kwargs: dict[str, Any] = {}
    if endpoint:
        kwargs["endpoint"] = endpoint

    if protocol == "http":
        from opentelemetry.exporter.otlp.proto.http.trace_exporter import (
            OTLPSpanExporter as HTTPExporter,
        )

        return HTTPExporter(**kwargs)

    from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import (
        OTLPSpanExporter as GRPCExporter,
    )

    return GRPCExporter(**kwargs)


def _create_console_exporter() -> SpanExporter:
    from opentelemetry.sdk.trace.export import ConsoleSpanExporter

    return ConsoleSpanExporter()


def configure_tracing() -> bool:
    """Configure OpenTelemetry tracing.

    Idempotent - safe to call multiple times.

    Returns:
        True if tracing is enabled and configured, False otherwise.

    Raises:
        TracingConfigError: If COUNCIL_REQUIRE_OTEL=1 and configuration fails.
    """
    global _tracer_provider, _is_configured, _test_exporter

    enabled = _get_env_bool("COUNCIL_OTEL_ENABLED")
    require_otel = _get_env_bool("COUNCIL_REQUIRE_OTEL")
    test_capture = _get_env_bool("COUNCIL_OTEL_TEST_CAPTURE")

    if not enabled:
        _is_configured = True
        logger.debug("OpenTelemetry tracing disabled (COUNCIL_OTEL_ENABLED not set)")
        return False

    if _test_exporter is not None and test_capture:
        return True

    if _is_configured and _tracer_provider is not None:
        return True

    _is_configured = True

    try:
        from opentelemetry.sdk.resources import Resource
        from opentelemetry.sdk.trace import TracerProvider
        from opentelemetry.sdk.trace.export import BatchSpanProcessor, SimpleSpanProcessor

        service_name = _get_env_str("COUNCIL_OTEL_SERVICE_NAME", "council")
        exporter_type = _get_env_str("COUNCIL_OTEL_EXPORTER", "otlp")
        endpoint = _get_env_str("COUNCIL_OTEL_EXPORTER_OTLP_ENDPOINT", "")
        protocol = _get_env_str("COUNCIL_OTEL_EXPORTER_OTLP_PROTOCOL", "grpc")

        provider = TracerProvider(resource=Resource.create({"service.name": service_name}))

        if test_capture:
            from opentelemetry.sdk.trace.export.in_memory_span_exporter import (
                InMemorySpanExporter,
            )

            _test_exporter = InMemorySpanExporter()
            provider.add_span_processor(SimpleSpanProcessor(_test_exporter))
        elif exporter_type == "console":
            provider.add_span_processor(SimpleSpanProcessor(_create_console_exporter()))
        else:
            otlp_exporter = _create_otlp_exporter(protocol, endpoint or None)
            provider.add_span_processor(BatchSpanProcessor(otlp_exporter))

        trace.set_tracer_provider(provider)
        _tracer_provider = provider

        logger.info(
            "OpenTelemetry tracing configured: service=%s, exporter=%s",
            service_name,
            exporter_type if not test_capture else "in-memory",
        )
        return True

    except Exception as e:
        logger.error("Failed to configure OpenTelemetry tracing: %s", e)
        if require_otel:
            raise TracingConfigError(
                f"OpenTelemetry tracing required but configuration failed: {e}"
            ) from e
        return False


def instrument_fastapi(app: Any) -> None:
    """Instrument a FastAPI application with OpenTelemetry.

    Args:
        app: FastAPI application instance.
    """
    if not _get_env_bool("COUNCIL_OTEL_ENABLED"):
        return

    try:
        from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

        FastAPIInstrumentor.instrument_app(app, excluded_urls="health")
        logger.debug("FastAPI instrumented with OpenTelemetry")
    except Exception as e:
        logger.warning("Failed to instrument FastAPI: %s", e)


@contextmanager
def generation_span(session_id: str, role: str, phase: int) -> Iterator[Any]:
    """Span around one call to the text-generation collaborator.

    Exceptions raised inside the block are recorded on the span and re-raised.
    """
    tracer = trace.get_tracer(TRACER_NAME)
    with tracer.start_as_current_span(GENERATION_SPAN_NAME) as span:
        span.set_attribute("council.session_id", session_id)
        span.set_attribute("council.role", role)
        span.set_attribute("council.phase", phase)
        yield span


def get_test_spans() -> list[ReadableSpan]:
    """Get captured spans from the in-memory exporter (for testing)."""
    if _test_exporter is not None and hasattr(_test_exporter, "get_finished_spans"):
        return list(_test_exporter.get_finished_spans())
    return []


def clear_test_spans() -> None:
    """Clear captured spans from the in-memory exporter (for testing)."""
    if _test_exporter is not None and hasattr(_test_exporter, "clear"):
        _test_exporter.clear()


def reset_tracing() -> None:
    """Reset tracing configuration (for testing).

    The global TracerProvider cannot be replaced once set, so the test
    exporter is kept and only its spans are cleared.
    """
    global _is_configured

    clear_test_spans()
    _is_configured = False
