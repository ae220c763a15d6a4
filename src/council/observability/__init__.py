"""Council observability: OpenTelemetry tracing baseline."""

from council.observability.tracing import configure_tracing, generation_span

__all__ = ["configure_tracing", "generation_span"]
