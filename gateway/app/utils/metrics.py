"""Prometheus metrics for document orchestration and query streaming."""

from prometheus_client import Counter, Histogram

document_delete_leg_failures_total = Counter(
    "document_delete_leg_failures_total",
    "Deletion legs that failed and were skipped",
    ["leg"],
)

workflow_calls_total = Counter(
    "workflow_calls_total",
    "Workflow engine calls",
    ["operation", "outcome"],
)

query_transport_fallbacks_total = Counter(
    "query_transport_fallbacks_total",
    "Backend transports abandoned before the first fragment",
    ["transport", "reason"],
)

query_streams_total = Counter(
    "query_streams_total",
    "Completed query streams",
    ["transport", "outcome"],
)

query_stream_duration_ms = Histogram(
    "query_stream_duration_ms",
    "Query stream duration in milliseconds",
    ["transport"],
    buckets=[100, 500, 1000, 2000, 5000, 10000, 30000, 60000, 120000],
)


class PrometheusGatewayMetrics:
    """Prometheus-based gateway metrics implementation."""

    def inc_delete_leg_failure(self, leg: str) -> None:
        """Count a failed, non-fatal deletion leg."""
        document_delete_leg_failures_total.labels(leg=leg).inc()

    def inc_workflow_call(self, operation: str, outcome: str) -> None:
        """Count a workflow engine call."""
        workflow_calls_total.labels(operation=operation, outcome=outcome).inc()

    def inc_transport_fallback(self, transport: str, reason: str) -> None:
        """Count a transport that failed before delivering a fragment."""
        query_transport_fallbacks_total.labels(transport=transport, reason=reason).inc()

    def record_stream(self, transport: str, outcome: str, duration_ms: float) -> None:
        """Record a finished query stream."""
        query_streams_total.labels(transport=transport, outcome=outcome).inc()
        query_stream_duration_ms.labels(transport=transport).observe(duration_ms)
