"""Prometheus metrics instrumentation."""

from __future__ import annotations

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, generate_latest

REGISTRY = CollectorRegistry()

EMBED_BATCHES = Counter(
    "quickrag_embedding_batches_total",
    "Embedding batches submitted to the backend",
    labelnames=("status",),
    registry=REGISTRY,
)

EMBED_RETRIES = Counter(
    "quickrag_embedding_retries_total",
    "Bisection retries after a failed embedding call",
    registry=REGISTRY,
)

INDEX_DURATION = Histogram(
    "quickrag_index_duration_seconds",
    "Indexing run duration",
    labelnames=("outcome",),
    registry=REGISTRY,
)

INDEX_SIZE = Gauge(
    "quickrag_index_units",
    "Number of units stored in the index",
    registry=REGISTRY,
)


def render_metrics() -> str:
    """Return metrics in the Prometheus text exposition format."""
    return generate_latest(REGISTRY).decode("utf-8")


__all__ = [
    "REGISTRY",
    "EMBED_BATCHES",
    "EMBED_RETRIES",
    "INDEX_DURATION",
    "INDEX_SIZE",
    "render_metrics",
]
