"""
Prometheus collectors for write coalescers.

Registered in the global REGISTRY at import time; every collector is
labelled with the coalescer ``name`` and its ``mode`` (blocking/deadline).
"""

from prometheus_client import Counter, Histogram

COALESCER_WRITES_TOTAL = Counter(
    "coalescer_writes_total",
    "Total number of write calls accepted into a coalescer buffer",
    ["name", "mode"],
)

COALESCER_FLUSHES_TOTAL = Counter(
    "coalescer_flushes_total",
    "Total number of flushes performed on the underlying sink",
    ["name", "mode", "outcome"],
)

COALESCER_FLUSH_BYTES = Histogram(
    "coalescer_flush_bytes",
    "Bytes handed to the underlying sink per flush",
    ["name", "mode"],
    buckets=[64, 256, 1024, 4096, 16384, 65536, 262144, 1048576],
)

COALESCER_FLUSH_LATENCY_MS = Histogram(
    "coalescer_flush_latency_ms",
    "Underlying sink write latency in milliseconds",
    ["name", "mode"],
    buckets=[0.1, 0.5, 1, 2.5, 5, 10, 25, 50, 100, 250, 500, 1000],
)

COALESCER_ERRORS_DROPPED_TOTAL = Counter(
    "coalescer_errors_dropped_total",
    "Pending flush errors overwritten before any caller observed them",
    ["name", "mode"],
)


class MetricsRegistry:
    """Centralized access to coalescer metrics."""

    writes_total = COALESCER_WRITES_TOTAL
    flushes_total = COALESCER_FLUSHES_TOTAL
    flush_bytes = COALESCER_FLUSH_BYTES
    flush_latency_ms = COALESCER_FLUSH_LATENCY_MS
    errors_dropped_total = COALESCER_ERRORS_DROPPED_TOTAL


# Singleton instance
metrics_registry = MetricsRegistry()
