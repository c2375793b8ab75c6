"""
Prometheus metrics for spse-sync

Counters and histograms for sync cycles, upstream HTTP traffic, mapping
quality and detail-page enrichment. All metrics live on a private registry
so tests and embedding processes never collide with the default one.
"""
import os
from typing import Optional

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

REGISTRY = CollectorRegistry()


# =======================
# SYNC CYCLE METRICS
# =======================

records_total = Counter(
    name="spse_sync_records_total",
    documentation="Records handled by sync cycles",
    labelnames=["table", "outcome"],  # outcome: fetched, stored, failed, retired
    registry=REGISTRY,
)

cycles_total = Counter(
    name="spse_sync_cycles_total",
    documentation="Completed sync cycles by final state",
    labelnames=["table", "state"],  # state: committed, rolled_back
    registry=REGISTRY,
)

cycle_duration_seconds = Histogram(
    name="spse_sync_cycle_duration_seconds",
    documentation="Wall-clock duration of one sync cycle",
    labelnames=["table"],
    buckets=[0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0],
    registry=REGISTRY,
)

last_cycle_timestamp = Gauge(
    name="spse_sync_last_cycle_timestamp_seconds",
    documentation="Unix time of the last committed cycle",
    labelnames=["table"],
    registry=REGISTRY,
)

# =======================
# NORMALIZATION METRICS
# =======================

mapping_quality = Histogram(
    name="spse_sync_mapping_quality_ratio",
    documentation="Fraction of expected fields populated per normalized item",
    labelnames=["table", "kind"],  # kind: keyed, positional, text
    buckets=[0.1, 0.25, 0.5, 0.75, 0.9, 1.0],
    registry=REGISTRY,
)

rejected_values_total = Counter(
    name="spse_sync_rejected_values_total",
    documentation="Candidate values rejected by a field validator",
    labelnames=["table", "field_name"],
    registry=REGISTRY,
)

# =======================
# UPSTREAM HTTP METRICS
# =======================

http_requests_total = Counter(
    name="spse_sync_http_requests_total",
    documentation="Outbound HTTP requests by target and outcome",
    labelnames=["target", "outcome"],  # outcome: ok, retry, exhausted
    registry=REGISTRY,
)

# =======================
# ENRICHMENT METRICS
# =======================

enrichment_total = Counter(
    name="spse_sync_enrichment_total",
    documentation="Detail-page enrichment attempts by outcome",
    labelnames=["outcome"],  # outcome: extracted, failed, store_error
    registry=REGISTRY,
)


# =======================
# HELPER FUNCTIONS
# =======================

def generate_metrics() -> bytes:
    """Render all metrics in Prometheus text format."""
    return generate_latest(REGISTRY)


def start_metrics_server(port: Optional[int] = None) -> None:
    """
    Start HTTP server for Prometheus metrics

    Args:
        port: Port to listen on (defaults to env var METRICS_PORT or 8000)
    """
    # Imported lazily so importing this module never binds a port
    from prometheus_client import start_http_server

    metrics_port = port or int(os.getenv("METRICS_PORT", "8000"))
    start_http_server(metrics_port, registry=REGISTRY)


def record_cycle(
    table: str,
    committed: bool,
    fetched: int,
    stored: int,
    failed: int,
    retired: int,
    duration_seconds: float,
    finished_at: float,
) -> None:
    """
    Record the outcome of one sync cycle.

    Args:
        table: Sink table identifier
        committed: Whether the cycle transaction committed
        fetched: Items returned by the endpoint
        stored: Items upserted
        failed: Items skipped
        retired: Rows soft-deleted
        duration_seconds: Cycle duration
        finished_at: Unix time the cycle ended
    """
    records_total.labels(table=table, outcome="fetched").inc(fetched)
    records_total.labels(table=table, outcome="stored").inc(stored)
    records_total.labels(table=table, outcome="failed").inc(failed)
    records_total.labels(table=table, outcome="retired").inc(retired)

    state = "committed" if committed else "rolled_back"
    cycles_total.labels(table=table, state=state).inc()
    cycle_duration_seconds.labels(table=table).observe(duration_seconds)

    if committed:
        last_cycle_timestamp.labels(table=table).set(finished_at)


def record_mapping(table: str, kind: str, mapped: int, total: int) -> None:
    """Observe the mapping quality of one normalized item."""
    if total > 0:
        mapping_quality.labels(table=table, kind=kind).observe(mapped / total)
