"""
Prometheus metrics for geonames-refresh

Counts rows and runs per table and times each refresh stage. Metrics live on
a private registry; expose them with generate_metrics() or start_metrics_server().
"""
import os

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

REGISTRY = CollectorRegistry()


# =======================
# REFRESH METRICS
# =======================

rows_processed_total = Counter(
    name="geonames_rows_processed_total",
    documentation="Rows handled by a refresh run",
    labelnames=["table", "status"],  # status: accepted, rejected
    registry=REGISTRY,
)

refresh_runs_total = Counter(
    name="geonames_refresh_runs_total",
    documentation="Completed refresh runs",
    labelnames=["table", "status"],  # status: success, failure
    registry=REGISTRY,
)

stage_duration_seconds = Histogram(
    name="geonames_stage_duration_seconds",
    documentation="Time spent in each refresh stage",
    labelnames=["table", "stage"],  # stage: merge, staging, load, indexes, swap, insert
    buckets=[0.1, 0.5, 1.0, 5.0, 15.0, 60.0, 300.0, 900.0, 3600.0],
    registry=REGISTRY,
)

master_extract_lines = Gauge(
    name="geonames_master_extract_lines",
    documentation="Lines in the most recent master extract",
    registry=REGISTRY,
)

# =======================
# DATA QUALITY METRICS
# =======================

validation_failures_total = Counter(
    name="geonames_validation_failures_total",
    documentation="Lookup rows rejected by structural validation",
    labelnames=["table", "rule"],
    registry=REGISTRY,
)


# =======================
# HELPER FUNCTIONS
# =======================

def generate_metrics() -> bytes:
    """Prometheus text exposition of every refresh metric"""
    return generate_latest(REGISTRY)


def get_content_type() -> str:
    return CONTENT_TYPE_LATEST


def start_metrics_server(port: int | None = None) -> None:
    """
    Start HTTP server for Prometheus metrics

    Args:
        port: Port to listen on (defaults to env var METRICS_PORT or 8000)
    """
    from prometheus_client import start_http_server

    metrics_port = port or int(os.getenv("METRICS_PORT", "8000"))
    start_http_server(metrics_port, registry=REGISTRY)


class track_duration:
    """
    Context manager for tracking stage duration

    Usage:
        with track_duration(stage_duration_seconds, table="geonames", stage="load"):
            # do work
            pass
    """

    def __init__(self, histogram: Histogram, **labels):
        self.histogram = histogram
        self.labels = labels
        self.timer = None

    def __enter__(self):
        self.timer = self.histogram.labels(**self.labels).time()
        self.timer.__enter__()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.timer.__exit__(exc_type, exc_val, exc_tb)
        return False


def increment_counter(counter: Counter, value: float = 1.0, **labels) -> None:
    counter.labels(**labels).inc(value)


def set_gauge(gauge: Gauge, value: float, **labels) -> None:
    if labels:
        gauge.labels(**labels).set(value)
    else:
        gauge.set(value)


def observe_histogram(histogram: Histogram, value: float, **labels) -> None:
    histogram.labels(**labels).observe(value)


def record_refresh(table: str, accepted: int, rejected: int, success: bool) -> None:
    """
    Record the outcome of one table refresh.

    Args:
        table: Live table name
        accepted: Rows that landed in staging
        rejected: Rows dropped or refused
        success: Whether the live table was replaced
    """
    if accepted:
        increment_counter(rows_processed_total, accepted, table=table, status="accepted")
    if rejected:
        increment_counter(rows_processed_total, rejected, table=table, status="rejected")
    increment_counter(refresh_runs_total, 1, table=table, status="success" if success else "failure")


def record_validation_failure(table: str, rule: str) -> None:
    increment_counter(validation_failures_total, 1, table=table, rule=rule)
