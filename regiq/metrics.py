"""Prometheus metrics for the RegIQ ingestion pipeline."""

import time

from prometheus_client import Counter, Gauge, Histogram, Info

# Application info
app_info = Info("regiq_ingest", "RegIQ ingestion pipeline info")
app_info.info({"version": "0.1.0", "name": "regiq-ingest"})

# Fetch metrics
source_fetches_total = Counter(
    "source_fetches_total",
    "Total number of source fetch attempts",
    ["source", "status"],
)

source_fetch_errors_total = Counter(
    "source_fetch_errors_total",
    "Total number of failed source fetches",
    ["source", "error_type"],
)

source_fetch_duration_seconds = Histogram(
    "source_fetch_duration_seconds",
    "Time spent syncing a single source",
    ["source"],
    buckets=[0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0],
)

http_retries_total = Counter(
    "http_retries_total",
    "Total number of HTTP retries issued",
    ["policy", "reason"],
)

# Record metrics
alert_records_total = Counter(
    "alert_records_total",
    "Alert records processed by outcome",
    ["source", "outcome"],
)

# Sync run metrics
sync_runs_total = Counter(
    "sync_runs_total",
    "Total number of sync runs",
    ["trigger", "status"],
)

sync_last_run_timestamp = Gauge(
    "sync_last_run_timestamp",
    "Timestamp of the last completed sync run",
    ["trigger"],
)


def record_source_success(source: str, duration: float):
    """Record a source that synced without a fatal error."""
    source_fetches_total.labels(source=source, status="success").inc()
    source_fetch_duration_seconds.labels(source=source).observe(duration)


def record_source_error(source: str, error_type: str, duration: float):
    """Record a source whose fetch failed."""
    source_fetches_total.labels(source=source, status="error").inc()
    source_fetch_errors_total.labels(source=source, error_type=error_type).inc()
    source_fetch_duration_seconds.labels(source=source).observe(duration)


def record_retry(policy: str, reason: str):
    """Record an HTTP retry."""
    http_retries_total.labels(policy=policy, reason=reason).inc()


def record_alert_outcome(source: str, outcome: str, count: int = 1):
    """Record inserted/updated/skipped/error counts for a source."""
    if count:
        alert_records_total.labels(source=source, outcome=outcome).inc(count)


def record_sync_run(trigger: str, status: str):
    """Record a finished sync run."""
    sync_runs_total.labels(trigger=trigger, status=status).inc()
    sync_last_run_timestamp.labels(trigger=trigger).set(time.time())
