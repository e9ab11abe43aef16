"""Prometheus metrics definitions for the migration engine.

Defines counters, gauges, and histograms for monitoring:
- Record throughput by outcome
- Remote/store request outcomes and retries
- Rate limiter waits and adaptive multiplier
- Circuit breaker state per operation class
- Batch and record latency

Usage:
    from catalog_migrator.observability.metrics import (
        RECORDS_PROCESSED,
        BATCH_DURATION,
    )

    RECORDS_PROCESSED.labels(status="success").inc()

    with BATCH_DURATION.time():
        await process_batch()

Metrics can be written to a text file after a run (run --metrics-file).
"""

from pathlib import Path

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

# Custom registry to avoid conflicts with default registry
REGISTRY = CollectorRegistry(auto_describe=True)

# =============================================================================
# COUNTERS
# =============================================================================

RECORDS_PROCESSED = Counter(
    name="catalog_migrator_records_processed_total",
    documentation="Total number of source records processed",
    labelnames=["status"],  # success, failed, skipped
    registry=REGISTRY,
)

REMOTE_REQUESTS = Counter(
    name="catalog_migrator_requests_total",
    documentation="Remote platform and source store requests by outcome",
    labelnames=["operation", "outcome"],  # outcome: success or error kind
    registry=REGISTRY,
)

RETRY_ATTEMPTS = Counter(
    name="catalog_migrator_retry_attempts_total",
    documentation="Retries scheduled after a retryable failure",
    labelnames=["operation"],
    registry=REGISTRY,
)

RATE_LIMITER_WAITS = Counter(
    name="catalog_migrator_rate_limiter_waits_total",
    documentation="Times a caller had to wait for the next rate limit window",
    labelnames=["limiter"],  # remote, store
    registry=REGISTRY,
)

VALIDATION_FAILURES = Counter(
    name="catalog_migrator_validation_failures_total",
    documentation="Validation issues by field",
    labelnames=["field"],
    registry=REGISTRY,
)

CHECKPOINT_SAVES = Counter(
    name="catalog_migrator_checkpoint_saves_total",
    documentation="Checkpoint save attempts",
    labelnames=["status"],  # success, failed
    registry=REGISTRY,
)

# =============================================================================
# GAUGES
# =============================================================================

RATE_LIMITER_MULTIPLIER = Gauge(
    name="catalog_migrator_rate_limiter_multiplier",
    documentation="Current adaptive multiplier of the rate limiter (0.1-1.0)",
    labelnames=["limiter"],
    registry=REGISTRY,
)

CIRCUIT_STATE = Gauge(
    name="catalog_migrator_circuit_state",
    documentation="Circuit breaker state (0=closed, 1=half_open, 2=open)",
    labelnames=["operation"],
    registry=REGISTRY,
)

ACTIVE_RECORDS = Gauge(
    name="catalog_migrator_active_records",
    documentation="Records currently being processed",
    registry=REGISTRY,
)

MIGRATION_PROGRESS = Gauge(
    name="catalog_migrator_progress_ratio",
    documentation="Processed records divided by total pending records",
    registry=REGISTRY,
)

# =============================================================================
# HISTOGRAMS
# =============================================================================

BATCH_DURATION = Histogram(
    name="catalog_migrator_batch_duration_seconds",
    documentation="Batch processing duration in seconds",
    buckets=(0.1, 0.5, 1, 2, 5, 10, 30, 60, 120, float("inf")),
    registry=REGISTRY,
)

RECORD_DURATION = Histogram(
    name="catalog_migrator_record_duration_seconds",
    documentation="Per-record processing duration in seconds",
    buckets=(0.05, 0.1, 0.25, 0.5, 1, 2, 5, 10, 30, float("inf")),
    registry=REGISTRY,
)


def get_metrics_text() -> bytes:
    """Generate Prometheus metrics in text format.

    Returns:
        UTF-8 encoded metrics in Prometheus exposition format.
    """
    return generate_latest(REGISTRY)


def write_metrics(path: Path) -> Path:
    """Write the current metrics to a file (node-exporter textfile format)."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(get_metrics_text())
    return path
