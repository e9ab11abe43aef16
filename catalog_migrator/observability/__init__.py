"""Observability for migration runs.

Provides:
- Correlation ID context management (run id on every log line)
- Structured logging configuration
- Prometheus metrics for throughput, retries and circuit state
"""

from catalog_migrator.observability.context import (
    set_correlation_id,
    get_correlation_id,
    clear_correlation_id,
    correlation_id_context,
    new_run_id,
)
from catalog_migrator.observability.logging import (
    configure_logging,
    bind_context,
    clear_context,
)
from catalog_migrator.observability.metrics import (
    RECORDS_PROCESSED,
    REMOTE_REQUESTS,
    RETRY_ATTEMPTS,
    RATE_LIMITER_WAITS,
    VALIDATION_FAILURES,
    CHECKPOINT_SAVES,
    RATE_LIMITER_MULTIPLIER,
    CIRCUIT_STATE,
    ACTIVE_RECORDS,
    MIGRATION_PROGRESS,
    BATCH_DURATION,
    RECORD_DURATION,
    get_metrics_text,
    write_metrics,
)

__all__ = [
    # Context
    "set_correlation_id",
    "get_correlation_id",
    "clear_correlation_id",
    "correlation_id_context",
    "new_run_id",
    # Logging
    "configure_logging",
    "bind_context",
    "clear_context",
    # Metrics
    "RECORDS_PROCESSED",
    "REMOTE_REQUESTS",
    "RETRY_ATTEMPTS",
    "RATE_LIMITER_WAITS",
    "VALIDATION_FAILURES",
    "CHECKPOINT_SAVES",
    "RATE_LIMITER_MULTIPLIER",
    "CIRCUIT_STATE",
    "ACTIVE_RECORDS",
    "MIGRATION_PROGRESS",
    "BATCH_DURATION",
    "RECORD_DURATION",
    "get_metrics_text",
    "write_metrics",
]
