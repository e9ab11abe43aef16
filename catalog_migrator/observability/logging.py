"""Structured logging for migration runs.

Every entry carries the run's correlation id, and anything bound with
bind_context() (the engine binds run_id and dry_run for the duration of
a run). Credentials never reach the output: values under secret-looking
keys are masked before rendering.

Usage:
    from catalog_migrator.observability.logging import configure_logging
    import structlog

    configure_logging(level="INFO", json_output=True)

    logger = structlog.get_logger().bind(component="engine")
    logger.info("batch_completed", batch=3, succeeded=9)

    # {"event": "batch_completed", "batch": 3, "succeeded": 9,
    #  "correlation_id": "mig-4f1c...", "component": "engine", ...}
"""

import logging
import sys
from typing import Any, FrozenSet, Optional, TextIO

import structlog
from structlog.typing import EventDict, WrappedLogger

from catalog_migrator.observability.context import get_correlation_id

SECRET_KEYS: FrozenSet[str] = frozenset(
    {"api_key", "service_key", "authorization", "apikey", "password", "token"}
)
REDACTED = "***"


def add_correlation_id_processor(
    logger: WrappedLogger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Inject the current correlation id ("none" outside a run)."""
    corr_id = get_correlation_id()
    event_dict["correlation_id"] = corr_id if corr_id else "none"
    return event_dict


def redact_secrets_processor(
    logger: WrappedLogger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Mask credentials, including inside dict values such as headers."""
    for key, value in list(event_dict.items()):
        if key.lower() in SECRET_KEYS and value:
            event_dict[key] = REDACTED
        elif isinstance(value, dict):
            event_dict[key] = {
                k: REDACTED if str(k).lower() in SECRET_KEYS and v else v
                for k, v in value.items()
            }
    return event_dict


def configure_logging(
    level: str = "INFO",
    json_output: bool = True,
    add_timestamp: bool = True,
    stream: Optional[TextIO] = None,
) -> None:
    """Configure structlog for the process.

    Output goes to stderr unless a stream is given, so command output on
    stdout stays machine-readable.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_output: JSON lines when True, key=value console lines otherwise
        add_timestamp: Add a UTC ISO timestamp to every entry
        stream: Destination stream
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        add_correlation_id_processor,
        redact_secrets_processor,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    if add_timestamp:
        processors.append(structlog.processors.TimeStamper(fmt="iso", utc=True))
    processors.append(
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer(colors=False)
    )

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=stream or sys.stderr),
        cache_logger_on_first_use=False,
    )


def bind_context(**context: Any) -> None:
    structlog.contextvars.bind_contextvars(**context)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()
