"""Correlation ID context management.

A migration run sets its run id as the correlation id so that every log
line it emits, including those from concurrent record pipelines, can be
grouped together. ContextVar values are copied into asyncio tasks, so
the id propagates to every record pipeline automatically.
"""

import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Generator, Optional

_correlation_id_var: ContextVar[Optional[str]] = ContextVar(
    "correlation_id", default=None
)


def set_correlation_id(corr_id: Optional[str] = None) -> str:
    """Set the correlation ID for the current context.

    Args:
        corr_id: Optional correlation ID. If None, generates UUID.

    Returns:
        The correlation ID that was set.
    """
    if corr_id is None:
        corr_id = str(uuid.uuid4())

    _correlation_id_var.set(corr_id)
    return corr_id


def get_correlation_id() -> Optional[str]:
    return _correlation_id_var.get()


def clear_correlation_id() -> None:
    _correlation_id_var.set(None)


@contextmanager
def correlation_id_context(
    corr_id: Optional[str] = None,
) -> Generator[str, None, None]:
    """Scope a correlation ID, restoring the previous one on exit.

    Example:
        with correlation_id_context(run_id):
            asyncio.run(engine.run())
    """
    if corr_id is None:
        corr_id = str(uuid.uuid4())

    token = _correlation_id_var.set(corr_id)
    try:
        yield corr_id
    finally:
        _correlation_id_var.reset(token)


def new_run_id() -> str:
    """Short, sortable-enough identifier for a migration run"""
    return f"mig-{uuid.uuid4().hex[:12]}"
