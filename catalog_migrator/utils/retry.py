"""Retry Handler

Wraps a single remote or store operation with bounded retries.

Features:
- Rate limiter consulted before every attempt
- Circuit breaker per operation class, checked before every attempt
- Exponential backoff with bounded jitter, capped at max_delay_seconds
- Mandatory minimum backoff (or retry-after) for throttling errors
- Non-retryable errors raised immediately, never retried
- Attempt accounting through a task-local RetryContext
"""

import asyncio
import random
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Awaitable, Callable, Generator, Optional, TypeVar

import structlog

from catalog_migrator.models.config import RetryConfig
from catalog_migrator.observability.metrics import REMOTE_REQUESTS, RETRY_ATTEMPTS
from catalog_migrator.utils.circuit_breaker import (
    CircuitBreakerRegistry,
    OperationContext,
)
from catalog_migrator.utils.exceptions import (
    MigrationError,
    RateLimitError,
    classify_error,
)
from catalog_migrator.utils.rate_limiter import RateLimiter

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class RetryContext:
    """Attempt accounting for one unit of work (usually one record).

    Activated per record; every RetryHandler call made inside the
    activation adds to the same counters.
    """

    def __init__(self) -> None:
        self.total_attempts: int = 0
        self.total_retries: int = 0
        self.total_delay_seconds: float = 0.0

    def record_attempt(self) -> None:
        self.total_attempts += 1

    def record_retry(self, delay: float) -> None:
        self.total_retries += 1
        self.total_delay_seconds += delay

    @staticmethod
    def current() -> Optional["RetryContext"]:
        return _current_retry_context.get()

    @staticmethod
    @contextmanager
    def activate() -> Generator["RetryContext", None, None]:
        """Scope a fresh RetryContext to the current task."""
        ctx = RetryContext()
        token = _current_retry_context.set(ctx)
        try:
            yield ctx
        finally:
            _current_retry_context.reset(token)


_current_retry_context: ContextVar[Optional[RetryContext]] = ContextVar(
    "retry_context", default=None
)


class RetryHandler:
    """Async retry handler with exponential backoff, jitter and circuit breaking.

    delay = min(max_delay, base * multiplier^attempt + jitter)
    where jitter is a random fraction (up to jitter_factor) of the
    computed exponential delay.
    """

    def __init__(
        self,
        config: RetryConfig,
        rate_limiter: RateLimiter,
        breakers: CircuitBreakerRegistry,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: Callable[[], float] = random.random,
    ) -> None:
        """Initialize retry handler.

        Args:
            config: Retry configuration
            rate_limiter: Limiter consulted before every attempt
            breakers: Shared circuit breaker registry
            sleep: Backoff sleep (injectable for tests)
            rng: Source of jitter in [0, 1)
        """
        self.config = config
        self.rate_limiter = rate_limiter
        self.breakers = breakers
        self._sleep = sleep
        self._random = rng

    def calculate_delay(
        self,
        attempt: int,
        error: Optional[MigrationError] = None,
        base_delay: Optional[float] = None,
    ) -> float:
        """Calculate delay before the next attempt.

        Args:
            attempt: Failed attempt number (0-indexed)
            error: Classified error of the failed attempt
            base_delay: Override for config.base_delay_seconds

        Returns:
            Delay in seconds to wait before next attempt
        """
        base = self.config.base_delay_seconds if base_delay is None else base_delay
        exponential = base * (self.config.backoff_multiplier**attempt)
        jitter = exponential * self.config.jitter_factor * self._random()
        delay = min(self.config.max_delay_seconds, exponential + jitter)

        if isinstance(error, RateLimitError):
            floor = self.config.rate_limit_min_delay_seconds
            if error.retry_after is not None and error.retry_after > floor:
                floor = error.retry_after
            delay = max(delay, floor)

        return delay

    async def execute_with_retry(
        self,
        op: Callable[[], Awaitable[T]],
        context: OperationContext,
        max_retries: Optional[int] = None,
        base_delay: Optional[float] = None,
    ) -> T:
        """Run op with retries.

        Args:
            op: Zero-argument coroutine function performing one attempt
            context: Operation class (selects the circuit breaker)
            max_retries: Override for config.max_retries
            base_delay: Override for config.base_delay_seconds

        Returns:
            Result of the first successful attempt

        Raises:
            CircuitOpenError: If the breaker for context is OPEN
            MigrationError: Non-retryable error, or the last error once
                retries are exhausted
        """
        retries = self.config.max_retries if max_retries is None else max_retries
        breaker = self.breakers.get(context)
        retry_ctx = RetryContext.current()
        last_error: Optional[MigrationError] = None

        for attempt in range(retries + 1):
            breaker.check_or_raise()
            await self.rate_limiter.acquire()
            if retry_ctx is not None:
                retry_ctx.record_attempt()

            try:
                result = await op()
            except asyncio.CancelledError:
                breaker.release_probe()
                raise
            except Exception as exc:
                error = classify_error(exc)
                self.rate_limiter.on_error(error)
                REMOTE_REQUESTS.labels(
                    operation=context.value, outcome=error.kind.value
                ).inc()

                if not error.retryable:
                    breaker.release_probe()
                    raise error

                breaker.record_failure()
                last_error = error

                if attempt >= retries:
                    break

                delay = self.calculate_delay(attempt, error, base_delay)
                logger.warning(
                    "retry_attempt",
                    operation=context.value,
                    attempt=attempt + 1,
                    max_retries=retries,
                    error_kind=error.kind.value,
                    error_message=str(error),
                    delay_seconds=round(delay, 3),
                )
                RETRY_ATTEMPTS.labels(operation=context.value).inc()
                if retry_ctx is not None:
                    retry_ctx.record_retry(delay)
                await self._sleep(delay)
                continue

            self.rate_limiter.on_success()
            breaker.record_success()
            REMOTE_REQUESTS.labels(operation=context.value, outcome="success").inc()
            return result

        if last_error is None:
            raise RuntimeError(f"No attempt made for {context.value}")
        logger.error(
            "retries_exhausted",
            operation=context.value,
            attempts=retries + 1,
            error_kind=last_error.kind.value,
            error_message=str(last_error),
        )
        raise last_error
