import asyncio
import time
from typing import Callable, Dict, Optional

import structlog

from catalog_migrator.models.config import RateLimitConfig
from catalog_migrator.observability.metrics import (
    RATE_LIMITER_MULTIPLIER,
    RATE_LIMITER_WAITS,
)
from catalog_migrator.utils.exceptions import RateLimitError

logger = structlog.get_logger()


class RateLimiter:
    """Windowed token bucket with an adaptive multiplier.

    The bucket is topped up to capacity once per window rather than
    drip-fed. Each acquire() consumes 1/multiplier tokens, so a lowered
    multiplier (after errors) lets fewer calls through per window.
    Waiters hold the internal lock while sleeping, which keeps the
    bucket consistent across concurrent record pipelines and serves
    callers in arrival order.
    """

    def __init__(
        self,
        config: Optional[RateLimitConfig] = None,
        name: str = "remote",
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or RateLimitConfig()
        self.name = name
        self.capacity = self.config.requests_per_window
        self.window_seconds = self.config.window_seconds
        self._clock = clock
        self._tokens = float(self.capacity)
        self._window_start = clock()
        self._multiplier = 1.0
        self._lock = asyncio.Lock()

        self.total_acquired = 0
        self.wait_cycles = 0
        self.total_wait_seconds = 0.0
        self.success_count = 0
        self.error_count = 0

        RATE_LIMITER_MULTIPLIER.labels(limiter=name).set(self._multiplier)

    @property
    def multiplier(self) -> float:
        return self._multiplier

    @property
    def token_cost(self) -> float:
        """Tokens consumed by one acquire at the current multiplier"""
        return min(1.0 / self._multiplier, float(self.capacity))

    async def acquire(self) -> None:
        """Wait until a send slot is available in the current window"""
        async with self._lock:
            while True:
                now = self._clock()
                elapsed = now - self._window_start
                if elapsed >= self.window_seconds:
                    self._tokens = float(self.capacity)
                    self._window_start = now
                    elapsed = 0.0

                cost = self.token_cost
                if self._tokens + 1e-9 >= cost:
                    self._tokens = max(0.0, self._tokens - cost)
                    self.total_acquired += 1
                    return

                wait_time = self.window_seconds - elapsed
                self.wait_cycles += 1
                self.total_wait_seconds += wait_time
                RATE_LIMITER_WAITS.labels(limiter=self.name).inc()
                logger.debug(
                    "rate_limit_wait",
                    limiter=self.name,
                    wait_seconds=round(wait_time, 3),
                    tokens=round(self._tokens, 2),
                    multiplier=round(self._multiplier, 3),
                )
                await asyncio.sleep(wait_time)

    def on_success(self) -> None:
        """Relax the multiplier back toward 1.0"""
        self.success_count += 1
        if self._multiplier < 1.0:
            self._set_multiplier(self._multiplier * self.config.growth_factor)

    def on_error(self, error: BaseException) -> None:
        """Tighten the multiplier; throttling responses tighten it harder"""
        self.error_count += 1
        if isinstance(error, RateLimitError):
            factor = self.config.rate_limit_decay_factor
        else:
            factor = self.config.decay_factor
        previous = self._multiplier
        self._set_multiplier(self._multiplier * factor)
        if self._multiplier < previous:
            logger.info(
                "rate_limit_tightened",
                limiter=self.name,
                multiplier=round(self._multiplier, 3),
                error_type=type(error).__name__,
            )

    def _set_multiplier(self, value: float) -> None:
        self._multiplier = max(self.config.min_multiplier, min(1.0, value))
        RATE_LIMITER_MULTIPLIER.labels(limiter=self.name).set(self._multiplier)

    def get_stats(self) -> Dict:
        return {
            "name": self.name,
            "capacity": self.capacity,
            "window_seconds": self.window_seconds,
            "available_tokens": round(self._tokens, 3),
            "multiplier": round(self._multiplier, 3),
            "total_acquired": self.total_acquired,
            "wait_cycles": self.wait_cycles,
            "total_wait_seconds": round(self.total_wait_seconds, 3),
            "success_count": self.success_count,
            "error_count": self.error_count,
        }
