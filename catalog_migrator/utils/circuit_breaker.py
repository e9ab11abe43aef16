"""Circuit breaker per remote/store operation class.

States:
- CLOSED: Normal operation, requests allowed
- OPEN: After failure threshold, requests blocked
- HALF_OPEN: After cooldown, a single probe request is allowed

State Transitions:
- CLOSED → OPEN: After failure_threshold consecutive failures
- OPEN → HALF_OPEN: After cooldown_seconds
- HALF_OPEN → CLOSED: After success_threshold consecutive successful probes
- HALF_OPEN → OPEN: On any failure
"""

import threading
import time
from enum import Enum
from typing import Callable, Dict, Optional

import structlog

from catalog_migrator.models.config import CircuitBreakerConfig
from catalog_migrator.observability.metrics import CIRCUIT_STATE
from catalog_migrator.utils.exceptions import CircuitOpenError

logger = structlog.get_logger()


class OperationContext(str, Enum):
    """Operation classes tracked by separate breakers."""

    FIND_PRODUCT_BY_METADATA = "find_product_by_metadata"
    FIND_PRODUCT_BY_NAME = "find_product_by_name"
    CREATE_PRODUCT = "create_product"
    UPDATE_PRODUCT = "update_product"
    RETRIEVE_PRODUCT = "retrieve_product"
    FIND_PRICE = "find_price"
    CREATE_PRICE = "create_price"
    STORE_COUNT = "store_count"
    STORE_FETCH_BATCH = "store_fetch_batch"
    STORE_WRITE_RESULT = "store_write_result"
    STORE_MARK_FAILED = "store_mark_failed"


class CircuitState(Enum):
    """Circuit breaker states."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


_STATE_GAUGE_VALUES = {
    CircuitState.CLOSED: 0,
    CircuitState.HALF_OPEN: 1,
    CircuitState.OPEN: 2,
}


class CircuitBreaker:
    """Thread-safe circuit breaker for one operation class.

    Tracks consecutive failures to decide when to open the circuit.
    Automatically transitions from OPEN to HALF_OPEN after the cooldown
    and then lets exactly one probe through at a time.
    """

    def __init__(
        self,
        context: OperationContext,
        config: CircuitBreakerConfig,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize circuit breaker.

        Args:
            context: Operation class guarded by this breaker
            config: Circuit breaker configuration
            clock: Monotonic time source (injectable for tests)
        """
        self.context = context
        self.config = config
        self._clock = clock

        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0
        self._consecutive_successes = 0
        self._total_successes = 0
        self._total_failures = 0
        self._opened_at: Optional[float] = None
        self._probe_in_flight = False
        self._lock = threading.RLock()
        self._publish_state()

    @property
    def name(self) -> str:
        return self.context.value

    @property
    def state(self) -> CircuitState:
        """Current state, auto-transitioning OPEN to HALF_OPEN after cooldown."""
        with self._lock:
            if self._state == CircuitState.OPEN and self._cooldown_elapsed():
                self._transition(CircuitState.HALF_OPEN)
                self._consecutive_successes = 0
                self._probe_in_flight = False
            return self._state

    @property
    def consecutive_failures(self) -> int:
        with self._lock:
            return self._consecutive_failures

    def _cooldown_elapsed(self) -> bool:
        if self._opened_at is None:
            return True
        return self._clock() - self._opened_at >= self.config.cooldown_seconds

    def cooldown_remaining(self) -> float:
        with self._lock:
            if self._state != CircuitState.OPEN or self._opened_at is None:
                return 0.0
            elapsed = self._clock() - self._opened_at
            return max(0.0, self.config.cooldown_seconds - elapsed)

    def _transition(self, new_state: CircuitState) -> None:
        if new_state == self._state:
            return
        old_state = self._state
        self._state = new_state
        if new_state == CircuitState.OPEN:
            self._opened_at = self._clock()
        self._publish_state()
        log = logger.warning if new_state == CircuitState.OPEN else logger.info
        log(
            "circuit_state_changed",
            operation=self.name,
            from_state=old_state.value,
            to_state=new_state.value,
            consecutive_failures=self._consecutive_failures,
        )

    def _publish_state(self) -> None:
        CIRCUIT_STATE.labels(operation=self.name).set(_STATE_GAUGE_VALUES[self._state])

    def is_open(self) -> bool:
        """True while requests of this class must be short-circuited"""
        return self.config.enabled and self.state == CircuitState.OPEN

    def record_success(self) -> None:
        """Record a successful request."""
        with self._lock:
            self._total_successes += 1
            self._consecutive_successes += 1
            self._consecutive_failures = 0
            self._probe_in_flight = False

            if self._state == CircuitState.HALF_OPEN:
                if self._consecutive_successes >= self.config.success_threshold:
                    self._transition(CircuitState.CLOSED)

    def record_failure(self) -> None:
        """Record a failed request."""
        with self._lock:
            self._total_failures += 1
            self._consecutive_failures += 1
            self._consecutive_successes = 0
            self._probe_in_flight = False

            if self._state == CircuitState.HALF_OPEN:
                # Failed probe: back to OPEN with a fresh cooldown
                self._transition(CircuitState.OPEN)
            elif self._state == CircuitState.CLOSED:
                if self._consecutive_failures >= self.config.failure_threshold:
                    self._transition(CircuitState.OPEN)

    def release_probe(self) -> None:
        """Free the half-open slot when an attempt ends without a verdict."""
        with self._lock:
            self._probe_in_flight = False

    def allow_request(self) -> bool:
        """Check if a request should be allowed.

        In HALF_OPEN only one probe is admitted until it reports back.

        Returns:
            True if request should proceed, False if blocked
        """
        if not self.config.enabled:
            return True
        with self._lock:
            current_state = self.state
            if current_state == CircuitState.OPEN:
                return False
            if current_state == CircuitState.HALF_OPEN:
                if self._probe_in_flight:
                    return False
                self._probe_in_flight = True
            return True

    def check_or_raise(self) -> None:
        """Admit a request or raise.

        Raises:
            CircuitOpenError: If the circuit does not admit the request
        """
        if not self.allow_request():
            raise CircuitOpenError(self.name, self.cooldown_remaining())

    def get_stats(self) -> Dict:
        with self._lock:
            return {
                "name": self.name,
                "state": self.state.value,
                "consecutive_failures": self._consecutive_failures,
                "consecutive_successes": self._consecutive_successes,
                "total_successes": self._total_successes,
                "total_failures": self._total_failures,
                "cooldown_remaining": self.cooldown_remaining(),
            }


class CircuitBreakerRegistry:
    """Breakers keyed by operation class.

    One registry is created per run and injected into the retry handlers
    that share it; there is no process-wide instance.
    """

    def __init__(
        self,
        config: Optional[CircuitBreakerConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config or CircuitBreakerConfig()
        self._clock = clock
        self._breakers: Dict[OperationContext, CircuitBreaker] = {}
        self._lock = threading.RLock()

    def get(self, context: OperationContext) -> CircuitBreaker:
        """Get the breaker for an operation class, creating it on first use"""
        with self._lock:
            if context not in self._breakers:
                self._breakers[context] = CircuitBreaker(
                    context, self.config, clock=self._clock
                )
            return self._breakers[context]

    def open_contexts(self) -> list:
        with self._lock:
            breakers = list(self._breakers.values())
        return [b.context for b in breakers if b.is_open()]

    def get_all_stats(self) -> Dict[str, Dict]:
        with self._lock:
            return {ctx.value: cb.get_stats() for ctx, cb in self._breakers.items()}

