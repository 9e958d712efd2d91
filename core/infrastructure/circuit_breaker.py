"""
Circuit breaker for calls to external services.

CLOSED counts consecutive failures and opens at the threshold. OPEN
rejects calls without running them until the reset timeout elapses,
then lets trial calls through in HALF_OPEN. A failed trial reopens the
circuit; enough successful trials close it.
"""
import logging
import threading
import time
from enum import Enum
from typing import Awaitable, Callable, Optional, TypeVar

from core.domain.exceptions import CircuitOpenError
from core.metrics import circuit_breaker_state

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CircuitState(Enum):
    """Circuit breaker states."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"

    def __str__(self) -> str:
        return self.value


_GAUGE_VALUES = {
    CircuitState.CLOSED: 0,
    CircuitState.HALF_OPEN: 1,
    CircuitState.OPEN: 2,
}


class CircuitBreaker:
    """Consecutive-failure circuit breaker."""

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        reset_timeout: float = 60.0,
        success_threshold: int = 1,
        clock: Callable[[], float] = time.monotonic,
    ):
        if failure_threshold < 1:
            raise ValueError("failure_threshold must be at least 1")
        if success_threshold < 1:
            raise ValueError("success_threshold must be at least 1")
        self.name = name
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self.success_threshold = success_threshold
        self._clock = clock
        self._lock = threading.Lock()
        self._state = CircuitState.CLOSED
        self._failures = 0
        self._successes = 0
        self._opened_at: Optional[float] = None
        self._export()

    @property
    def state(self) -> CircuitState:
        """Current state, moving OPEN to HALF_OPEN once the cool-down elapsed."""
        with self._lock:
            self._maybe_half_open()
            return self._state

    @property
    def consecutive_failures(self) -> int:
        return self._failures

    async def call(self, operation: Callable[[], Awaitable[T]]) -> T:
        """
        Run an async operation through the breaker.

        Args:
            operation: Zero-argument coroutine factory

        Returns:
            The operation's result

        Raises:
            CircuitOpenError: If the circuit is open; the operation is not run
        """
        with self._lock:
            self._maybe_half_open()
            if self._state is CircuitState.OPEN:
                raise CircuitOpenError(self.name)

        try:
            result = await operation()
        except Exception:
            self._record_failure()
            raise
        self._record_success()
        return result

    def reset(self) -> None:
        """Force the circuit closed."""
        with self._lock:
            self._transition(CircuitState.CLOSED)

    def _maybe_half_open(self) -> None:
        if (
            self._state is CircuitState.OPEN
            and self._opened_at is not None
            and self._clock() - self._opened_at >= self.reset_timeout
        ):
            self._transition(CircuitState.HALF_OPEN)

    def _record_success(self) -> None:
        with self._lock:
            if self._state is CircuitState.HALF_OPEN:
                self._successes += 1
                if self._successes >= self.success_threshold:
                    self._transition(CircuitState.CLOSED)
            else:
                self._failures = 0

    def _record_failure(self) -> None:
        with self._lock:
            if self._state is CircuitState.HALF_OPEN:
                self._transition(CircuitState.OPEN)
                return
            self._failures += 1
            if self._failures >= self.failure_threshold:
                self._transition(CircuitState.OPEN)

    def _transition(self, new_state: CircuitState) -> None:
        if new_state is self._state and new_state is not CircuitState.CLOSED:
            return
        previous = self._state
        self._state = new_state
        self._successes = 0
        if new_state is CircuitState.OPEN:
            self._opened_at = self._clock()
        elif new_state is CircuitState.CLOSED:
            self._failures = 0
            self._opened_at = None
        if previous is not new_state:
            log = logger.warning if new_state is CircuitState.OPEN else logger.info
            log(
                "Circuit breaker %s: %s -> %s (failures=%d)",
                self.name,
                previous,
                new_state,
                self._failures,
            )
        self._export()

    def _export(self) -> None:
        circuit_breaker_state.labels(name=self.name).set(_GAUGE_VALUES[self._state])
