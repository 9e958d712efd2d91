"""
Unit tests for the circuit breaker.
"""

import pytest

from core.domain.exceptions import CircuitOpenError, ExternalServiceError
from core.infrastructure.circuit_breaker import CircuitBreaker, CircuitState


class ManualClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class CountingOperation:
    """Async operation that fails while ``failing`` is set."""

    def __init__(self, failing: bool = True):
        self.failing = failing
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.failing:
            raise ExternalServiceError("boom", retryable=True)
        return "ok"


@pytest.fixture
def manual_clock():
    return ManualClock()


@pytest.fixture
def breaker(manual_clock):
    return CircuitBreaker("test-api", failure_threshold=5, reset_timeout=60, clock=manual_clock)


async def trip(breaker, operation, times=5):
    for _ in range(times):
        with pytest.raises(ExternalServiceError):
            await breaker.call(operation)


class TestCircuitBreaker:
    """Tests for CircuitBreaker state transitions."""

    @pytest.mark.asyncio
    async def test_opens_after_threshold(self, breaker):
        """Test five consecutive failures open the circuit."""
        operation = CountingOperation()
        await trip(breaker, operation, times=4)
        assert breaker.state is CircuitState.CLOSED

        await trip(breaker, operation, times=1)
        assert breaker.state is CircuitState.OPEN

    @pytest.mark.asyncio
    async def test_open_circuit_fails_fast(self, breaker):
        """Test an open circuit rejects calls without running them."""
        operation = CountingOperation()
        await trip(breaker, operation)

        with pytest.raises(CircuitOpenError) as exc_info:
            await breaker.call(operation)

        assert operation.calls == 5
        assert exc_info.value.code == "CIRCUIT_OPEN"

    @pytest.mark.asyncio
    async def test_success_resets_failure_count(self, breaker):
        """Test failures must be consecutive."""
        operation = CountingOperation()
        await trip(breaker, operation, times=4)
        operation.failing = False
        await breaker.call(operation)
        operation.failing = True
        await trip(breaker, operation, times=4)

        assert breaker.state is CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_half_open_trial_closes(self, breaker, manual_clock):
        """Test a successful trial after the timeout closes the circuit."""
        operation = CountingOperation()
        await trip(breaker, operation)

        manual_clock.now += 60
        assert breaker.state is CircuitState.HALF_OPEN

        operation.failing = False
        assert await breaker.call(operation) == "ok"
        assert breaker.state is CircuitState.CLOSED
        assert breaker.consecutive_failures == 0

    @pytest.mark.asyncio
    async def test_half_open_failure_reopens(self, breaker, manual_clock):
        """Test a failed trial reopens the circuit for another timeout."""
        operation = CountingOperation()
        await trip(breaker, operation)
        manual_clock.now += 61

        with pytest.raises(ExternalServiceError):
            await breaker.call(operation)

        assert breaker.state is CircuitState.OPEN
        manual_clock.now += 30
        with pytest.raises(CircuitOpenError):
            await breaker.call(operation)

    @pytest.mark.asyncio
    async def test_reset(self, breaker):
        """Test reset closes an open circuit."""
        await trip(breaker, CountingOperation())
        breaker.reset()
        assert breaker.state is CircuitState.CLOSED

    def test_invalid_threshold(self):
        """Test thresholds must be positive."""
        with pytest.raises(ValueError):
            CircuitBreaker("bad", failure_threshold=0)
