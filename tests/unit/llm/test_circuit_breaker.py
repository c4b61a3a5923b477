#!/usr/bin/env python3
# tests/unit/llm/test_circuit_breaker.py
"""Unit tests for circuit breaker implementation."""

import pytest
import asyncio
from datetime import datetime, timezone
from adaptive_tools.core.utils.circuit_breaker import CircuitBreaker, CircuitState
from adaptive_tools.core.exceptions import CircuitBreakerOpenError
from tests.mocks.fakes import FakeClock


@pytest.fixture
def breaker_clock():
    return FakeClock(datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc))


async def _open(circuit, failures=5):
    for _ in range(failures):
        await circuit.record_failure()


class TestCircuitBreakerStates:
    """Test circuit breaker state transitions."""

    @pytest.mark.asyncio
    async def test_initial_state_is_closed(self):
        """Circuit breaker should start in CLOSED state."""
        circuit = CircuitBreaker(name="test", failure_threshold=5)
        assert circuit.state == CircuitState.CLOSED
        assert circuit.failure_count == 0

    @pytest.mark.asyncio
    async def test_closed_to_open_after_threshold(self):
        """Circuit should open after reaching failure threshold."""
        circuit = CircuitBreaker(name="test", failure_threshold=5)

        await _open(circuit)

        assert circuit.state == CircuitState.OPEN
        assert circuit.failure_count == 5

    @pytest.mark.asyncio
    async def test_open_to_half_open_after_timeout(self, breaker_clock):
        """Circuit should let a probe through once the recovery timeout elapsed."""
        circuit = CircuitBreaker(name="test", failure_threshold=5, recovery_timeout=60, clock=breaker_clock)
        await _open(circuit)

        breaker_clock.advance(seconds=61)

        async def dummy_func():
            return "success"

        result = await circuit.call(dummy_func)
        assert result == "success"
        assert circuit.state == CircuitState.CLOSED  # Success in HALF_OPEN closes circuit

    @pytest.mark.asyncio
    async def test_half_open_to_open_on_failure(self, breaker_clock):
        """Circuit should reopen when the probe fails."""
        circuit = CircuitBreaker(name="test", failure_threshold=5, recovery_timeout=60, clock=breaker_clock)
        await _open(circuit)
        breaker_clock.advance(seconds=61)

        async def failing_func():
            raise ValueError("still down")

        with pytest.raises(ValueError):
            await circuit.call(failing_func)

        assert circuit.state == CircuitState.OPEN


class TestCircuitBreakerFailureThreshold:
    """Test failure counting and threshold behavior."""

    @pytest.mark.asyncio
    async def test_success_resets_failure_count_in_closed(self):
        """Success should reset failure count in CLOSED state."""
        circuit = CircuitBreaker(name="test", failure_threshold=5)

        await circuit.record_failure()
        await circuit.record_failure()
        await circuit.record_success()

        assert circuit.failure_count == 0

    @pytest.mark.asyncio
    async def test_consecutive_failures_required(self):
        """Only consecutive failures should trigger circuit opening."""
        circuit = CircuitBreaker(name="test", failure_threshold=5)

        # 4 failures + 1 success = reset
        await _open(circuit, failures=4)
        await circuit.record_success()
        assert circuit.state == CircuitState.CLOSED

        await _open(circuit)
        assert circuit.state == CircuitState.OPEN


class TestCircuitBreakerRecoveryTimeout:
    """Test recovery timeout and retry timing."""

    @pytest.mark.asyncio
    async def test_circuit_blocks_before_timeout(self, breaker_clock):
        """Circuit should block calls before recovery timeout."""
        circuit = CircuitBreaker(name="test", failure_threshold=5, recovery_timeout=60, clock=breaker_clock)
        await _open(circuit)
        breaker_clock.advance(seconds=30)

        async def dummy_func():
            return "success"

        with pytest.raises(CircuitBreakerOpenError) as exc_info:
            await circuit.call(dummy_func)

        assert "temporarily unavailable" in str(exc_info.value).lower()
        assert exc_info.value.details == {"provider": "test"}
        assert circuit._seconds_until_retry() == 30


class TestCircuitBreakerCallMethod:
    """Test circuit breaker call wrapping."""

    @pytest.mark.asyncio
    async def test_failed_call_records_failure(self):
        """Failed calls should record failure and re-raise exception."""
        circuit = CircuitBreaker(name="test", failure_threshold=5)

        async def failing_func():
            raise ValueError("test error")

        with pytest.raises(ValueError, match="test error"):
            await circuit.call(failing_func)

        assert circuit.failure_count == 1

    @pytest.mark.asyncio
    async def test_call_with_arguments(self):
        """Circuit should pass arguments to wrapped function."""
        circuit = CircuitBreaker(name="test", failure_threshold=5)

        async def func_with_args(a, b, c=None):
            return f"{a}-{b}-{c}"

        result = await circuit.call(func_with_args, "x", "y", c="z")
        assert result == "x-y-z"


class TestCircuitBreakerConcurrency:

    @pytest.mark.asyncio
    async def test_concurrent_calls_when_open(self):
        """All concurrent calls should fail fast when circuit is OPEN."""
        circuit = CircuitBreaker(name="test", failure_threshold=5, recovery_timeout=60)
        await _open(circuit)

        async def dummy_func():
            return "success"

        results = await asyncio.gather(*[circuit.call(dummy_func) for _ in range(10)], return_exceptions=True)

        assert all(isinstance(result, CircuitBreakerOpenError) for result in results)


class TestCircuitBreakerGetState:

    @pytest.mark.asyncio
    async def test_get_state_open(self, breaker_clock):
        circuit = CircuitBreaker(name="openai", failure_threshold=2, recovery_timeout=60, clock=breaker_clock)
        await _open(circuit, failures=2)

        state = circuit.get_state()

        assert state["name"] == "openai"
        assert state["state"] == "open"
        assert state["failure_count"] == 2
        assert state["seconds_until_retry"] == 60
        assert state["last_failure_time"] == breaker_clock.current.isoformat()

    def test_get_state_closed(self):
        state = CircuitBreaker(name="anthropic").get_state()

        assert state["state"] == "closed"
        assert state["seconds_until_retry"] is None
