# adaptive_tools/core/utils/circuit_breaker.py
"""Circuit breaker guarding LLM provider calls made by the classifier, inferencer and conversation loop."""

from enum import Enum
from datetime import datetime, timezone
import asyncio
from typing import Callable, Any, Optional
from adaptive_tools.config.logger import logger
from adaptive_tools.core.exceptions import CircuitBreakerOpenError


class CircuitState(Enum):
    """Circuit breaker states."""
    CLOSED = "closed"          # Normal operation
    OPEN = "open"              # Failures detected, blocking calls
    HALF_OPEN = "half_open"    # Testing recovery


class CircuitBreaker:
    """
    Fail-fast wrapper around one LLM provider.

    While OPEN, calls raise CircuitBreakerOpenError immediately. The classifier
    and inferencer treat that like any other LLM failure and fall back to their
    safe defaults, so an outage of the provider never stalls tool retries.

    Example:
        circuit = CircuitBreaker(name="openai", failure_threshold=5)
        text = await circuit.call(adapter.complete, messages, model="gpt-4o-mini")
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        recovery_timeout: int = 60,
        success_threshold: int = 1,
        clock: Optional[Callable[[], datetime]] = None
    ):
        """
        Args:
            name: Provider name ("openai", "anthropic")
            failure_threshold: Consecutive failures before opening the circuit
            recovery_timeout: Seconds to wait before trying HALF_OPEN
            success_threshold: Successful HALF_OPEN calls needed to close again
            clock: Returns the current UTC time (injectable for tests)
        """
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.success_threshold = success_threshold
        self._clock = clock or (lambda: datetime.now(timezone.utc))

        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.success_count = 0
        self.last_failure_time: Optional[datetime] = None
        self._lock = asyncio.Lock()

    async def call(self, func: Callable, *args, **kwargs) -> Any:
        """
        Execute `func` unless the circuit is open.

        Raises:
            CircuitBreakerOpenError: If OPEN and the recovery timeout has not elapsed
        """
        await self.before_call()

        try:
            result = await func(*args, **kwargs)
        except Exception:
            await self.record_failure()
            raise
        await self.record_success()
        return result

    async def before_call(self):
        """Move OPEN → HALF_OPEN when allowed, otherwise fail fast."""
        async with self._lock:
            if self.state != CircuitState.OPEN:
                return
            if self._should_attempt_reset():
                self.state = CircuitState.HALF_OPEN
                self.success_count = 0
                logger.info(f"Circuit breaker {self.name}: OPEN → HALF_OPEN")
                return
            raise CircuitBreakerOpenError(
                f"Provider {self.name} is temporarily unavailable. Retry in {self._seconds_until_retry()}s.",
                details={"provider": self.name}
            )

    async def record_success(self):
        async with self._lock:
            if self.state == CircuitState.HALF_OPEN:
                self.success_count += 1
                if self.success_count >= self.success_threshold:
                    self.state = CircuitState.CLOSED
                    self.failure_count = 0
                    logger.info(f"Circuit breaker {self.name}: HALF_OPEN → CLOSED")
            elif self.state == CircuitState.CLOSED:
                self.failure_count = 0

    async def record_failure(self):
        async with self._lock:
            self.failure_count += 1
            self.last_failure_time = self._clock()

            if self.state == CircuitState.HALF_OPEN:
                self.state = CircuitState.OPEN
                logger.warning(f"Circuit breaker {self.name}: HALF_OPEN → OPEN (recovery failed)")
            elif self.state == CircuitState.CLOSED and self.failure_count >= self.failure_threshold:
                self.state = CircuitState.OPEN
                logger.error(f"Circuit breaker {self.name}: CLOSED → OPEN ({self.failure_count} failures)")

    def _elapsed(self) -> float:
        return (self._clock() - self.last_failure_time).total_seconds()

    def _should_attempt_reset(self) -> bool:
        if not self.last_failure_time:
            return True
        return self._elapsed() >= self.recovery_timeout

    def _seconds_until_retry(self) -> int:
        if not self.last_failure_time:
            return 0
        return max(0, int(self.recovery_timeout - self._elapsed()))

    def get_state(self) -> dict:
        """Snapshot used by the health endpoint."""
        return {
            "name": self.name,
            "state": self.state.value,
            "failure_count": self.failure_count,
            "last_failure_time": self.last_failure_time.isoformat() if self.last_failure_time else None,
            "seconds_until_retry": self._seconds_until_retry() if self.state == CircuitState.OPEN else None
        }
