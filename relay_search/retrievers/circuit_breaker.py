"""Circuit breaker guarding calls to the semantic search source."""

import asyncio
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

import structlog

logger = structlog.get_logger("circuit_breaker")


class CircuitBreakerState(Enum):
    CLOSED = "closed"        # Normal operation
    OPEN = "open"            # Failing, reject calls
    HALF_OPEN = "half_open"  # Probing whether the source recovered


class CircuitBreakerError(Exception):
    """Circuit breaker is open."""
    pass


class CircuitBreaker:
    """Opens after ``failure_threshold`` consecutive failures.

    While open every call is rejected with ``CircuitBreakerError`` until
    ``recovery_timeout`` seconds have passed; the next call is then let
    through as a trial call.
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        recovery_timeout: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.clock = clock

        self.failure_count = 0
        self.last_failure_time: Optional[float] = None
        self.state = CircuitBreakerState.CLOSED
        self._lock = asyncio.Lock()

    async def call(self, func: Callable[[], Awaitable[Any]]) -> Any:
        """Await ``func()`` under breaker protection."""
        async with self._lock:
            if self.state is CircuitBreakerState.OPEN:
                if self._should_attempt_reset():
                    self.state = CircuitBreakerState.HALF_OPEN
                    logger.info("Circuit breaker transitioning to HALF_OPEN", name=self.name)
                else:
                    raise CircuitBreakerError(f"Circuit breaker {self.name} is open")

        try:
            result = await func()
        except Exception:
            await self._on_failure()
            raise

        await self._on_success()
        return result

    def _should_attempt_reset(self) -> bool:
        if self.last_failure_time is None:
            return True
        return (self.clock() - self.last_failure_time) >= self.recovery_timeout

    async def _on_success(self) -> None:
        async with self._lock:
            if self.state is CircuitBreakerState.HALF_OPEN:
                logger.info("Circuit breaker reset to CLOSED", name=self.name)
            self.state = CircuitBreakerState.CLOSED
            self.failure_count = 0

    async def _on_failure(self) -> None:
        async with self._lock:
            self.failure_count += 1
            self.last_failure_time = self.clock()

            if self.state is CircuitBreakerState.HALF_OPEN or self.failure_count >= self.failure_threshold:
                self.state = CircuitBreakerState.OPEN
                logger.warning(
                    "Circuit breaker opened due to failures",
                    name=self.name,
                    failure_count=self.failure_count,
                    threshold=self.failure_threshold
                )

    def get_stats(self) -> dict:
        return {
            "name": self.name,
            "state": self.state.value,
            "failure_count": self.failure_count,
            "failure_threshold": self.failure_threshold,
            "last_failure_time": self.last_failure_time,
            "recovery_timeout": self.recovery_timeout
        }
