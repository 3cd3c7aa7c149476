"""
Circuit breakers for outbound calls.

One breaker guards one remote target (the notifier keys them by company), so a
single failing orchestrator stops being called without affecting the others.
"""

import time
from enum import Enum
from typing import Any, Awaitable, Callable, Dict

from shared.logging import get_logger


class CircuitBreakerState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreakerOpenError(Exception):
    """Raised instead of calling a target whose breaker is open."""

    def __init__(self, name: str, retry_after: float):
        super().__init__(f"Circuit breaker '{name}' is open; retry in {retry_after:.1f}s")
        self.name = name
        self.retry_after = retry_after


class CircuitBreaker:
    """Opens after ``failure_threshold`` consecutive failures.

    After ``recovery_timeout`` seconds one probe call is let through
    (half-open). A successful probe closes the breaker, a failed one reopens it.
    """

    def __init__(self,
                 failure_threshold: int = 5,
                 recovery_timeout: float = 60.0,
                 name: str = "default"):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.name = name
        self.logger = get_logger(f"circuit_breaker.{name}")

        self._state = CircuitBreakerState.CLOSED
        self._failure_count = 0
        self._opened_at = 0.0

    @property
    def state(self) -> CircuitBreakerState:
        return self._state

    def is_open(self) -> bool:
        return self._state == CircuitBreakerState.OPEN

    def retry_after(self) -> float:
        """Seconds left before a probe is allowed; 0 unless open."""
        if self._state != CircuitBreakerState.OPEN:
            return 0.0
        return max(0.0, self.recovery_timeout - (time.monotonic() - self._opened_at))

    def _transition(self, state: CircuitBreakerState):
        if state != self._state:
            self.logger.info(
                "Circuit breaker state changed",
                previous=self._state.value,
                current=state.value,
                failure_count=self._failure_count
            )
            self._state = state

    def allow_request(self) -> bool:
        if self._state == CircuitBreakerState.OPEN and self.retry_after() == 0.0:
            self._transition(CircuitBreakerState.HALF_OPEN)
        return self._state != CircuitBreakerState.OPEN

    def record_success(self):
        self._failure_count = 0
        self._transition(CircuitBreakerState.CLOSED)

    def record_failure(self):
        self._failure_count += 1
        if self._state == CircuitBreakerState.HALF_OPEN or self._failure_count >= self.failure_threshold:
            self._opened_at = time.monotonic()
            if self._state != CircuitBreakerState.OPEN:
                self.logger.warning(
                    "Circuit breaker opened",
                    failure_count=self._failure_count,
                    threshold=self.failure_threshold
                )
            self._transition(CircuitBreakerState.OPEN)

    async def call(self, func: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
        """Await ``func`` unless the breaker is open; every exception counts as a failure."""
        if not self.allow_request():
            raise CircuitBreakerOpenError(self.name, self.retry_after())

        try:
            result = await func(*args, **kwargs)
        except Exception:
            self.record_failure()
            raise

        self.record_success()
        return result

    def get_state(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "state": self._state.value,
            "failure_count": self._failure_count,
            "failure_threshold": self.failure_threshold,
            "recovery_timeout": self.recovery_timeout,
            "retry_after": round(self.retry_after(), 3),
        }


class CircuitBreakerManager:
    """Lazily creates one breaker per name with shared thresholds."""

    def __init__(self, failure_threshold: int = 5, recovery_timeout: float = 60.0):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.circuit_breakers: Dict[str, CircuitBreaker] = {}

    def get_circuit_breaker(self, name: str) -> CircuitBreaker:
        breaker = self.circuit_breakers.get(name)
        if breaker is None:
            breaker = CircuitBreaker(
                failure_threshold=self.failure_threshold,
                recovery_timeout=self.recovery_timeout,
                name=name
            )
            self.circuit_breakers[name] = breaker
        return breaker

    def get_all_states(self) -> Dict[str, Dict[str, Any]]:
        return {name: breaker.get_state() for name, breaker in self.circuit_breakers.items()}
