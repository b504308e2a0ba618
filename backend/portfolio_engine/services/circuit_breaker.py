# backend/portfolio_engine/services/circuit_breaker.py
"""
Circuit breaker guarding calls to the market data provider.

States:
    CLOSED    - Normal operation, calls pass through
    OPEN      - Too many consecutive failures, calls rejected immediately
    HALF_OPEN - Recovery timeout elapsed, a limited number of trial calls allowed

A success in HALF_OPEN closes the circuit; a failure reopens it.

Usage:
    breaker = CircuitBreaker(name="yahoo-finance", failure_threshold=5)

    with breaker:
        quote = fetch()
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

logger = logging.getLogger(__name__)


class CircuitState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreakerOpen(Exception):
    """
    Raised when the breaker is open and the call is rejected.

    Attributes:
        breaker_name: Name of the circuit breaker
        time_remaining: Seconds until a trial call is allowed
    """

    def __init__(self, breaker_name: str, time_remaining: float) -> None:
        self.breaker_name = breaker_name
        self.time_remaining = time_remaining
        super().__init__(
            f"Circuit breaker '{breaker_name}' is open. "
            f"Retry in {time_remaining:.1f} seconds."
        )


@dataclass
class CircuitBreaker:
    """
    Thread-safe circuit breaker.

    Attributes:
        name: Identifier used in logs and errors
        failure_threshold: Consecutive failures before opening
        recovery_timeout: Seconds to stay open before allowing trial calls
        half_open_max_calls: Trial calls allowed while half-open
        excluded_exceptions: Exceptions that say nothing about provider health
            (e.g. an unknown ticker) and are counted as successes
        clock: Monotonic time source, injectable for tests
    """

    name: str
    failure_threshold: int = 5
    recovery_timeout: float = 60.0
    half_open_max_calls: int = 3
    excluded_exceptions: tuple[type[Exception], ...] = field(default_factory=tuple)
    clock: Callable[[], float] = time.monotonic

    _state: CircuitState = field(default=CircuitState.CLOSED, init=False)
    _failure_count: int = field(default=0, init=False)
    _opened_at: float = field(default=0.0, init=False)
    _half_open_calls: int = field(default=0, init=False)
    _lock: threading.RLock = field(default_factory=threading.RLock, init=False)

    def __post_init__(self) -> None:
        if self.failure_threshold < 1:
            raise ValueError("failure_threshold must be at least 1")
        if self.recovery_timeout < 0:
            raise ValueError("recovery_timeout cannot be negative")
        if self.half_open_max_calls < 1:
            raise ValueError("half_open_max_calls must be at least 1")

    @property
    def state(self) -> CircuitState:
        with self._lock:
            self._check_recovery()
            return self._state

    @property
    def failure_count(self) -> int:
        with self._lock:
            return self._failure_count

    def _check_recovery(self) -> None:
        # Caller holds the lock
        if self._state == CircuitState.OPEN and self._time_until_recovery() <= 0:
            self._transition_to(CircuitState.HALF_OPEN)

    def _transition_to(self, new_state: CircuitState) -> None:
        old_state = self._state
        self._state = new_state

        if new_state == CircuitState.OPEN:
            self._opened_at = self.clock()
        elif new_state == CircuitState.HALF_OPEN:
            self._half_open_calls = 0
        else:
            self._failure_count = 0

        logger.info(
            f"CircuitBreaker '{self.name}' state change: "
            f"{old_state.value} -> {new_state.value}"
        )

    def _time_until_recovery(self) -> float:
        return max(0.0, self.recovery_timeout - (self.clock() - self._opened_at))

    def _record_success(self) -> None:
        if self._state == CircuitState.HALF_OPEN:
            self._transition_to(CircuitState.CLOSED)
        else:
            self._failure_count = 0

    def _record_failure(self) -> None:
        if self._state == CircuitState.HALF_OPEN:
            self._transition_to(CircuitState.OPEN)
            return

        self._failure_count += 1
        if self._state == CircuitState.CLOSED and self._failure_count >= self.failure_threshold:
            logger.warning(
                f"CircuitBreaker '{self.name}' opening after "
                f"{self._failure_count} consecutive failures"
            )
            self._transition_to(CircuitState.OPEN)

    def __enter__(self) -> "CircuitBreaker":
        with self._lock:
            self._check_recovery()

            if self._state == CircuitState.OPEN:
                raise CircuitBreakerOpen(self.name, self._time_until_recovery())

            if self._state == CircuitState.HALF_OPEN:
                if self._half_open_calls >= self.half_open_max_calls:
                    raise CircuitBreakerOpen(self.name, 0.0)
                self._half_open_calls += 1

        return self

    def __exit__(self, exc_type: type | None, exc_val: Exception | None, exc_tb: Any) -> bool:
        with self._lock:
            if exc_val is None or isinstance(exc_val, self.excluded_exceptions):
                self._record_success()
            else:
                self._record_failure()

        return False

    def reset(self) -> None:
        """Close the circuit and clear the failure count."""
        with self._lock:
            self._transition_to(CircuitState.CLOSED)
