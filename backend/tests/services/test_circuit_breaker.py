# backend/tests/services/test_circuit_breaker.py
"""
Tests for the circuit breaker implementation.
"""

import pytest

from portfolio_engine.services.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerOpen,
    CircuitState,
)


class FakeMonotonic:
    def __init__(self):
        self.value = 1000.0

    def __call__(self) -> float:
        return self.value

    def advance(self, seconds: float) -> None:
        self.value += seconds


def _fail(breaker: CircuitBreaker, times: int = 1) -> None:
    for i in range(times):
        with pytest.raises(ValueError):
            with breaker:
                raise ValueError(f"Failure {i}")


class TestCircuitBreakerInit:
    """Tests for circuit breaker initialization."""

    def test_default_values(self):
        """Should initialize with default values."""
        breaker = CircuitBreaker(name="test")

        assert breaker.name == "test"
        assert breaker.failure_threshold == 5
        assert breaker.recovery_timeout == 60.0
        assert breaker.half_open_max_calls == 3
        assert breaker.state == CircuitState.CLOSED
        assert breaker.failure_count == 0

    def test_invalid_failure_threshold(self):
        """Should reject invalid failure threshold."""
        with pytest.raises(ValueError, match="failure_threshold must be at least 1"):
            CircuitBreaker(name="test", failure_threshold=0)

    def test_invalid_recovery_timeout(self):
        """Should reject negative recovery timeout."""
        with pytest.raises(ValueError, match="recovery_timeout cannot be negative"):
            CircuitBreaker(name="test", recovery_timeout=-1)

    def test_invalid_half_open_max_calls(self):
        """Should reject invalid half_open_max_calls."""
        with pytest.raises(ValueError, match="half_open_max_calls must be at least 1"):
            CircuitBreaker(name="test", half_open_max_calls=0)


class TestCircuitBreakerClosedState:
    """Tests for circuit breaker in closed state."""

    def test_allows_calls_when_closed(self):
        """Should allow calls when circuit is closed."""
        breaker = CircuitBreaker(name="test", failure_threshold=3)
        call_count = 0

        for _ in range(10):
            with breaker:
                call_count += 1

        assert call_count == 10
        assert breaker.state == CircuitState.CLOSED

    def test_opens_after_threshold_failures(self):
        """Should open after failure threshold is reached."""
        breaker = CircuitBreaker(name="test", failure_threshold=3)

        _fail(breaker, 3)

        assert breaker.state == CircuitState.OPEN

    def test_success_resets_failure_count(self):
        """Failures must be consecutive to open the circuit."""
        breaker = CircuitBreaker(name="test", failure_threshold=3)

        _fail(breaker, 2)
        with breaker:
            pass
        _fail(breaker, 2)

        assert breaker.state == CircuitState.CLOSED
        assert breaker.failure_count == 2

    def test_excluded_exceptions_dont_trip_circuit(self):
        """Excluded exceptions should not count as failures."""
        breaker = CircuitBreaker(
            name="test",
            failure_threshold=2,
            excluded_exceptions=(KeyError,),
        )

        for _ in range(5):
            with pytest.raises(KeyError):
                with breaker:
                    raise KeyError("unknown ticker")

        assert breaker.state == CircuitState.CLOSED
        assert breaker.failure_count == 0

    def test_exceptions_propagate(self):
        """The breaker never swallows the wrapped exception."""
        breaker = CircuitBreaker(name="test")

        with pytest.raises(RuntimeError, match="boom"):
            with breaker:
                raise RuntimeError("boom")


class TestCircuitBreakerOpenState:
    """Tests for circuit breaker in open state."""

    def test_rejects_calls_when_open(self):
        """Should raise CircuitBreakerOpen without running the block."""
        clock = FakeMonotonic()
        breaker = CircuitBreaker(name="yahoo", failure_threshold=1, recovery_timeout=30.0, clock=clock)
        _fail(breaker)

        ran = False
        with pytest.raises(CircuitBreakerOpen) as exc_info:
            with breaker:
                ran = True

        assert not ran
        assert exc_info.value.breaker_name == "yahoo"
        assert exc_info.value.time_remaining == pytest.approx(30.0)

    def test_time_remaining_decreases(self):
        clock = FakeMonotonic()
        breaker = CircuitBreaker(name="test", failure_threshold=1, recovery_timeout=30.0, clock=clock)
        _fail(breaker)
        clock.advance(10)

        with pytest.raises(CircuitBreakerOpen) as exc_info:
            with breaker:
                pass

        assert exc_info.value.time_remaining == pytest.approx(20.0)

    def test_half_open_after_recovery_timeout(self):
        """Should move to half-open once the recovery timeout elapses."""
        clock = FakeMonotonic()
        breaker = CircuitBreaker(name="test", failure_threshold=1, recovery_timeout=30.0, clock=clock)
        _fail(breaker)

        clock.advance(30)

        assert breaker.state == CircuitState.HALF_OPEN


class TestCircuitBreakerHalfOpenState:
    """Tests for circuit breaker in half-open state."""

    @pytest.fixture
    def half_open(self):
        clock = FakeMonotonic()
        breaker = CircuitBreaker(
            name="test",
            failure_threshold=1,
            recovery_timeout=10.0,
            half_open_max_calls=2,
            clock=clock,
        )
        _fail(breaker)
        clock.advance(10)
        assert breaker.state == CircuitState.HALF_OPEN
        return breaker

    def test_success_closes_circuit(self, half_open):
        with half_open:
            pass

        assert half_open.state == CircuitState.CLOSED
        assert half_open.failure_count == 0

    def test_failure_reopens_circuit(self, half_open):
        _fail(half_open)

        assert half_open.state == CircuitState.OPEN

    def test_limits_trial_calls(self, half_open):
        """Only half_open_max_calls trial calls may start while half-open."""
        entered = []
        half_open.__enter__()
        entered.append(1)
        half_open.__enter__()
        entered.append(2)

        with pytest.raises(CircuitBreakerOpen):
            half_open.__enter__()

        assert entered == [1, 2]


class TestCircuitBreakerReset:

    def test_reset_closes_open_circuit(self):
        breaker = CircuitBreaker(name="test", failure_threshold=1)
        _fail(breaker)
        assert breaker.state == CircuitState.OPEN

        breaker.reset()

        assert breaker.state == CircuitState.CLOSED
        with breaker:
            pass
