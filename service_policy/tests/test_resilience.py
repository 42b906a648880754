"""
Unit tests for the shared circuit breaker and retry helpers.
"""

import pytest

from shared.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerOpenException,
    CircuitBreakerState,
    get_all_states,
    get_circuit_breaker,
)
from shared.retry import RetryConfig, RetryError, calculate_delay, retry_on_exception


class TestCircuitBreaker:
    """Test cases for CircuitBreaker."""

    @pytest.fixture
    def breaker(self, clock):
        """Create CircuitBreaker instance."""
        return CircuitBreaker("test", failure_threshold=2, recovery_timeout=10.0, clock=clock)

    @staticmethod
    async def _fail():
        raise RuntimeError("boom")

    @staticmethod
    async def _succeed():
        return "ok"

    @pytest.mark.asyncio
    async def test_opens_after_threshold(self, breaker):
        """Test that consecutive failures open the breaker."""
        for _ in range(2):
            with pytest.raises(RuntimeError):
                await breaker.call(self._fail)

        assert breaker.state == CircuitBreakerState.OPEN
        with pytest.raises(CircuitBreakerOpenException):
            await breaker.call(self._succeed)

    @pytest.mark.asyncio
    async def test_half_open_recovery(self, breaker, clock):
        """Test that a success after the recovery timeout closes the breaker."""
        for _ in range(2):
            with pytest.raises(RuntimeError):
                await breaker.call(self._fail)

        clock.advance(10)
        assert breaker.state == CircuitBreakerState.HALF_OPEN

        assert await breaker.call(self._succeed) == "ok"
        assert breaker.state == CircuitBreakerState.CLOSED
        assert breaker.get_state()["failure_count"] == 0

    @pytest.mark.asyncio
    async def test_half_open_failure_reopens(self, breaker, clock):
        """Test that a failed probe reopens the breaker."""
        for _ in range(2):
            with pytest.raises(RuntimeError):
                await breaker.call(self._fail)

        clock.advance(10)
        with pytest.raises(RuntimeError):
            await breaker.call(self._fail)

        assert breaker.is_open() is True

    @pytest.mark.asyncio
    async def test_success_resets_count(self, breaker):
        """Test that failures must be consecutive."""
        with pytest.raises(RuntimeError):
            await breaker.call(self._fail)
        await breaker.call(self._succeed)
        with pytest.raises(RuntimeError):
            await breaker.call(self._fail)

        assert breaker.state == CircuitBreakerState.CLOSED

    def test_registry(self):
        """Test named breaker lookup."""
        breaker = get_circuit_breaker("registry_test", failure_threshold=7)

        assert get_circuit_breaker("registry_test") is breaker
        assert get_all_states()["registry_test"]["failure_threshold"] == 7


class TestRetry:
    """Test cases for retry_on_exception."""

    @pytest.mark.asyncio
    async def test_retries_until_success(self):
        """Test that transient failures are retried."""
        attempts = []

        @retry_on_exception((ConnectionError,), RetryConfig(max_attempts=3, base_delay=0.0, jitter=False))
        async def flaky():
            attempts.append(1)
            if len(attempts) < 3:
                raise ConnectionError("reset")
            return "ok"

        assert await flaky() == "ok"
        assert len(attempts) == 3

    @pytest.mark.asyncio
    async def test_raises_retry_error(self):
        """Test that exhausted attempts raise RetryError."""
        @retry_on_exception((ConnectionError,), RetryConfig(max_attempts=2, base_delay=0.0, jitter=False))
        async def broken():
            raise ConnectionError("reset")

        with pytest.raises(RetryError) as exc_info:
            await broken()

        assert exc_info.value.attempts == 2
        assert isinstance(exc_info.value.last_exception, ConnectionError)

    @pytest.mark.asyncio
    async def test_other_exceptions_propagate(self):
        """Test that non-retryable exceptions are not retried."""
        attempts = []

        @retry_on_exception((ConnectionError,), RetryConfig(max_attempts=3, base_delay=0.0))
        async def invalid():
            attempts.append(1)
            raise ValueError("bad input")

        with pytest.raises(ValueError):
            await invalid()

        assert len(attempts) == 1

    def test_calculate_delay(self):
        """Test exponential backoff capped at max_delay."""
        config = RetryConfig(base_delay=0.1, max_delay=0.3, exponential_base=2.0, jitter=False)

        assert calculate_delay(1, config) == pytest.approx(0.1)
        assert calculate_delay(2, config) == pytest.approx(0.2)
        assert calculate_delay(5, config) == pytest.approx(0.3)
