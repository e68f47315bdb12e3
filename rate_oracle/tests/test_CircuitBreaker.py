"""Unit tests for CircuitBreaker."""

from unittest.mock import AsyncMock, patch

import pytest

from rate_oracle.src.CircuitBreaker import (
    CircuitBreaker,
    CircuitBreakerOpenError,
    CircuitState,
)


async def _trip(breaker: CircuitBreaker, times: int) -> None:
    failing = AsyncMock(side_effect=RuntimeError("rpc down"))
    for _ in range(times):
        with pytest.raises(RuntimeError):
            await breaker.execute(failing)


class TestCircuitBreakerInit:
    """Test CircuitBreaker initialization."""

    def test_defaults(self) -> None:
        """Defaults should be 3 failures, 5 minutes, 2 half-open attempts."""
        breaker = CircuitBreaker()
        assert breaker.failure_threshold == 3
        assert breaker.reset_timeout == 300.0
        assert breaker.half_open_max_attempts == 2
        assert breaker.state == CircuitState.CLOSED

    def test_invalid_threshold(self) -> None:
        """failure_threshold < 1 should raise ValueError."""
        with pytest.raises(ValueError, match="failure_threshold must be at least 1"):
            CircuitBreaker(failure_threshold=0)


class TestCircuitBreakerClosed:
    """Test CLOSED state behaviour."""

    @pytest.mark.asyncio
    async def test_passes_result_through(self) -> None:
        """Successful operations should return their result."""
        breaker = CircuitBreaker()
        assert await breaker.execute(AsyncMock(return_value=42)) == 42
        assert breaker.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_failures_below_threshold_stay_closed(self) -> None:
        """Two failures should not open the breaker."""
        breaker = CircuitBreaker(failure_threshold=3)
        await _trip(breaker, 2)

        assert breaker.state == CircuitState.CLOSED
        assert breaker.failure_count == 2

    @pytest.mark.asyncio
    async def test_success_resets_failure_count(self) -> None:
        """A success should clear the failure counter."""
        breaker = CircuitBreaker(failure_threshold=3)
        await _trip(breaker, 2)
        await breaker.execute(AsyncMock(return_value=None))

        assert breaker.failure_count == 0
        await _trip(breaker, 2)
        assert breaker.state == CircuitState.CLOSED


class TestCircuitBreakerOpen:
    """Test opening and rejection."""

    @pytest.mark.asyncio
    async def test_opens_after_threshold(self) -> None:
        """Three consecutive failures should open the breaker."""
        breaker = CircuitBreaker(failure_threshold=3)
        await _trip(breaker, 3)
        assert breaker.state == CircuitState.OPEN

    @pytest.mark.asyncio
    async def test_open_rejects_without_calling(self) -> None:
        """An open breaker should not invoke the operation."""
        breaker = CircuitBreaker(failure_threshold=3)
        await _trip(breaker, 3)

        operation = AsyncMock(return_value="never")
        with pytest.raises(CircuitBreakerOpenError) as exc_info:
            await breaker.execute(operation)

        operation.assert_not_awaited()
        assert exc_info.value.failure_count == 3
        assert exc_info.value.retry_after > 0

    @pytest.mark.asyncio
    @patch("rate_oracle.src.CircuitBreaker.time.time")
    async def test_stays_open_before_timeout(self, mock_time) -> None:
        """Calls before the reset timeout should still be rejected."""
        mock_time.return_value = 1000.0
        breaker = CircuitBreaker(failure_threshold=3, reset_timeout=300)
        await _trip(breaker, 3)

        mock_time.return_value = 1299.0
        with pytest.raises(CircuitBreakerOpenError):
            await breaker.execute(AsyncMock())
        assert breaker.state == CircuitState.OPEN


class TestCircuitBreakerHalfOpen:
    """Test recovery through HALF_OPEN."""

    @pytest.mark.asyncio
    @patch("rate_oracle.src.CircuitBreaker.time.time")
    async def test_success_after_timeout_closes(self, mock_time) -> None:
        """After the timeout a probe should run and a success should close."""
        mock_time.return_value = 1000.0
        breaker = CircuitBreaker(failure_threshold=3, reset_timeout=300)
        await _trip(breaker, 3)

        mock_time.return_value = 1300.0  # Exactly at reset timeout
        operation = AsyncMock(return_value="recovered")

        assert await breaker.execute(operation) == "recovered"
        operation.assert_awaited_once()
        assert breaker.state == CircuitState.CLOSED
        assert breaker.failure_count == 0

    @pytest.mark.asyncio
    @patch("rate_oracle.src.CircuitBreaker.time.time")
    async def test_failure_in_half_open_reopens(self, mock_time) -> None:
        """A failed probe should reopen and restart the timer."""
        mock_time.return_value = 1000.0
        breaker = CircuitBreaker(failure_threshold=3, reset_timeout=300)
        await _trip(breaker, 3)

        mock_time.return_value = 1400.0
        await _trip(breaker, 1)
        assert breaker.state == CircuitState.OPEN

        # Timer restarted at 1400
        mock_time.return_value = 1650.0
        with pytest.raises(CircuitBreakerOpenError):
            await breaker.execute(AsyncMock())

        mock_time.return_value = 1700.0
        await breaker.execute(AsyncMock(return_value=None))
        assert breaker.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    @patch("rate_oracle.src.CircuitBreaker.time.time")
    async def test_half_open_attempt_cap(self, mock_time) -> None:
        """More than half_open_max_attempts concurrent probes should reopen."""
        mock_time.return_value = 1000.0
        breaker = CircuitBreaker(
            failure_threshold=1, reset_timeout=10, half_open_max_attempts=2
        )
        await _trip(breaker, 1)
        mock_time.return_value = 1010.0

        # Probes already in flight
        breaker._state = CircuitState.HALF_OPEN
        breaker._half_open_attempts = 2
        operation = AsyncMock()
        with pytest.raises(CircuitBreakerOpenError, match="too many half-open"):
            await breaker.execute(operation)

        operation.assert_not_awaited()
        assert breaker.state == CircuitState.OPEN


class TestCircuitBreakerHelpers:
    """Test status and reset helpers."""

    @pytest.mark.asyncio
    async def test_get_status(self) -> None:
        """get_status should report state and counters."""
        breaker = CircuitBreaker(name="push")
        await _trip(breaker, 3)
        status = breaker.get_status()

        assert status["name"] == "push"
        assert status["state"] == "OPEN"
        assert status["failure_count"] == 3
        assert 0 < status["retry_after"] <= 300

    @pytest.mark.asyncio
    async def test_reset(self) -> None:
        """reset should close the breaker immediately."""
        breaker = CircuitBreaker()
        await _trip(breaker, 3)
        breaker.reset()

        assert breaker.state == CircuitState.CLOSED
        assert await breaker.execute(AsyncMock(return_value=1)) == 1

    @pytest.mark.asyncio
    async def test_independent_instances(self) -> None:
        """Breakers should not share state."""
        first, second = CircuitBreaker(), CircuitBreaker()
        await _trip(first, 3)

        assert first.state == CircuitState.OPEN
        assert second.state == CircuitState.CLOSED
