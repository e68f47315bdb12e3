"""CircuitBreaker: Failure guard for a fallible async operation.

States:
    - CLOSED: calls pass through, failures are counted. Reaching the failure
      threshold opens the breaker.
    - OPEN: calls are rejected immediately until ``reset_timeout`` seconds have
      passed since the last failure, then the breaker moves to HALF_OPEN.
    - HALF_OPEN: up to ``half_open_max_attempts`` calls pass. A success closes
      the breaker; a failure, or one call too many, reopens it.

The breaker knows nothing about the operation it guards.

.. code-block:: python

    >>> breaker = CircuitBreaker(failure_threshold=3, reset_timeout=300)
    >>> breaker.state
    <CircuitState.CLOSED: 'CLOSED'>
"""

from __future__ import annotations

import logging
import time
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CircuitState(str, Enum):
    """Circuit breaker states."""

    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


class CircuitBreakerOpenError(Exception):
    """Raised when the breaker rejects a call without running it.

    :ivar failure_count: Failures recorded when the call was rejected.
    :ivar retry_after: Seconds until the breaker will let a call through.
    """

    def __init__(self, message: str, failure_count: int, retry_after: float):
        """Initialize the error.

        :param message: Human readable reason.
        :param failure_count: Failures recorded by the breaker.
        :param retry_after: Seconds until the next probe is allowed.
        """
        self.failure_count = failure_count
        self.retry_after = retry_after
        super().__init__(message)


class CircuitBreaker:
    """Three-state circuit breaker.

    :ivar failure_threshold: Consecutive failures that open the breaker.
    :ivar reset_timeout: Seconds the breaker stays open after the last failure.
    :ivar half_open_max_attempts: Calls allowed through while half-open.
    """

    DEFAULT_FAILURE_THRESHOLD = 3
    DEFAULT_RESET_TIMEOUT = 300.0  # 5 minutes
    DEFAULT_HALF_OPEN_MAX_ATTEMPTS = 2

    def __init__(
        self,
        failure_threshold: int = DEFAULT_FAILURE_THRESHOLD,
        reset_timeout: float = DEFAULT_RESET_TIMEOUT,
        half_open_max_attempts: int = DEFAULT_HALF_OPEN_MAX_ATTEMPTS,
        name: str = "push",
    ) -> None:
        """Initialize the breaker in the CLOSED state.

        :param failure_threshold: Failures before opening (default: 3).
        :param reset_timeout: Open duration in seconds (default: 300).
        :param half_open_max_attempts: Probe calls while half-open (default: 2).
        :param name: Label used in log messages.
        :raises ValueError: If a parameter is out of range.
        """
        if failure_threshold < 1:
            raise ValueError("failure_threshold must be at least 1")
        if reset_timeout < 0:
            raise ValueError("reset_timeout must not be negative")
        if half_open_max_attempts < 1:
            raise ValueError("half_open_max_attempts must be at least 1")

        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self.half_open_max_attempts = half_open_max_attempts
        self.name = name

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_failure_time = 0.0
        self._half_open_attempts = 0

    @property
    def state(self) -> CircuitState:
        """Current breaker state."""
        return self._state

    @property
    def failure_count(self) -> int:
        """Failures recorded since the last success."""
        return self._failure_count

    async def execute(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Run ``operation`` under breaker protection.

        :param operation: Zero-argument coroutine function to guard.
        :returns: The operation's result.
        :raises CircuitBreakerOpenError: If the breaker rejects the call.
        :raises Exception: Whatever the operation raised.
        """
        if self._state == CircuitState.OPEN:
            elapsed = time.time() - self._last_failure_time
            if elapsed >= self.reset_timeout:
                self._transition(CircuitState.HALF_OPEN, "reset timeout elapsed")
                self._half_open_attempts = 0
            else:
                raise CircuitBreakerOpenError(
                    f"Circuit breaker '{self.name}' is OPEN - refusing request",
                    failure_count=self._failure_count,
                    retry_after=self.reset_timeout - elapsed,
                )

        if self._state == CircuitState.HALF_OPEN:
            self._half_open_attempts += 1
            if self._half_open_attempts > self.half_open_max_attempts:
                self._last_failure_time = time.time()
                self._transition(CircuitState.OPEN, "too many half-open attempts")
                raise CircuitBreakerOpenError(
                    f"Circuit breaker '{self.name}': too many half-open attempts, reopening",
                    failure_count=self._failure_count,
                    retry_after=self.reset_timeout,
                )

        try:
            result = await operation()
        except Exception:
            self._on_failure()
            raise

        self._on_success()
        return result

    def _on_success(self) -> None:
        self._failure_count = 0
        if self._state == CircuitState.HALF_OPEN:
            self._transition(CircuitState.CLOSED, "recovered")

    def _on_failure(self) -> None:
        self._failure_count += 1
        self._last_failure_time = time.time()

        if self._state == CircuitState.HALF_OPEN:
            self._transition(CircuitState.OPEN, "failure while half-open")
        elif (
            self._state == CircuitState.CLOSED
            and self._failure_count >= self.failure_threshold
        ):
            self._transition(CircuitState.OPEN, f"{self._failure_count} failures")
        else:
            logger.warning(
                f"Circuit breaker '{self.name}': failure "
                f"{self._failure_count}/{self.failure_threshold}"
            )

    def _transition(self, new_state: CircuitState, reason: str) -> None:
        old_state = self._state
        self._state = new_state
        logger.info(
            f"Circuit breaker '{self.name}': {old_state.value} -> "
            f"{new_state.value} ({reason})"
        )

    def get_status(self) -> dict:
        """Get the breaker status for operators.

        :returns: Dict with state, failure count and remaining open time.
        """
        retry_after = 0.0
        if self._state == CircuitState.OPEN:
            retry_after = max(
                0.0, self.reset_timeout - (time.time() - self._last_failure_time)
            )
        return {
            "name": self.name,
            "state": self._state.value,
            "failure_count": self._failure_count,
            "failure_threshold": self.failure_threshold,
            "retry_after": retry_after,
        }

    def reset(self) -> None:
        """Force the breaker back to CLOSED and clear its counters."""
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_failure_time = 0.0
        self._half_open_attempts = 0
        logger.info(f"Circuit breaker '{self.name}' reset")
