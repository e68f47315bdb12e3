"""RetryExecutor: Exponential backoff retries for async operations.

The delay before attempt ``n + 1`` is ``base_delay * multiplier ** (n - 1)``,
capped at ``max_delay``. Waiting uses ``asyncio.sleep`` so only the calling
task is suspended.

.. code-block:: python

    >>> policy = RetryPolicy(max_attempts=3, base_delay=1.0, max_delay=10.0)
    >>> [policy.delay_for(n) for n in (1, 2, 3, 4, 5)]
    [1.0, 2.0, 4.0, 8.0, 10.0]
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Retry parameters.

    :ivar max_attempts: Total attempts including the first call.
    :ivar base_delay: Delay after the first failure in seconds.
    :ivar max_delay: Upper bound for any single delay in seconds.
    :ivar multiplier: Growth factor between consecutive delays.
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    multiplier: float = 2.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("delays must not be negative")

    def delay_for(self, attempt: int) -> float:
        """Return the wait after the given failed attempt (1-based).

        :param attempt: Number of the attempt that just failed.
        :returns: Seconds to wait before the next attempt.
        """
        return min(
            self.base_delay * (self.multiplier ** (attempt - 1)),
            self.max_delay,
        )


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    non_retryable: tuple[type[BaseException], ...] = (),
    on_retry: Callable[[int, Exception], None] | None = None,
) -> T:
    """Call ``operation`` until it succeeds or the attempts are exhausted.

    :param operation: Zero-argument coroutine function to call.
    :param policy: Retry parameters.
    :param non_retryable: Exception types that propagate immediately.
    :param on_retry: Optional callback invoked with (attempt, error) before
        each wait.
    :returns: The first successful result.
    :raises Exception: The last error once all attempts failed, or the first
        non-retryable error.
    """
    for attempt in range(1, policy.max_attempts + 1):
        try:
            return await operation()
        except non_retryable:
            raise
        except Exception as e:
            if attempt >= policy.max_attempts:
                raise

            delay = policy.delay_for(attempt)
            if on_retry is not None:
                on_retry(attempt, e)
            logger.debug(
                f"Attempt {attempt}/{policy.max_attempts} failed ({e}), "
                f"retrying in {delay:.1f}s"
            )
            await asyncio.sleep(delay)

    # Unreachable: the loop either returns or raises
    raise RuntimeError("with_retry exhausted without result")
