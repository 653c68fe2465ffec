"""
Bounded retry around an eventual-consistency window.

The loop retries only errors the caller marks as retryable, backs off
exponentially with jitter, and gives up once the total budget is spent.
Waits between attempts can be interrupted by a shutdown event.
"""

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

from errors import RetryCancelledError, RetryTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetryPolicy:
    """Retry budget and backoff curve."""

    timeout: float = 120.0  # total budget in seconds
    min_delay: float = 0.5
    max_delay: float = 10.0
    jitter_factor: float = 0.1  # ±10% jitter


def calculate_backoff(attempt: int, policy: RetryPolicy) -> float:
    """
    Delay before the retry following the given attempt (0-based).

    Exponential in the attempt number, capped at max_delay, with
    ±jitter_factor applied to avoid synchronized retries.
    """
    delay = min(policy.min_delay * (2**attempt), policy.max_delay)
    return max(0.0, delay * (1 + (random.random() * 2 - 1) * policy.jitter_factor))


async def _wait(delay: float, shutdown_event: Optional[asyncio.Event]) -> bool:
    """Sleep for delay seconds. Returns True if shutdown was signalled."""
    if shutdown_event is None:
        await asyncio.sleep(delay)
        return False
    try:
        await asyncio.wait_for(shutdown_event.wait(), timeout=delay)
        return True
    except asyncio.TimeoutError:
        return False


async def retry(
    operation: Callable[[], Awaitable[T]],
    should_retry: Callable[[BaseException], bool],
    policy: Optional[RetryPolicy] = None,
    shutdown_event: Optional[asyncio.Event] = None,
) -> T:
    """
    Run operation until it succeeds, fails non-retryably, or time runs out.

    Args:
        operation: Zero-argument coroutine function performing one attempt.
        should_retry: Predicate deciding whether a raised error is retryable.
        policy: Retry budget and backoff; defaults to RetryPolicy().
        shutdown_event: Optional event that aborts the wait between attempts.

    Returns:
        The operation's result.

    Raises:
        RetryTimeoutError: The deadline passed without a successful attempt.
        RetryCancelledError: shutdown_event was set while waiting.
        Exception: Any non-retryable error raised by the operation.
    """
    policy = policy or RetryPolicy()
    loop = asyncio.get_running_loop()
    deadline = loop.time() + policy.timeout
    attempt = 0

    while True:
        try:
            return await operation()
        except Exception as e:
            if not should_retry(e):
                raise
            last_error = e

        remaining = deadline - loop.time()
        if remaining <= 0:
            raise RetryTimeoutError(policy.timeout, last_error)

        delay = min(calculate_backoff(attempt, policy), remaining)
        attempt += 1
        logger.warning(
            f"Retryable error on attempt {attempt}: {last_error}; "
            f"retrying in {delay:.2f}s"
        )

        if await _wait(delay, shutdown_event):
            raise RetryCancelledError(last_error)

        if loop.time() >= deadline:
            raise RetryTimeoutError(policy.timeout, last_error)
