"""
retry.py — Exponential backoff for unreliable integration calls

Both the ledger writer and the notifier wrap each delivery attempt with
`with_retry`. The orchestrator itself never retries.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Tuple, Type, TypeVar

log = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 4
DEFAULT_BASE_DELAY = 1.0  # seconds


def exponential_backoff(attempt: int, base_delay: float) -> float:
    """Delay before retry `attempt` (0-indexed): base_delay * 2**attempt, no jitter."""
    return base_delay * (2 ** attempt)


async def with_retry(
        operation: Callable[[], Awaitable[T]],
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        base_delay: float = DEFAULT_BASE_DELAY,
        *,
        backoff: Callable[[int, float], float] = exponential_backoff,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        no_retry: Tuple[Type[BaseException], ...] = (),
        label: str = "operation",
) -> T:
    """
    Runs `operation` until it succeeds or `max_attempts` calls have failed.

    With the defaults the waits between attempts are 1s, 2s and 4s. There is
    no wait after the final attempt. Every exception is retried the same way
    except the types in `no_retry`, which are raised immediately.

    Args:
        operation: Zero-argument coroutine function performing one attempt.
        max_attempts (int): Total number of attempts, including the first.
        base_delay (float): Delay in seconds before the first retry.
        backoff: Maps (retry index, base_delay) to a delay in seconds.
        sleep: Awaitable sleep used between attempts.
        no_retry: Exception types that are never retried.
        label (str): Name used in log lines.

    Returns:
        The result of the first successful attempt.

    Raises:
        The exception of the last failed attempt.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    for attempt in range(max_attempts):
        try:
            return await operation()
        except no_retry:
            raise
        except Exception as e:
            if attempt == max_attempts - 1:
                log.error(f"{label}: all {max_attempts} attempts failed. Last error: {e}")
                raise
            delay = backoff(attempt, base_delay)
            log.warning(f"{label}: attempt {attempt + 1} failed ({e}), retrying in {delay:.1f}s...")
            await sleep(delay)
