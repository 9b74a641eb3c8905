from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


def linear_backoff(step_sec: float) -> Callable[[int], float]:
    """Delay grows by ``step_sec`` per failed attempt (1 -> step, 2 -> 2*step)."""

    def _backoff(attempt: int) -> float:
        return attempt * step_sec

    return _backoff


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    *,
    attempts: int,
    backoff: Callable[[int], float],
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    on_failure: Callable[[int, Exception], None] | None = None,
) -> T:
    """Run ``operation`` up to ``attempts`` times.

    Sleeps ``backoff(attempt)`` seconds between attempts. The exception from the
    final attempt is re-raised unchanged.
    """
    if attempts < 1:
        raise ValueError("attempts must be >= 1")
    for attempt in range(1, attempts + 1):
        try:
            return await operation()
        except Exception as exc:
            if on_failure is not None:
                on_failure(attempt, exc)
            if attempt == attempts:
                raise
            delay = backoff(attempt)
            if delay > 0:
                await sleep(delay)
    raise AssertionError("unreachable")
