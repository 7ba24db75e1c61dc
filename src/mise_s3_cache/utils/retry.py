"""Async retry with exponential backoff.

Not wired into the default store/restore paths; callers opt in explicitly::

    await retry_with_backoff(lambda: store.exists(key), max_attempts=3)
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

log = logging.getLogger(__name__)

T = TypeVar("T")


async def retry_with_backoff(
    operation: Callable[[], Awaitable[T]],
    *,
    max_attempts: int = 3,
    initial_delay_ms: int = 100,
    retry_on: tuple[type[BaseException], ...] = (Exception,),
) -> T:
    """Run *operation* until it succeeds, doubling the delay after each failure.

    The last exception is re-raised once ``max_attempts`` is exhausted.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")

    delay_ms = initial_delay_ms
    for attempt in range(1, max_attempts + 1):
        try:
            return await operation()
        except retry_on as e:
            if attempt == max_attempts:
                raise
            log.warning(
                "Attempt %d/%d failed: %s. Retrying in %dms",
                attempt, max_attempts, e, delay_ms,
            )
            await asyncio.sleep(delay_ms / 1000)
            delay_ms *= 2

    raise AssertionError("unreachable")
