"""
Bounded fan-out for batch jobs.

Items are independent (one user, one session), so they run concurrently
under a semaphore sized to respect notifier and database limits.  A
worker that raises is turned into a failure outcome by ``on_error``; the
rest of the batch still completes.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


async def run_bounded(
    items: Sequence[T],
    worker: Callable[[T], Awaitable[R]],
    on_error: Callable[[T, BaseException], R],
    *,
    max_workers: int,
) -> list[R]:
    """Run ``worker`` over ``items`` with at most ``max_workers`` in flight.

    Results keep the order of ``items``.
    """
    semaphore = asyncio.Semaphore(max(1, max_workers))

    async def _guarded(item: T) -> R:
        async with semaphore:
            try:
                return await worker(item)
            except Exception as exc:
                logger.error("Batch item %r failed: %s", item, exc, exc_info=True)
                return on_error(item, exc)

    return list(await asyncio.gather(*(_guarded(item) for item in items)))
