"""Bounded fan-out over pipeline candidates."""

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from typing import TypeVar

T = TypeVar("T")
R = TypeVar("R")


async def bounded_gather(
    items: Sequence[T],
    fn: Callable[[T], Awaitable[R]],
    max_concurrent: int = 5,
) -> list[R]:
    """Run fn over items with at most max_concurrent in flight.

    Results keep input order. Per-item functions are expected to absorb their
    own errors; anything that escapes propagates to the caller.
    """
    semaphore = asyncio.Semaphore(max(1, max_concurrent))

    async def _bounded(item: T) -> R:
        async with semaphore:
            return await fn(item)

    return list(await asyncio.gather(*(_bounded(item) for item in items)))
