"""Concurrency primitives for the batch runner.

Two pieces:

1. **throttled_gather** -- ``asyncio.gather`` with every awaitable
   wrapped in a semaphore acquire/release, so at most N per-report
   pipelines run at once.

2. **KeyedLock** -- one ``asyncio.Lock`` per key.  The batch runner
   holds the lock for a report id while replacing that report's
   connection set, so two workers never rewrite the same set at once.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Awaitable, TypeVar

_T = TypeVar("_T")


async def throttled_gather(
    coros: list[Awaitable[_T]],
    semaphore: asyncio.Semaphore,
    return_exceptions: bool = True,
) -> list[_T | BaseException]:
    """Run awaitables concurrently, at most ``semaphore`` slots at a time.

    Parameters
    ----------
    coros:
        Awaitable objects to execute.
    semaphore:
        Semaphore bounding how many run simultaneously.
    return_exceptions:
        Mirrors ``asyncio.gather``: when ``True`` exceptions are returned
        in the result list instead of raised.

    Returns
    -------
    list[_T | BaseException]
        Results in input order.
    """

    async def _wrapped(coro: Awaitable[_T]) -> _T:
        async with semaphore:
            return await coro

    tasks = [_wrapped(c) for c in coros]
    return await asyncio.gather(*tasks, return_exceptions=return_exceptions)


class KeyedLock:
    """Hands out one lock per key; unused locks are released afterwards."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._waiters: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._waiters[key] = self._waiters.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[key] -= 1
            if self._waiters[key] == 0:
                del self._waiters[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)
