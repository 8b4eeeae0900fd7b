"""Bounded asyncio task pool."""

from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import Awaitable, Callable
from typing import TypeVar

T = TypeVar("T")

DEFAULT_CONCURRENCY = 8


class ConcurrencyLimiter:
    """Admit at most ``concurrency`` tasks at once; waiters are served FIFO.

    One instance per scan. Not thread-safe: use from a single event loop.
    """

    def __init__(self, concurrency: int = DEFAULT_CONCURRENCY) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        self.concurrency = concurrency
        self.active = 0
        self._waiters: deque[asyncio.Future[None]] = deque()

    @property
    def waiting(self) -> int:
        return len(self._waiters)

    async def run(self, task_factory: Callable[[], Awaitable[T]]) -> T:
        await self._acquire()
        try:
            return await task_factory()
        finally:
            self._release()

    async def _acquire(self) -> None:
        if self.active < self.concurrency and not self._waiters:
            self.active += 1
            return
        waiter: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        try:
            await waiter
        except asyncio.CancelledError:
            if waiter.done() and not waiter.cancelled():
                # Slot was handed over before cancellation landed.
                self._release()
            elif waiter in self._waiters:
                self._waiters.remove(waiter)
            raise

    def _release(self) -> None:
        # Hand the slot straight to the next waiter so ``active`` never dips.
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_result(None)
                return
        self.active -= 1
