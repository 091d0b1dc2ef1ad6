"""
Concurrency limiter - bounds in-flight model calls across a whole run.

One limiter belongs to one run and is shared by every work item in it.
Submissions beyond the limit wait on an asyncio.Semaphore, which admits
waiters in FIFO order as slots free up.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_LLM_LIMIT = 10


class ConcurrencyLimiter:
    """
    Run at most ``limit`` submitted tasks at once.

    Example:
        limiter = ConcurrencyLimiter(limit=2)
        result = await limiter.submit(lambda: provider.acomplete(request))
    """

    def __init__(self, limit: int = DEFAULT_LLM_LIMIT):
        if limit < 1:
            raise ValueError(f"Concurrency limit must be at least 1, got {limit}")
        self.limit = limit
        self._semaphore = asyncio.Semaphore(limit)
        self._active = 0
        self._waiting = 0

    @property
    def active(self) -> int:
        """Tasks currently holding a slot."""
        return self._active

    @property
    def waiting(self) -> int:
        """Tasks queued for a slot."""
        return self._waiting

    async def submit(self, task: Callable[[], Awaitable[T]]) -> T:
        """Wait for a slot, run ``task()``, release the slot."""
        self._waiting += 1
        try:
            await self._semaphore.acquire()
        finally:
            self._waiting -= 1

        self._active += 1
        try:
            return await task()
        finally:
            self._active -= 1
            self._semaphore.release()
