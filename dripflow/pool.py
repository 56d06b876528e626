"""Bounded pool of concurrently running executions."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Optional, Set, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ExecutionPool:
    """Run execution coroutines as tasks, at most ``max_concurrency`` at once.

    A ``max_concurrency`` of 0 means unbounded. Tasks queue on the semaphore
    rather than being rejected.
    """

    def __init__(self, max_concurrency: int = 0) -> None:
        self.max_concurrency = max_concurrency
        self._semaphore: Optional[asyncio.Semaphore] = (
            asyncio.Semaphore(max_concurrency) if max_concurrency > 0 else None
        )
        self._tasks: Set[asyncio.Task] = set()

    @property
    def active(self) -> int:
        return len(self._tasks)

    async def run(self, coro: Awaitable[T]) -> T:
        """Await ``coro`` inside a pool slot."""
        if self._semaphore is None:
            return await coro
        async with self._semaphore:
            return await coro

    def submit(self, coro: Awaitable[T], name: Optional[str] = None) -> asyncio.Task:
        """Schedule ``coro`` in the background and return its task."""
        task = asyncio.get_running_loop().create_task(self.run(coro), name=name)
        self._tasks.add(task)
        task.add_done_callback(self._finished)
        return task

    def _finished(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                f"Background execution {task.get_name()} failed: {exc!r}",
                exc_info=exc,
            )

    async def drain(self, timeout: Optional[float] = None) -> bool:
        """Wait for submitted tasks. Returns False if ``timeout`` expired first."""
        while self._tasks:
            done, pending = await asyncio.wait(list(self._tasks), timeout=timeout)
            if pending:
                return False
        return True

    async def cancel_all(self) -> None:
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)


__all__ = ["ExecutionPool"]
