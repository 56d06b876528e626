"""In-memory transport for tests and single-process deployments."""

from __future__ import annotations

import asyncio
from typing import AsyncIterator, List, Optional

from ..contracts import StepEvent
from .base import BaseTransport


class InMemoryTransport(BaseTransport):
    """Fan events out to in-process subscriber queues.

    Events published while nobody is subscribed are kept in ``history`` only;
    there is no replay for late subscribers.
    """

    def __init__(self, history_size: int = 1000) -> None:
        self._subscribers: List[asyncio.Queue[StepEvent]] = []
        self._history_size = history_size
        self.history: List[StepEvent] = []

    async def publish(self, event: StepEvent) -> None:
        """Append to history and hand the event to every subscriber."""
        self.history.append(event)
        if len(self.history) > self._history_size:
            del self.history[: len(self.history) - self._history_size]
        for queue in list(self._subscribers):
            queue.put_nowait(event)

    async def subscribe(
        self, lifespan: Optional[float] = None
    ) -> AsyncIterator[StepEvent]:
        """Subscribe to events.

        Args:
            lifespan: Maximum time in seconds to keep listening. If None, runs indefinitely.
        """
        queue: asyncio.Queue[StepEvent] = asyncio.Queue()
        self._subscribers.append(queue)
        loop = asyncio.get_running_loop()
        deadline = loop.time() + lifespan if lifespan else None
        try:
            while True:
                timeout = None
                if deadline is not None:
                    timeout = deadline - loop.time()
                    if timeout <= 0:
                        break
                try:
                    event = await asyncio.wait_for(queue.get(), timeout=timeout)
                except asyncio.TimeoutError:
                    break
                yield event
        finally:
            self._subscribers.remove(queue)
