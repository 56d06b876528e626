"""Fire-and-forget publication of execution progress."""

from __future__ import annotations

import asyncio
import logging
from typing import Iterable, List, Optional, Set

from .contracts import EventStatus, StepEvent
from .transports.base import BaseTransport

logger = logging.getLogger(__name__)


class EventBroadcaster:
    """Publish step events to every configured transport.

    ``publish`` never blocks the caller and never raises: each delivery runs
    as its own task and failures are only logged. There is no retry and no
    replay.
    """

    def __init__(self, transports: Iterable[BaseTransport] = ()) -> None:
        self._transports: List[BaseTransport] = list(transports)
        self._pending: Set[asyncio.Task] = set()

    @property
    def transports(self) -> List[BaseTransport]:
        return list(self._transports)

    def add_transport(self, transport: BaseTransport) -> None:
        self._transports.append(transport)

    def publish(self, event: StepEvent) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug(f"No running loop, dropping event for {event.execution_id}")
            return
        for transport in self._transports:
            task = loop.create_task(self._deliver(transport, event))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

    def step(
        self,
        execution_id: str,
        step_index: int,
        step_type: str,
        status: EventStatus,
        error: Optional[str] = None,
        log_id: Optional[str] = None,
    ) -> None:
        """Shortcut building and publishing a ``StepEvent``."""
        self.publish(
            StepEvent(
                execution_id=execution_id,
                log_id=log_id,
                step_index=step_index,
                step_type=step_type,
                status=status,
                error=error,
            )
        )

    async def _deliver(self, transport: BaseTransport, event: StepEvent) -> None:
        try:
            await transport.publish(event)
        except Exception:
            logger.exception(
                f"Failed to publish {event.status.value} event for execution {event.execution_id} "
                f"via {type(transport).__name__}"
            )

    async def flush(self) -> None:
        """Wait for deliveries that are still in flight."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def connect(self) -> None:
        for transport in self._transports:
            try:
                await transport.connect()
            except Exception:
                logger.exception(f"Could not connect {type(transport).__name__}")

    async def disconnect(self) -> None:
        await self.flush()
        for transport in self._transports:
            try:
                await transport.disconnect()
            except Exception:
                logger.exception(f"Could not disconnect {type(transport).__name__}")
