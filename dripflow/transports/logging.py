"""Transport that writes events to the application log."""

from __future__ import annotations

import logging
from typing import AsyncIterator, Optional

from ..contracts import StepEvent
from .base import BaseTransport

logger = logging.getLogger("dripflow.events")


class LoggingTransport(BaseTransport):
    def __init__(self, level: int = logging.INFO) -> None:
        self.level = level

    async def publish(self, event: StepEvent) -> None:
        message = (
            f"execution={event.execution_id} step={event.step_index} "
            f"type={event.step_type} status={event.status.value}"
        )
        if event.error:
            message += f" error={event.error}"
        logger.log(self.level, message)

    def subscribe(
        self, lifespan: Optional[float] = None
    ) -> AsyncIterator[StepEvent]:
        raise NotImplementedError("LoggingTransport does not support subscriptions")
