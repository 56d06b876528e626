"""Base transport interface for step event publication."""

from __future__ import annotations

import abc
from typing import AsyncIterator, Optional

from ..contracts import StepEvent


class BaseTransport(metaclass=abc.ABCMeta):
    """Abstract sink for execution progress events."""

    async def connect(self) -> None:
        """Open connection to broker (no-op by default)."""
        pass

    async def disconnect(self) -> None:
        """Close connection to broker (no-op by default)."""
        pass

    @abc.abstractmethod
    async def publish(self, event: StepEvent) -> None:
        """Deliver an event to current subscribers."""
        raise NotImplementedError

    @abc.abstractmethod
    def subscribe(self, lifespan: Optional[float] = None) -> AsyncIterator[StepEvent]:
        """Yield events published after the subscription started.

        Args:
            lifespan: Maximum time in seconds to keep listening. If None, runs indefinitely.
        """
        raise NotImplementedError
