"""Redis pub/sub transport for cross-process event delivery."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, AsyncIterator, Optional

import redis.asyncio as redis

from ..contracts import StepEvent
from .base import BaseTransport

logger = logging.getLogger(__name__)


class RedisTransport(BaseTransport):
    """Publish events on a Redis channel."""

    def __init__(
        self,
        host: str = "localhost",
        port: int = 6379,
        db: int = 0,
        password: Optional[str] = None,
        channel: str = "dripflow:events",
    ) -> None:
        self.host = host
        self.port = port
        self.db = db
        self.password = password
        self.channel = channel
        self._redis: Optional[Any] = None

    async def connect(self) -> None:
        """Connect to Redis."""
        self._redis = redis.Redis(
            host=self.host,
            port=self.port,
            db=self.db,
            password=self.password,
            decode_responses=True,
        )
        # Test connection
        await self._redis.ping()

    async def disconnect(self) -> None:
        """Disconnect from Redis."""
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    async def publish(self, event: StepEvent) -> None:
        if not self._redis:
            await self.connect()
        await self._redis.publish(self.channel, event.to_json())

    async def subscribe(
        self, lifespan: Optional[float] = None
    ) -> AsyncIterator[StepEvent]:
        if not self._redis:
            await self.connect()

        pubsub = self._redis.pubsub()
        await pubsub.subscribe(self.channel)
        loop = asyncio.get_running_loop()
        start_time = loop.time() if lifespan else None
        try:
            while True:
                if lifespan and start_time is not None:
                    if loop.time() - start_time >= lifespan:
                        break

                message = await pubsub.get_message(
                    ignore_subscribe_messages=True, timeout=1.0
                )
                if message is None:
                    continue
                try:
                    yield StepEvent.from_json(message["data"])
                except ValueError as e:
                    logger.warning(f"Failed to parse event: {e}")
        finally:
            await pubsub.unsubscribe(self.channel)
            await pubsub.aclose()
