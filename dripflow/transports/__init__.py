"""Transport factory and initialization."""

from __future__ import annotations

import os
from typing import Optional

from ..config import DripflowConfig, load_config
from .base import BaseTransport
from .inmemory import InMemoryTransport
from .logging import LoggingTransport


def get_transport(
    backend: Optional[str] = None, config: Optional[DripflowConfig] = None
) -> BaseTransport:
    """Factory function to get the configured transport."""

    config = config or load_config()
    backend = (
        backend
        or os.getenv("DRIPFLOW_TRANSPORT")
        or config.transport.backend
    ).lower()

    if backend == "inmemory":
        return InMemoryTransport()
    elif backend == "logging":
        return LoggingTransport()
    elif backend == "redis":
        from .redis import RedisTransport

        redis_conf = config.transport.redis
        return RedisTransport(
            host=redis_conf.host,
            port=redis_conf.port,
            db=redis_conf.db,
            password=redis_conf.password,
            channel=config.transport.channel,
        )
    else:
        raise ValueError(f"Unsupported transport backend: {backend}")


__all__ = ["BaseTransport", "InMemoryTransport", "LoggingTransport", "get_transport"]
