"""Pass-through steps handled entirely by external collaborators."""

from __future__ import annotations

import logging
from typing import Optional

from ..contracts import ExecutionContext, ExternalSyncConfig, InvokeActorConfig
from ..errors import StepExecutionError
from ..integrations.base import ActorClient, SyncClient
from .base import StepExecutor, StepResult

logger = logging.getLogger(__name__)


class InvokeActorExecutor(StepExecutor[InvokeActorConfig]):
    kind = "invoke_actor"

    def __init__(self, actors: Optional[ActorClient]) -> None:
        self._actors = actors

    async def execute(
        self, config: InvokeActorConfig, context: ExecutionContext
    ) -> StepResult:
        if self._actors is None:
            raise StepExecutionError("No actor client configured")
        logger.info(f"Invoking actor {config.actor_id} for contact {context.contact_id}")
        output = await self._actors.run_actor(config.actor_id, dict(config.input))
        return StepResult(output=output)


class ExternalSyncExecutor(StepExecutor[ExternalSyncConfig]):
    kind = "external_sync"

    def __init__(self, sync: Optional[SyncClient]) -> None:
        self._sync = sync

    async def execute(
        self, config: ExternalSyncConfig, context: ExecutionContext
    ) -> StepResult:
        if self._sync is None:
            raise StepExecutionError("No sync client configured")
        output = await self._sync.sync(
            config.target, dict(context.contact), dict(config.payload)
        )
        return StepResult(output=output)
