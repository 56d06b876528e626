"""Composition root wiring persistence, runner, scheduler and transports."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, List, Optional

from .broadcast import EventBroadcaster
from .config import DripflowConfig, load_config
from .contracts import WorkflowExecution, utcnow
from .errors import InvalidTransition, NotFound
from .integrations.base import (
    ActorClient,
    ContactDirectory,
    GenerativeClient,
    MessagingClient,
    SyncClient,
)
from .integrations.http import (
    ApifyActorClient,
    HttpContactDirectory,
    HttpMessagingClient,
    WebhookSyncClient,
)
from .integrations.inmemory import InMemoryContactDirectory
from .persistence import get_repository
from .persistence.repository import WorkflowRepository
from .pool import ExecutionPool
from .runner import ExecutionRunner
from .scheduler import ResumeScheduler
from .steps import DEFAULT_SYSTEM_PROMPT, ExecutorRegistry, build_executors
from .transports import get_transport

logger = logging.getLogger(__name__)


class AutomationEngine:
    """Trigger workflows and keep paused executions moving.

    ``trigger`` returns as soon as the execution row exists; the steps run in
    the background on the shared :class:`ExecutionPool`.
    """

    def __init__(
        self,
        repository: WorkflowRepository,
        contacts: ContactDirectory,
        executors: Optional[ExecutorRegistry] = None,
        broadcaster: Optional[EventBroadcaster] = None,
        pool: Optional[ExecutionPool] = None,
        scheduler_interval: float = 60.0,
        scheduler_enabled: bool = True,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.repository = repository
        self.contacts = contacts
        self.broadcaster = broadcaster or EventBroadcaster()
        self.pool = pool or ExecutionPool()
        self.runner = ExecutionRunner(
            repository,
            contacts,
            executors=executors,
            broadcaster=self.broadcaster,
            clock=clock,
        )
        self.scheduler = ResumeScheduler(
            self.runner, interval=scheduler_interval, pool=self.pool, clock=clock
        )
        self.scheduler_enabled = scheduler_enabled
        self._closeables: List[object] = []

    @classmethod
    def from_config(
        cls,
        config: Optional[DripflowConfig] = None,
        contacts: Optional[ContactDirectory] = None,
        messaging: Optional[MessagingClient] = None,
        generator: Optional[GenerativeClient] = None,
        actors: Optional[ActorClient] = None,
        sync: Optional[SyncClient] = None,
        repository: Optional[WorkflowRepository] = None,
    ) -> "AutomationEngine":
        """Build an engine from configuration.

        Collaborators passed explicitly win over the configured ones. Without
        a ``contacts_url`` an empty in-memory directory is used.
        """
        config = config or load_config()
        integrations = config.integrations
        timeout = integrations.http_timeout_seconds
        headers = (
            {"Authorization": f"Bearer {integrations.api_token}"}
            if integrations.api_token
            else None
        )
        closeables: List[object] = []

        if contacts is None:
            if integrations.contacts_url:
                contacts = HttpContactDirectory(
                    integrations.contacts_url, headers=headers, timeout=timeout
                )
                closeables.append(contacts)
            else:
                contacts = InMemoryContactDirectory()
        if messaging is None and integrations.messaging_url:
            messaging = HttpMessagingClient(
                integrations.messaging_url, headers=headers, timeout=timeout
            )
            closeables.append(messaging)
        if actors is None and integrations.apify_token:
            actors = ApifyActorClient(integrations.apify_token)
            closeables.append(actors)
        if sync is None and integrations.sync_enabled:
            sync = WebhookSyncClient(timeout=timeout)
            closeables.append(sync)
        if generator is None and integrations.generative_model:
            from .integrations.generative import AgentGenerativeClient

            generator = AgentGenerativeClient(integrations.generative_model)

        executors = build_executors(
            messaging=messaging,
            generator=generator,
            actors=actors,
            sync=sync,
            system_prompt=config.engine.generate_system_prompt or DEFAULT_SYSTEM_PROMPT,
        )
        engine = cls(
            repository or get_repository(config=config),
            contacts,
            executors=executors,
            broadcaster=EventBroadcaster([get_transport(config=config)]),
            pool=ExecutionPool(config.engine.max_concurrent_executions),
            scheduler_interval=config.scheduler.interval_seconds,
            scheduler_enabled=config.scheduler.enabled,
        )
        engine._closeables = closeables
        return engine

    # ------------------------------------------------------------------
    async def trigger(
        self, workflow_id: str, contact_id: str
    ) -> WorkflowExecution | None:
        """Start ``workflow_id`` for ``contact_id`` in the background.

        Raises:
            NotFound: If the workflow or contact does not exist.
        """
        prepared = await self.runner.prepare(workflow_id, contact_id)
        if prepared is None:
            return None
        execution = prepared.execution
        self.pool.submit(
            self.runner.run(
                execution.model_copy(deep=True),
                prepared.workflow.steps,
                prepared.context,
                0,
            ),
            name=f"execution-{execution.id}",
        )
        return execution

    async def cancel(self, execution_id: str) -> WorkflowExecution:
        """Mark an execution so the scheduler never resumes it.

        A paused execution is failed with ``"cancelled"`` on the next tick
        after its ``resume_at``. A running one finishes its current run.
        Only the flag is written; state saved by an in-flight run is kept.

        Raises:
            NotFound: If the execution does not exist.
            InvalidTransition: If it already completed or failed.
        """
        flagged = await self.repository.request_cancel(execution_id)
        execution = await self.repository.get_execution(execution_id)
        if execution is None:
            raise NotFound("Execution", execution_id)
        if not flagged:
            raise InvalidTransition(
                f"Execution {execution_id} is already {execution.status.value}"
            )
        logger.info(f"Cancellation requested for execution {execution_id}")
        return execution

    # ------------------------------------------------------------------
    async def startup(self) -> None:
        await self.broadcaster.connect()
        if self.scheduler_enabled:
            self.scheduler.start()

    async def shutdown(self, timeout: Optional[float] = None) -> None:
        """Stop the scheduler, wait for running executions and close clients."""
        await self.scheduler.stop(timeout=timeout)
        if not await self.pool.drain(timeout=timeout):
            logger.warning(f"{self.pool.active} executions still running at shutdown")
        await self.broadcaster.disconnect()
        for client in self._closeables:
            close = getattr(client, "close", None)
            if close is not None:
                await close()

    async def __aenter__(self) -> "AutomationEngine":
        await self.startup()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.shutdown()


__all__ = ["AutomationEngine"]
