"""Polling scheduler that resumes paused executions once they are due."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional, Set

from .contracts import ExecutionContext, RunResult
from .errors import SchedulerIterationError
from .pool import ExecutionPool
from .runner import ExecutionRunner

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_SECONDS = 60.0
CANCELLED_ERROR = "cancelled"


@dataclass
class TickReport:
    """What one scheduler tick did."""

    started_at: datetime
    due: int = 0
    resumed: List[str] = field(default_factory=list)
    completed: List[str] = field(default_factory=list)
    cancelled: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    results: Dict[str, RunResult] = field(default_factory=dict)
    errors: List[SchedulerIterationError] = field(default_factory=list)


class ResumeScheduler:
    """Periodically hand due paused executions back to the runner.

    Resumption relies only on the persisted ``status``/``resume_at`` pair, so
    executions paused before a restart are picked up by the first tick of the
    new process. The loop ticks once on start and then every ``interval``
    seconds; each tick runs as its own task so a slow execution never delays
    the next poll.
    """

    def __init__(
        self,
        runner: ExecutionRunner,
        interval: float = DEFAULT_INTERVAL_SECONDS,
        pool: Optional[ExecutionPool] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._runner = runner
        self._repository = runner.repository
        self.interval = interval
        self._pool = pool or ExecutionPool()
        self._clock = clock or runner.clock
        self._task: Optional[asyncio.Task] = None
        self._ticks: Set[asyncio.Task] = set()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> bool:
        """Start the poll loop. Returns False if it was already running."""
        if self.running:
            logger.debug("Scheduler already running")
            return False
        self._task = asyncio.get_running_loop().create_task(
            self._loop(), name="dripflow-scheduler"
        )
        logger.info(
            f"Scheduler started (checking every {self.interval:g}s for paused workflows)"
        )
        return True

    async def stop(self, timeout: Optional[float] = None) -> None:
        """Stop polling and wait for in-flight ticks.

        In-flight steps cannot be aborted; after ``timeout`` seconds the
        remaining ticks are left running and a warning is logged.
        """
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        if self._ticks:
            _, pending = await asyncio.wait(list(self._ticks), timeout=timeout)
            if pending:
                logger.warning(f"{len(pending)} scheduler ticks still running after stop")
        logger.info("Scheduler stopped")

    async def _loop(self) -> None:
        while True:
            tick = asyncio.get_running_loop().create_task(self._guarded_tick())
            self._ticks.add(tick)
            tick.add_done_callback(self._ticks.discard)
            await asyncio.sleep(self.interval)

    async def _guarded_tick(self) -> None:
        try:
            report = await self.tick()
        except Exception:
            logger.exception("Scheduler error")
            return
        if report.errors:
            logger.warning(
                f"Scheduler tick finished with {len(report.errors)} failed resumptions"
            )

    async def tick(self, now: Optional[datetime] = None) -> TickReport:
        """Resume every paused execution whose ``resume_at`` is not after ``now``."""
        now = now or self._clock()
        report = TickReport(started_at=now)
        due = await self._repository.list_due_executions(now)
        report.due = len(due)
        if due:
            logger.info(f"Found {len(due)} paused executions due at {now.isoformat()}")
        await asyncio.gather(
            *(self._pool.run(self._process(ex.id, now, report)) for ex in due)
        )
        return report

    async def _process(self, execution_id: str, now: datetime, report: TickReport) -> None:
        try:
            await self._resume(execution_id, now, report)
        except Exception as exc:
            logger.exception(f"Resume failed for {execution_id}")
            report.errors.append(SchedulerIterationError(execution_id, exc))

    async def _resume(self, execution_id: str, now: datetime, report: TickReport) -> None:
        execution = await self._repository.claim_execution(execution_id, now)
        if execution is None:
            logger.debug(f"Execution {execution_id} was claimed elsewhere")
            report.skipped.append(execution_id)
            return

        logger.info(
            f"Resuming execution {execution.id} at step {execution.current_step_index}"
        )
        if execution.cancel_requested:
            await self._runner.mark_failed(execution, CANCELLED_ERROR)
            report.cancelled.append(execution.id)
            return

        workflow = await self._repository.get_workflow(execution.workflow_id)
        steps = workflow.steps if workflow is not None else []
        contact = await self._runner.contacts.get(execution.contact_id)

        if contact is None or execution.current_step_index >= len(steps):
            await self._runner.mark_completed(execution)
            report.completed.append(execution.id)
            return

        context = ExecutionContext.for_contact(contact, execution.context)
        result = await self._runner.run(
            execution, steps, context, execution.current_step_index
        )
        report.resumed.append(execution.id)
        report.results[execution.id] = result


__all__ = ["ResumeScheduler", "TickReport", "DEFAULT_INTERVAL_SECONDS"]
