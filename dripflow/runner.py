"""Execution runner: drives one workflow execution step by step."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, List, Optional

from pydantic import BaseModel

from .broadcast import EventBroadcaster
from .contracts import (
    DelayConfig,
    EventStatus,
    ExecutionContext,
    ExecutionStatus,
    LogStatus,
    RunCompleted,
    RunFailed,
    RunResult,
    RunSuspended,
    Workflow,
    WorkflowExecution,
    WorkflowLog,
    WorkflowStep,
    step_key,
    utcnow,
)
from .errors import InvalidTransition, NotFound, StepExecutionError
from .integrations.base import ContactDirectory
from .persistence.repository import WorkflowRepository
from .steps import ExecutorRegistry, StepResult, build_executors

logger = logging.getLogger(__name__)


class PreparedRun(BaseModel):
    """A freshly created execution ready to be run from its first step."""

    workflow: Workflow
    execution: WorkflowExecution
    context: ExecutionContext


class ExecutionRunner:
    """Run workflow steps against a contact and persist every transition.

    A run ends in exactly one of three ways: all steps complete (or a branch
    short-circuits), a step fails, or a delay step suspends the execution.
    Suspension is represented only by the persisted execution row; nothing
    is kept in memory for the resume.
    """

    def __init__(
        self,
        repository: WorkflowRepository,
        contacts: ContactDirectory,
        executors: Optional[ExecutorRegistry] = None,
        broadcaster: Optional[EventBroadcaster] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._repository = repository
        self._contacts = contacts
        self._clock = clock
        self._executors = executors if executors is not None else build_executors(clock=clock)
        self._broadcaster = broadcaster or EventBroadcaster()

    @property
    def repository(self) -> WorkflowRepository:
        return self._repository

    @property
    def contacts(self) -> ContactDirectory:
        return self._contacts

    @property
    def clock(self) -> Callable[[], datetime]:
        return self._clock

    # ------------------------------------------------------------------
    # Entry points
    async def prepare(self, workflow_id: str, contact_id: str) -> PreparedRun | None:
        """Validate the trigger and create the execution and log rows.

        Returns ``None`` for a workflow without steps.

        Raises:
            NotFound: If the workflow or the contact does not exist. Nothing
                is persisted in that case.
        """
        workflow = await self._repository.get_workflow(workflow_id)
        if workflow is None:
            raise NotFound("Workflow", workflow_id)
        if not workflow.steps:
            logger.info(f"Workflow {workflow_id} has no steps, nothing to run")
            return None

        contact = await self._contacts.get(contact_id)
        if contact is None:
            raise NotFound("Contact", contact_id)

        now = self._clock()
        execution = WorkflowExecution(
            workflow_id=workflow.id, contact_id=contact.id, started_at=now
        )
        log = WorkflowLog(
            execution_id=execution.id,
            contact_name=contact.name,
            workflow_name=workflow.name,
            current_step=workflow.steps[0].type,
            status=LogStatus.SUCCESS,
            timestamp=now,
        )
        execution.log_id = log.id
        await self._repository.create_execution(execution)
        await self._repository.create_log(log)
        logger.info(
            f"Started execution {execution.id} of workflow {workflow.id} for contact {contact.id}"
        )
        return PreparedRun(
            workflow=workflow,
            execution=execution,
            context=ExecutionContext.for_contact(contact),
        )

    async def start(self, workflow_id: str, contact_id: str) -> RunResult | None:
        """Create a new execution and run it from the first step."""
        prepared = await self.prepare(workflow_id, contact_id)
        if prepared is None:
            return None
        return await self.run(
            prepared.execution, prepared.workflow.steps, prepared.context, 0
        )

    async def run(
        self,
        execution: WorkflowExecution,
        steps: List[WorkflowStep],
        context: ExecutionContext,
        from_index: Optional[int] = None,
    ) -> RunResult:
        """Execute ``steps`` starting at ``from_index``.

        ``from_index`` defaults to the execution's ``current_step_index``.
        Step failures are persisted and reported as ``RunFailed``; only
        persistence errors propagate.
        """
        if execution.status is not ExecutionStatus.RUNNING:
            raise InvalidTransition(
                f"Execution {execution.id} is {execution.status.value}, cannot run"
            )
        start = execution.current_step_index if from_index is None else from_index
        log = await self._load_log(execution)
        total = len(steps)

        for index in range(start, total):
            step = steps[index]
            self._publish(execution, index, step.type, EventStatus.RUNNING)

            try:
                result = await self._execute_step(step, index, context)
            except StepExecutionError as exc:
                return await self._fail(execution, log, step, index, exc)

            context.outputs[step_key(index)] = result.output

            if result.resume_at is not None:
                return await self._suspend(execution, log, step, index, result, context)

            if result.halt:
                return await self._short_circuit(execution, log, step, index, context)

            execution.advance(index + 1, context.outputs)
            await self._repository.save_execution(execution)
            await self._update_log(log, f"{step.type} ({index + 1}/{total})")
            self._publish(execution, index, step.type, EventStatus.SUCCESS)

        await self.mark_completed(execution, context)
        return RunCompleted(execution_id=execution.id, step_index=execution.current_step_index)

    # ------------------------------------------------------------------
    # Terminal helpers shared with the scheduler
    async def mark_completed(
        self, execution: WorkflowExecution, context: Optional[ExecutionContext] = None
    ) -> None:
        """Complete a running execution without running further steps."""
        if context is not None:
            execution.context = dict(context.outputs)
        execution.complete(at=self._clock())
        await self._repository.save_execution(execution)
        await self._update_log(await self._load_log(execution), "Completed", LogStatus.SUCCESS)
        self._publish(execution, -1, "done", EventStatus.COMPLETED)
        logger.info(f"Execution {execution.id} completed")

    async def mark_failed(self, execution: WorkflowExecution, error: str) -> None:
        """Fail a running execution at its current step."""
        execution.fail(error, at=self._clock())
        await self._repository.save_execution(execution)
        await self._update_log(
            await self._load_log(execution), f"Failed: {error}", LogStatus.FAILED
        )
        self._publish(
            execution, execution.current_step_index, "done", EventStatus.FAILED, error
        )
        logger.warning(f"Execution {execution.id} failed: {error}")

    # ------------------------------------------------------------------
    # Internals
    async def _execute_step(
        self, step: WorkflowStep, index: int, context: ExecutionContext
    ) -> StepResult:
        executor = self._executors.get(step.config.kind)
        if executor is None:
            return StepResult(
                output={
                    "skipped": True,
                    "reason": f"No executor for step kind: {step.config.kind}",
                }
            )
        try:
            return await executor.execute(step.config, context)
        except StepExecutionError as exc:
            exc.step_index = index
            exc.step_type = step.type
            raise
        except Exception as exc:
            raise StepExecutionError(
                str(exc) or type(exc).__name__, step_index=index, step_type=step.type
            ) from exc

    async def _suspend(
        self,
        execution: WorkflowExecution,
        log: Optional[WorkflowLog],
        step: WorkflowStep,
        index: int,
        result: StepResult,
        context: ExecutionContext,
    ) -> RunSuspended:
        execution.suspend(result.resume_at, index + 1, context.outputs)
        await self._repository.save_execution(execution)
        await self._update_log(log, f"Waiting ({_wait_label(step)})", LogStatus.WAITING)
        self._publish(execution, index, step.type, EventStatus.WAITING)
        logger.info(
            f"Execution {execution.id} paused at step {index} until {result.resume_at.isoformat()}"
        )
        return RunSuspended(
            execution_id=execution.id, step_index=index, resume_at=result.resume_at
        )

    async def _short_circuit(
        self,
        execution: WorkflowExecution,
        log: Optional[WorkflowLog],
        step: WorkflowStep,
        index: int,
        context: ExecutionContext,
    ) -> RunCompleted:
        execution.context = dict(context.outputs)
        execution.complete(at=self._clock())
        await self._repository.save_execution(execution)
        await self._update_log(log, "Condition not met, skipped", LogStatus.SUCCESS)
        self._publish(execution, index, step.type, EventStatus.COMPLETED)
        logger.info(f"Execution {execution.id} stopped at branch step {index}")
        return RunCompleted(
            execution_id=execution.id, step_index=index, short_circuited=True
        )

    async def _fail(
        self,
        execution: WorkflowExecution,
        log: Optional[WorkflowLog],
        step: WorkflowStep,
        index: int,
        exc: StepExecutionError,
    ) -> RunFailed:
        error = str(exc)
        logger.error(
            f"Step {index} ({step.type}) failed for execution {execution.id}: {error}"
        )
        execution.fail(error, index, at=self._clock())
        await self._repository.save_execution(execution)
        await self._update_log(log, f"Failed at: {step.type}", LogStatus.FAILED)
        self._publish(execution, index, step.type, EventStatus.FAILED, error)
        return RunFailed(execution_id=execution.id, step_index=index, error=error)

    async def _load_log(self, execution: WorkflowExecution) -> Optional[WorkflowLog]:
        if not execution.log_id:
            return None
        return await self._repository.get_log(execution.log_id)

    async def _update_log(
        self,
        log: Optional[WorkflowLog],
        current_step: str,
        status: Optional[LogStatus] = None,
    ) -> None:
        if log is None:
            return
        log.current_step = current_step
        if status is not None:
            log.status = status
        log.timestamp = self._clock()
        await self._repository.save_log(log)

    def _publish(
        self,
        execution: WorkflowExecution,
        index: int,
        step_type: str,
        status: EventStatus,
        error: Optional[str] = None,
    ) -> None:
        self._broadcaster.step(
            execution.id, index, step_type, status, error=error, log_id=execution.log_id
        )


def _wait_label(step: WorkflowStep) -> str:
    config = step.config
    if isinstance(config, DelayConfig):
        return f"{config.minutes}m" if config.minutes else config.wait_time
    return step.type
