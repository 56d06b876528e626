"""Repository abstraction for workflow and execution persistence."""

from __future__ import annotations

from datetime import datetime
from typing import Optional, Protocol

from ..contracts import ExecutionStatus, Workflow, WorkflowExecution, WorkflowLog


class WorkflowRepository(Protocol):
    """Protocol for persistence backends.

    Executions are the only state the engine needs to survive a crash;
    everything written through ``save_execution`` must be readable again
    after a restart.
    """

    async def save_workflow(self, workflow: Workflow) -> None:
        """Insert or replace a workflow together with its steps."""

    async def get_workflow(self, workflow_id: str) -> Workflow | None:
        """Return the workflow with steps ordered by ``sort_order``."""

    async def list_workflows(self) -> list[Workflow]:
        """Return all workflows."""

    async def create_execution(self, execution: WorkflowExecution) -> None:
        """Persist a new execution."""

    async def save_execution(self, execution: WorkflowExecution) -> None:
        """Overwrite the stored state of an execution.

        A stored ``cancel_requested`` flag is never cleared by a save, so a
        cancel issued while a run is in flight survives that run's writes.
        """

    async def get_execution(self, execution_id: str) -> WorkflowExecution | None:
        """Retrieve an execution by id."""

    async def list_executions(
        self, status: Optional[ExecutionStatus] = None
    ) -> list[WorkflowExecution]:
        """Return executions, optionally filtered by status."""

    async def list_due_executions(self, now: datetime) -> list[WorkflowExecution]:
        """Return paused executions whose ``resume_at`` is not after ``now``."""

    async def claim_execution(
        self, execution_id: str, now: datetime
    ) -> WorkflowExecution | None:
        """Atomically flip a due paused execution to running.

        Returns the claimed execution, or ``None`` when it is no longer
        paused and due (for example because another worker claimed it).
        """

    async def request_cancel(self, execution_id: str) -> bool:
        """Set ``cancel_requested`` on a running or paused execution.

        Only the flag is written, so progress saved concurrently by an
        in-flight run is kept. Returns False when the execution is missing
        or already completed or failed.
        """

    async def create_log(self, log: WorkflowLog) -> None:
        """Persist a new log row."""

    async def save_log(self, log: WorkflowLog) -> None:
        """Overwrite a log row."""

    async def get_log(self, log_id: str) -> WorkflowLog | None:
        """Retrieve a log row by id."""

    async def list_logs(self, execution_id: Optional[str] = None) -> list[WorkflowLog]:
        """Return log rows, newest first."""
