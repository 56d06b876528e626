"""In-memory implementation of the workflow repository."""

from __future__ import annotations

from datetime import datetime
from typing import Dict, Optional

from ..contracts import ExecutionStatus, Workflow, WorkflowExecution, WorkflowLog
from .repository import WorkflowRepository


class InMemoryWorkflowRepository(WorkflowRepository):
    """Store workflow state in local memory.

    Useful for tests or when no database is configured. Data is not
    persisted across process restarts. Records are copied on the way in and
    out so callers only see what was explicitly saved.
    """

    def __init__(self) -> None:
        self._workflows: Dict[str, Workflow] = {}
        self._executions: Dict[str, WorkflowExecution] = {}
        self._logs: Dict[str, WorkflowLog] = {}

    # ------------------------------------------------------------------
    async def save_workflow(self, workflow: Workflow) -> None:
        self._workflows[workflow.id] = workflow.model_copy(deep=True)

    async def get_workflow(self, workflow_id: str) -> Workflow | None:
        wf = self._workflows.get(workflow_id)
        return wf.model_copy(deep=True) if wf else None

    async def list_workflows(self) -> list[Workflow]:
        return [wf.model_copy(deep=True) for wf in self._workflows.values()]

    # ------------------------------------------------------------------
    async def create_execution(self, execution: WorkflowExecution) -> None:
        if execution.id in self._executions:
            raise ValueError(f"Execution {execution.id} already exists")
        self._executions[execution.id] = execution.model_copy(deep=True)

    async def save_execution(self, execution: WorkflowExecution) -> None:
        stored = execution.model_copy(deep=True)
        previous = self._executions.get(execution.id)
        if previous is not None and previous.cancel_requested:
            stored.cancel_requested = True
        self._executions[execution.id] = stored

    async def get_execution(self, execution_id: str) -> WorkflowExecution | None:
        ex = self._executions.get(execution_id)
        return ex.model_copy(deep=True) if ex else None

    async def list_executions(
        self, status: Optional[ExecutionStatus] = None
    ) -> list[WorkflowExecution]:
        return [
            ex.model_copy(deep=True)
            for ex in sorted(self._executions.values(), key=lambda e: e.started_at)
            if status is None or ex.status is status
        ]

    async def list_due_executions(self, now: datetime) -> list[WorkflowExecution]:
        due = [
            ex
            for ex in self._executions.values()
            if ex.status is ExecutionStatus.PAUSED
            and ex.resume_at is not None
            and ex.resume_at <= now
        ]
        due.sort(key=lambda e: e.resume_at)
        return [ex.model_copy(deep=True) for ex in due]

    async def claim_execution(
        self, execution_id: str, now: datetime
    ) -> WorkflowExecution | None:
        ex = self._executions.get(execution_id)
        if (
            ex is None
            or ex.status is not ExecutionStatus.PAUSED
            or ex.resume_at is None
            or ex.resume_at > now
        ):
            return None
        ex.resume()
        return ex.model_copy(deep=True)

    async def request_cancel(self, execution_id: str) -> bool:
        ex = self._executions.get(execution_id)
        if ex is None or ex.is_terminal:
            return False
        ex.cancel_requested = True
        return True

    # ------------------------------------------------------------------
    async def create_log(self, log: WorkflowLog) -> None:
        self._logs[log.id] = log.model_copy(deep=True)

    async def save_log(self, log: WorkflowLog) -> None:
        self._logs[log.id] = log.model_copy(deep=True)

    async def get_log(self, log_id: str) -> WorkflowLog | None:
        log = self._logs.get(log_id)
        return log.model_copy(deep=True) if log else None

    async def list_logs(self, execution_id: Optional[str] = None) -> list[WorkflowLog]:
        logs = [
            log
            for log in self._logs.values()
            if execution_id is None or log.execution_id == execution_id
        ]
        logs.sort(key=lambda log: log.timestamp, reverse=True)
        return [log.model_copy(deep=True) for log in logs]
