"""PostgreSQL implementation of the workflow repository."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

import asyncpg

from ..contracts import ExecutionStatus, Workflow, WorkflowExecution, WorkflowLog
from .repository import WorkflowRepository
from .serialization import (
    dump_json,
    execution_from_row,
    log_from_row,
    to_utc,
    workflow_from_rows,
)

_EXECUTION_COLUMNS = (
    "id, workflow_id, contact_id, status, current_step_index, context, resume_at, "
    "error, started_at, completed_at, log_id, cancel_requested"
)
_LOG_COLUMNS = "id, execution_id, contact_name, workflow_name, current_step, status, timestamp"


def _ts(value: Optional[datetime]) -> Optional[datetime]:
    return to_utc(value) if value is not None else None


class PostgresWorkflowRepository(WorkflowRepository):
    """Persist workflow state using PostgreSQL."""

    def __init__(self, dsn: str):
        self._dsn = dsn
        self._initialized = False

    async def _connect(self) -> asyncpg.Connection:
        conn = await asyncpg.connect(self._dsn)
        if not self._initialized:
            await self._ensure_schema(conn)
            self._initialized = True
        return conn

    async def _ensure_schema(self, conn: asyncpg.Connection) -> None:
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS workflows (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                trigger_label TEXT NOT NULL,
                is_active BOOLEAN NOT NULL DEFAULT FALSE
            );
            CREATE TABLE IF NOT EXISTS workflow_steps (
                id TEXT PRIMARY KEY,
                workflow_id TEXT NOT NULL REFERENCES workflows (id) ON DELETE CASCADE,
                type TEXT NOT NULL,
                config JSONB NOT NULL,
                sort_order INTEGER NOT NULL DEFAULT 0,
                position INTEGER NOT NULL DEFAULT 0
            );
            CREATE TABLE IF NOT EXISTS workflow_executions (
                id TEXT PRIMARY KEY,
                workflow_id TEXT NOT NULL,
                contact_id TEXT NOT NULL,
                status TEXT NOT NULL,
                current_step_index INTEGER NOT NULL DEFAULT 0,
                context JSONB NOT NULL DEFAULT '{}',
                resume_at TIMESTAMPTZ,
                error TEXT,
                started_at TIMESTAMPTZ NOT NULL,
                completed_at TIMESTAMPTZ,
                log_id TEXT,
                cancel_requested BOOLEAN NOT NULL DEFAULT FALSE
            );
            CREATE INDEX IF NOT EXISTS idx_executions_due
                ON workflow_executions (status, resume_at);
            CREATE TABLE IF NOT EXISTS workflow_logs (
                id TEXT PRIMARY KEY,
                execution_id TEXT,
                contact_name TEXT NOT NULL,
                workflow_name TEXT NOT NULL,
                current_step TEXT NOT NULL,
                status TEXT NOT NULL,
                timestamp TIMESTAMPTZ NOT NULL
            );
            """
        )

    @staticmethod
    def _execution_args(execution: WorkflowExecution) -> tuple:
        return (
            execution.id,
            execution.workflow_id,
            execution.contact_id,
            execution.status.value,
            execution.current_step_index,
            dump_json(execution.context),
            _ts(execution.resume_at),
            execution.error,
            _ts(execution.started_at),
            _ts(execution.completed_at),
            execution.log_id,
            execution.cancel_requested,
        )

    # ------------------------------------------------------------------
    async def save_workflow(self, workflow: Workflow) -> None:
        conn = await self._connect()
        try:
            async with conn.transaction():
                await conn.execute(
                    """
                    INSERT INTO workflows (id, name, trigger_label, is_active)
                    VALUES ($1, $2, $3, $4)
                    ON CONFLICT (id) DO UPDATE SET
                        name = EXCLUDED.name,
                        trigger_label = EXCLUDED.trigger_label,
                        is_active = EXCLUDED.is_active
                    """,
                    workflow.id,
                    workflow.name,
                    workflow.trigger,
                    workflow.is_active,
                )
                await conn.execute(
                    "DELETE FROM workflow_steps WHERE workflow_id = $1", workflow.id
                )
                await conn.executemany(
                    "INSERT INTO workflow_steps (id, workflow_id, type, config, sort_order, position) VALUES ($1, $2, $3, $4, $5, $6)",
                    [
                        (
                            step.id,
                            workflow.id,
                            step.type,
                            dump_json(step.raw_config()),
                            step.sort_order,
                            position,
                        )
                        for position, step in enumerate(workflow.steps)
                    ],
                )
        finally:
            await conn.close()

    async def _load_workflows(
        self, conn: asyncpg.Connection, rows: list[asyncpg.Record]
    ) -> list[Workflow]:
        workflows = []
        for row in rows:
            step_rows = await conn.fetch(
                "SELECT id, workflow_id, type, config, sort_order FROM workflow_steps WHERE workflow_id = $1 ORDER BY sort_order, position",
                row["id"],
            )
            workflows.append(workflow_from_rows(row, step_rows))
        return workflows

    async def get_workflow(self, workflow_id: str) -> Workflow | None:
        conn = await self._connect()
        try:
            row = await conn.fetchrow(
                "SELECT id, name, trigger_label, is_active FROM workflows WHERE id = $1",
                workflow_id,
            )
            if not row:
                return None
            return (await self._load_workflows(conn, [row]))[0]
        finally:
            await conn.close()

    async def list_workflows(self) -> list[Workflow]:
        conn = await self._connect()
        try:
            rows = await conn.fetch(
                "SELECT id, name, trigger_label, is_active FROM workflows ORDER BY name"
            )
            return await self._load_workflows(conn, rows)
        finally:
            await conn.close()

    # ------------------------------------------------------------------
    async def create_execution(self, execution: WorkflowExecution) -> None:
        conn = await self._connect()
        try:
            await conn.execute(
                f"""
                INSERT INTO workflow_executions ({_EXECUTION_COLUMNS})
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12)
                """,
                *self._execution_args(execution),
            )
        finally:
            await conn.close()

    async def save_execution(self, execution: WorkflowExecution) -> None:
        conn = await self._connect()
        try:
            await conn.execute(
                """
                UPDATE workflow_executions SET
                    workflow_id = $2, contact_id = $3, status = $4,
                    current_step_index = $5, context = $6, resume_at = $7,
                    error = $8, started_at = $9, completed_at = $10,
                    log_id = $11, cancel_requested = workflow_executions.cancel_requested OR $12
                WHERE id = $1
                """,
                *self._execution_args(execution),
            )
        finally:
            await conn.close()

    async def get_execution(self, execution_id: str) -> WorkflowExecution | None:
        conn = await self._connect()
        try:
            row = await conn.fetchrow(
                f"SELECT {_EXECUTION_COLUMNS} FROM workflow_executions WHERE id = $1",
                execution_id,
            )
        finally:
            await conn.close()
        return execution_from_row(row) if row else None

    async def list_executions(
        self, status: Optional[ExecutionStatus] = None
    ) -> list[WorkflowExecution]:
        conn = await self._connect()
        try:
            if status is None:
                rows = await conn.fetch(
                    f"SELECT {_EXECUTION_COLUMNS} FROM workflow_executions ORDER BY started_at"
                )
            else:
                rows = await conn.fetch(
                    f"SELECT {_EXECUTION_COLUMNS} FROM workflow_executions WHERE status = $1 ORDER BY started_at",
                    status.value,
                )
        finally:
            await conn.close()
        return [execution_from_row(row) for row in rows]

    async def list_due_executions(self, now: datetime) -> list[WorkflowExecution]:
        conn = await self._connect()
        try:
            rows = await conn.fetch(
                f"""
                SELECT {_EXECUTION_COLUMNS} FROM workflow_executions
                WHERE status = $1 AND resume_at IS NOT NULL AND resume_at <= $2
                ORDER BY resume_at
                """,
                ExecutionStatus.PAUSED.value,
                to_utc(now),
            )
        finally:
            await conn.close()
        return [execution_from_row(row) for row in rows]

    async def claim_execution(
        self, execution_id: str, now: datetime
    ) -> WorkflowExecution | None:
        conn = await self._connect()
        try:
            row = await conn.fetchrow(
                f"""
                UPDATE workflow_executions SET status = $1, resume_at = NULL
                WHERE id = $2 AND status = $3 AND resume_at IS NOT NULL AND resume_at <= $4
                RETURNING {_EXECUTION_COLUMNS}
                """,
                ExecutionStatus.RUNNING.value,
                execution_id,
                ExecutionStatus.PAUSED.value,
                to_utc(now),
            )
        finally:
            await conn.close()
        return execution_from_row(row) if row else None

    async def request_cancel(self, execution_id: str) -> bool:
        conn = await self._connect()
        try:
            status = await conn.execute(
                """
                UPDATE workflow_executions SET cancel_requested = TRUE
                WHERE id = $1 AND status IN ($2, $3)
                """,
                execution_id,
                ExecutionStatus.RUNNING.value,
                ExecutionStatus.PAUSED.value,
            )
        finally:
            await conn.close()
        return status == "UPDATE 1"

    # ------------------------------------------------------------------
    async def create_log(self, log: WorkflowLog) -> None:
        conn = await self._connect()
        try:
            await conn.execute(
                f"INSERT INTO workflow_logs ({_LOG_COLUMNS}) VALUES ($1, $2, $3, $4, $5, $6, $7)",
                log.id,
                log.execution_id,
                log.contact_name,
                log.workflow_name,
                log.current_step,
                log.status.value,
                to_utc(log.timestamp),
            )
        finally:
            await conn.close()

    async def save_log(self, log: WorkflowLog) -> None:
        conn = await self._connect()
        try:
            await conn.execute(
                """
                UPDATE workflow_logs SET
                    execution_id = $2, contact_name = $3, workflow_name = $4,
                    current_step = $5, status = $6, timestamp = $7
                WHERE id = $1
                """,
                log.id,
                log.execution_id,
                log.contact_name,
                log.workflow_name,
                log.current_step,
                log.status.value,
                to_utc(log.timestamp),
            )
        finally:
            await conn.close()

    async def get_log(self, log_id: str) -> WorkflowLog | None:
        conn = await self._connect()
        try:
            row = await conn.fetchrow(
                f"SELECT {_LOG_COLUMNS} FROM workflow_logs WHERE id = $1", log_id
            )
        finally:
            await conn.close()
        return log_from_row(row) if row else None

    async def list_logs(self, execution_id: Optional[str] = None) -> list[WorkflowLog]:
        conn = await self._connect()
        try:
            if execution_id is None:
                rows = await conn.fetch(
                    f"SELECT {_LOG_COLUMNS} FROM workflow_logs ORDER BY timestamp DESC"
                )
            else:
                rows = await conn.fetch(
                    f"SELECT {_LOG_COLUMNS} FROM workflow_logs WHERE execution_id = $1 ORDER BY timestamp DESC",
                    execution_id,
                )
        finally:
            await conn.close()
        return [log_from_row(row) for row in rows]
