"""SQLite implementation of the workflow repository."""

from __future__ import annotations

import asyncio
import sqlite3
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from ..contracts import ExecutionStatus, Workflow, WorkflowExecution, WorkflowLog
from .repository import WorkflowRepository
from .serialization import (
    dump_json,
    execution_from_row,
    log_from_row,
    to_iso,
    workflow_from_rows,
)

_EXECUTION_COLUMNS = (
    "id, workflow_id, contact_id, status, current_step_index, context, resume_at, "
    "error, started_at, completed_at, log_id, cancel_requested"
)
_LOG_COLUMNS = "id, execution_id, contact_name, workflow_name, current_step, status, timestamp"


class SQLiteWorkflowRepository(WorkflowRepository):
    """Persist workflow state using SQLite."""

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        self._ensure_schema()

    def close(self) -> None:
        self._conn.close()

    # ------------------------------------------------------------------
    # Schema management
    def _ensure_schema(self) -> None:
        with self._lock:
            self._conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS workflows (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    trigger_label TEXT NOT NULL,
                    is_active INTEGER NOT NULL DEFAULT 0
                );
                CREATE TABLE IF NOT EXISTS workflow_steps (
                    id TEXT PRIMARY KEY,
                    workflow_id TEXT NOT NULL,
                    type TEXT NOT NULL,
                    config TEXT NOT NULL,
                    sort_order INTEGER NOT NULL DEFAULT 0,
                    position INTEGER NOT NULL DEFAULT 0
                );
                CREATE TABLE IF NOT EXISTS workflow_executions (
                    id TEXT PRIMARY KEY,
                    workflow_id TEXT NOT NULL,
                    contact_id TEXT NOT NULL,
                    status TEXT NOT NULL,
                    current_step_index INTEGER NOT NULL DEFAULT 0,
                    context TEXT NOT NULL,
                    resume_at TEXT,
                    error TEXT,
                    started_at TEXT NOT NULL,
                    completed_at TEXT,
                    log_id TEXT,
                    cancel_requested INTEGER NOT NULL DEFAULT 0
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
                    timestamp TEXT NOT NULL
                );
                """
            )
            self._conn.commit()

    # ------------------------------------------------------------------
    # Helper methods
    def _execute(self, query: str, *params: Any) -> int:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(query, params)
            self._conn.commit()
            return cur.rowcount

    def _transaction(self, statements: list[tuple[str, tuple]]) -> None:
        with self._lock:
            try:
                cur = self._conn.cursor()
                for query, params in statements:
                    cur.execute(query, params)
                self._conn.commit()
            except Exception:
                self._conn.rollback()
                raise

    def _fetchone(self, query: str, *params: Any) -> sqlite3.Row | None:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(query, params)
            return cur.fetchone()

    def _fetchall(self, query: str, *params: Any) -> list[sqlite3.Row]:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(query, params)
            return cur.fetchall()

    @staticmethod
    def _execution_params(execution: WorkflowExecution) -> tuple:
        return (
            execution.workflow_id,
            execution.contact_id,
            execution.status.value,
            execution.current_step_index,
            dump_json(execution.context),
            to_iso(execution.resume_at),
            execution.error,
            to_iso(execution.started_at),
            to_iso(execution.completed_at),
            execution.log_id,
            int(execution.cancel_requested),
            execution.id,
        )

    # ------------------------------------------------------------------
    # Workflows
    async def save_workflow(self, workflow: Workflow) -> None:
        statements: list[tuple[str, tuple]] = [
            (
                """
                INSERT INTO workflows (id, name, trigger_label, is_active) VALUES (?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    name = excluded.name,
                    trigger_label = excluded.trigger_label,
                    is_active = excluded.is_active
                """,
                (workflow.id, workflow.name, workflow.trigger, int(workflow.is_active)),
            ),
            ("DELETE FROM workflow_steps WHERE workflow_id = ?", (workflow.id,)),
        ]
        for position, step in enumerate(workflow.steps):
            statements.append(
                (
                    "INSERT INTO workflow_steps (id, workflow_id, type, config, sort_order, position) VALUES (?, ?, ?, ?, ?, ?)",
                    (
                        step.id,
                        workflow.id,
                        step.type,
                        dump_json(step.raw_config()),
                        step.sort_order,
                        position,
                    ),
                )
            )
        await asyncio.to_thread(self._transaction, statements)

    async def _load_workflow(self, row: sqlite3.Row) -> Workflow:
        step_rows = await asyncio.to_thread(
            self._fetchall,
            "SELECT id, workflow_id, type, config, sort_order FROM workflow_steps WHERE workflow_id = ? ORDER BY sort_order, position",
            row["id"],
        )
        return workflow_from_rows(row, step_rows)

    async def get_workflow(self, workflow_id: str) -> Workflow | None:
        row = await asyncio.to_thread(
            self._fetchone,
            "SELECT id, name, trigger_label, is_active FROM workflows WHERE id = ?",
            workflow_id,
        )
        if not row:
            return None
        return await self._load_workflow(row)

    async def list_workflows(self) -> list[Workflow]:
        rows = await asyncio.to_thread(
            self._fetchall, "SELECT id, name, trigger_label, is_active FROM workflows ORDER BY name"
        )
        return [await self._load_workflow(row) for row in rows]

    # ------------------------------------------------------------------
    # Executions
    async def create_execution(self, execution: WorkflowExecution) -> None:
        await asyncio.to_thread(
            self._execute,
            """
            INSERT INTO workflow_executions (
                workflow_id, contact_id, status, current_step_index, context, resume_at,
                error, started_at, completed_at, log_id, cancel_requested, id
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            *self._execution_params(execution),
        )

    async def save_execution(self, execution: WorkflowExecution) -> None:
        await asyncio.to_thread(
            self._execute,
            """
            UPDATE workflow_executions SET
                workflow_id = ?, contact_id = ?, status = ?, current_step_index = ?,
                context = ?, resume_at = ?, error = ?, started_at = ?, completed_at = ?,
                log_id = ?, cancel_requested = MAX(cancel_requested, ?)
            WHERE id = ?
            """,
            *self._execution_params(execution),
        )

    async def get_execution(self, execution_id: str) -> WorkflowExecution | None:
        row = await asyncio.to_thread(
            self._fetchone,
            f"SELECT {_EXECUTION_COLUMNS} FROM workflow_executions WHERE id = ?",
            execution_id,
        )
        return execution_from_row(row) if row else None

    async def list_executions(
        self, status: Optional[ExecutionStatus] = None
    ) -> list[WorkflowExecution]:
        if status is None:
            rows = await asyncio.to_thread(
                self._fetchall,
                f"SELECT {_EXECUTION_COLUMNS} FROM workflow_executions ORDER BY started_at",
            )
        else:
            rows = await asyncio.to_thread(
                self._fetchall,
                f"SELECT {_EXECUTION_COLUMNS} FROM workflow_executions WHERE status = ? ORDER BY started_at",
                status.value,
            )
        return [execution_from_row(row) for row in rows]

    async def list_due_executions(self, now: datetime) -> list[WorkflowExecution]:
        rows = await asyncio.to_thread(
            self._fetchall,
            f"""
            SELECT {_EXECUTION_COLUMNS} FROM workflow_executions
            WHERE status = ? AND resume_at IS NOT NULL AND resume_at <= ?
            ORDER BY resume_at
            """,
            ExecutionStatus.PAUSED.value,
            to_iso(now),
        )
        return [execution_from_row(row) for row in rows]

    async def claim_execution(
        self, execution_id: str, now: datetime
    ) -> WorkflowExecution | None:
        updated = await asyncio.to_thread(
            self._execute,
            """
            UPDATE workflow_executions SET status = ?, resume_at = NULL
            WHERE id = ? AND status = ? AND resume_at IS NOT NULL AND resume_at <= ?
            """,
            ExecutionStatus.RUNNING.value,
            execution_id,
            ExecutionStatus.PAUSED.value,
            to_iso(now),
        )
        if updated != 1:
            return None
        return await self.get_execution(execution_id)

    async def request_cancel(self, execution_id: str) -> bool:
        updated = await asyncio.to_thread(
            self._execute,
            "UPDATE workflow_executions SET cancel_requested = 1 WHERE id = ? AND status IN (?, ?)",
            execution_id,
            ExecutionStatus.RUNNING.value,
            ExecutionStatus.PAUSED.value,
        )
        return updated == 1

    # ------------------------------------------------------------------
    # Logs
    async def create_log(self, log: WorkflowLog) -> None:
        await asyncio.to_thread(
            self._execute,
            f"INSERT INTO workflow_logs ({_LOG_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?)",
            log.id,
            log.execution_id,
            log.contact_name,
            log.workflow_name,
            log.current_step,
            log.status.value,
            to_iso(log.timestamp),
        )

    async def save_log(self, log: WorkflowLog) -> None:
        await asyncio.to_thread(
            self._execute,
            """
            UPDATE workflow_logs SET
                execution_id = ?, contact_name = ?, workflow_name = ?,
                current_step = ?, status = ?, timestamp = ?
            WHERE id = ?
            """,
            log.execution_id,
            log.contact_name,
            log.workflow_name,
            log.current_step,
            log.status.value,
            to_iso(log.timestamp),
            log.id,
        )

    async def get_log(self, log_id: str) -> WorkflowLog | None:
        row = await asyncio.to_thread(
            self._fetchone,
            f"SELECT {_LOG_COLUMNS} FROM workflow_logs WHERE id = ?",
            log_id,
        )
        return log_from_row(row) if row else None

    async def list_logs(self, execution_id: Optional[str] = None) -> list[WorkflowLog]:
        if execution_id is None:
            rows = await asyncio.to_thread(
                self._fetchall,
                f"SELECT {_LOG_COLUMNS} FROM workflow_logs ORDER BY timestamp DESC",
            )
        else:
            rows = await asyncio.to_thread(
                self._fetchall,
                f"SELECT {_LOG_COLUMNS} FROM workflow_logs WHERE execution_id = ? ORDER BY timestamp DESC",
                execution_id,
            )
        return [log_from_row(row) for row in rows]
