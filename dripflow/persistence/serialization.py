"""Row conversion shared by the SQL backends."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

from ..contracts import (
    ExecutionStatus,
    LogStatus,
    Workflow,
    WorkflowExecution,
    WorkflowLog,
    WorkflowStep,
)


def to_utc(value: datetime) -> datetime:
    """Normalise to an aware UTC datetime; naive values are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_iso(value: Optional[datetime]) -> Optional[str]:
    # Fixed width so stored timestamps compare correctly as strings.
    if value is None:
        return None
    return to_utc(value).isoformat(timespec="microseconds")


def from_iso(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return to_utc(value)
    return to_utc(datetime.fromisoformat(value))


def load_json(value: Any, default: Any = None) -> Any:
    if value is None:
        return default
    if isinstance(value, (str, bytes)):
        return json.loads(value)
    return value


def dump_json(value: Any) -> str:
    return json.dumps(value, default=str)


def workflow_from_rows(row: Mapping[str, Any], step_rows: list[Mapping[str, Any]]) -> Workflow:
    steps = [
        WorkflowStep(
            id=r["id"],
            workflow_id=r["workflow_id"],
            type=r["type"],
            config=load_json(r["config"], {}),
            sort_order=r["sort_order"],
        )
        for r in step_rows
    ]
    return Workflow(
        id=row["id"],
        name=row["name"],
        trigger=row["trigger_label"],
        is_active=bool(row["is_active"]),
        steps=steps,
    )


def execution_from_row(row: Mapping[str, Any]) -> WorkflowExecution:
    return WorkflowExecution(
        id=row["id"],
        workflow_id=row["workflow_id"],
        contact_id=row["contact_id"],
        status=ExecutionStatus(row["status"]),
        current_step_index=row["current_step_index"],
        context=load_json(row["context"], {}),
        resume_at=from_iso(row["resume_at"]),
        error=row["error"],
        started_at=from_iso(row["started_at"]),
        completed_at=from_iso(row["completed_at"]),
        log_id=row["log_id"],
        cancel_requested=bool(row["cancel_requested"]),
    )


def log_from_row(row: Mapping[str, Any]) -> WorkflowLog:
    return WorkflowLog(
        id=row["id"],
        execution_id=row["execution_id"],
        contact_name=row["contact_name"],
        workflow_name=row["workflow_name"],
        current_step=row["current_step"],
        status=LogStatus(row["status"]),
        timestamp=from_iso(row["timestamp"]),
    )
