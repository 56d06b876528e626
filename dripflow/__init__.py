"""Dripflow: durable contact workflow automation."""

from .broadcast import EventBroadcaster
from .contracts import (
    Contact,
    ExecutionContext,
    ExecutionStatus,
    RunCompleted,
    RunFailed,
    RunSuspended,
    StepEvent,
    Workflow,
    WorkflowExecution,
    WorkflowLog,
    WorkflowStep,
)
from .engine import AutomationEngine
from .persistence import get_repository
from .pool import ExecutionPool
from .runner import ExecutionRunner
from .scheduler import ResumeScheduler
from .transports import get_transport

__version__ = "0.1.0"
__all__ = [
    "AutomationEngine",
    "Contact",
    "EventBroadcaster",
    "ExecutionContext",
    "ExecutionPool",
    "ExecutionRunner",
    "ExecutionStatus",
    "ResumeScheduler",
    "RunCompleted",
    "RunFailed",
    "RunSuspended",
    "StepEvent",
    "Workflow",
    "WorkflowExecution",
    "WorkflowLog",
    "WorkflowStep",
    "get_repository",
    "get_transport",
]
