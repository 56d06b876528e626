"""Step executors keyed by step kind."""

from __future__ import annotations

from datetime import datetime
from typing import Callable, Dict, Optional

from ..contracts import utcnow
from ..integrations.base import ActorClient, GenerativeClient, MessagingClient, SyncClient
from .base import StepExecutor, StepResult
from .control import (
    BranchExecutor,
    DelayExecutor,
    UnrecognizedStepExecutor,
    evaluate_condition,
)
from .external import ExternalSyncExecutor, InvokeActorExecutor
from .generate import DEFAULT_SYSTEM_PROMPT, GenerateExecutor
from .messaging import SendMessageExecutor

ExecutorRegistry = Dict[str, StepExecutor]


def build_executors(
    messaging: Optional[MessagingClient] = None,
    generator: Optional[GenerativeClient] = None,
    actors: Optional[ActorClient] = None,
    sync: Optional[SyncClient] = None,
    clock: Callable[[], datetime] = utcnow,
    system_prompt: str = DEFAULT_SYSTEM_PROMPT,
) -> ExecutorRegistry:
    """Create one executor per step kind wired to the given collaborators."""
    executors = [
        SendMessageExecutor(messaging),
        DelayExecutor(clock),
        BranchExecutor(),
        GenerateExecutor(generator, system_prompt),
        InvokeActorExecutor(actors),
        ExternalSyncExecutor(sync),
        UnrecognizedStepExecutor(),
    ]
    return {executor.kind: executor for executor in executors}


__all__ = [
    "BranchExecutor",
    "DEFAULT_SYSTEM_PROMPT",
    "DelayExecutor",
    "ExecutorRegistry",
    "ExternalSyncExecutor",
    "GenerateExecutor",
    "InvokeActorExecutor",
    "SendMessageExecutor",
    "StepExecutor",
    "StepResult",
    "UnrecognizedStepExecutor",
    "build_executors",
    "evaluate_condition",
]
