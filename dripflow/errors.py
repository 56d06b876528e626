"""Exception types raised by the dripflow engine."""

from __future__ import annotations

from typing import Optional


class DripflowError(Exception):
    """Base class for engine errors."""


class NotFound(DripflowError):
    """A workflow or contact required to start a run does not exist."""

    def __init__(self, kind: str, identifier: str) -> None:
        super().__init__(f"{kind} not found: {identifier}")
        self.kind = kind
        self.identifier = identifier


class StepExecutionError(DripflowError):
    """A step executor failed. Terminal for the execution."""

    def __init__(
        self,
        message: str,
        step_index: Optional[int] = None,
        step_type: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.step_index = step_index
        self.step_type = step_type


class MalformedStepConfig(DripflowError):
    """A step's type or configuration could not be understood."""

    def __init__(self, step_type: str, reason: str) -> None:
        super().__init__(f"{step_type}: {reason}")
        self.step_type = step_type
        self.reason = reason


class SchedulerIterationError(DripflowError):
    """Processing one due execution inside a scheduler tick failed."""

    def __init__(self, execution_id: str, cause: BaseException) -> None:
        super().__init__(f"Resume failed for {execution_id}: {cause}")
        self.execution_id = execution_id
        self.cause = cause


class InvalidTransition(DripflowError):
    """An execution was asked to move between incompatible statuses."""
