"""Control-flow steps: delays, branches and unrecognized steps."""

from __future__ import annotations

import math
from datetime import datetime, timedelta
from typing import Any, Callable, Mapping, Optional

from ..contracts import (
    BranchConfig,
    DelayConfig,
    ExecutionContext,
    UnrecognizedStepConfig,
    utcnow,
)
from ..templates import parse_wait_minutes
from .base import StepExecutor, StepResult


class DelayExecutor(StepExecutor[DelayConfig]):
    """Compute when a suspended execution becomes due again."""

    kind = "delay"

    def __init__(self, clock: Callable[[], datetime] = utcnow) -> None:
        self._clock = clock

    async def execute(self, config: DelayConfig, context: ExecutionContext) -> StepResult:
        minutes = config.minutes or parse_wait_minutes(config.wait_time)
        resume_at = self._clock() + timedelta(minutes=minutes)
        return StepResult(
            output={"waitMinutes": minutes, "resumeAt": resume_at.isoformat()},
            resume_at=resume_at,
        )


def _as_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str) and value.strip():
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return None if math.isnan(number) else number


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        return ",".join(_as_text(item) for item in value)
    return str(value)


def _loose_equals(actual: Any, expected: Any) -> bool:
    if actual == expected:
        return True
    if actual is None or expected is None:
        return False
    left, right = _as_number(actual), _as_number(expected)
    if left is not None and right is not None:
        return left == right
    return _as_text(actual) == _as_text(expected)


def evaluate_condition(config: BranchConfig, contact: Mapping[str, Any]) -> bool:
    """Evaluate ``field operator value`` against a contact snapshot.

    Numeric comparisons with a non-numeric side never pass, and a field the
    contact does not carry only equals a ``None`` value.
    """
    actual = contact.get(config.field)
    if config.operator == "eq":
        return _loose_equals(actual, config.value)
    if config.operator == "contains":
        return actual is not None and _as_text(config.value) in _as_text(actual)

    left, right = _as_number(actual), _as_number(config.value)
    if left is None or right is None:
        return False
    if config.operator == "gt":
        return left > right
    return left < right


class BranchExecutor(StepExecutor[BranchConfig]):
    kind = "branch"

    async def execute(self, config: BranchConfig, context: ExecutionContext) -> StepResult:
        passed = evaluate_condition(config, context.contact)
        return StepResult(output={"passed": passed}, halt=not passed)


class UnrecognizedStepExecutor(StepExecutor[UnrecognizedStepConfig]):
    """Record the step as skipped so the run can carry on."""

    kind = "unrecognized"

    async def execute(
        self, config: UnrecognizedStepConfig, context: ExecutionContext
    ) -> StepResult:
        return StepResult(output={"skipped": True, "reason": config.reason})
