"""Base step executor interface."""

from __future__ import annotations

import abc
from datetime import datetime
from typing import Any, ClassVar, Generic, Optional, TypeVar

from pydantic import BaseModel

from ..contracts import ExecutionContext

ConfigT = TypeVar("ConfigT", bound=BaseModel)


class StepResult(BaseModel):
    """What a step produced and how the run should proceed.

    ``resume_at`` suspends the execution until that time; ``halt`` ends it
    successfully without running the remaining steps.
    """

    output: Any = None
    resume_at: Optional[datetime] = None
    halt: bool = False


class StepExecutor(Generic[ConfigT], metaclass=abc.ABCMeta):
    """Strategy for one step kind."""

    kind: ClassVar[str]

    @abc.abstractmethod
    async def execute(self, config: ConfigT, context: ExecutionContext) -> StepResult:
        """Run the step. Raise to fail the execution."""
        raise NotImplementedError
