"""Core data contracts for the dripflow automation engine."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    ValidationError,
    model_validator,
)

from .errors import InvalidTransition, MalformedStepConfig

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


def step_key(index: int) -> str:
    """Context key under which the output of step ``index`` is stored."""
    return f"step_{index}"


# ----------------------------------------------------------------------
# Step configuration


class SendMessageConfig(BaseModel):
    """Deliver a rendered message to the contact."""

    kind: Literal["send_message"] = "send_message"
    channel: Literal["email", "sms", "voice", "whatsapp"] = "email"
    message: str = Field(
        default="", validation_alias=AliasChoices("message", "body", "content")
    )
    subject: Optional[str] = None


class DelayConfig(BaseModel):
    """Suspend the execution for a free-text duration."""

    kind: Literal["delay"] = "delay"
    wait_time: str = Field(
        default="1 Day", validation_alias=AliasChoices("wait_time", "waitTime")
    )
    minutes: Optional[int] = None


class BranchConfig(BaseModel):
    """Continue only when the contact matches ``field operator value``."""

    kind: Literal["branch"] = "branch"
    field: str
    operator: Literal["eq", "gt", "lt", "contains"] = "eq"
    value: Any = ""


class GenerateConfig(BaseModel):
    kind: Literal["generate"] = "generate"
    description: str = Field(
        default="Analyze this contact",
        validation_alias=AliasChoices("description", "prompt"),
    )


class InvokeActorConfig(BaseModel):
    kind: Literal["invoke_actor"] = "invoke_actor"
    actor_id: str = Field(validation_alias=AliasChoices("actor_id", "actorId"))
    input: Dict[str, Any] = Field(
        default_factory=dict, validation_alias=AliasChoices("input", "runInput")
    )


class ExternalSyncConfig(BaseModel):
    kind: Literal["external_sync"] = "external_sync"
    target: str
    payload: Dict[str, Any] = Field(default_factory=dict)


class UnrecognizedStepConfig(BaseModel):
    """Placeholder for a step that could not be understood at load time."""

    kind: Literal["unrecognized"] = "unrecognized"
    step_type: str
    reason: str
    raw: Dict[str, Any] = Field(default_factory=dict)


StepConfig = Annotated[
    Union[
        SendMessageConfig,
        DelayConfig,
        BranchConfig,
        GenerateConfig,
        InvokeActorConfig,
        ExternalSyncConfig,
        UnrecognizedStepConfig,
    ],
    Field(discriminator="kind"),
]

_STEP_CONFIG_ADAPTER: TypeAdapter = TypeAdapter(StepConfig)

STEP_KINDS = frozenset(
    {"send_message", "delay", "branch", "generate", "invoke_actor", "external_sync"}
)

# Labels used by earlier workflow definitions.
LEGACY_STEP_TYPES: Dict[str, tuple[str, Dict[str, Any]]] = {
    "email": ("send_message", {"channel": "email"}),
    "sms": ("send_message", {"channel": "sms"}),
    "wait": ("delay", {}),
    "condition": ("branch", {}),
    "ai_step": ("generate", {}),
    "apify_actor": ("invoke_actor", {}),
}


def parse_step_config(step_type: str, raw: Optional[Dict[str, Any]]) -> StepConfig:
    """Validate ``raw`` as the configuration of a ``step_type`` step.

    Raises:
        MalformedStepConfig: If the type is unknown or the configuration
            does not validate.
    """
    label = (step_type or "").strip().lower().replace("-", "_")
    data = dict(raw or {})
    if label in LEGACY_STEP_TYPES:
        kind, defaults = LEGACY_STEP_TYPES[label]
        data = {**data, **defaults}
    elif label in STEP_KINDS:
        kind = label
    else:
        raise MalformedStepConfig(step_type, f"Unknown step type: {step_type}")

    data["kind"] = kind
    try:
        return _STEP_CONFIG_ADAPTER.validate_python(data)
    except ValidationError as exc:
        raise MalformedStepConfig(step_type, str(exc)) from exc


def coerce_step_config(step_type: str, raw: Optional[Dict[str, Any]]) -> StepConfig:
    """Like ``parse_step_config`` but degrades to an unrecognized step."""
    try:
        return parse_step_config(step_type, raw)
    except MalformedStepConfig as exc:
        logger.warning(f"Malformed step config for '{step_type}': {exc.reason}")
        return UnrecognizedStepConfig(
            step_type=step_type or "", reason=exc.reason, raw=dict(raw or {})
        )


# ----------------------------------------------------------------------
# Workflow definitions


class WorkflowStep(BaseModel):
    """One unit of work within a workflow."""

    id: str = Field(default_factory=_new_id)
    workflow_id: str = ""
    type: str
    config: StepConfig
    sort_order: int = 0

    @model_validator(mode="before")
    @classmethod
    def _validate_config(cls, data: Any) -> Any:
        if isinstance(data, dict) and not isinstance(data.get("config"), BaseModel):
            data = dict(data)
            data["config"] = coerce_step_config(
                data.get("type", ""), data.get("config")
            )
        return data

    def raw_config(self) -> Dict[str, Any]:
        """Configuration in the form it is persisted."""
        if isinstance(self.config, UnrecognizedStepConfig):
            return dict(self.config.raw)
        return self.config.model_dump(mode="json", exclude={"kind"})


class Workflow(BaseModel):
    """A named, ordered list of steps run against a single contact."""

    id: str = Field(default_factory=_new_id)
    name: str
    trigger: str = "manual"
    is_active: bool = False
    steps: List[WorkflowStep] = Field(default_factory=list)

    @model_validator(mode="after")
    def _order_steps(self) -> "Workflow":
        self.steps.sort(key=lambda step: step.sort_order)
        for step in self.steps:
            if not step.workflow_id:
                step.workflow_id = self.id
        return self


class Contact(BaseModel):
    """Read-only view of a CRM contact."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str = ""
    email: str = ""
    phone: str = ""
    status: str = "Lead"
    lead_score: int = Field(default=40, alias="leadScore")
    tags: List[Any] = Field(default_factory=list)
    custom_fields: Dict[str, Any] = Field(default_factory=dict, alias="customFields")

    def snapshot(self) -> Dict[str, Any]:
        """Flat dict used by branch lookups and prompts.

        Custom fields are merged last and may shadow built-in keys.
        """
        snapshot: Dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "status": self.status,
            "leadScore": self.lead_score,
            "tags": list(self.tags),
        }
        snapshot.update(self.custom_fields)
        return snapshot


# ----------------------------------------------------------------------
# Execution state


class ExecutionStatus(str, Enum):
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    FAILED = "failed"


_TRANSITIONS: Dict[ExecutionStatus, frozenset[ExecutionStatus]] = {
    ExecutionStatus.RUNNING: frozenset(
        {ExecutionStatus.PAUSED, ExecutionStatus.COMPLETED, ExecutionStatus.FAILED}
    ),
    ExecutionStatus.PAUSED: frozenset({ExecutionStatus.RUNNING}),
    ExecutionStatus.COMPLETED: frozenset(),
    ExecutionStatus.FAILED: frozenset(),
}


class WorkflowExecution(BaseModel):
    """Durable record of one workflow run for one contact.

    Status changes go through the transition methods, which enforce that
    ``resume_at`` is set only while paused, that the step index never moves
    backwards and that terminal executions are never modified again.
    """

    id: str = Field(default_factory=_new_id)
    workflow_id: str
    contact_id: str
    status: ExecutionStatus = ExecutionStatus.RUNNING
    current_step_index: int = 0
    context: Dict[str, Any] = Field(default_factory=dict)
    resume_at: Optional[datetime] = None
    error: Optional[str] = None
    started_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    log_id: Optional[str] = None
    cancel_requested: bool = False

    @property
    def is_terminal(self) -> bool:
        return self.status in (ExecutionStatus.COMPLETED, ExecutionStatus.FAILED)

    def _transition(self, target: ExecutionStatus) -> None:
        if target not in _TRANSITIONS[self.status]:
            raise InvalidTransition(
                f"Execution {self.id} cannot move from {self.status.value} to {target.value}"
            )
        self.status = target

    def _move_to(self, index: int) -> None:
        if index < self.current_step_index:
            raise InvalidTransition(
                f"Execution {self.id} cannot rewind from step {self.current_step_index} to {index}"
            )
        self.current_step_index = index

    def _require(self, status: ExecutionStatus) -> None:
        if self.status is not status:
            raise InvalidTransition(
                f"Execution {self.id} is {self.status.value}, expected {status.value}"
            )

    def advance(self, next_index: int, outputs: Dict[str, Any]) -> None:
        """Record progress after a successful step."""
        self._require(ExecutionStatus.RUNNING)
        self._move_to(next_index)
        self.context = dict(outputs)

    def suspend(
        self, resume_at: datetime, next_index: int, outputs: Dict[str, Any]
    ) -> None:
        self._transition(ExecutionStatus.PAUSED)
        self._move_to(next_index)
        self.context = dict(outputs)
        self.resume_at = resume_at

    def resume(self) -> None:
        self._transition(ExecutionStatus.RUNNING)
        self.resume_at = None

    def complete(self, at: Optional[datetime] = None) -> None:
        self._transition(ExecutionStatus.COMPLETED)
        self.resume_at = None
        self.completed_at = at or utcnow()

    def fail(
        self, error: str, step_index: Optional[int] = None, at: Optional[datetime] = None
    ) -> None:
        self._transition(ExecutionStatus.FAILED)
        if step_index is not None:
            self._move_to(step_index)
        self.error = error
        self.resume_at = None
        self.completed_at = at or utcnow()

    def request_cancel(self) -> None:
        """Prevent any future resumption of this execution."""
        if self.is_terminal:
            raise InvalidTransition(
                f"Execution {self.id} is already {self.status.value}"
            )
        self.cancel_requested = True


class LogStatus(str, Enum):
    SUCCESS = "success"
    WAITING = "waiting"
    FAILED = "failed"


class WorkflowLog(BaseModel):
    """Human-readable projection of one execution."""

    id: str = Field(default_factory=_new_id)
    execution_id: Optional[str] = None
    contact_name: str
    workflow_name: str
    current_step: str
    status: LogStatus = LogStatus.SUCCESS
    timestamp: datetime = Field(default_factory=utcnow)


class ExecutionContext(BaseModel):
    """Contact snapshot plus step outputs threaded through a run."""

    contact: Dict[str, Any]
    outputs: Dict[str, Any] = Field(default_factory=dict)

    @property
    def contact_id(self) -> str:
        return str(self.contact.get("id", ""))

    @classmethod
    def for_contact(
        cls, contact: Contact, outputs: Optional[Dict[str, Any]] = None
    ) -> "ExecutionContext":
        return cls(contact=contact.snapshot(), outputs=dict(outputs or {}))


# ----------------------------------------------------------------------
# Events and run outcomes


class EventStatus(str, Enum):
    RUNNING = "running"
    SUCCESS = "success"
    WAITING = "waiting"
    FAILED = "failed"
    COMPLETED = "completed"


class StepEvent(BaseModel):
    """Progress notification published while an execution runs."""

    execution_id: str
    log_id: Optional[str] = None
    step_index: int
    step_type: str
    status: EventStatus
    error: Optional[str] = None
    timestamp: datetime = Field(default_factory=utcnow)

    def to_json(self) -> str:
        return self.model_dump_json()

    @classmethod
    def from_json(cls, data: str) -> "StepEvent":
        return cls.model_validate_json(data)


class RunCompleted(BaseModel):
    outcome: Literal["completed"] = "completed"
    execution_id: str
    step_index: int
    short_circuited: bool = False


class RunFailed(BaseModel):
    outcome: Literal["failed"] = "failed"
    execution_id: str
    step_index: int
    error: str


class RunSuspended(BaseModel):
    outcome: Literal["suspended"] = "suspended"
    execution_id: str
    step_index: int
    resume_at: datetime


RunResult = Annotated[
    Union[RunCompleted, RunFailed, RunSuspended], Field(discriminator="outcome")
]
