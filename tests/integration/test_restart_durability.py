"""A paused execution survives a process restart over the same SQLite file."""

from datetime import datetime, timedelta, timezone

import pytest

from dripflow.contracts import Contact, ExecutionStatus, RunCompleted, RunSuspended, Workflow
from dripflow.engine import AutomationEngine
from dripflow.integrations.inmemory import (
    InMemoryContactDirectory,
    RecordingMessagingClient,
    StaticGenerativeClient,
)
from dripflow.persistence import SQLiteWorkflowRepository
from dripflow.steps import build_executors

START = datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)


class Clock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


def _engine(db_path, clock, messaging, generator):
    contacts = InMemoryContactDirectory(
        [Contact(id="c1", name="Ada", email="ada@example.com", lead_score=90)]
    )
    return AutomationEngine(
        SQLiteWorkflowRepository(db_path),
        contacts,
        executors=build_executors(messaging=messaging, generator=generator, clock=clock),
        clock=clock,
    )


@pytest.mark.asyncio
async def test_resume_after_restart(tmp_path):
    db_path = tmp_path / "dripflow.db"
    clock = Clock(START)

    first_messaging = RecordingMessagingClient()
    first = _engine(db_path, clock, first_messaging, StaticGenerativeClient({"tier": "gold"}))
    wf = Workflow(
        name="Onboarding",
        steps=[
            {"type": "ai_step", "config": {"prompt": "Classify {{contact.name}}"}, "sort_order": 0},
            {"type": "wait", "config": {"waitTime": "3 Days"}, "sort_order": 1},
            {"type": "email", "config": {"message": "Welcome back {{contact.name}}"}, "sort_order": 2},
        ],
    )
    await first.repository.save_workflow(wf)

    suspended = await first.runner.start(wf.id, "c1")
    assert isinstance(suspended, RunSuspended)
    assert first_messaging.sent == []
    first.repository.close()

    # new process: fresh repository, fresh collaborators, same file
    clock.now = START + timedelta(days=3, minutes=1)
    second_messaging = RecordingMessagingClient()
    second_generator = StaticGenerativeClient({"tier": "should not run"})
    second = _engine(db_path, clock, second_messaging, second_generator)

    report = await second.scheduler.tick()

    assert report.resumed == [suspended.execution_id]
    assert isinstance(report.results[suspended.execution_id], RunCompleted)
    assert second_generator.calls == []
    assert [m["content"] for m in second_messaging.sent] == ["Welcome back Ada"]

    execution = await second.repository.get_execution(suspended.execution_id)
    assert execution.status is ExecutionStatus.COMPLETED
    assert execution.current_step_index == 3
    assert execution.context["step_0"] == {"tier": "gold"}
    assert execution.context["step_1"]["waitMinutes"] == 4320
    assert execution.context["step_2"]["status"] == "sent"

    logs = await second.repository.list_logs(execution.id)
    assert logs[0].current_step == "Completed"
    second.repository.close()
