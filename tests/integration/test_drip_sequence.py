"""Multi-wait drip sequence driven by repeated scheduler ticks."""

from datetime import datetime, timedelta, timezone

import pytest

from dripflow.broadcast import EventBroadcaster
from dripflow.contracts import Contact, EventStatus, ExecutionStatus, Workflow
from dripflow.engine import AutomationEngine
from dripflow.integrations.inmemory import (
    InMemoryContactDirectory,
    RecordingMessagingClient,
    RecordingSyncClient,
)
from dripflow.persistence import InMemoryWorkflowRepository
from dripflow.steps import build_executors
from dripflow.transports import InMemoryTransport

START = datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)


class Clock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.mark.asyncio
async def test_drip_sequence_over_several_ticks():
    clock = Clock(START)
    messaging = RecordingMessagingClient()
    sync = RecordingSyncClient()
    transport = InMemoryTransport()
    repo = InMemoryWorkflowRepository()
    engine = AutomationEngine(
        repo,
        InMemoryContactDirectory([Contact(id="c1", name="Ada", tags=["trial"])]),
        executors=build_executors(messaging=messaging, sync=sync, clock=clock),
        broadcaster=EventBroadcaster([transport]),
        clock=clock,
    )
    wf = Workflow(
        name="Trial nurture",
        steps=[
            {"type": "email", "config": {"message": "Day 0"}, "sort_order": 0},
            {"type": "wait", "config": {"waitTime": "1 Day"}, "sort_order": 1},
            {"type": "sms", "config": {"message": "Day 1"}, "sort_order": 2},
            {"type": "wait", "config": {"waitTime": "2 Hours"}, "sort_order": 3},
            {"type": "condition", "config": {"field": "tags", "operator": "contains", "value": "trial"}, "sort_order": 4},
            {"type": "external_sync", "config": {"target": "https://hooks.test/crm"}, "sort_order": 5},
        ],
    )
    await repo.save_workflow(wf)

    execution = await engine.trigger(wf.id, "c1")
    await engine.pool.drain(timeout=2)
    assert [m["content"] for m in messaging.sent] == ["Day 0"]

    clock.now = START + timedelta(hours=23)
    assert (await engine.scheduler.tick()).due == 0

    clock.now = START + timedelta(days=1)
    await engine.scheduler.tick()
    stored = await repo.get_execution(execution.id)
    assert stored.status is ExecutionStatus.PAUSED
    assert stored.current_step_index == 4
    assert [m["channel"] for m in messaging.sent] == ["email", "sms"]

    clock.now = START + timedelta(days=1, hours=2)
    report = await engine.scheduler.tick()
    assert report.resumed == [execution.id]

    stored = await repo.get_execution(execution.id)
    assert stored.status is ExecutionStatus.COMPLETED
    assert sorted(stored.context) == [f"step_{i}" for i in range(6)]
    assert sync.calls[0][0] == "https://hooks.test/crm"

    await engine.broadcaster.flush()
    waiting = [e.step_index for e in transport.history if e.status is EventStatus.WAITING]
    assert waiting == [1, 3]
    assert transport.history[-1].status is EventStatus.COMPLETED
