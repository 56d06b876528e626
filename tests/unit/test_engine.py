import asyncio
from datetime import timedelta

import pytest

from dripflow.config import DripflowConfig
from dripflow.contracts import Contact, ExecutionStatus, Workflow, utcnow
from dripflow.engine import AutomationEngine
from dripflow.errors import InvalidTransition, NotFound
from dripflow.integrations.http import HttpContactDirectory
from dripflow.integrations.inmemory import (
    InMemoryContactDirectory,
    RecordingMessagingClient,
)
from dripflow.persistence import InMemoryWorkflowRepository, SQLiteWorkflowRepository
from dripflow.steps import build_executors
from dripflow.transports import InMemoryTransport


def _engine(messaging=None):
    repo = InMemoryWorkflowRepository()
    contacts = InMemoryContactDirectory([Contact(id="c1", name="Ada")])
    engine = AutomationEngine(
        repo,
        contacts,
        executors=build_executors(messaging=messaging or RecordingMessagingClient()),
        scheduler_interval=0.01,
    )
    return engine, repo


class GatedMessagingClient(RecordingMessagingClient):
    """Holds every send until ``release`` is set."""

    def __init__(self) -> None:
        super().__init__()
        self.entered = asyncio.Event()
        self.release = asyncio.Event()

    async def send(self, *args, **kwargs):
        self.entered.set()
        await self.release.wait()
        return await super().send(*args, **kwargs)


@pytest.mark.asyncio
async def test_trigger_runs_in_background():
    messaging = RecordingMessagingClient()
    engine, repo = _engine(messaging)
    wf = Workflow(name="Welcome", steps=[{"type": "email", "config": {"message": "Hi"}}])
    await repo.save_workflow(wf)

    execution = await engine.trigger(wf.id, "c1")
    assert execution.status is ExecutionStatus.RUNNING
    assert execution.log_id is not None

    assert await engine.pool.drain(timeout=2)
    stored = await repo.get_execution(execution.id)
    assert stored.status is ExecutionStatus.COMPLETED
    assert len(messaging.sent) == 1


@pytest.mark.asyncio
async def test_trigger_validates_synchronously():
    engine, repo = _engine()
    wf = Workflow(name="Empty", steps=[])
    await repo.save_workflow(wf)

    with pytest.raises(NotFound):
        await engine.trigger("missing", "c1")
    assert await engine.trigger(wf.id, "c1") is None
    assert engine.pool.active == 0


@pytest.mark.asyncio
async def test_cancel_paused_execution():
    engine, repo = _engine()
    wf = Workflow(
        name="Drip",
        steps=[
            {"type": "wait", "config": {"minutes": 1}, "sort_order": 0},
            {"type": "email", "config": {"message": "Later"}, "sort_order": 1},
        ],
    )
    await repo.save_workflow(wf)
    execution = await engine.trigger(wf.id, "c1")
    await engine.pool.drain(timeout=2)

    cancelled = await engine.cancel(execution.id)
    assert cancelled.cancel_requested

    report = await engine.scheduler.tick(utcnow() + timedelta(minutes=2))
    assert report.cancelled == [execution.id]
    stored = await repo.get_execution(execution.id)
    assert stored.status is ExecutionStatus.FAILED
    assert stored.error == "cancelled"

    with pytest.raises(InvalidTransition):
        await engine.cancel(execution.id)
    with pytest.raises(NotFound):
        await engine.cancel("missing")


@pytest.mark.asyncio
async def test_cancel_during_run_keeps_its_progress(tmp_path):
    messaging = GatedMessagingClient()
    repo = SQLiteWorkflowRepository(tmp_path / "dripflow.db")
    engine = AutomationEngine(
        repo,
        InMemoryContactDirectory([Contact(id="c1", name="Ada")]),
        executors=build_executors(messaging=messaging),
    )
    wf = Workflow(name="Welcome", steps=[{"type": "email", "config": {"message": "Hi"}}])
    await repo.save_workflow(wf)

    execution = await engine.trigger(wf.id, "c1")
    await asyncio.wait_for(messaging.entered.wait(), timeout=2)

    cancelled = await engine.cancel(execution.id)
    assert cancelled.cancel_requested
    assert cancelled.status is ExecutionStatus.RUNNING

    messaging.release.set()
    assert await engine.pool.drain(timeout=2)

    stored = await repo.get_execution(execution.id)
    assert stored.status is ExecutionStatus.COMPLETED
    assert stored.current_step_index == 1
    assert stored.completed_at is not None
    assert stored.cancel_requested
    repo.close()


@pytest.mark.asyncio
async def test_cancel_after_finish_leaves_row_untouched(tmp_path):
    repo = SQLiteWorkflowRepository(tmp_path / "dripflow.db")
    engine = AutomationEngine(
        repo,
        InMemoryContactDirectory([Contact(id="c1", name="Ada")]),
        executors=build_executors(messaging=RecordingMessagingClient()),
    )
    wf = Workflow(name="Welcome", steps=[{"type": "email", "config": {"message": "Hi"}}])
    await repo.save_workflow(wf)
    execution = await engine.trigger(wf.id, "c1")
    assert await engine.pool.drain(timeout=2)
    before = await repo.get_execution(execution.id)

    with pytest.raises(InvalidTransition):
        await engine.cancel(execution.id)

    after = await repo.get_execution(execution.id)
    assert after == before
    assert not after.cancel_requested
    repo.close()


@pytest.mark.asyncio
async def test_startup_and_shutdown():
    engine, _ = _engine()
    async with engine:
        assert engine.scheduler.running
    assert not engine.scheduler.running


@pytest.mark.asyncio
async def test_from_config_wires_collaborators():
    config = DripflowConfig.model_validate(
        {
            "scheduler": {"interval_seconds": 5, "enabled": False},
            "engine": {"max_concurrent_executions": 3},
            "integrations": {
                "contacts_url": "http://crm.local/api",
                "messaging_url": "http://crm.local/api",
                "apify_token": "secret",
            },
        }
    )
    repo = InMemoryWorkflowRepository()

    engine = AutomationEngine.from_config(config, repository=repo)

    assert engine.repository is repo
    assert isinstance(engine.contacts, HttpContactDirectory)
    assert engine.scheduler.interval == 5
    assert engine.pool.max_concurrency == 3
    assert isinstance(engine.broadcaster.transports[0], InMemoryTransport)

    await engine.startup()
    assert not engine.scheduler.running
    await engine.shutdown()
