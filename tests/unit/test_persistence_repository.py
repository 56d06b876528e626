from datetime import datetime, timedelta, timezone

import pytest

import dripflow.persistence as persistence
from dripflow.contracts import (
    DelayConfig,
    ExecutionStatus,
    UnrecognizedStepConfig,
    Workflow,
    WorkflowExecution,
    WorkflowLog,
)
from dripflow.persistence import (
    InMemoryWorkflowRepository,
    SQLiteWorkflowRepository,
    get_repository,
    sqlite_path,
)

NOW = datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)


@pytest.fixture(params=["memory", "sqlite"])
def repo(request, tmp_path):
    if request.param == "memory":
        return InMemoryWorkflowRepository()
    return SQLiteWorkflowRepository(tmp_path / "dripflow.db")


def _paused(resume_at: datetime, **kwargs) -> WorkflowExecution:
    execution = WorkflowExecution(workflow_id="w1", contact_id="c1", started_at=NOW, **kwargs)
    execution.suspend(resume_at, 1, {"step_0": {"waitMinutes": 60}})
    return execution


@pytest.mark.asyncio
async def test_workflow_round_trip(repo):
    wf = Workflow(
        name="Welcome",
        trigger="contact_created",
        is_active=True,
        steps=[
            {"type": "wait", "config": {"waitTime": "2 Days"}, "sort_order": 1},
            {"type": "email", "config": {"message": "Hi"}, "sort_order": 0},
            {"type": "fax", "config": {"number": "42"}, "sort_order": 2},
        ],
    )
    await repo.save_workflow(wf)

    stored = await repo.get_workflow(wf.id)
    assert stored.name == "Welcome"
    assert stored.trigger == "contact_created"
    assert stored.is_active
    assert [s.type for s in stored.steps] == ["email", "wait", "fax"]
    assert isinstance(stored.steps[1].config, DelayConfig)
    assert stored.steps[1].config.wait_time == "2 Days"
    assert isinstance(stored.steps[2].config, UnrecognizedStepConfig)
    assert stored.steps[2].raw_config() == {"number": "42"}

    assert [w.id for w in await repo.list_workflows()] == [wf.id]
    assert await repo.get_workflow("missing") is None


@pytest.mark.asyncio
async def test_saving_workflow_replaces_steps(repo):
    wf = Workflow(name="Welcome", steps=[{"type": "email", "config": {"message": "a"}}])
    await repo.save_workflow(wf)
    wf.steps = []
    await repo.save_workflow(wf)

    stored = await repo.get_workflow(wf.id)
    assert stored.steps == []


@pytest.mark.asyncio
async def test_execution_round_trip(repo):
    execution = _paused(NOW + timedelta(hours=1), log_id="log-1")
    await repo.create_execution(execution)

    stored = await repo.get_execution(execution.id)
    assert stored.status is ExecutionStatus.PAUSED
    assert stored.current_step_index == 1
    assert stored.context == {"step_0": {"waitMinutes": 60}}
    assert stored.resume_at == NOW + timedelta(hours=1)
    assert stored.started_at == NOW
    assert stored.log_id == "log-1"
    assert await repo.get_execution("missing") is None


@pytest.mark.asyncio
async def test_due_query_and_status_filter(repo):
    later = _paused(NOW + timedelta(hours=2))
    sooner = _paused(NOW + timedelta(minutes=30))
    future = _paused(NOW + timedelta(days=1))
    running = WorkflowExecution(workflow_id="w1", contact_id="c2", started_at=NOW)
    for ex in (later, sooner, future, running):
        await repo.create_execution(ex)

    due = await repo.list_due_executions(NOW + timedelta(hours=2))
    assert [ex.id for ex in due] == [sooner.id, later.id]

    paused = await repo.list_executions(ExecutionStatus.PAUSED)
    assert {ex.id for ex in paused} == {later.id, sooner.id, future.id}
    assert len(await repo.list_executions()) == 4


@pytest.mark.asyncio
async def test_claim_is_conditional(repo):
    execution = _paused(NOW + timedelta(hours=1))
    await repo.create_execution(execution)

    assert await repo.claim_execution(execution.id, NOW) is None

    claimed = await repo.claim_execution(execution.id, NOW + timedelta(hours=1))
    assert claimed is not None
    assert claimed.status is ExecutionStatus.RUNNING
    assert claimed.resume_at is None
    assert claimed.current_step_index == 1

    assert await repo.claim_execution(execution.id, NOW + timedelta(hours=1)) is None
    stored = await repo.get_execution(execution.id)
    assert stored.status is ExecutionStatus.RUNNING


@pytest.mark.asyncio
async def test_cancel_flag_survives_later_saves(repo):
    execution = WorkflowExecution(workflow_id="w1", contact_id="c1", started_at=NOW)
    await repo.create_execution(execution)

    flagged = await repo.get_execution(execution.id)
    flagged.request_cancel()
    await repo.save_execution(flagged)

    execution.suspend(NOW, 1, {})
    await repo.save_execution(execution)

    stored = await repo.get_execution(execution.id)
    assert stored.status is ExecutionStatus.PAUSED
    assert stored.cancel_requested


@pytest.mark.asyncio
async def test_request_cancel_only_flags_live_executions(repo):
    running = WorkflowExecution(workflow_id="w1", contact_id="c1", started_at=NOW)
    paused = _paused(NOW + timedelta(hours=1))
    done = WorkflowExecution(workflow_id="w1", contact_id="c1", started_at=NOW)
    done.advance(1, {"step_0": {"sent": True}})
    done.complete(at=NOW)
    for ex in (running, paused, done):
        await repo.create_execution(ex)

    assert await repo.request_cancel(running.id)
    assert await repo.request_cancel(paused.id)
    assert not await repo.request_cancel(done.id)
    assert not await repo.request_cancel("missing")

    stored = await repo.get_execution(paused.id)
    assert stored.cancel_requested
    assert stored.status is ExecutionStatus.PAUSED
    assert stored.resume_at == NOW + timedelta(hours=1)
    assert stored.current_step_index == 1

    finished = await repo.get_execution(done.id)
    assert finished.status is ExecutionStatus.COMPLETED
    assert finished.current_step_index == 1
    assert finished.completed_at == NOW
    assert not finished.cancel_requested


@pytest.mark.asyncio
async def test_logs_newest_first(repo):
    first = WorkflowLog(
        execution_id="e1", contact_name="Ada", workflow_name="Welcome",
        current_step="email", timestamp=NOW,
    )
    second = WorkflowLog(
        execution_id="e2", contact_name="Bo", workflow_name="Welcome",
        current_step="email", timestamp=NOW + timedelta(minutes=1),
    )
    await repo.create_log(first)
    await repo.create_log(second)

    first.current_step = "Completed"
    first.timestamp = NOW + timedelta(minutes=5)
    await repo.save_log(first)

    logs = await repo.list_logs()
    assert [log.id for log in logs] == [first.id, second.id]
    assert (await repo.get_log(first.id)).current_step == "Completed"
    assert [log.id for log in await repo.list_logs("e2")] == [second.id]


def test_get_repository_selects_backend(tmp_path, monkeypatch):
    monkeypatch.delenv("DRIPFLOW_DATABASE_URL", raising=False)
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.setenv("DRIPFLOW_CONFIG", str(tmp_path / "absent.yaml"))
    monkeypatch.setattr(persistence, "_repository_instance", None)

    repo = get_repository(f"sqlite://{tmp_path / 'wf.db'}")
    assert isinstance(repo, SQLiteWorkflowRepository)
    assert get_repository() is repo

    monkeypatch.setattr(persistence, "_repository_instance", None)
    assert isinstance(get_repository(), InMemoryWorkflowRepository)

    with pytest.raises(ValueError):
        get_repository("mysql://localhost/db")


def test_sqlite_url_paths(tmp_path, monkeypatch):
    monkeypatch.setattr(persistence, "_repository_instance", None)
    nested = tmp_path / "state" / "db" / "wf.db"
    assert sqlite_path(f"sqlite://{nested}") == str(nested)
    assert nested.parent.is_dir()

    monkeypatch.chdir(tmp_path)
    assert sqlite_path("sqlite://local/wf.db") == "local/wf.db"
    assert (tmp_path / "local").is_dir()

    assert sqlite_path("sqlite://:memory:") == ":memory:"
    assert sqlite_path("sqlite:///:memory:") == ":memory:"
    with pytest.raises(ValueError):
        sqlite_path("sqlite://")

    repo = get_repository(f"sqlite://{nested}")
    assert isinstance(repo, SQLiteWorkflowRepository)
    assert repo.db_path == str(nested)
    repo.close()
