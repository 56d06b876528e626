"""Command line interface for managing dripflow workflows and executions."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, List, Optional

import typer
import yaml

from dripflow.config import load_config
from dripflow.contracts import Contact, ExecutionStatus, Workflow
from dripflow.engine import AutomationEngine
from dripflow.errors import DripflowError
from dripflow.integrations.inmemory import InMemoryContactDirectory
from dripflow.persistence import get_repository

app = typer.Typer(help="CLI for dripflow workflow automation")

workflow_app = typer.Typer(help="Commands for managing workflows")
execution_app = typer.Typer(help="Commands for inspecting executions")
log_app = typer.Typer(help="Commands for reading execution logs")
scheduler_app = typer.Typer(help="Commands for resuming paused executions")

app.add_typer(workflow_app, name="workflow")
app.add_typer(execution_app, name="execution")
app.add_typer(log_app, name="log")
app.add_typer(scheduler_app, name="scheduler")

ContactsOption = typer.Option(
    None, "--contacts", help="YAML file with a list of contacts to run against"
)


@app.callback()
def main(
    log_level: str = typer.Option("WARNING", help="Logging level for engine output"),
) -> None:
    """Dripflow CLI entry point."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _read_yaml(path: Path) -> Any:
    if not path.exists():
        typer.secho(f"File not found: {path}", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    with open(path) as f:
        return yaml.safe_load(f)


def _parse_workflows(data: Any) -> List[Workflow]:
    items = data.get("workflows", [data]) if isinstance(data, dict) else data or []
    workflows = []
    for item in items:
        item = dict(item)
        steps = []
        for position, step in enumerate(item.get("steps") or []):
            step = dict(step)
            step.setdefault("sort_order", position)
            steps.append(step)
        item["steps"] = steps
        workflows.append(Workflow.model_validate(item))
    return workflows


def _load_contacts(path: Optional[Path]) -> Optional[InMemoryContactDirectory]:
    if path is None:
        return None
    data = _read_yaml(path)
    items = data.get("contacts", []) if isinstance(data, dict) else data or []
    return InMemoryContactDirectory(Contact.model_validate(item) for item in items)


def _build_engine(contacts_file: Optional[Path] = None) -> AutomationEngine:
    return AutomationEngine.from_config(
        load_config(),
        contacts=_load_contacts(contacts_file),
        repository=get_repository(),
    )


# ----------------------------------------------------------------------
# workflow


@workflow_app.command("load")
def workflow_load(path: Path) -> None:
    """
    Load workflow definitions from a YAML file.

    The file holds one workflow, a list of workflows, or a mapping with a
    ``workflows`` key. Steps keep their file order unless ``sort_order`` is
    given. Existing workflows with the same id are replaced.

    Example:
        dripflow workflow load ./workflows/welcome.yaml
    """
    workflows = _parse_workflows(_read_yaml(path))
    if not workflows:
        typer.echo("No workflows found in file")
        return
    repo = get_repository()
    for wf in workflows:
        asyncio.run(repo.save_workflow(wf))
        typer.echo(f"Loaded {wf.id}\t{wf.name}\t{len(wf.steps)} steps")


@workflow_app.command("list")
def workflow_list() -> None:
    """List stored workflows."""
    repo = get_repository()
    workflows = asyncio.run(repo.list_workflows())
    if not workflows:
        typer.echo("No workflows found")
        return
    for wf in workflows:
        state = "active" if wf.is_active else "inactive"
        typer.echo(f"{wf.id}\t{wf.name}\t{state}\t{len(wf.steps)} steps")


@workflow_app.command("show")
def workflow_show(workflow_id: str) -> None:
    """Show a workflow and its steps in execution order."""
    repo = get_repository()
    wf = asyncio.run(repo.get_workflow(workflow_id))
    if wf is None:
        typer.echo("Workflow not found")
        raise typer.Exit(code=1)
    typer.echo(f"Workflow {wf.id}: {wf.name} (trigger: {wf.trigger})")
    for index, step in enumerate(wf.steps):
        typer.echo(f"- [{index}] {step.type}: {json.dumps(step.raw_config())}")


@workflow_app.command("start")
def workflow_start(
    workflow_id: str,
    contact_id: str,
    contacts: Optional[Path] = ContactsOption,
) -> None:
    """
    Run a workflow for one contact until it completes, fails or pauses.

    Example:
        dripflow workflow start wf-welcome c-42 --contacts contacts.yaml
        # Output: Execution 1f0c...: suspended at step 1
    """
    engine = _build_engine(contacts)

    async def _run():
        try:
            return await engine.runner.start(workflow_id, contact_id)
        finally:
            await engine.shutdown()

    try:
        result = asyncio.run(_run())
    except DripflowError as exc:
        typer.secho(str(exc), fg=typer.colors.RED)
        raise typer.Exit(code=1)
    if result is None:
        typer.echo("Workflow has no steps, nothing to run")
        return
    typer.echo(
        f"Execution {result.execution_id}: {result.outcome} at step {result.step_index}"
    )
    if result.outcome == "failed":
        typer.echo(f"Error: {result.error}")
    elif result.outcome == "suspended":
        typer.echo(f"Resumes at: {result.resume_at.isoformat()}")


# ----------------------------------------------------------------------
# execution


@execution_app.command("list")
def execution_list(
    status: Optional[ExecutionStatus] = typer.Option(None, help="Filter by status"),
) -> None:
    """List executions with their status and current step."""
    repo = get_repository()
    executions = asyncio.run(repo.list_executions(status))
    if not executions:
        typer.echo("No executions found")
        return
    for ex in executions:
        typer.echo(
            f"{ex.id}\t{ex.workflow_id}\t{ex.contact_id}\t{ex.status.value}\t{ex.current_step_index}"
        )


@execution_app.command("show")
def execution_show(execution_id: str) -> None:
    """Show the persisted state of an execution."""
    repo = get_repository()
    ex = asyncio.run(repo.get_execution(execution_id))
    if ex is None:
        typer.echo("Execution not found")
        raise typer.Exit(code=1)
    typer.echo(f"Execution {ex.id}: {ex.status.value}")
    typer.echo(f"Workflow: {ex.workflow_id}  Contact: {ex.contact_id}")
    typer.echo(f"Current step: {ex.current_step_index}")
    if ex.resume_at:
        typer.echo(f"Resumes at: {ex.resume_at.isoformat()}")
    if ex.error:
        typer.echo(f"Error: {ex.error}")
    if ex.cancel_requested:
        typer.echo("Cancellation requested")
    typer.echo(f"Context: {json.dumps(ex.context, default=str)}")


@execution_app.command("cancel")
def execution_cancel(execution_id: str) -> None:
    """Stop a paused execution from ever being resumed."""
    engine = AutomationEngine(get_repository(), InMemoryContactDirectory())
    try:
        asyncio.run(engine.cancel(execution_id))
    except DripflowError as exc:
        typer.secho(str(exc), fg=typer.colors.RED)
        raise typer.Exit(code=1)
    typer.echo(f"Cancellation requested for {execution_id}")


# ----------------------------------------------------------------------
# log


@log_app.command("list")
def log_list(
    execution: Optional[str] = typer.Option(None, help="Only logs of this execution"),
) -> None:
    """List progress log rows, newest first."""
    repo = get_repository()
    logs = asyncio.run(repo.list_logs(execution))
    if not logs:
        typer.echo("No logs found")
        return
    for log in logs:
        typer.echo(
            f"{log.timestamp.isoformat()}\t{log.workflow_name}\t{log.contact_name}\t"
            f"{log.current_step}\t{log.status.value}"
        )


# ----------------------------------------------------------------------
# scheduler


@scheduler_app.command("tick")
def scheduler_tick(contacts: Optional[Path] = ContactsOption) -> None:
    """Resume every paused execution that is due right now, once."""
    engine = _build_engine(contacts)

    async def _tick():
        try:
            return await engine.scheduler.tick()
        finally:
            await engine.shutdown()

    report = asyncio.run(_tick())
    typer.echo(
        f"Due: {report.due}  Resumed: {len(report.resumed)}  "
        f"Completed: {len(report.completed)}  Cancelled: {len(report.cancelled)}  "
        f"Errors: {len(report.errors)}"
    )
    for error in report.errors:
        typer.secho(str(error), fg=typer.colors.RED)


@scheduler_app.command("run")
def scheduler_run(
    contacts: Optional[Path] = ContactsOption,
    lifespan: Optional[float] = typer.Option(
        None, help="Stop after this many seconds (default: run until interrupted)"
    ),
) -> None:
    """
    Run the resume scheduler in the foreground.

    Example:
        dripflow scheduler run --contacts contacts.yaml --lifespan 300
    """
    engine = _build_engine(contacts)

    async def _serve() -> None:
        await engine.startup()
        try:
            if lifespan is None:
                await asyncio.Event().wait()
            else:
                await asyncio.sleep(lifespan)
        finally:
            await engine.shutdown()

    typer.echo(f"Scheduler running every {engine.scheduler.interval:g}s")
    try:
        asyncio.run(_serve())
    except KeyboardInterrupt:
        typer.echo("Scheduler interrupted")


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    app()
