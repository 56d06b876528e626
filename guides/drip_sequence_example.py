"""Example running a welcome sequence with in-memory collaborators."""

import asyncio
from datetime import timedelta

from dripflow import AutomationEngine, Contact, Workflow
from dripflow.contracts import utcnow
from dripflow.integrations import InMemoryContactDirectory, RecordingMessagingClient
from dripflow.persistence import InMemoryWorkflowRepository
from dripflow.steps import build_executors


async def main():
    """Trigger a workflow, then resume it with a scheduler tick."""
    messaging = RecordingMessagingClient()
    repository = InMemoryWorkflowRepository()
    contacts = InMemoryContactDirectory(
        [Contact(id="c-1", name="Ada", email="ada@example.com", leadScore=72)]
    )
    engine = AutomationEngine(
        repository, contacts, executors=build_executors(messaging=messaging)
    )

    workflow = Workflow(
        name="Welcome",
        steps=[
            {"type": "email", "config": {"subject": "Welcome!", "message": "Hi {{contact.name}}"}, "sort_order": 0},
            {"type": "wait", "config": {"minutes": 1}, "sort_order": 1},
            {"type": "condition", "config": {"field": "leadScore", "operator": "gt", "value": 50}, "sort_order": 2},
            {"type": "sms", "config": {"message": "Want a demo, {{contact.name}}?"}, "sort_order": 3},
        ],
    )
    await repository.save_workflow(workflow)

    execution = await engine.trigger(workflow.id, "c-1")
    await engine.pool.drain()
    print(f"Execution {execution.id} paused")

    report = await engine.scheduler.tick(utcnow() + timedelta(minutes=2))
    print(f"Resumed: {report.resumed}")
    for message in messaging.sent:
        print(f"{message['channel']}: {message['content']}")

    await engine.shutdown()


if __name__ == "__main__":
    asyncio.run(main())
