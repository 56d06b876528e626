"""In-process collaborators for tests and local runs."""

from __future__ import annotations

import uuid
from typing import Any, Callable, Dict, Iterable, List, Optional

from ..contracts import Contact


class InMemoryContactDirectory:
    """Contacts held in a local dict."""

    def __init__(self, contacts: Iterable[Contact] = ()) -> None:
        self._contacts: Dict[str, Contact] = {c.id: c for c in contacts}

    def add(self, contact: Contact) -> None:
        self._contacts[contact.id] = contact

    def remove(self, contact_id: str) -> None:
        self._contacts.pop(contact_id, None)

    async def get(self, contact_id: str) -> Contact | None:
        return self._contacts.get(contact_id)


class RecordingMessagingClient:
    """Accepts every message and remembers it."""

    def __init__(self, status: str = "sent") -> None:
        self.status = status
        self.sent: List[Dict[str, Any]] = []

    async def send(
        self,
        contact_id: str,
        channel: str,
        content: str,
        subject: Optional[str] = None,
    ) -> dict[str, Any]:
        message_id = str(uuid.uuid4())
        self.sent.append(
            {
                "id": message_id,
                "contact_id": contact_id,
                "channel": channel,
                "content": content,
                "subject": subject,
            }
        )
        return {"id": message_id, "status": self.status}


class StaticGenerativeClient:
    """Returns a fixed result, or one computed from the prompts."""

    def __init__(self, result: Any = None, responder: Callable[[str, str], Any] | None = None) -> None:
        self._result = result if result is not None else {}
        self._responder = responder
        self.calls: List[tuple[str, str]] = []

    async def generate(self, system_prompt: str, user_prompt: str) -> Any:
        self.calls.append((system_prompt, user_prompt))
        if self._responder is not None:
            return self._responder(system_prompt, user_prompt)
        return self._result


class RecordingActorClient:
    def __init__(self, result: Any = None) -> None:
        self._result = result if result is not None else {"items": []}
        self.runs: List[tuple[str, dict[str, Any]]] = []

    async def run_actor(self, actor_id: str, run_input: dict[str, Any]) -> Any:
        self.runs.append((actor_id, run_input))
        return self._result


class RecordingSyncClient:
    def __init__(self, result: Any = None) -> None:
        self._result = result if result is not None else {"synced": True}
        self.calls: List[tuple[str, dict[str, Any], dict[str, Any]]] = []

    async def sync(
        self, target: str, contact: dict[str, Any], payload: dict[str, Any]
    ) -> Any:
        self.calls.append((target, contact, payload))
        return self._result
