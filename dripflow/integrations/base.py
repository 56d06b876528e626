"""Call contracts for the systems the engine talks to."""

from __future__ import annotations

from typing import Any, Optional, Protocol

from ..contracts import Contact


class ContactDirectory(Protocol):
    """Lookup of CRM contacts."""

    async def get(self, contact_id: str) -> Contact | None:
        """Return the contact, or ``None`` if it does not exist."""


class MessagingClient(Protocol):
    """Outbound message delivery."""

    async def send(
        self,
        contact_id: str,
        channel: str,
        content: str,
        subject: Optional[str] = None,
    ) -> dict[str, Any]:
        """Send a message and return ``{"id": ..., "status": ...}``."""


class GenerativeClient(Protocol):
    """Structured text generation."""

    async def generate(self, system_prompt: str, user_prompt: str) -> Any:
        """Return a structured (JSON-compatible) result."""


class ActorClient(Protocol):
    """Third-party actor runs (scrapers, enrichment jobs)."""

    async def run_actor(self, actor_id: str, run_input: dict[str, Any]) -> Any:
        """Run ``actor_id`` with ``run_input`` and return its output."""


class SyncClient(Protocol):
    """Push contact data to an external system."""

    async def sync(
        self, target: str, contact: dict[str, Any], payload: dict[str, Any]
    ) -> Any:
        """Forward ``payload`` for ``contact`` to ``target``."""
