"""HTTP-backed collaborators."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from ..contracts import Contact

logger = logging.getLogger(__name__)

APIFY_BASE_URL = "https://api.apify.com/v2"


class _HttpClient:
    """Lazily created ``httpx.AsyncClient`` shared by one collaborator."""

    def __init__(
        self,
        base_url: str = "",
        headers: Optional[Dict[str, str]] = None,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._headers = headers or {}
        self._timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=self._headers,
                timeout=self._timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None


class HttpContactDirectory(_HttpClient):
    """Fetch contacts from ``GET {base_url}/contacts/{id}``."""

    async def get(self, contact_id: str) -> Contact | None:
        client = await self._get_client()
        response = await client.get(f"/contacts/{contact_id}")
        if response.status_code == 404:
            return None
        response.raise_for_status()
        return Contact.model_validate(response.json())


class HttpMessagingClient(_HttpClient):
    """Hand messages to the messaging service at ``POST {base_url}/messages``."""

    async def send(
        self,
        contact_id: str,
        channel: str,
        content: str,
        subject: Optional[str] = None,
    ) -> dict[str, Any]:
        client = await self._get_client()
        body: Dict[str, Any] = {
            "contactId": contact_id,
            "channel": channel,
            "content": content,
        }
        if subject is not None:
            body["subject"] = subject
        response = await client.post("/messages", json=body)
        response.raise_for_status()
        data = response.json()
        return {"id": data.get("id"), "status": data.get("status")}


class ApifyActorClient(_HttpClient):
    """Run Apify actors synchronously and return their dataset items."""

    def __init__(
        self,
        token: str,
        base_url: str = APIFY_BASE_URL,
        timeout: float = 120.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(base_url=base_url, timeout=timeout, transport=transport)
        self._token = token

    async def run_actor(self, actor_id: str, run_input: dict[str, Any]) -> Any:
        client = await self._get_client()
        # Apify addresses actors as "user~name" in URLs.
        path_id = actor_id.replace("/", "~")
        logger.info(f"Running actor {actor_id}")
        response = await client.post(
            f"/acts/{path_id}/run-sync-get-dataset-items",
            params={"token": self._token},
            json=run_input,
        )
        response.raise_for_status()
        return {"items": response.json()}


class WebhookSyncClient(_HttpClient):
    """POST contact data to an arbitrary webhook URL."""

    async def sync(
        self, target: str, contact: dict[str, Any], payload: dict[str, Any]
    ) -> Any:
        client = await self._get_client()
        response = await client.post(
            target, json={"contact": contact, "payload": payload}
        )
        response.raise_for_status()
        if not response.content:
            return {"status": response.status_code}
        try:
            return response.json()
        except ValueError:
            return {"status": response.status_code, "body": response.text}
