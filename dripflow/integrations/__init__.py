"""Collaborators consumed by the engine."""

from .base import (
    ActorClient,
    ContactDirectory,
    GenerativeClient,
    MessagingClient,
    SyncClient,
)
from .http import (
    ApifyActorClient,
    HttpContactDirectory,
    HttpMessagingClient,
    WebhookSyncClient,
)
from .inmemory import (
    InMemoryContactDirectory,
    RecordingActorClient,
    RecordingMessagingClient,
    RecordingSyncClient,
    StaticGenerativeClient,
)

__all__ = [
    "ActorClient",
    "ContactDirectory",
    "GenerativeClient",
    "MessagingClient",
    "SyncClient",
    "ApifyActorClient",
    "HttpContactDirectory",
    "HttpMessagingClient",
    "WebhookSyncClient",
    "InMemoryContactDirectory",
    "RecordingActorClient",
    "RecordingMessagingClient",
    "RecordingSyncClient",
    "StaticGenerativeClient",
]
