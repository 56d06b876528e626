from __future__ import annotations

import os
from typing import Literal, Optional

import yaml
from pydantic import BaseModel, Field

from .steps.generate import DEFAULT_SYSTEM_PROMPT


class RedisConfig(BaseModel):
    """Configuration for Redis transport."""

    host: str = "localhost"
    port: int = 6379
    db: int = 0
    password: Optional[str] = None


class TransportConfig(BaseModel):
    """Event transport configuration settings."""

    backend: Literal["inmemory", "redis", "logging"] = "inmemory"
    channel: str = "dripflow:events"
    redis: RedisConfig = RedisConfig()


class SchedulerConfig(BaseModel):
    """Resume scheduler settings."""

    enabled: bool = True
    interval_seconds: float = Field(default=60.0, gt=0)


class EngineConfig(BaseModel):
    """Execution settings."""

    # 0 disables the limit
    max_concurrent_executions: int = Field(default=50, ge=0)
    generate_system_prompt: str = DEFAULT_SYSTEM_PROMPT


class IntegrationsConfig(BaseModel):
    """Endpoints and credentials of external collaborators."""

    contacts_url: Optional[str] = None
    messaging_url: Optional[str] = None
    api_token: Optional[str] = None
    apify_token: Optional[str] = None
    generative_model: Optional[str] = None
    sync_enabled: bool = True
    http_timeout_seconds: float = 30.0


class DripflowConfig(BaseModel):
    """Top-level configuration model."""

    transport: TransportConfig = TransportConfig()
    scheduler: SchedulerConfig = SchedulerConfig()
    engine: EngineConfig = EngineConfig()
    integrations: IntegrationsConfig = IntegrationsConfig()
    database_url: Optional[str] = None


def load_config(path: Optional[str] = None) -> DripflowConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to DRIPFLOW_CONFIG env
            variable or 'config.yaml' in the current directory.
    """

    config_path = path or os.getenv("DRIPFLOW_CONFIG", "config.yaml")
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = DripflowConfig(**data)
    else:
        config = DripflowConfig()

    env_db_url = os.getenv("DRIPFLOW_DATABASE_URL") or os.getenv("DATABASE_URL")
    if env_db_url:
        config.database_url = env_db_url
    env_apify = os.getenv("APIFY_TOKEN")
    if env_apify and not config.integrations.apify_token:
        config.integrations.apify_token = env_apify
    return config
