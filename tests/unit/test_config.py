"""Tests for configuration loading."""

from dripflow.config import load_config
from dripflow.transports import get_transport
from dripflow.transports.redis import RedisTransport


def test_load_config_from_env(tmp_path, monkeypatch):
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        """
transport:
  backend: redis
  redis:
    host: testhost
    port: 1234
scheduler:
  interval_seconds: 15
engine:
  max_concurrent_executions: 4
integrations:
  contacts_url: http://crm.local/api
"""
    )
    monkeypatch.setenv("DRIPFLOW_CONFIG", str(config_path))
    monkeypatch.delenv("DRIPFLOW_DATABASE_URL", raising=False)
    monkeypatch.delenv("DATABASE_URL", raising=False)

    config = load_config()
    assert config.transport.backend == "redis"
    assert config.transport.redis.host == "testhost"
    assert config.transport.redis.port == 1234
    assert config.scheduler.interval_seconds == 15
    assert config.engine.max_concurrent_executions == 4
    assert config.integrations.contacts_url == "http://crm.local/api"
    assert config.database_url is None


def test_defaults_without_file(tmp_path, monkeypatch):
    monkeypatch.delenv("APIFY_TOKEN", raising=False)
    config = load_config(str(tmp_path / "missing.yaml"))
    assert config.transport.backend == "inmemory"
    assert config.scheduler.interval_seconds == 60
    assert config.scheduler.enabled
    assert config.integrations.apify_token is None


def test_environment_overrides(tmp_path, monkeypatch):
    monkeypatch.setenv("DRIPFLOW_DATABASE_URL", "sqlite:///tmp/dripflow.db")
    monkeypatch.setenv("APIFY_TOKEN", "apify-secret")
    config = load_config(str(tmp_path / "missing.yaml"))
    assert config.database_url == "sqlite:///tmp/dripflow.db"
    assert config.integrations.apify_token == "apify-secret"


def test_get_transport_uses_config(tmp_path, monkeypatch):
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        """
transport:
  backend: redis
  channel: crm:events
  redis:
    host: confighost
    port: 6380
"""
    )
    monkeypatch.setenv("DRIPFLOW_CONFIG", str(config_path))
    monkeypatch.delenv("DRIPFLOW_TRANSPORT", raising=False)

    transport = get_transport()
    assert isinstance(transport, RedisTransport)
    assert transport.host == "confighost"
    assert transport.port == 6380
    assert transport.channel == "crm:events"
