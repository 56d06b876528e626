"""Transport and broadcaster tests."""

import asyncio
import logging

import pytest

from dripflow.broadcast import EventBroadcaster
from dripflow.contracts import EventStatus, StepEvent
from dripflow.transports import get_transport
from dripflow.transports.base import BaseTransport
from dripflow.transports.inmemory import InMemoryTransport
from dripflow.transports.logging import LoggingTransport


class ExplodingTransport(BaseTransport):
    async def publish(self, event):
        raise ConnectionError("broker unreachable")

    def subscribe(self, lifespan=None):
        raise NotImplementedError


def _event(status=EventStatus.RUNNING, index=0) -> StepEvent:
    return StepEvent(execution_id="e1", step_index=index, step_type="email", status=status)


@pytest.mark.asyncio
async def test_inmemory_transport_delivers_to_subscriber():
    transport = InMemoryTransport()
    received = []

    async def consume():
        async for event in transport.subscribe(lifespan=1.0):
            received.append(event)
            break

    consumer = asyncio.create_task(consume())
    await asyncio.sleep(0)
    await transport.publish(_event())
    await asyncio.wait_for(consumer, timeout=2)

    assert received[0].execution_id == "e1"
    assert transport.history == received


@pytest.mark.asyncio
async def test_inmemory_subscription_ends_after_lifespan():
    transport = InMemoryTransport()
    events = [event async for event in transport.subscribe(lifespan=0.05)]
    assert events == []


@pytest.mark.asyncio
async def test_inmemory_history_is_bounded():
    transport = InMemoryTransport(history_size=2)
    for index in range(3):
        await transport.publish(_event(index=index))
    assert [e.step_index for e in transport.history] == [1, 2]


@pytest.mark.asyncio
async def test_logging_transport_writes_event(caplog):
    transport = LoggingTransport()
    with caplog.at_level(logging.INFO, logger="dripflow.events"):
        await transport.publish(_event(EventStatus.FAILED))
    assert "execution=e1" in caplog.text
    assert "status=failed" in caplog.text


@pytest.mark.asyncio
async def test_failing_transport_does_not_block_others(caplog):
    good = InMemoryTransport()
    broadcaster = EventBroadcaster([ExplodingTransport(), good])

    broadcaster.step("e1", 0, "email", EventStatus.SUCCESS)
    await broadcaster.flush()

    assert len(good.history) == 1
    assert "broker unreachable" in caplog.text


def test_publish_without_loop_is_dropped():
    transport = InMemoryTransport()
    EventBroadcaster([transport]).publish(_event())
    assert transport.history == []


def test_redis_transport_from_factory():
    from dripflow.transports.redis import RedisTransport

    transport = get_transport("redis")
    assert isinstance(transport, RedisTransport)
    assert transport.channel == "dripflow:events"


def test_unknown_transport_backend():
    with pytest.raises(ValueError):
        get_transport("carrier-pigeon")
