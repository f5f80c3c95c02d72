# tests/test_live_updates.py
import json
from unittest.mock import AsyncMock

import pytest

from leadsync.core.exceptions import ServiceUnavailableError
from leadsync.services.live_updates import RedisLiveUpdateSink, channel_for, subscribe


class FakePubSub:
    def __init__(self, messages):
        self.messages = messages
        self.channels = []
        self.closed = False

    async def subscribe(self, channel):
        self.channels.append(channel)

    async def listen(self):
        for message in self.messages:
            yield message

    async def unsubscribe(self):
        self.channels = []

    async def aclose(self):
        self.closed = True


class FakeRedis:
    def __init__(self, pubsub):
        self._pubsub = pubsub

    def pubsub(self):
        return self._pubsub


def test_channel_is_per_tenant():
    assert channel_for("t1", prefix="live") == "live:t1"
    assert channel_for("t1") != channel_for("t2")


@pytest.mark.asyncio
async def test_publish_sends_event_envelope():
    client = AsyncMock()
    client.publish.return_value = 1
    sink = RedisLiveUpdateSink(client, prefix="live")

    await sink.publish("t1", "new_lead", {"external_lead_id": "L1"})

    channel, message = client.publish.await_args.args
    assert channel == "live:t1"
    assert json.loads(message) == {"event": "new_lead", "data": {"external_lead_id": "L1"}}


@pytest.mark.asyncio
async def test_publish_failure_is_not_raised():
    client = AsyncMock()
    client.publish.side_effect = ConnectionError("redis down")

    await RedisLiveUpdateSink(client, prefix="live").publish("t1", "new_lead", {})


@pytest.mark.asyncio
async def test_subscribe_yields_messages_and_cleans_up():
    pubsub = FakePubSub([
        {"type": "subscribe", "data": 1},
        {"type": "message", "data": '{"event": "new_lead"}'},
        {"type": "message", "data": b'{"event": "other"}'},
    ])

    received = [message async for message in subscribe(FakeRedis(pubsub), "t1", prefix="live")]

    assert received == ['{"event": "new_lead"}', '{"event": "other"}']
    assert pubsub.closed


@pytest.mark.asyncio
async def test_sink_connects_on_first_publish(monkeypatch):
    client = AsyncMock()
    factory = AsyncMock(return_value=client)
    monkeypatch.setattr("leadsync.services.live_updates.get_redis_client", factory)

    sink = RedisLiveUpdateSink(prefix="live")
    factory.assert_not_awaited()

    await sink.publish("t1", "new_lead", {})
    await sink.publish("t1", "new_lead", {})

    factory.assert_awaited_once()
    assert client.publish.await_count == 2


@pytest.mark.asyncio
async def test_unreachable_redis_is_retried_after_backoff(monkeypatch, clock):
    factory = AsyncMock(side_effect=ServiceUnavailableError(message="Redis unavailable"))
    monkeypatch.setattr("leadsync.services.live_updates.get_redis_client", factory)
    sink = RedisLiveUpdateSink(prefix="live", retry_after=30, clock=clock)

    await sink.publish("t1", "new_lead", {})
    clock.advance(10)
    await sink.publish("t1", "new_lead", {})
    assert factory.await_count == 1

    clock.advance(25)
    await sink.publish("t1", "new_lead", {})
    assert factory.await_count == 2
