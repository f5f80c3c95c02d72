# tests/test_rate_limit.py
from unittest.mock import AsyncMock

import pytest

from leadsync.services.rate_limit import RateLimitGovernor, RedisCooldownStore, SourceState


@pytest.mark.asyncio
async def test_page_is_open_by_default(governor):
    assert await governor.state("P1") is SourceState.OPEN
    assert await governor.cooling_until("P1") is None


@pytest.mark.asyncio
async def test_cooldown_window_is_fixed(governor, clock):
    until = await governor.open_cooldown("P1")

    assert until == clock.now + 65
    assert await governor.state("P1") is SourceState.COOLING
    assert await governor.is_open("P2")

    clock.advance(64.9)
    assert not await governor.is_open("P1")

    clock.advance(0.1)
    assert await governor.is_open("P1")
    assert await governor.store.get("P1") is None


@pytest.mark.asyncio
async def test_second_throttle_does_not_extend_window(governor, clock):
    first = await governor.open_cooldown("P1")
    clock.advance(30)
    second = await governor.open_cooldown("P1")

    assert second == first


@pytest.mark.asyncio
async def test_new_window_after_expiry(governor, clock):
    first = await governor.open_cooldown("P1")
    clock.advance(70)

    second = await governor.open_cooldown("P1")

    assert second == clock.now + 65
    assert second > first


@pytest.mark.asyncio
async def test_redis_store_round_trips_instant():
    client = AsyncMock()
    client.get.return_value = "1700000065.5"
    store = RedisCooldownStore(client, prefix="test:cooldown")

    await store.set("P1", 1700000065.5)
    key, value = client.set.call_args.args
    assert key == "test:cooldown:P1"
    assert float(value) == 1700000065.5
    assert client.set.call_args.kwargs["ex"] >= 1

    assert await store.get("P1") == 1700000065.5

    await store.clear("P1")
    client.delete.assert_awaited_once_with("test:cooldown:P1")


@pytest.mark.asyncio
async def test_governor_over_redis_store(clock):
    client = AsyncMock()
    client.get.return_value = None
    governor = RateLimitGovernor(RedisCooldownStore(client), cooldown_seconds=65, clock=clock)

    until = await governor.open_cooldown("P1")

    assert until == clock.now + 65
    client.set.assert_awaited_once()


@pytest.mark.asyncio
async def test_redis_store_connects_on_first_use(monkeypatch):
    client = AsyncMock()
    client.get.return_value = None
    factory = AsyncMock(return_value=client)
    monkeypatch.setattr("leadsync.services.rate_limit.get_redis_client", factory)

    store = RedisCooldownStore(prefix="test:cooldown")
    factory.assert_not_awaited()

    assert await store.get("P1") is None
    await store.clear("P1")

    factory.assert_awaited_once()
    client.get.assert_awaited_once_with("test:cooldown:P1")
