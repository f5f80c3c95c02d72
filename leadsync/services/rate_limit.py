# leadsync/services/rate_limit.py
"""
Per-page cooldown tracking for the remote lead source.

Each page is either OPEN (calls allowed) or COOLING until a fixed instant
after a throttling response. The window has a constant length: no growth,
no jitter. Expired windows are cleared lazily on the next read.
"""
from __future__ import annotations

import math
import time
from enum import Enum
from typing import Callable, Dict, Optional, Protocol

import redis.asyncio as redis

from leadsync.core.config import settings
from leadsync.core.logging import get_structlog_logger
from leadsync.services.redis import get_redis_client

logger = get_structlog_logger(__name__)


class SourceState(str, Enum):
    OPEN = "open"
    COOLING = "cooling"


class CooldownStore(Protocol):
    async def get(self, page_id: str) -> Optional[float]: ...

    async def set(self, page_id: str, until: float) -> None: ...

    async def clear(self, page_id: str) -> None: ...


class InMemoryCooldownStore:
    """Process-lifetime cooldown map; operations never suspend, so each one is atomic on the event loop."""

    def __init__(self) -> None:
        self._until: Dict[str, float] = {}

    async def get(self, page_id: str) -> Optional[float]:
        return self._until.get(page_id)

    async def set(self, page_id: str, until: float) -> None:
        self._until[page_id] = until

    async def clear(self, page_id: str) -> None:
        self._until.pop(page_id, None)


class RedisCooldownStore:
    """
    Cooldown map shared by every process pointed at the same Redis.
    Without an explicit client the shared pool is fetched on first use.
    """

    def __init__(self, redis_client: Optional[redis.Redis] = None, prefix: str = "leadsync:cooldown"):
        self.redis = redis_client
        self.prefix = prefix

    def _make_key(self, page_id: str) -> str:
        return f"{self.prefix}:{page_id}"

    async def _client(self) -> redis.Redis:
        if self.redis is None:
            self.redis = await get_redis_client()
        return self.redis

    async def get(self, page_id: str) -> Optional[float]:
        client = await self._client()
        value = await client.get(self._make_key(page_id))
        return float(value) if value is not None else None

    async def set(self, page_id: str, until: float) -> None:
        # Key expiry is housekeeping only; the governor compares instants itself.
        ttl = max(1, math.ceil(until - time.time()) + 1)
        client = await self._client()
        await client.set(self._make_key(page_id), repr(until), ex=ttl)

    async def clear(self, page_id: str) -> None:
        client = await self._client()
        await client.delete(self._make_key(page_id))


class RateLimitGovernor:
    def __init__(
        self,
        store: Optional[CooldownStore] = None,
        cooldown_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store or InMemoryCooldownStore()
        self.cooldown_seconds = (
            cooldown_seconds if cooldown_seconds is not None else settings.rate_limit_cooldown_seconds
        )
        self.clock = clock

    async def cooling_until(self, page_id: str) -> Optional[float]:
        """Return the end of the page's cooldown window, or None when the page is open."""
        until = await self.store.get(page_id)
        if until is None:
            return None
        if self.clock() >= until:
            await self.store.clear(page_id)
            logger.info("rate_limit.cooldown_expired", page_id=page_id)
            return None
        return until

    async def state(self, page_id: str) -> SourceState:
        if await self.cooling_until(page_id) is None:
            return SourceState.OPEN
        return SourceState.COOLING

    async def is_open(self, page_id: str) -> bool:
        return await self.state(page_id) is SourceState.OPEN

    async def open_cooldown(self, page_id: str) -> float:
        """Move the page to COOLING. An already-running window is kept, not extended."""
        existing = await self.cooling_until(page_id)
        if existing is not None:
            return existing

        until = self.clock() + self.cooldown_seconds
        await self.store.set(page_id, until)
        logger.warning(
            "rate_limit.cooldown_opened",
            page_id=page_id,
            cooldown_seconds=self.cooldown_seconds,
            until=until,
        )
        return until
