# leadsync/services/live_updates.py
"""
Live-update fan-out keyed by tenant.

Publishing is fire-and-forget: a failed publish is logged and never
affects ingestion. Subscribers are owned by the transport (see the
``/live`` WebSocket route), not by the ingestion core.
"""
from __future__ import annotations

import json
import time
from typing import Any, AsyncIterator, Callable, Dict, Optional, Protocol

import redis.asyncio as redis

from leadsync.core.config import settings
from leadsync.core.exceptions import ServiceUnavailableError
from leadsync.core.logging import get_structlog_logger
from leadsync.services.redis import get_redis_client

logger = get_structlog_logger(__name__)

NEW_LEAD_EVENT = "new_lead"


class LiveUpdateSink(Protocol):
    async def publish(self, tenant_id: str, event: str, payload: Dict[str, Any]) -> None: ...


def channel_for(tenant_id: str, prefix: Optional[str] = None) -> str:
    return f"{prefix or settings.live_updates_channel_prefix}:{tenant_id}"


class RedisLiveUpdateSink:
    """
    Publishes events on a per-tenant Redis pub/sub channel.

    Without an explicit client the shared pool is fetched on the first
    publish, never at construction. When Redis cannot be reached, publishing
    is skipped for ``retry_after`` seconds so ingestion never waits on it.
    """

    def __init__(
        self,
        redis_client: Optional[redis.Redis] = None,
        prefix: Optional[str] = None,
        retry_after: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.redis = redis_client
        self.prefix = prefix or settings.live_updates_channel_prefix
        self.retry_after = retry_after
        self.clock = clock
        self._unavailable_until = 0.0

    async def _client(self) -> Optional[redis.Redis]:
        if self.redis is not None:
            return self.redis
        if self.clock() < self._unavailable_until:
            return None
        try:
            self.redis = await get_redis_client()
        except ServiceUnavailableError:
            self._unavailable_until = self.clock() + self.retry_after
            logger.warning("live_update.sink_unavailable", retry_after=self.retry_after)
            return None
        return self.redis

    async def publish(self, tenant_id: str, event: str, payload: Dict[str, Any]) -> None:
        client = await self._client()
        if client is None:
            return

        message = json.dumps({"event": event, "data": payload}, default=str)
        try:
            receivers = await client.publish(channel_for(tenant_id, self.prefix), message)
            logger.debug("live_update.published", tenant_id=tenant_id, event=event, receivers=receivers)
        except Exception as e:
            logger.warning("live_update.publish_failed", tenant_id=tenant_id, event=event, error=str(e))


async def subscribe(redis_client: redis.Redis, tenant_id: str, prefix: Optional[str] = None) -> AsyncIterator[str]:
    """Yield raw event messages published for one tenant until the caller stops iterating."""
    pubsub = redis_client.pubsub()
    await pubsub.subscribe(channel_for(tenant_id, prefix))
    try:
        async for message in pubsub.listen():
            if message.get("type") != "message":
                continue
            data = message.get("data")
            yield data.decode() if isinstance(data, bytes) else data
    finally:
        await pubsub.unsubscribe()
        await pubsub.aclose()
