# leadsync/services/factory.py
"""
Wiring of the synchronization services for the API, CLI and worker.

Nothing here performs I/O: Redis-backed collaborators connect on first use,
so request dependencies resolve instantly even when Redis is down. The
governor and the live-update sink are process-wide singletons so every run
in this process sees the same cooldown windows; with COOLDOWN_BACKEND=redis
they are shared across processes too.
"""
from __future__ import annotations

from typing import Optional

from leadsync.core.config import settings
from leadsync.core.logging import get_structlog_logger
from leadsync.services.lead_source import GraphLeadSource
from leadsync.services.lead_store import SqlLeadStore
from leadsync.services.live_updates import RedisLiveUpdateSink
from leadsync.services.rate_limit import InMemoryCooldownStore, RateLimitGovernor, RedisCooldownStore
from leadsync.services.sync import LeadSyncService
from leadsync.services.upsert import LeadUpserter
from leadsync.services.webhook_ingest import WebhookIngestor

logger = get_structlog_logger(__name__)

_governor: Optional[RateLimitGovernor] = None
_live_updates: Optional[RedisLiveUpdateSink] = None


def get_governor() -> RateLimitGovernor:
    global _governor

    if _governor is None:
        if settings.cooldown_backend == "redis":
            store = RedisCooldownStore()
        else:
            store = InMemoryCooldownStore()
        _governor = RateLimitGovernor(store)
        logger.info("rate_limit.governor_created", backend=settings.cooldown_backend)

    return _governor


def get_live_updates() -> RedisLiveUpdateSink:
    global _live_updates

    if _live_updates is None:
        _live_updates = RedisLiveUpdateSink()

    return _live_updates


def get_lead_store() -> SqlLeadStore:
    return SqlLeadStore()


def get_lead_source() -> GraphLeadSource:
    return GraphLeadSource()


def build_sync_service() -> LeadSyncService:
    store = get_lead_store()
    return LeadSyncService(
        store=store,
        source=get_lead_source(),
        governor=get_governor(),
        upserter=LeadUpserter(store, get_live_updates()),
    )


def build_webhook_ingestor() -> WebhookIngestor:
    store = get_lead_store()
    return WebhookIngestor(
        store=store,
        source=get_lead_source(),
        upserter=LeadUpserter(store, get_live_updates()),
    )
