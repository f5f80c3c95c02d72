# leadsync/services/webhook_ingest.py
from __future__ import annotations

import asyncio
import dataclasses
from dataclasses import dataclass
from typing import Any, List, Mapping, Optional

from leadsync.core.config import settings
from leadsync.core.logging import get_structlog_logger
from leadsync.services.lead_source import LeadSource
from leadsync.services.lead_store import LeadStore
from leadsync.services.upsert import WEBHOOK_CAMPAIGN_ID, IngestionPath, LeadUpserter, UpsertResult

logger = get_structlog_logger(__name__)


@dataclass(frozen=True)
class LeadgenEvent:
    leadgen_id: str
    page_external_id: Optional[str] = None
    form_id: Optional[str] = None


def extract_leadgen_events(payload: Any) -> List[LeadgenEvent]:
    """Pull ``leadgen`` changes out of a webhook delivery, ignoring everything else."""
    events: List[LeadgenEvent] = []
    if not isinstance(payload, Mapping):
        return events

    for entry in payload.get("entry") or []:
        if not isinstance(entry, Mapping):
            continue
        for change in entry.get("changes") or []:
            if not isinstance(change, Mapping) or change.get("field") != "leadgen":
                continue
            value = change.get("value")
            if not isinstance(value, Mapping) or not value.get("leadgen_id"):
                continue
            page_id = value.get("page_id") or entry.get("id")
            events.append(
                LeadgenEvent(
                    leadgen_id=str(value["leadgen_id"]),
                    page_external_id=str(page_id) if page_id else None,
                    form_id=str(value["form_id"]) if value.get("form_id") else None,
                )
            )

    return events


class WebhookIngestor:
    """
    Push path: one point-fetch per event, then the shared upsert.

    Runs after the delivery was acknowledged. Every failure ends the
    processing of that one event; nothing is retried or re-raised.
    """

    def __init__(
        self,
        store: LeadStore,
        source: LeadSource,
        upserter: LeadUpserter,
        call_timeout: Optional[float] = None,
    ) -> None:
        self.store = store
        self.source = source
        self.upserter = upserter
        self.call_timeout = call_timeout or settings.meta_leads_timeout_seconds

    async def handle_event(self, event: LeadgenEvent) -> Optional[UpsertResult]:
        log = logger.bind(leadgen_id=event.leadgen_id, page_id=event.page_external_id)
        try:
            page = await self.store.get_page(event.page_external_id) if event.page_external_id else None
            if page is None or not page.is_active:
                log.info("webhook.event_dropped", reason="unknown_or_inactive_page")
                return None

            remote = await asyncio.wait_for(
                self.source.get_lead(event.leadgen_id, page),
                timeout=self.call_timeout,
            )
            if not remote.id:
                remote = dataclasses.replace(remote, id=event.leadgen_id)

            result = await self.upserter.upsert(
                remote,
                target_campaign_id=remote.campaign_id or WEBHOOK_CAMPAIGN_ID,
                tenant_id=page.tenant_id,
                path=IngestionPath.PUSH,
                page_id=page.page_id,
                form_id=event.form_id,
            )
            log.info("webhook.event_processed", outcome=result.outcome.value)
            return result

        except Exception as e:
            log.error("webhook.event_failed", error_type=type(e).__name__, error=str(e))
            return None

    async def handle_events(self, events: List[LeadgenEvent]) -> List[Optional[UpsertResult]]:
        return [await self.handle_event(event) for event in events]
