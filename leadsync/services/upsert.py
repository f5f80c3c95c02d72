# leadsync/services/upsert.py
"""
Dedup & upsert of normalized leads.

A lead is keyed by its remote id. The existence check is only an
optimisation: the unique constraint on ``external_lead_id`` is what makes
concurrent ingestion of the same lead safe, and a violation there counts as
a successful dedup. The campaign counter is bumped only after an insert
actually succeeded. A lead the store refuses (an over-long id, a bad
value) is counted as rejected and the run moves on to the next one.

Known gap: insert and increment are two store calls, so a crash between
them leaves ``leads_count`` one short. The lead itself is never lost.
"""
from __future__ import annotations

import secrets
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from leadsync.core.logging import get_structlog_logger
from leadsync.services.field_normalizer import normalize_field_data
from leadsync.services.lead_source import RemoteLead, parse_graph_timestamp
from leadsync.services.lead_store import DuplicateLeadError, InvalidLeadError, LeadRecord, LeadStore
from leadsync.services.live_updates import NEW_LEAD_EVENT, LiveUpdateSink

logger = get_structlog_logger(__name__)

# Campaign bucket for pushed leads that carry no campaign id.
WEBHOOK_CAMPAIGN_ID = "webhook"

# Widths of the free-text lead columns.
NAME_MAX_LENGTH = 200
EMAIL_MAX_LENGTH = 320
PHONE_MAX_LENGTH = 64


class IngestionPath(str, Enum):
    PULL = "pull"
    PUSH = "push"


class UpsertOutcome(str, Enum):
    SAVED = "saved"
    DUPLICATE = "duplicate"
    WRONG_CAMPAIGN = "wrong_campaign"
    REJECTED = "rejected"


@dataclass(frozen=True)
class UpsertResult:
    outcome: UpsertOutcome
    external_lead_id: Optional[str]
    lead: Optional[LeadRecord] = None

    @property
    def saved(self) -> bool:
        return self.outcome is UpsertOutcome.SAVED


@dataclass
class UpsertCounts:
    fetched: int = 0
    skipped_wrong_campaign: int = 0
    duplicates: int = 0
    rejected: int = 0
    saved: int = 0

    def record(self, result: UpsertResult) -> None:
        self.fetched += 1
        if result.outcome is UpsertOutcome.SAVED:
            self.saved += 1
        elif result.outcome is UpsertOutcome.DUPLICATE:
            self.duplicates += 1
        elif result.outcome is UpsertOutcome.REJECTED:
            self.rejected += 1
        else:
            self.skipped_wrong_campaign += 1


def synthesize_lead_id(form_id: Optional[str], clock: Callable[[], float] = time.time) -> str:
    """
    Build an id for a lead the source returned without one.

    Namespaced by form so two forms can never collide; the 64-bit random
    suffix covers leads of the same form in the same millisecond.
    """
    return f"synth_{form_id or 'unknown'}_{int(clock() * 1000)}_{secrets.token_hex(8)}"


class LeadUpserter:
    def __init__(self, store: LeadStore, live_updates: Optional[LiveUpdateSink] = None):
        self.store = store
        self.live_updates = live_updates

    async def upsert(
        self,
        remote: RemoteLead,
        *,
        target_campaign_id: str,
        tenant_id: str,
        path: IngestionPath,
        page_id: Optional[str] = None,
        form_id: Optional[str] = None,
    ) -> UpsertResult:
        source_campaign_id = remote.campaign_id
        if source_campaign_id and source_campaign_id != target_campaign_id:
            logger.debug(
                "upsert.wrong_campaign",
                lead_id=remote.id,
                lead_campaign_id=source_campaign_id,
                target_campaign_id=target_campaign_id,
            )
            return UpsertResult(UpsertOutcome.WRONG_CAMPAIGN, remote.id)

        # Leads without a campaign are attributed to the campaign being synced.
        campaign_id = source_campaign_id or target_campaign_id
        form_id = remote.form_id or form_id
        external_lead_id = remote.id or synthesize_lead_id(form_id)

        if await self.store.lead_exists(external_lead_id):
            logger.debug("upsert.duplicate", lead_id=external_lead_id, path=path.value)
            return UpsertResult(UpsertOutcome.DUPLICATE, external_lead_id)

        normalized = normalize_field_data(remote.field_data)
        lead = LeadRecord(
            external_lead_id=external_lead_id,
            tenant_id=tenant_id,
            campaign_id=campaign_id,
            ingestion_path=path.value,
            page_id=page_id,
            form_id=form_id,
            ad_id=remote.ad_id,
            created_time=parse_graph_timestamp(remote.created_time),
            field_data=list(remote.field_data),
            name=normalized.name[:NAME_MAX_LENGTH],
            email=normalized.email[:EMAIL_MAX_LENGTH],
            phone=normalized.phone[:PHONE_MAX_LENGTH],
            custom_fields=normalized.fields,
        )

        try:
            await self.store.insert_lead(lead)
        except DuplicateLeadError:
            # Another path inserted the same lead between the check and the insert.
            logger.info("upsert.duplicate_race", lead_id=external_lead_id, path=path.value)
            return UpsertResult(UpsertOutcome.DUPLICATE, external_lead_id)
        except InvalidLeadError as e:
            logger.warning("upsert.rejected", lead_id=external_lead_id, path=path.value, error=e.message)
            return UpsertResult(UpsertOutcome.REJECTED, external_lead_id)

        await self.store.increment_leads_count(target_campaign_id)
        logger.info(
            "upsert.saved",
            lead_id=external_lead_id,
            campaign_id=campaign_id,
            path=path.value,
        )

        if self.live_updates is not None:
            await self.live_updates.publish(tenant_id, NEW_LEAD_EVENT, lead.to_payload())

        return UpsertResult(UpsertOutcome.SAVED, external_lead_id, lead)
