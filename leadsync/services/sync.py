# leadsync/services/sync.py
"""
Pull synchronization: pages -> forms -> cursor-paginated leads.

Failures are contained at the smallest level that can absorb them:
- a page in cooldown is skipped and reported in ``deferred_pages``
- a page whose forms cannot be listed is skipped
- a form whose pagination fails keeps the batches it already fetched
Only store failures abort the run, because no partial count can be
trusted once the store is unreachable.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from leadsync.core.config import settings
from leadsync.core.logging import get_structlog_logger
from leadsync.services.lead_source import FormRef, LeadSource, LeadSourceError, LeadSourceRateLimited
from leadsync.services.lead_store import LeadStore, PageRecord, StoreUnavailableError
from leadsync.services.pagination import LeadPaginator, PaginationOutcome
from leadsync.services.rate_limit import RateLimitGovernor
from leadsync.services.upsert import IngestionPath, LeadUpserter, UpsertCounts

logger = get_structlog_logger(__name__)


@dataclass
class SyncResult:
    campaign_id: str
    campaign_name: Optional[str] = None
    found: bool = True
    counts: UpsertCounts = field(default_factory=UpsertCounts)
    deferred_pages: List[str] = field(default_factory=list)
    failed_forms: List[str] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def synced(self) -> int:
        return self.counts.saved

    @property
    def fetched(self) -> int:
        return self.counts.fetched

    def defer(self, page_id: str) -> None:
        if page_id not in self.deferred_pages:
            self.deferred_pages.append(page_id)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "synced": self.synced,
            "fetched": self.fetched,
            "skipped": self.counts.skipped_wrong_campaign,
            "duplicates": self.counts.duplicates,
            "rejected": self.counts.rejected,
            "campaign_name": self.campaign_name,
            "campaign_id": self.campaign_id,
            "deferred_pages": list(self.deferred_pages),
        }
        if not self.found:
            payload["not_found"] = True
        if self.error:
            payload["error"] = self.error
        return payload


@dataclass
class SyncManyResult:
    campaign_ids: List[str]
    results: List[SyncResult] = field(default_factory=list)

    @property
    def total_synced(self) -> int:
        return sum(result.synced for result in self.results)

    @property
    def total_fetched(self) -> int:
        return sum(result.fetched for result in self.results)

    @property
    def deferred_pages(self) -> List[str]:
        pages: List[str] = []
        for result in self.results:
            pages.extend(page for page in result.deferred_pages if page not in pages)
        return pages

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalSynced": self.total_synced,
            "totalFetched": self.total_fetched,
            "campaignIds": list(self.campaign_ids),
            "deferredPages": self.deferred_pages,
            "errors": {result.campaign_id: result.error for result in self.results if result.error},
        }


class LeadSyncService:
    def __init__(
        self,
        store: LeadStore,
        source: LeadSource,
        governor: RateLimitGovernor,
        upserter: LeadUpserter,
        page_size: Optional[int] = None,
        forms_timeout: Optional[float] = None,
        leads_timeout: Optional[float] = None,
    ) -> None:
        self.store = store
        self.source = source
        self.governor = governor
        self.upserter = upserter
        self.page_size = page_size or settings.meta_page_size
        self.forms_timeout = forms_timeout or settings.meta_forms_timeout_seconds
        self.leads_timeout = leads_timeout or settings.meta_leads_timeout_seconds

    async def sync(self, tenant_id: str, campaign_id: str) -> SyncResult:
        log = logger.bind(tenant_id=tenant_id, campaign_id=campaign_id)
        result = SyncResult(campaign_id=campaign_id)
        log.info("sync.started")

        try:
            campaign = await self.store.get_campaign(tenant_id, campaign_id)
            if campaign is None:
                log.info("sync.campaign_not_found")
                result.found = False
                return result
            result.campaign_name = campaign.name

            pages = await self.store.list_active_pages(tenant_id)
            if not pages:
                log.info("sync.no_active_pages")
                return result

            for page in pages:
                until = await self.governor.cooling_until(page.page_id)
                if until is not None:
                    log.info("sync.page_deferred", page_id=page.page_id, cooling_until=until)
                    result.defer(page.page_id)
                    continue
                await self._sync_page(tenant_id, campaign_id, page, result)

        except StoreUnavailableError as e:
            log.error("sync.failed", code=e.code, error=e.message)
            return SyncResult(campaign_id=campaign_id, campaign_name=result.campaign_name, error=e.message)

        log.info(
            "sync.completed",
            synced=result.synced,
            fetched=result.fetched,
            skipped=result.counts.skipped_wrong_campaign,
            rejected=result.counts.rejected,
            deferred_pages=result.deferred_pages,
        )
        return result

    async def sync_many(self, tenant_id: str, campaign_ids: Sequence[str]) -> SyncManyResult:
        logger.info("sync_many.started", tenant_id=tenant_id, campaigns=len(campaign_ids))
        many = SyncManyResult(campaign_ids=list(campaign_ids))
        for campaign_id in campaign_ids:
            many.results.append(await self.sync(tenant_id, campaign_id))
        logger.info(
            "sync_many.completed",
            tenant_id=tenant_id,
            total_synced=many.total_synced,
            total_fetched=many.total_fetched,
        )
        return many

    async def _list_forms(self, page: PageRecord, result: SyncResult) -> Optional[List[FormRef]]:
        log = logger.bind(page_id=page.page_id)
        try:
            forms = await asyncio.wait_for(self.source.list_forms(page), timeout=self.forms_timeout)
        except LeadSourceRateLimited:
            await self.governor.open_cooldown(page.page_id)
            result.defer(page.page_id)
            log.warning("sync.forms_rate_limited")
            return None
        except asyncio.TimeoutError:
            log.warning("sync.forms_failed", error=f"timed out after {self.forms_timeout}s")
            return None
        except LeadSourceError as e:
            log.warning("sync.forms_failed", code=e.code, error=e.message)
            return None

        log.info("sync.forms_found", page_name=page.page_name, forms=len(forms))
        return forms

    async def _sync_page(self, tenant_id: str, campaign_id: str, page: PageRecord, result: SyncResult) -> None:
        forms = await self._list_forms(page, result)
        if not forms:
            return

        for form in forms:
            # A throttled form puts the whole page in cooldown; stop calling it for this run.
            if not await self.governor.is_open(page.page_id):
                result.defer(page.page_id)
                return
            await self._sync_form(tenant_id, campaign_id, page, form, result)

    async def _sync_form(
        self,
        tenant_id: str,
        campaign_id: str,
        page: PageRecord,
        form: FormRef,
        result: SyncResult,
    ) -> None:
        paginator = LeadPaginator(
            self.source,
            page,
            form.id,
            self.governor,
            page_size=self.page_size,
            call_timeout=self.leads_timeout,
        )
        form_counts = UpsertCounts()

        async for batch in paginator.batches():
            for remote in batch.items:
                upserted = await self.upserter.upsert(
                    remote,
                    target_campaign_id=campaign_id,
                    tenant_id=tenant_id,
                    path=IngestionPath.PULL,
                    page_id=page.page_id,
                    form_id=form.id,
                )
                form_counts.record(upserted)
                result.counts.record(upserted)

        if paginator.outcome is PaginationOutcome.RATE_LIMITED:
            result.defer(page.page_id)
        elif paginator.outcome is PaginationOutcome.FAILED:
            result.failed_forms.append(form.id)

        logger.info(
            "sync.form_done",
            page_id=page.page_id,
            form_id=form.id,
            form_name=form.name,
            outcome=paginator.outcome.value if paginator.outcome else None,
            fetched=form_counts.fetched,
            saved=form_counts.saved,
        )
