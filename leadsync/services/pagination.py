# leadsync/services/pagination.py
from __future__ import annotations

import asyncio
from enum import Enum
from typing import AsyncIterator, Optional

from leadsync.core.config import settings
from leadsync.core.logging import get_structlog_logger
from leadsync.services.lead_source import LeadBatch, LeadSource, LeadSourceError, LeadSourceRateLimited
from leadsync.services.lead_store import PageRecord
from leadsync.services.rate_limit import RateLimitGovernor

logger = get_structlog_logger(__name__)


class PaginationOutcome(str, Enum):
    COMPLETED = "completed"
    RATE_LIMITED = "rate_limited"
    FAILED = "failed"


class LeadPaginator:
    """
    Follows the continuation cursor of one (page, form) pair.

    ``batches()`` yields every batch fetched successfully. It never retries:
    a throttling response opens a cooldown window for the page and ends the
    iteration, any other failure (timeout included) just ends it. Batches
    already yielded stay valid either way. ``outcome`` tells the caller how
    the iteration ended.
    """

    def __init__(
        self,
        source: LeadSource,
        page: PageRecord,
        form_id: str,
        governor: RateLimitGovernor,
        page_size: Optional[int] = None,
        call_timeout: Optional[float] = None,
    ) -> None:
        self.source = source
        self.page = page
        self.form_id = form_id
        self.governor = governor
        self.page_size = page_size or settings.meta_page_size
        self.call_timeout = call_timeout or settings.meta_leads_timeout_seconds

        self.outcome: Optional[PaginationOutcome] = None
        self.calls = 0
        self.error: Optional[str] = None

    async def batches(self) -> AsyncIterator[LeadBatch]:
        log = logger.bind(page_id=self.page.page_id, form_id=self.form_id)
        cursor: Optional[str] = None

        while True:
            self.calls += 1
            log.debug("pagination.fetch", cursor=cursor or "start", call=self.calls)
            try:
                batch = await asyncio.wait_for(
                    self.source.list_leads(self.form_id, self.page, cursor=cursor, limit=self.page_size),
                    timeout=self.call_timeout,
                )
            except LeadSourceRateLimited as e:
                until = await self.governor.open_cooldown(self.page.page_id)
                self._finish(PaginationOutcome.RATE_LIMITED, e.message)
                log.warning("pagination.rate_limited", cursor=cursor, cooling_until=until)
                return
            except asyncio.TimeoutError:
                self._finish(PaginationOutcome.FAILED, f"timed out after {self.call_timeout}s")
                log.warning("pagination.timeout", cursor=cursor, timeout=self.call_timeout)
                return
            except LeadSourceError as e:
                self._finish(PaginationOutcome.FAILED, e.message)
                log.warning("pagination.failed", cursor=cursor, code=e.code, error=e.message)
                return

            yield batch

            next_cursor = batch.next_cursor
            if not next_cursor:
                self._finish(PaginationOutcome.COMPLETED)
                return
            if next_cursor == cursor:
                # A source that hands back the same cursor would loop forever.
                log.warning("pagination.cursor_stalled", cursor=cursor)
                self._finish(PaginationOutcome.COMPLETED)
                return
            cursor = next_cursor

    def _finish(self, outcome: PaginationOutcome, error: Optional[str] = None) -> None:
        self.outcome = outcome
        self.error = error
