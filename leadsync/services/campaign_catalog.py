# leadsync/services/campaign_catalog.py
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from leadsync.core.logging import get_structlog_logger
from leadsync.models import AdAccount, Campaign, Page
from leadsync.services.lead_source import GraphLeadSource, LeadSourceError
from leadsync.services.lead_store import PageRecord, store_session

logger = get_structlog_logger(__name__)


async def _upsert_campaign(session: AsyncSession, tenant_id: str, account: AdAccount, item: Dict[str, Any]) -> None:
    """Insert or refresh campaign metadata. leads_count is never written here."""
    campaign_id = str(item["id"])
    campaign = await session.scalar(select(Campaign).where(Campaign.campaign_id == campaign_id))
    if campaign is None:
        campaign = Campaign(campaign_id=campaign_id, tenant_id=tenant_id)
        session.add(campaign)

    campaign.tenant_id = tenant_id
    campaign.ad_account_id = account.ad_account_id
    campaign.ad_account_name = account.ad_account_name
    campaign.name = item.get("name")
    campaign.status = item.get("status")
    campaign.objective = item.get("objective")


async def refresh_campaigns(
    sessionmaker: async_sessionmaker[AsyncSession],
    source: GraphLeadSource,
    tenant_id: str,
) -> int:
    """
    Pull the campaign list of every active ad account of a tenant.
    A failing account records its error and the refresh moves on.
    Raises StoreUnavailableError when the database cannot be used.
    """
    saved = 0
    async with store_session(sessionmaker, "refresh_campaigns") as session:
        accounts = list(
            await session.scalars(
                select(AdAccount).where(AdAccount.tenant_id == tenant_id, AdAccount.is_active.is_(True))
            )
        )

        for account in accounts:
            try:
                items = await source.list_campaigns(account.ad_account_id, account.access_token)
            except LeadSourceError as e:
                account.last_error = e.message[:500]
                account.last_error_at = datetime.now(timezone.utc)
                await session.commit()
                logger.warning(
                    "campaigns.refresh_failed",
                    tenant_id=tenant_id,
                    ad_account_id=account.ad_account_id,
                    error=e.message,
                )
                continue

            for item in items:
                await _upsert_campaign(session, tenant_id, account, item)
            account.last_error = None
            await session.commit()

            saved += len(items)
            logger.info(
                "campaigns.refreshed",
                tenant_id=tenant_id,
                ad_account_id=account.ad_account_id,
                campaigns=len(items),
            )

    return saved


async def subscribe_pages(
    sessionmaker: async_sessionmaker[AsyncSession],
    source: GraphLeadSource,
    tenant_id: Optional[str] = None,
) -> int:
    """Subscribe active pages that are not yet subscribed to leadgen webhooks."""
    subscribed = 0
    async with store_session(sessionmaker, "subscribe_pages") as session:
        query = select(Page).where(Page.is_active.is_(True), Page.webhook_subscribed.is_(False))
        if tenant_id:
            query = query.where(Page.tenant_id == tenant_id)
        pages = list(await session.scalars(query))

        for page in pages:
            record = PageRecord(
                page_id=page.page_id,
                tenant_id=page.tenant_id,
                access_token=page.access_token,
                page_name=page.page_name,
            )
            try:
                ok = await source.subscribe_page(record)
            except LeadSourceError as e:
                logger.warning("pages.subscribe_failed", page_id=page.page_id, error=e.message)
                continue

            if ok:
                page.webhook_subscribed = True
                await session.commit()
                subscribed += 1
                logger.info("pages.subscribed", page_id=page.page_id, tenant_id=page.tenant_id)

    return subscribed
