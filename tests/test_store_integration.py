# tests/test_store_integration.py
import asyncio
import os
import uuid

import pytest
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from leadsync.db.base import Base
from leadsync.models import Campaign, Lead, Page
from leadsync.services.lead_store import DuplicateLeadError, LeadRecord, SqlLeadStore
from leadsync.services.upsert import IngestionPath, LeadUpserter

from .conftest import make_lead

pytestmark = pytest.mark.skipif(
    not os.getenv("DATABASE_URL"),
    reason="DATABASE_URL not set (expected async postgres url)",
)


def test_concurrent_inserts_store_one_lead_and_count_once():
    async def _run():
        engine = create_async_engine(os.environ["DATABASE_URL"])
        sessionmaker = async_sessionmaker(engine, expire_on_commit=False)
        tenant_id = f"it-{uuid.uuid4().hex[:8]}"
        campaign_id = f"C-{tenant_id}"
        lead_id = f"L-{tenant_id}"

        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        async with sessionmaker() as session:
            session.add(Campaign(campaign_id=campaign_id, tenant_id=tenant_id, name="Integration"))
            session.add(Page(page_id=f"P-{tenant_id}", tenant_id=tenant_id, access_token="token"))
            await session.commit()

        store = SqlLeadStore(sessionmaker)
        upserter = LeadUpserter(store)
        remote = make_lead(lead_id, campaign_id=campaign_id)

        try:
            results = await asyncio.gather(*[
                upserter.upsert(remote, target_campaign_id=campaign_id, tenant_id=tenant_id, path=IngestionPath.PULL)
                for _ in range(10)
            ])
            assert sum(result.saved for result in results) == 1

            with pytest.raises(DuplicateLeadError):
                await store.insert_lead(
                    LeadRecord(
                        external_lead_id=lead_id,
                        tenant_id=tenant_id,
                        campaign_id=campaign_id,
                        ingestion_path="push",
                    )
                )

            async with sessionmaker() as session:
                campaign = await session.scalar(select(Campaign).where(Campaign.campaign_id == campaign_id))
                assert campaign.leads_count == 1

            pages = await store.list_active_pages(tenant_id)
            assert [page.page_id for page in pages] == [f"P-{tenant_id}"]
            assert len(await store.list_leads(tenant_id)) == 1
        finally:
            async with sessionmaker() as session:
                await session.execute(delete(Lead).where(Lead.tenant_id == tenant_id))
                await session.execute(delete(Page).where(Page.tenant_id == tenant_id))
                await session.execute(delete(Campaign).where(Campaign.tenant_id == tenant_id))
                await session.commit()
            await engine.dispose()

    asyncio.run(_run())
