# leadsync/services/lead_store.py
"""
Store contract used by the synchronization core, plus its SQLAlchemy adapter.

The core only needs keyed lookups, an insert guarded by the unique
``external_lead_id`` constraint, and an atomic counter increment. Consistency
between concurrent ingestion paths relies on that constraint alone; there is
no application-level locking.
"""
from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, AsyncIterator, Dict, List, Optional, Protocol

from sqlalchemy import select, update
from sqlalchemy.exc import DataError, IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from leadsync.core.logging import get_structlog_logger
from leadsync.db.session import get_sessionmaker
from leadsync.models import Campaign, Lead, Page

logger = get_structlog_logger(__name__)


class StoreUnavailableError(Exception):
    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message


class DuplicateLeadError(Exception):
    def __init__(self, external_lead_id: str) -> None:
        super().__init__(f"lead {external_lead_id} already exists")
        self.external_lead_id = external_lead_id


class InvalidLeadError(Exception):
    """The store refused this one lead (bad width, check constraint, missing value)."""

    def __init__(self, external_lead_id: str, message: str) -> None:
        super().__init__(message)
        self.external_lead_id = external_lead_id
        self.message = message


@dataclass(frozen=True)
class PageRecord:
    page_id: str
    tenant_id: str
    access_token: str
    page_name: Optional[str] = None
    is_active: bool = True


@dataclass(frozen=True)
class CampaignRecord:
    campaign_id: str
    tenant_id: str
    name: Optional[str] = None
    leads_count: int = 0


@dataclass(frozen=True)
class LeadRecord:
    external_lead_id: str
    tenant_id: str
    campaign_id: str
    ingestion_path: str
    page_id: Optional[str] = None
    form_id: Optional[str] = None
    ad_id: Optional[str] = None
    created_time: Optional[datetime] = None
    field_data: List[Any] = field(default_factory=list)
    name: str = "Unknown"
    email: str = ""
    phone: str = ""
    custom_fields: Dict[str, str] = field(default_factory=dict)
    processed: bool = False

    def to_payload(self) -> Dict[str, Any]:
        payload = asdict(self)
        if self.created_time is not None:
            payload["created_time"] = self.created_time.isoformat()
        return payload


class LeadStore(Protocol):
    async def get_campaign(self, tenant_id: str, campaign_id: str) -> Optional[CampaignRecord]: ...

    async def list_active_pages(self, tenant_id: str) -> List[PageRecord]: ...

    async def get_page(self, page_id: str) -> Optional[PageRecord]: ...

    async def lead_exists(self, external_lead_id: str) -> bool: ...

    async def insert_lead(self, lead: LeadRecord) -> None:
        """
        Persist a lead. Raises DuplicateLeadError on a unique-key violation and
        InvalidLeadError when the store rejects this lead's values.
        """
        ...

    async def increment_leads_count(self, campaign_id: str) -> None: ...


UNIQUE_VIOLATION = "23505"
LEAD_KEY_CONSTRAINT = "uq_leads_external_lead_id"


def is_unique_violation(error: IntegrityError) -> bool:
    """True only for a unique-key violation, not for check or NOT NULL failures."""
    for candidate in (error.orig, getattr(error.orig, "__cause__", None)):
        sqlstate = getattr(candidate, "pgcode", None) or getattr(candidate, "sqlstate", None)
        if sqlstate:
            return sqlstate == UNIQUE_VIOLATION
    return LEAD_KEY_CONSTRAINT in str(error.orig)


@asynccontextmanager
async def store_session(
    sessionmaker: async_sessionmaker[AsyncSession],
    operation: str,
) -> AsyncIterator[AsyncSession]:
    """Open a session; database and connection failures become StoreUnavailableError."""
    try:
        async with sessionmaker() as session:
            yield session
    except (SQLAlchemyError, OSError) as e:
        logger.error("store.unavailable", operation=operation, error=str(e))
        raise StoreUnavailableError(operation, str(e)) from e


def _page_record(page: Page) -> PageRecord:
    return PageRecord(
        page_id=page.page_id,
        tenant_id=page.tenant_id,
        access_token=page.access_token,
        page_name=page.page_name,
        is_active=page.is_active,
    )


class SqlLeadStore:
    """LeadStore backed by the async SQLAlchemy session factory."""

    def __init__(self, sessionmaker: Optional[async_sessionmaker[AsyncSession]] = None):
        self._sessionmaker = sessionmaker or get_sessionmaker()

    def _session(self, operation: str):
        return store_session(self._sessionmaker, operation)

    async def get_campaign(self, tenant_id: str, campaign_id: str) -> Optional[CampaignRecord]:
        async with self._session("get_campaign") as session:
            campaign = await session.scalar(
                select(Campaign).where(
                    Campaign.campaign_id == campaign_id,
                    Campaign.tenant_id == tenant_id,
                )
            )
            if campaign is None:
                return None
            return CampaignRecord(
                campaign_id=campaign.campaign_id,
                tenant_id=campaign.tenant_id,
                name=campaign.name,
                leads_count=campaign.leads_count,
            )

    async def list_active_pages(self, tenant_id: str) -> List[PageRecord]:
        async with self._session("list_active_pages") as session:
            pages = await session.scalars(
                select(Page)
                .where(Page.tenant_id == tenant_id, Page.is_active.is_(True))
                .order_by(Page.id)
            )
            return [_page_record(page) for page in pages]

    async def get_page(self, page_id: str) -> Optional[PageRecord]:
        async with self._session("get_page") as session:
            page = await session.scalar(select(Page).where(Page.page_id == page_id))
            return _page_record(page) if page is not None else None

    async def lead_exists(self, external_lead_id: str) -> bool:
        async with self._session("lead_exists") as session:
            found = await session.scalar(
                select(Lead.id).where(Lead.external_lead_id == external_lead_id).limit(1)
            )
            return found is not None

    async def insert_lead(self, lead: LeadRecord) -> None:
        async with self._session("insert_lead") as session:
            session.add(
                Lead(
                    external_lead_id=lead.external_lead_id,
                    tenant_id=lead.tenant_id,
                    page_id=lead.page_id,
                    form_id=lead.form_id,
                    campaign_id=lead.campaign_id,
                    ad_id=lead.ad_id,
                    created_time=lead.created_time,
                    field_data=list(lead.field_data),
                    name=lead.name,
                    email=lead.email,
                    phone=lead.phone,
                    custom_fields=dict(lead.custom_fields),
                    ingestion_path=lead.ingestion_path,
                    processed=lead.processed,
                )
            )
            try:
                await session.commit()
            except IntegrityError as e:
                await session.rollback()
                if is_unique_violation(e):
                    raise DuplicateLeadError(lead.external_lead_id) from e
                raise InvalidLeadError(lead.external_lead_id, str(e.orig)) from e
            except DataError as e:
                await session.rollback()
                raise InvalidLeadError(lead.external_lead_id, str(e.orig)) from e

    async def increment_leads_count(self, campaign_id: str) -> None:
        async with self._session("increment_leads_count") as session:
            await session.execute(
                update(Campaign)
                .where(Campaign.campaign_id == campaign_id)
                .values(leads_count=Campaign.leads_count + 1)
            )
            await session.commit()

    async def list_campaigns(self, tenant_id: str) -> List[Dict[str, Any]]:
        async with self._session("list_campaigns") as session:
            campaigns = await session.scalars(
                select(Campaign).where(Campaign.tenant_id == tenant_id).order_by(Campaign.name)
            )
            return [
                campaign.to_dict(exclude=["id", "created_at", "updated_at"])
                for campaign in campaigns
            ]

    async def list_leads(
        self,
        tenant_id: str,
        campaign_id: Optional[str] = None,
        limit: int = 500,
    ) -> List[Dict[str, Any]]:
        query = select(Lead).where(Lead.tenant_id == tenant_id)
        if campaign_id:
            query = query.where(Lead.campaign_id == campaign_id)
        query = query.order_by(Lead.created_time.desc().nulls_last(), Lead.id.desc()).limit(limit)

        async with self._session("list_leads") as session:
            leads = await session.scalars(query)
            return [lead.to_dict(exclude=["updated_at"]) for lead in leads]

    async def campaign_ids_by_tenant(self) -> Dict[str, List[str]]:
        async with self._session("campaign_ids_by_tenant") as session:
            rows = await session.execute(
                select(Campaign.tenant_id, Campaign.campaign_id).order_by(Campaign.tenant_id, Campaign.id)
            )
            grouped: Dict[str, List[str]] = {}
            for tenant_id, campaign_id in rows:
                grouped.setdefault(tenant_id, []).append(campaign_id)
            return grouped
