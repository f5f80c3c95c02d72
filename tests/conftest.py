# tests/conftest.py
import asyncio
import os
from typing import Awaitable, Callable, Dict, List, Optional, Tuple, Union

os.environ.setdefault("ENVIRONMENT", "testing")

import pytest

from leadsync.services.lead_source import FormRef, LeadBatch, RemoteLead
from leadsync.services.lead_store import (
    CampaignRecord,
    DuplicateLeadError,
    InvalidLeadError,
    LeadRecord,
    PageRecord,
    StoreUnavailableError,
)
from leadsync.services.rate_limit import RateLimitGovernor
from leadsync.services.upsert import LeadUpserter

TENANT = "tenant-1"


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeLeadStore:
    """In-memory LeadStore; ``insert_lead`` enforces external_lead_id uniqueness like the DB constraint."""

    def __init__(self, campaigns=(), pages=()):
        self.campaigns: Dict[str, CampaignRecord] = {c.campaign_id: c for c in campaigns}
        self.leads_count: Dict[str, int] = {c.campaign_id: c.leads_count for c in campaigns}
        self.pages: List[PageRecord] = list(pages)
        self.leads: Dict[str, LeadRecord] = {}
        self.increments: List[str] = []
        self.before_insert: Optional[Callable[[LeadRecord], Awaitable[None]]] = None
        self.unavailable = False
        self.rejected_ids = set()

    def _check(self, operation: str) -> None:
        if self.unavailable:
            raise StoreUnavailableError(operation, "connection refused")

    async def get_campaign(self, tenant_id, campaign_id):
        self._check("get_campaign")
        campaign = self.campaigns.get(campaign_id)
        if campaign is None or campaign.tenant_id != tenant_id:
            return None
        return campaign

    async def list_active_pages(self, tenant_id):
        self._check("list_active_pages")
        return [page for page in self.pages if page.tenant_id == tenant_id and page.is_active]

    async def get_page(self, page_id):
        self._check("get_page")
        return next((page for page in self.pages if page.page_id == page_id), None)

    async def lead_exists(self, external_lead_id):
        self._check("lead_exists")
        await asyncio.sleep(0)
        return external_lead_id in self.leads

    async def insert_lead(self, lead):
        self._check("insert_lead")
        if self.before_insert is not None:
            await self.before_insert(lead)
        await asyncio.sleep(0)
        if lead.external_lead_id in self.leads:
            raise DuplicateLeadError(lead.external_lead_id)
        if lead.external_lead_id in self.rejected_ids:
            raise InvalidLeadError(lead.external_lead_id, "value too long for type character varying(200)")
        self.leads[lead.external_lead_id] = lead

    async def increment_leads_count(self, campaign_id):
        self._check("increment_leads_count")
        self.increments.append(campaign_id)
        self.leads_count[campaign_id] = self.leads_count.get(campaign_id, 0) + 1


Scripted = Union[LeadBatch, Exception]


class FakeLeadSource:
    """
    Scripted LeadSource. ``batches[(form_id, cursor)]`` is returned (or raised)
    for each list_leads call; ``delay`` makes every call sleep first.
    """

    def __init__(self):
        self.forms: Dict[str, Union[List[FormRef], Exception]] = {}
        self.batches: Dict[Tuple[str, Optional[str]], Scripted] = {}
        self.leads: Dict[str, Union[RemoteLead, Exception]] = {}
        self.delay = 0.0
        self.form_calls: List[str] = []
        self.lead_calls: List[Tuple[str, Optional[str]]] = []
        self.get_calls: List[str] = []

    async def _wait(self):
        if self.delay:
            await asyncio.sleep(self.delay)

    async def list_forms(self, page):
        self.form_calls.append(page.page_id)
        await self._wait()
        forms = self.forms.get(page.page_id, [])
        if isinstance(forms, Exception):
            raise forms
        return forms

    async def list_leads(self, form_id, page, cursor=None, limit=100):
        self.lead_calls.append((form_id, cursor))
        await self._wait()
        scripted = self.batches.get((form_id, cursor), LeadBatch(items=[]))
        if isinstance(scripted, Exception):
            raise scripted
        return scripted

    async def get_lead(self, lead_id, page):
        self.get_calls.append(lead_id)
        await self._wait()
        lead = self.leads[lead_id]
        if isinstance(lead, Exception):
            raise lead
        return lead


class RecordingSink:
    def __init__(self):
        self.events = []

    async def publish(self, tenant_id, event, payload):
        self.events.append((tenant_id, event, payload))


def make_lead(lead_id, campaign_id=None, email=None, form_id="F1", **extra):
    field_data = [{"name": "full_name", "values": [f"Lead {lead_id}"]}]
    if email:
        field_data.append({"name": "email", "values": [email]})
    return RemoteLead(
        id=lead_id,
        created_time="2025-12-15T12:00:00+0000",
        field_data=field_data,
        campaign_id=campaign_id,
        form_id=form_id,
        **extra,
    )


def make_page(page_id="P1", tenant_id=TENANT, is_active=True):
    return PageRecord(page_id=page_id, tenant_id=tenant_id, access_token=f"token-{page_id}", is_active=is_active)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def governor(clock):
    return RateLimitGovernor(cooldown_seconds=65, clock=clock)


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def source():
    return FakeLeadSource()


@pytest.fixture
def store():
    return FakeLeadStore(
        campaigns=[CampaignRecord(campaign_id="C1", tenant_id=TENANT, name="Spring Promo")],
        pages=[make_page("P1")],
    )


@pytest.fixture
def upserter(store, sink):
    return LeadUpserter(store, sink)
