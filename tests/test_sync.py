# tests/test_sync.py
import pytest

from leadsync.services.lead_source import FormRef, LeadBatch, LeadSourceError, LeadSourceRateLimited
from leadsync.services.lead_store import CampaignRecord
from leadsync.services.sync import LeadSyncService

from .conftest import TENANT, make_lead, make_page


@pytest.fixture
def service(store, source, governor, upserter):
    return LeadSyncService(store, source, governor, upserter, page_size=100, forms_timeout=1, leads_timeout=1)


@pytest.mark.asyncio
async def test_sync_saves_only_matching_leads(service, store, source):
    source.forms["P1"] = [FormRef("F1", "Quote form")]
    source.batches[("F1", None)] = LeadBatch(items=[
        make_lead("L1", campaign_id="C1"),
        make_lead("L2", campaign_id="C2"),
    ])

    result = await service.sync(TENANT, "C1")

    assert result.synced == 1
    assert result.fetched == 2
    assert result.counts.skipped_wrong_campaign == 1
    assert result.campaign_name == "Spring Promo"
    assert store.leads_count["C1"] == 1
    assert list(store.leads) == ["L1"]

    payload = result.to_dict()
    assert payload["synced"] == 1
    assert payload["fetched"] == 2
    assert payload["campaign_id"] == "C1"
    assert "error" not in payload


@pytest.mark.asyncio
async def test_second_run_finds_only_duplicates(service, store, source):
    source.forms["P1"] = [FormRef("F1")]
    source.batches[("F1", None)] = LeadBatch(items=[make_lead("L1", campaign_id="C1")])

    await service.sync(TENANT, "C1")
    again = await service.sync(TENANT, "C1")

    assert again.synced == 0
    assert again.counts.duplicates == 1
    assert store.leads_count["C1"] == 1


@pytest.mark.asyncio
async def test_unknown_campaign_is_not_found(service, source):
    result = await service.sync(TENANT, "missing")

    assert not result.found
    assert result.synced == 0
    assert result.fetched == 0
    assert result.error is None
    assert result.to_dict()["not_found"] is True
    assert source.form_calls == []


@pytest.mark.asyncio
async def test_campaign_of_other_tenant_is_not_found(service):
    result = await service.sync("tenant-2", "C1")

    assert not result.found


@pytest.mark.asyncio
async def test_no_active_pages_returns_zero(service, store, source):
    store.pages = [make_page("P1", is_active=False)]

    result = await service.sync(TENANT, "C1")

    assert result.found
    assert result.fetched == 0
    assert source.form_calls == []


@pytest.mark.asyncio
async def test_cooling_page_is_deferred_until_window_ends(service, governor, source, clock):
    source.forms["P1"] = [FormRef("F1")]
    source.batches[("F1", None)] = LeadBatch(items=[make_lead("L1", campaign_id="C1")])
    await governor.store.set("P1", clock.now + 30)

    deferred = await service.sync(TENANT, "C1")

    assert deferred.deferred_pages == ["P1"]
    assert deferred.fetched == 0
    assert source.form_calls == []

    clock.advance(31)
    resumed = await service.sync(TENANT, "C1")

    assert resumed.deferred_pages == []
    assert resumed.synced == 1
    assert source.form_calls == ["P1"]


@pytest.mark.asyncio
async def test_throttled_form_defers_page_and_skips_remaining_forms(service, store, source, governor):
    store.pages = [make_page("P1"), make_page("P2")]
    source.forms["P1"] = [FormRef("F1"), FormRef("F2")]
    source.forms["P2"] = [FormRef("F3")]
    source.batches[("F1", None)] = LeadBatch(items=[make_lead("L1", campaign_id="C1")], next_cursor="a")
    source.batches[("F1", "a")] = LeadSourceRateLimited("rate_limited", "slow down")
    source.batches[("F3", None)] = LeadBatch(items=[make_lead("L3", campaign_id="C1")])

    result = await service.sync(TENANT, "C1")

    assert result.synced == 2
    assert result.deferred_pages == ["P1"]
    assert ("F2", None) not in source.lead_calls
    assert not await governor.is_open("P1")
    assert await governor.is_open("P2")


@pytest.mark.asyncio
async def test_forms_failure_skips_only_that_page(service, store, source):
    store.pages = [make_page("P1"), make_page("P2")]
    source.forms["P1"] = LeadSourceError("http_error", "HTTP 500", status=500)
    source.forms["P2"] = [FormRef("F2")]
    source.batches[("F2", None)] = LeadBatch(items=[make_lead("L2", campaign_id="C1")])

    result = await service.sync(TENANT, "C1")

    assert result.synced == 1
    assert result.deferred_pages == []
    assert result.error is None


@pytest.mark.asyncio
async def test_forms_rate_limit_opens_cooldown(service, source, governor):
    source.forms["P1"] = LeadSourceRateLimited("rate_limited", "slow down")

    result = await service.sync(TENANT, "C1")

    assert result.deferred_pages == ["P1"]
    assert not await governor.is_open("P1")


@pytest.mark.asyncio
async def test_failed_form_keeps_fetched_leads(service, source):
    source.forms["P1"] = [FormRef("F1"), FormRef("F2")]
    source.batches[("F1", None)] = LeadBatch(items=[make_lead("L1", campaign_id="C1")], next_cursor="a")
    source.batches[("F1", "a")] = LeadSourceError("malformed_payload", "bad body")
    source.batches[("F2", None)] = LeadBatch(items=[make_lead("L2", campaign_id="C1")])

    result = await service.sync(TENANT, "C1")

    assert result.synced == 2
    assert result.failed_forms == ["F1"]


@pytest.mark.asyncio
async def test_store_failure_is_run_level_error(service, store):
    store.unavailable = True

    result = await service.sync(TENANT, "C1")

    assert result.error == "connection refused"
    assert result.synced == 0
    assert result.to_dict()["error"] == "connection refused"


@pytest.mark.asyncio
async def test_sync_many_sums_results(service, store, source):
    store.campaigns["C2"] = CampaignRecord(campaign_id="C2", tenant_id=TENANT, name="Fall Promo")
    source.forms["P1"] = [FormRef("F1")]
    source.batches[("F1", None)] = LeadBatch(items=[
        make_lead("L1", campaign_id="C1"),
        make_lead("L2", campaign_id="C2"),
        make_lead("L3", campaign_id=None),
    ])

    result = await service.sync_many(TENANT, ["C1", "C2"])
    payload = result.to_dict()

    # L3 has no campaign, so the first campaign synced adopts it.
    assert payload["totalSynced"] == 3
    assert payload["totalFetched"] == 6
    assert payload["campaignIds"] == ["C1", "C2"]
    assert payload["errors"] == {}
    assert store.leads["L3"].campaign_id == "C1"
    assert store.leads_count == {"C1": 2, "C2": 1}


@pytest.mark.asyncio
async def test_rejected_lead_does_not_abort_the_run(service, store, source):
    store.rejected_ids.add("L2")
    source.forms["P1"] = [FormRef("F1")]
    source.batches[("F1", None)] = LeadBatch(items=[
        make_lead("L1", campaign_id="C1"),
        make_lead("L2", campaign_id="C1"),
        make_lead("L3", campaign_id="C1"),
    ])

    result = await service.sync(TENANT, "C1")

    assert result.error is None
    assert result.synced == 2
    assert result.counts.rejected == 1
    assert list(store.leads) == ["L1", "L3"]
    assert store.leads_count["C1"] == 2
    assert result.to_dict()["rejected"] == 1
