# leadsync/routes/campaigns.py
from __future__ import annotations

from typing import Any, Dict, List

from fastapi import APIRouter, Depends, Query

from leadsync.core.exceptions import ServiceUnavailableError
from leadsync.db.session import get_sessionmaker
from leadsync.schemas.sync import CampaignRefreshRequest, CampaignRefreshResponse
from leadsync.services.campaign_catalog import refresh_campaigns
from leadsync.services.factory import get_lead_source, get_lead_store
from leadsync.services.lead_source import GraphLeadSource
from leadsync.services.lead_store import SqlLeadStore, StoreUnavailableError

router = APIRouter(prefix="/campaigns", tags=["campaigns"])


@router.get("")
async def list_campaigns(
    tenant_id: str = Query(..., min_length=1),
    store: SqlLeadStore = Depends(get_lead_store),
) -> List[Dict[str, Any]]:
    try:
        return await store.list_campaigns(tenant_id)
    except StoreUnavailableError as e:
        raise ServiceUnavailableError(message=e.message, code=e.code) from e


@router.post("/refresh", response_model=CampaignRefreshResponse)
async def refresh_campaign_catalog(
    body: CampaignRefreshRequest,
    source: GraphLeadSource = Depends(get_lead_source),
) -> CampaignRefreshResponse:
    try:
        saved = await refresh_campaigns(get_sessionmaker(), source, body.tenant_id)
    except StoreUnavailableError as e:
        raise ServiceUnavailableError(message=e.message, code=e.code) from e
    return CampaignRefreshResponse(tenant_id=body.tenant_id, campaigns=saved)
