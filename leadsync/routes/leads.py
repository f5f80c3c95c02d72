# leadsync/routes/leads.py
from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query

from leadsync.core.exceptions import ServiceUnavailableError
from leadsync.core.logging import get_structlog_logger
from leadsync.schemas.sync import SyncManyRequest, SyncManyResponse, SyncRequest, SyncResponse
from leadsync.services.factory import build_sync_service, get_lead_store
from leadsync.services.lead_store import SqlLeadStore, StoreUnavailableError
from leadsync.services.sync import LeadSyncService

logger = get_structlog_logger(__name__)

router = APIRouter(prefix="/leads", tags=["leads"])


@router.post("/sync/{campaign_id}", response_model=SyncResponse)
async def sync_campaign(
    campaign_id: str,
    body: SyncRequest,
    service: LeadSyncService = Depends(build_sync_service),
) -> SyncResponse:
    """Pull every lead of the tenant's pages into the campaign."""
    result = await service.sync(body.tenant_id, campaign_id)
    if result.error:
        raise ServiceUnavailableError(
            message="Lead sync failed",
            code="sync_failed",
            details=result.to_dict(),
        )
    return SyncResponse(**result.to_dict())


@router.post("/sync-many", response_model=SyncManyResponse)
async def sync_many_campaigns(
    body: SyncManyRequest,
    service: LeadSyncService = Depends(build_sync_service),
) -> SyncManyResponse:
    result = await service.sync_many(body.tenant_id, body.campaign_ids)
    return SyncManyResponse.model_validate(result.to_dict())


@router.get("")
async def list_leads(
    tenant_id: str = Query(..., min_length=1),
    campaign_id: Optional[str] = Query(None),
    store: SqlLeadStore = Depends(get_lead_store),
) -> List[Dict[str, Any]]:
    """Most recent leads first, at most 500."""
    try:
        leads = await store.list_leads(tenant_id, campaign_id)
    except StoreUnavailableError as e:
        raise ServiceUnavailableError(message=e.message, code=e.code) from e
    logger.info("leads.listed", tenant_id=tenant_id, campaign_id=campaign_id, count=len(leads))
    return leads
