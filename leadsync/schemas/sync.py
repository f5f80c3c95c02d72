# leadsync/schemas/sync.py
from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class SyncRequest(BaseModel):
    tenant_id: str = Field(min_length=1, max_length=128)


class SyncManyRequest(BaseModel):
    tenant_id: str = Field(min_length=1, max_length=128)
    campaign_ids: List[str] = Field(min_length=1, max_length=200)


class SyncResponse(BaseModel):
    synced: int = Field(ge=0)
    fetched: int = Field(ge=0)
    skipped: int = Field(default=0, ge=0)
    duplicates: int = Field(default=0, ge=0)
    rejected: int = Field(default=0, ge=0)
    campaign_name: Optional[str] = None
    campaign_id: str
    deferred_pages: List[str] = Field(default_factory=list)
    not_found: bool = False


class SyncManyResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    total_synced: int = Field(alias="totalSynced", ge=0)
    total_fetched: int = Field(alias="totalFetched", ge=0)
    campaign_ids: List[str] = Field(alias="campaignIds")
    deferred_pages: List[str] = Field(alias="deferredPages", default_factory=list)
    errors: Dict[str, str] = Field(default_factory=dict)


class CampaignRefreshRequest(BaseModel):
    tenant_id: str = Field(min_length=1, max_length=128)


class CampaignRefreshResponse(BaseModel):
    tenant_id: str
    campaigns: int = Field(ge=0)
