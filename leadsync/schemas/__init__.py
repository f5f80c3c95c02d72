# leadsync/schemas/__init__.py
"""
Pydantic schemas for request/response validation and serialization.
"""

from leadsync.schemas.sync import (
    CampaignRefreshRequest,
    CampaignRefreshResponse,
    SyncManyRequest,
    SyncManyResponse,
    SyncRequest,
    SyncResponse,
)

__all__ = [
    "CampaignRefreshRequest",
    "CampaignRefreshResponse",
    "SyncManyRequest",
    "SyncManyResponse",
    "SyncRequest",
    "SyncResponse",
]
