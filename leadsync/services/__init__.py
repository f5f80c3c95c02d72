# leadsync/services/__init__.py
"""
Lead synchronization services: normalization, pagination, rate limiting,
dedup/upsert, pull sync and webhook ingestion.
"""

from leadsync.services.field_normalizer import NormalizedFields, normalize_field_data
from leadsync.services.lead_source import (
    GraphLeadSource,
    LeadSourceError,
    LeadSourceRateLimited,
)
from leadsync.services.lead_store import SqlLeadStore, StoreUnavailableError
from leadsync.services.rate_limit import RateLimitGovernor, SourceState
from leadsync.services.sync import LeadSyncService, SyncManyResult, SyncResult
from leadsync.services.upsert import IngestionPath, LeadUpserter, UpsertOutcome
from leadsync.services.webhook_ingest import LeadgenEvent, WebhookIngestor, extract_leadgen_events

__all__ = [
    # Normalization
    "NormalizedFields",
    "normalize_field_data",
    # Remote source
    "GraphLeadSource",
    "LeadSourceError",
    "LeadSourceRateLimited",
    # Store
    "SqlLeadStore",
    "StoreUnavailableError",
    # Rate limiting
    "RateLimitGovernor",
    "SourceState",
    # Sync
    "LeadSyncService",
    "SyncManyResult",
    "SyncResult",
    # Upsert
    "IngestionPath",
    "LeadUpserter",
    "UpsertOutcome",
    # Webhooks
    "LeadgenEvent",
    "WebhookIngestor",
    "extract_leadgen_events",
]
