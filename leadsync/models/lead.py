# leadsync/models/lead.py
from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import JSON, Boolean, CheckConstraint, DateTime, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from leadsync.db.base import Base


class Lead(Base):
    __tablename__ = "leads"
    __table_args__ = (
        CheckConstraint("ingestion_path IN ('pull','push')", name="leads_ingestion_path_valid"),
        Index("idx_leads_tenant_created_time", "tenant_id", "created_time"),
        Index("idx_leads_campaign", "campaign_id"),
    )

    # Dedup key; the unique constraint is the only coordination point between ingestion paths.
    external_lead_id: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)

    tenant_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    page_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    form_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    campaign_id: Mapped[str] = mapped_column(String(64), nullable=False)
    ad_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    # Remote creation time, not ingestion time.
    created_time: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    field_data: Mapped[list[Any]] = mapped_column(JSON, nullable=False, default=list)
    name: Mapped[str] = mapped_column(String(200), nullable=False, default="Unknown")
    email: Mapped[str] = mapped_column(String(320), nullable=False, default="")
    phone: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    custom_fields: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    ingestion_path: Mapped[str] = mapped_column(String(8), nullable=False)
    processed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
