# leadsync/models/campaign.py
from __future__ import annotations

from typing import Optional

from sqlalchemy import CheckConstraint, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from leadsync.db.base import Base


class Campaign(Base):
    __tablename__ = "campaigns"
    __table_args__ = (
        CheckConstraint("leads_count >= 0", name="campaigns_leads_count_non_negative"),
    )

    campaign_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    tenant_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)

    ad_account_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    ad_account_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    name: Mapped[Optional[str]] = mapped_column(String(400), nullable=True)
    status: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    objective: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    # Only ever incremented, once per first insert of a lead.
    leads_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
