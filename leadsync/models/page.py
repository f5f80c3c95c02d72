# leadsync/models/page.py
from __future__ import annotations

from typing import Optional

from sqlalchemy import Boolean, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from leadsync.db.base import Base


class Page(Base):
    __tablename__ = "pages"

    page_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    tenant_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    page_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    access_token: Mapped[str] = mapped_column(Text, nullable=False)

    webhook_subscribed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="true")
