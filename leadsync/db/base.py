# leadsync/db/base.py
from __future__ import annotations

import re
from datetime import datetime
from typing import Any, Dict

from sqlalchemy import DateTime, Integer, MetaData
from sqlalchemy.orm import DeclarativeBase, Mapped, declared_attr, mapped_column
from sqlalchemy.sql import func

# Use naming convention for constraints
convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    metadata = MetaData(naming_convention=convention)

    # Common columns
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    @declared_attr.directive
    def __tablename__(cls) -> str:
        """Generate table name from class name."""
        # Convert CamelCase to snake_case
        name = re.sub(r'(?<!^)(?=[A-Z])', '_', cls.__name__).lower()
        return name + "s"

    def to_dict(self, exclude: list[str] | None = None) -> Dict[str, Any]:
        """Convert model instance to dictionary."""
        exclude = exclude or []
        result = {}

        for column in self.__table__.columns:
            if column.name in exclude:
                continue
            value = getattr(self, column.name)

            # Handle datetime serialization
            if hasattr(value, 'isoformat'):
                value = value.isoformat()

            result[column.name] = value

        return result

    def __repr__(self) -> str:
        """String representation of model."""
        attrs = []
        for column in self.__table__.columns:
            if column.primary_key or column.name in ["created_at", "updated_at"]:
                continue
            value = getattr(self, column.name)
            if value is not None:
                attrs.append(f"{column.name}={repr(value)}")

        return f"<{self.__class__.__name__}({', '.join(attrs)})>"


__all__ = ["Base"]
