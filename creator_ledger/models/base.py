"""
Declarative base and shared mixins for ledger models.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict

from sqlalchemy import DateTime
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from creator_ledger.utils.clock import utcnow


class Base(DeclarativeBase):
    """Declarative base holding the ledger metadata."""


class BaseModel(Base):
    """Abstract model with serialization helpers."""

    __abstract__ = True

    def to_dict(self) -> Dict[str, Any]:
        """Serialize column values to JSON-friendly primitives."""
        result = {}
        for column in self.__table__.columns:
            value = getattr(self, column.key)
            if isinstance(value, Decimal):
                value = str(value)
            elif isinstance(value, (datetime, date)):
                value = value.isoformat()
            result[column.key] = value
        return result


class TimestampMixin:
    """Adds created_at / updated_at columns."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=lambda: utcnow(),
        comment="Row creation time (UTC)"
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=lambda: utcnow(),
        onupdate=lambda: utcnow(),
        comment="Row last update time (UTC)"
    )
