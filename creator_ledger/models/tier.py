"""
Creator tier model.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import String, Integer, BigInteger, Numeric, DateTime, Index
from sqlalchemy.orm import Mapped, mapped_column

from .base import BaseModel, TimestampMixin


class CreatorTier(BaseModel, TimestampMixin):
    """Current rate bracket and lifetime views of a creator."""

    __tablename__ = "creator_tiers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    creator_id: Mapped[str] = mapped_column(
        String(64),
        unique=True,
        index=True,
        comment="Creator identifier"
    )

    tier_level: Mapped[str] = mapped_column(
        String(20),
        default="bronze",
        comment="bronze, silver, gold or platinum"
    )

    total_views: Mapped[int] = mapped_column(
        BigInteger,
        default=0,
        comment="Lifetime accrued views"
    )

    rate_per_view: Mapped[Decimal] = mapped_column(
        Numeric(10, 6),
        comment="USD per view for future accruals"
    )

    rate_version: Mapped[str] = mapped_column(
        String(20),
        comment="Rate schedule version of rate_per_view"
    )

    # Upgrade workflow
    requested_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime,
        nullable=True,
        comment="Open upgrade request time, cleared by the admin decision"
    )

    approved_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime,
        nullable=True,
        comment="Last admin tier decision time"
    )

    approved_by: Mapped[Optional[str]] = mapped_column(
        String(64),
        nullable=True,
        comment="Admin who set the current tier"
    )

    upgraded_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime,
        nullable=True,
        comment="When the current tier took effect"
    )

    __table_args__ = (
        Index("idx_creator_tier_requested", "requested_at"),
    )

    def __repr__(self) -> str:
        return f"<CreatorTier(creator={self.creator_id}, tier={self.tier_level}, views={self.total_views})>"

    @property
    def has_pending_request(self) -> bool:
        # Admin decisions clear requested_at
        return self.requested_at is not None
