"""
Admin-controlled per-creator settings: payout switches and bonus multipliers.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import String, Integer, Boolean, Numeric, DateTime, Text, Index
from sqlalchemy.orm import Mapped, mapped_column

from .base import BaseModel, TimestampMixin


class CreatorPayoutSetting(BaseModel, TimestampMixin):
    """
    Payout switches for a creator.

    The row doubles as the per-creator lock taken by money-affecting
    operations and carries the running balance counter.
    """

    __tablename__ = "creator_payout_settings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    creator_id: Mapped[str] = mapped_column(
        String(64),
        unique=True,
        index=True,
        comment="Creator identifier"
    )

    can_withdraw: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        comment="Kill switch for withdrawals"
    )

    paused_reason: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        comment="Why withdrawals are paused"
    )

    monthly_withdrawal_limit_usd: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        comment="Approved plus completed payouts allowed in the trailing window"
    )

    running_balance_usd: Mapped[Decimal] = mapped_column(
        Numeric(14, 6),
        default=Decimal("0"),
        comment="Running balance counter moved by accruals, payouts and chargebacks"
    )

    updated_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    def __repr__(self) -> str:
        return f"<CreatorPayoutSetting(creator={self.creator_id}, can_withdraw={self.can_withdraw})>"


class BonusMultiplier(BaseModel, TimestampMixin):
    """Time-boxed earnings multiplier granted by an admin."""

    __tablename__ = "bonus_multipliers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    creator_id: Mapped[str] = mapped_column(String(64))

    multiplier: Mapped[Decimal] = mapped_column(Numeric(6, 2), comment="Applied to the tier rate")

    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    starts_at: Mapped[datetime] = mapped_column(DateTime)

    ends_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime,
        nullable=True,
        comment="Open-ended when null"
    )

    created_by: Mapped[str] = mapped_column(String(64))

    __table_args__ = (
        Index("idx_bonus_creator_window", "creator_id", "starts_at", "ends_at"),
    )

    def __repr__(self) -> str:
        return f"<BonusMultiplier(creator={self.creator_id}, x{self.multiplier})>"

    def is_active(self, at: datetime) -> bool:
        return self.starts_at <= at and (self.ends_at is None or at < self.ends_at)
