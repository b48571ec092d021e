"""
Earnings accrual records.

One open (unpaid) bucket exists per creator, content, day, rate and bonus
multiplier. Views increment the open bucket; settlement marks buckets paid
oldest-first. Paid rows are never modified again.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import (
    String, Integer, Boolean, Numeric, Date, DateTime, Text, Index, ForeignKey, text
)
from sqlalchemy.orm import Mapped, mapped_column

from .base import BaseModel, TimestampMixin


class EntryKind(str, Enum):
    """Origin of an earnings row."""
    ACCRUAL = "accrual"
    ADJUSTMENT = "adjustment"
    CHARGEBACK = "chargeback"


class EarningsRecord(BaseModel, TimestampMixin):
    """Per-day, per-content earnings bucket."""

    __tablename__ = "earnings_records"

    # Primary key
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    creator_id: Mapped[str] = mapped_column(
        String(64),
        index=True,
        comment="Creator receiving the earnings"
    )

    content_id: Mapped[str] = mapped_column(
        String(64),
        comment="Content that generated the views"
    )

    content_type: Mapped[str] = mapped_column(
        String(20),
        comment="Content type (movie, series, bonus, deduction, chargeback)"
    )

    entry_kind: Mapped[str] = mapped_column(
        String(20),
        default=EntryKind.ACCRUAL.value,
        comment="accrual, adjustment or chargeback"
    )

    earnings_date: Mapped[date] = mapped_column(
        Date,
        comment="Accrual day (UTC)"
    )

    views: Mapped[int] = mapped_column(
        Integer,
        default=0,
        comment="Views accrued in this bucket"
    )

    earnings_usd: Mapped[Decimal] = mapped_column(
        Numeric(14, 6),
        default=Decimal("0"),
        comment="Earnings in USD, negative for debits"
    )

    tier_rate_at_time: Mapped[Decimal] = mapped_column(
        Numeric(10, 6),
        default=Decimal("0"),
        comment="Rate per view locked at accrual time"
    )

    bonus_multiplier: Mapped[Decimal] = mapped_column(
        Numeric(6, 2),
        default=Decimal("1"),
        comment="Bonus multiplier locked at accrual time"
    )

    rate_version: Mapped[Optional[str]] = mapped_column(
        String(20),
        nullable=True,
        comment="Rate schedule version that produced the rate"
    )

    # Settlement
    is_paid: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        comment="Whether the bucket was settled by a payout"
    )

    paid_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime,
        nullable=True,
        comment="Settlement time"
    )

    payout_request_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("payout_requests.id"),
        nullable=True,
        comment="Payout that settled this bucket"
    )

    split_from_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("earnings_records.id"),
        nullable=True,
        comment="Bucket this remainder was split from during settlement"
    )

    # Adjustments
    adjusted_by: Mapped[Optional[str]] = mapped_column(
        String(64),
        nullable=True,
        comment="Admin who created an adjustment row"
    )

    note: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        comment="Reason for adjustments and chargebacks"
    )

    __table_args__ = (
        Index("idx_earnings_creator_unpaid", "creator_id", "is_paid"),
        Index("idx_earnings_creator_date", "creator_id", "earnings_date"),
        Index(
            "uq_earnings_open_bucket",
            "creator_id", "content_id", "earnings_date",
            "tier_rate_at_time", "bonus_multiplier",
            unique=True,
            postgresql_where=text("is_paid = false AND entry_kind = 'accrual'"),
            sqlite_where=text("is_paid = 0 AND entry_kind = 'accrual'"),
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<EarningsRecord(id={self.id}, creator={self.creator_id}, "
            f"date={self.earnings_date}, usd={self.earnings_usd}, paid={self.is_paid})>"
        )
