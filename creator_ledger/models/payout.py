"""
Payout request lifecycle models.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import String, Integer, Numeric, DateTime, Text, Index, ForeignKey, text
from sqlalchemy.orm import Mapped, mapped_column

from .base import BaseModel, TimestampMixin


class PayoutStatus(str, Enum):
    """Withdrawal request states."""
    PENDING = "pending"
    APPROVED = "approved"
    COMPLETED = "completed"
    REJECTED = "rejected"
    CHARGED_BACK = "charged_back"

    @property
    def is_terminal(self) -> bool:
        return self in (PayoutStatus.COMPLETED, PayoutStatus.REJECTED, PayoutStatus.CHARGED_BACK)


class PayoutRequest(BaseModel, TimestampMixin):
    """Creator-initiated withdrawal."""

    __tablename__ = "payout_requests"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    creator_id: Mapped[str] = mapped_column(
        String(64),
        index=True,
        comment="Requesting creator"
    )

    amount_usd: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        comment="Requested amount in USD"
    )

    crypto_type: Mapped[str] = mapped_column(String(10), comment="Destination network")

    wallet_address: Mapped[str] = mapped_column(String(128), comment="Destination address")

    status: Mapped[str] = mapped_column(
        String(20),
        default=PayoutStatus.PENDING.value,
        comment="pending, approved, completed, rejected or charged_back"
    )

    requested_at: Mapped[datetime] = mapped_column(DateTime, comment="Submission time")

    # Admin processing
    processed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime,
        nullable=True,
        comment="Last admin transition time"
    )

    processed_by: Mapped[Optional[str]] = mapped_column(
        String(64),
        nullable=True,
        comment="Admin who performed the last transition"
    )

    admin_note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    transaction_hash: Mapped[Optional[str]] = mapped_column(
        String(256),
        nullable=True,
        comment="Operator-supplied proof of the off-band transfer"
    )

    rejection_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index("idx_payout_status_requested", "status", "requested_at"),
        Index("idx_payout_creator_requested", "creator_id", "requested_at"),
        Index(
            "uq_payout_one_pending_per_creator",
            "creator_id",
            unique=True,
            postgresql_where=text("status = 'pending'"),
            sqlite_where=text("status = 'pending'"),
        ),
    )

    def __repr__(self) -> str:
        return f"<PayoutRequest(id={self.id}, creator={self.creator_id}, status={self.status})>"


class PayoutTransaction(BaseModel, TimestampMixin):
    """Record of funds sent for a completed payout."""

    __tablename__ = "payout_transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    payout_request_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("payout_requests.id"),
        unique=True,
        comment="Completed payout request"
    )

    creator_id: Mapped[str] = mapped_column(String(64), index=True)

    amount_usd: Mapped[Decimal] = mapped_column(Numeric(12, 2))

    crypto_type: Mapped[str] = mapped_column(String(10))

    wallet_address: Mapped[str] = mapped_column(String(128))

    transaction_hash: Mapped[str] = mapped_column(String(256))

    processed_at: Mapped[datetime] = mapped_column(DateTime)

    processed_by: Mapped[str] = mapped_column(String(64))

    def __repr__(self) -> str:
        return f"<PayoutTransaction(request={self.payout_request_id}, hash={self.transaction_hash})>"
