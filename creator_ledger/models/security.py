"""
Fraud and audit models: fraud flags, chargebacks and the IP activity log.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional, Dict, Any

from sqlalchemy import (
    String, Integer, Boolean, Numeric, DateTime, Text, Index, ForeignKey, JSON
)
from sqlalchemy.orm import Mapped, mapped_column

from .base import BaseModel, TimestampMixin


class FraudFlagStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    RESOLVED = "resolved"


class FraudSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ChargebackStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"


class FraudFlag(BaseModel, TimestampMixin):
    """Advisory flag raised against a creator. Never blocks anything by itself."""

    __tablename__ = "fraud_flags"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    creator_id: Mapped[str] = mapped_column(String(64), index=True)

    flag_type: Mapped[str] = mapped_column(
        String(50),
        comment="Kind of suspected abuse (view_botting, multi_account, ...)"
    )

    severity: Mapped[str] = mapped_column(String(20), comment="low, medium, high or critical")

    description: Mapped[str] = mapped_column(Text)

    evidence: Mapped[Dict[str, Any]] = mapped_column(
        JSON,
        default=dict,
        comment="Free-form supporting data"
    )

    status: Mapped[str] = mapped_column(
        String(20),
        default=FraudFlagStatus.PENDING.value,
        comment="pending, confirmed or resolved"
    )

    raised_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    resolved_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    action_taken: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index("idx_fraud_flag_status_severity", "status", "severity"),
    )

    def __repr__(self) -> str:
        return f"<FraudFlag(id={self.id}, creator={self.creator_id}, status={self.status})>"


class Chargeback(BaseModel, TimestampMixin):
    """Reversal of a completed payout."""

    __tablename__ = "chargebacks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    creator_id: Mapped[str] = mapped_column(String(64), index=True)

    payout_request_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("payout_requests.id"),
        index=True
    )

    amount_usd: Mapped[Decimal] = mapped_column(Numeric(12, 2))

    reason: Mapped[str] = mapped_column(Text)

    initiated_by: Mapped[str] = mapped_column(String(64))

    status: Mapped[str] = mapped_column(
        String(20),
        default=ChargebackStatus.PENDING.value
    )

    initiated_at: Mapped[datetime] = mapped_column(DateTime)

    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    def __repr__(self) -> str:
        return f"<Chargeback(id={self.id}, request={self.payout_request_id}, status={self.status})>"


class IPActivityLog(BaseModel):
    """Append-only record of creator activity by IP address."""

    __tablename__ = "ip_activity_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    creator_id: Mapped[str] = mapped_column(String(64))

    ip_address: Mapped[str] = mapped_column(String(45))

    action: Mapped[str] = mapped_column(String(50), comment="Action performed, e.g. withdrawal_request")

    user_agent: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    is_suspicious: Mapped[bool] = mapped_column(Boolean, default=False)

    timestamp: Mapped[datetime] = mapped_column(DateTime)

    __table_args__ = (
        Index("idx_ip_log_creator_time", "creator_id", "timestamp"),
        Index("idx_ip_log_time", "timestamp"),
    )

    def __repr__(self) -> str:
        return f"<IPActivityLog(creator={self.creator_id}, ip={self.ip_address}, action={self.action})>"
