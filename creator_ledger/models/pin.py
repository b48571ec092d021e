"""
Withdrawal PIN model.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import String, Integer, DateTime
from sqlalchemy.orm import Mapped, mapped_column

from .base import BaseModel, TimestampMixin


class WithdrawalPin(BaseModel, TimestampMixin):
    """Hashed PIN gating withdrawals, separate from the login credential."""

    __tablename__ = "withdrawal_pins"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    creator_id: Mapped[str] = mapped_column(
        String(64),
        unique=True,
        index=True,
        comment="Creator identifier"
    )

    pin_hash: Mapped[str] = mapped_column(
        String(100),
        comment="bcrypt hash of the PIN"
    )

    last_changed_at: Mapped[datetime] = mapped_column(
        DateTime,
        comment="When the PIN was last set"
    )

    # Lockout
    failed_attempts: Mapped[int] = mapped_column(
        Integer,
        default=0,
        comment="Consecutive failed verifications"
    )

    locked_until: Mapped[Optional[datetime]] = mapped_column(
        DateTime,
        nullable=True,
        comment="Verification refused until this time"
    )

    def __repr__(self) -> str:
        return f"<WithdrawalPin(creator={self.creator_id}, failed={self.failed_attempts})>"
