"""
Wallet registry models: the live payout destination and its change history.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import String, Integer, DateTime, Index
from sqlalchemy.orm import Mapped, mapped_column

from .base import BaseModel, TimestampMixin


class CreatorWallet(BaseModel, TimestampMixin):
    """Live payout destination, at most one per creator."""

    __tablename__ = "creator_wallets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    creator_id: Mapped[str] = mapped_column(
        String(64),
        unique=True,
        index=True,
        comment="Creator identifier"
    )

    crypto_type: Mapped[str] = mapped_column(
        String(10),
        comment="SOL, TRC20 or BEP20"
    )

    wallet_address: Mapped[str] = mapped_column(
        String(128),
        comment="Destination address"
    )

    last_changed_at: Mapped[datetime] = mapped_column(
        DateTime,
        comment="When the current destination was set"
    )

    can_change_at: Mapped[datetime] = mapped_column(
        DateTime,
        comment="Earliest time the destination may change again"
    )

    def __repr__(self) -> str:
        return f"<CreatorWallet(creator={self.creator_id}, type={self.crypto_type})>"


class WalletChange(BaseModel):
    """Archived destination, appended on every accepted change."""

    __tablename__ = "wallet_changes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    creator_id: Mapped[str] = mapped_column(String(64), comment="Creator identifier")

    crypto_type: Mapped[str] = mapped_column(String(10), comment="Previous network")

    wallet_address: Mapped[str] = mapped_column(String(128), comment="Previous address")

    set_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime,
        nullable=True,
        comment="When the previous destination had been set"
    )

    changed_at: Mapped[datetime] = mapped_column(
        DateTime,
        comment="When the previous destination was replaced"
    )

    __table_args__ = (
        Index("idx_wallet_change_creator", "creator_id", "changed_at"),
    )

    def __repr__(self) -> str:
        return f"<WalletChange(creator={self.creator_id}, changed_at={self.changed_at})>"
