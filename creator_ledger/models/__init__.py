"""
Database models for the creator ledger.

Earnings buckets, tiers, wallets, PINs, payout requests and the
fraud / audit records that reference them.
"""

from .base import Base, BaseModel, TimestampMixin
from .earnings import EarningsRecord, EntryKind
from .tier import CreatorTier
from .wallet import CreatorWallet, WalletChange
from .pin import WithdrawalPin
from .payout import PayoutRequest, PayoutTransaction, PayoutStatus
from .security import (
    FraudFlag, FraudFlagStatus, FraudSeverity,
    Chargeback, ChargebackStatus, IPActivityLog
)
from .creator import CreatorPayoutSetting, BonusMultiplier

__all__ = [
    "Base",
    "BaseModel",
    "TimestampMixin",
    "EarningsRecord",
    "EntryKind",
    "CreatorTier",
    "CreatorWallet",
    "WalletChange",
    "WithdrawalPin",
    "PayoutRequest",
    "PayoutTransaction",
    "PayoutStatus",
    "FraudFlag",
    "FraudFlagStatus",
    "FraudSeverity",
    "Chargeback",
    "ChargebackStatus",
    "IPActivityLog",
    "CreatorPayoutSetting",
    "BonusMultiplier",
]
