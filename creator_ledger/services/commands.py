"""
Admin command variants and their state-transition tables.

Each command carries exactly the fields its transition needs. Services look
the command type up in a transition table instead of branching on strings.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Optional, Tuple, Type, Union

from creator_ledger.core.tiers import TierLevel
from creator_ledger.models.payout import PayoutStatus


# Payout commands

@dataclass(frozen=True)
class ApprovePayout:
    request_id: int
    note: Optional[str] = None


@dataclass(frozen=True)
class CompletePayout:
    request_id: int
    transaction_hash: str
    note: Optional[str] = None


@dataclass(frozen=True)
class RejectPayout:
    request_id: int
    reason: str


@dataclass(frozen=True)
class FileChargeback:
    request_id: int
    creator_id: str
    amount_usd: Decimal
    reason: str


PayoutCommand = Union[ApprovePayout, CompletePayout, RejectPayout, FileChargeback]

# command type -> (required source state, target state)
PAYOUT_TRANSITIONS: Dict[Type, Tuple[PayoutStatus, PayoutStatus]] = {
    ApprovePayout: (PayoutStatus.PENDING, PayoutStatus.APPROVED),
    CompletePayout: (PayoutStatus.APPROVED, PayoutStatus.COMPLETED),
    RejectPayout: (PayoutStatus.PENDING, PayoutStatus.REJECTED),
    FileChargeback: (PayoutStatus.COMPLETED, PayoutStatus.CHARGED_BACK),
}

PAYOUT_ACTION_NAMES: Dict[Type, str] = {
    ApprovePayout: "approve",
    CompletePayout: "complete",
    RejectPayout: "reject",
    FileChargeback: "charge back",
}


# Tier commands

@dataclass(frozen=True)
class ApproveTierUpgrade:
    creator_id: str
    tier_level: TierLevel


@dataclass(frozen=True)
class DenyTierUpgrade:
    creator_id: str


@dataclass(frozen=True)
class AdjustTier:
    creator_id: str
    tier_level: TierLevel


TierCommand = Union[ApproveTierUpgrade, DenyTierUpgrade, AdjustTier]

# command type -> (requires an open request, changes the tier level)
TIER_TRANSITIONS: Dict[Type, Tuple[bool, bool]] = {
    ApproveTierUpgrade: (True, True),
    DenyTierUpgrade: (True, False),
    AdjustTier: (False, True),
}
