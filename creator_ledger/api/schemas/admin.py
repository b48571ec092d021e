"""
Admin request and response schemas.

Payout and tier actions are discriminated unions on ``action`` so each
variant carries exactly the fields it needs.
"""

from datetime import datetime
from decimal import Decimal
from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, Field, ConfigDict, RootModel

from creator_ledger.core.tiers import TierLevel
from creator_ledger.services.commands import (
    AdjustTier,
    ApprovePayout,
    ApproveTierUpgrade,
    CompletePayout,
    DenyTierUpgrade,
    RejectPayout,
)


# Payout actions

class ApprovePayoutAction(BaseModel):
    action: Literal["approve"]
    request_id: int
    admin_note: Optional[str] = None

    def to_command(self) -> ApprovePayout:
        return ApprovePayout(request_id=self.request_id, note=self.admin_note)


class CompletePayoutAction(BaseModel):
    action: Literal["complete"]
    request_id: int
    transaction_hash: str = Field(..., min_length=1)
    admin_note: Optional[str] = None

    def to_command(self) -> CompletePayout:
        return CompletePayout(
            request_id=self.request_id,
            transaction_hash=self.transaction_hash,
            note=self.admin_note,
        )


class RejectPayoutAction(BaseModel):
    action: Literal["reject"]
    request_id: int
    rejection_reason: str = Field(..., min_length=1)

    def to_command(self) -> RejectPayout:
        return RejectPayout(request_id=self.request_id, reason=self.rejection_reason)


PayoutAction = Annotated[
    Union[ApprovePayoutAction, CompletePayoutAction, RejectPayoutAction],
    Field(discriminator="action"),
]


class PayoutActionRequest(RootModel[PayoutAction]):
    pass


# Tier actions

class ApproveTierAction(BaseModel):
    action: Literal["approve"]
    creator_id: str
    new_tier: TierLevel

    def to_command(self) -> ApproveTierUpgrade:
        return ApproveTierUpgrade(creator_id=self.creator_id, tier_level=self.new_tier)


class DenyTierAction(BaseModel):
    action: Literal["deny"]
    creator_id: str

    def to_command(self) -> DenyTierUpgrade:
        return DenyTierUpgrade(creator_id=self.creator_id)


class AdjustTierAction(BaseModel):
    action: Literal["manual-adjust"]
    creator_id: str
    new_tier: TierLevel

    def to_command(self) -> AdjustTier:
        return AdjustTier(creator_id=self.creator_id, tier_level=self.new_tier)


TierAction = Annotated[
    Union[ApproveTierAction, DenyTierAction, AdjustTierAction],
    Field(discriminator="action"),
]


class TierActionRequest(RootModel[TierAction]):
    pass


# Security

class CreateFraudFlagRequest(BaseModel):
    creator_id: str
    flag_type: str = Field(..., min_length=1, max_length=50)
    severity: str
    description: str = Field(..., min_length=1)
    evidence: Optional[Dict[str, Any]] = None


class UpdateFraudFlagRequest(BaseModel):
    flag_id: int
    status: str
    action_taken: Optional[str] = None


class FileChargebackRequest(BaseModel):
    creator_id: str
    payout_request_id: int
    amount_usd: Decimal
    reason: str = Field(..., min_length=1)


class FraudFlagSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    creator_id: str
    flag_type: str
    severity: str
    description: str
    evidence: Optional[Dict[str, Any]] = None
    status: str
    raised_by: Optional[str] = None
    created_at: datetime
    resolved_at: Optional[datetime] = None
    resolved_by: Optional[str] = None
    action_taken: Optional[str] = None


class ChargebackSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    creator_id: str
    payout_request_id: int
    amount_usd: Decimal
    reason: str
    initiated_by: str
    status: str
    initiated_at: datetime
    completed_at: Optional[datetime] = None


class IPActivitySchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    creator_id: str
    ip_address: str
    action: str
    user_agent: Optional[str] = None
    is_suspicious: bool
    timestamp: datetime


# Creator balances

class BalanceAdjustmentRequest(BaseModel):
    creator_id: str
    action: Literal["fund", "debit"]
    amount_usd: Decimal
    reason: str = Field(..., min_length=1)


class UpdateCreatorSettingsRequest(BaseModel):
    creator_id: str
    can_withdraw: Optional[bool] = None
    paused_reason: Optional[str] = None
    monthly_withdrawal_limit_usd: Optional[Decimal] = None


class BonusMultiplierRequest(BaseModel):
    creator_id: str
    multiplier: Decimal = Field(..., ge=1)
    reason: Optional[str] = None
    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None


class CreatorSettingsSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    creator_id: str
    can_withdraw: bool
    paused_reason: Optional[str] = None
    monthly_withdrawal_limit_usd: Decimal
    running_balance_usd: Decimal
    updated_by: Optional[str] = None


class BonusMultiplierSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    creator_id: str
    multiplier: Decimal
    reason: Optional[str] = None
    starts_at: datetime
    ends_at: Optional[datetime] = None
    created_by: str
