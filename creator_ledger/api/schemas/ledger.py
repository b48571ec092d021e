"""
Creator-facing request and response schemas.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field, ConfigDict


# Requests

class SetWalletRequest(BaseModel):
    crypto_type: str = Field(..., description="SOL, TRC20 or BEP20")
    wallet_address: str = Field(..., description="Destination address")


class SetPinRequest(BaseModel):
    new_pin: str = Field(..., description="4-6 digit PIN")
    old_pin: Optional[str] = Field(None, description="Current PIN, required to change an existing PIN")


class VerifyPinRequest(BaseModel):
    pin: str


class WithdrawalRequest(BaseModel):
    amount_usd: Decimal = Field(..., description="Amount to withdraw in USD")
    pin: str = Field(..., description="Withdrawal PIN")
    crypto_type: str = Field(..., description="Network of the saved wallet")
    wallet_address: str = Field(..., description="Address of the saved wallet")


class ViewEvent(BaseModel):
    creator_id: str = Field(..., min_length=1, max_length=64)
    content_id: str = Field(..., min_length=1, max_length=64)
    content_type: str = Field("movie", max_length=20)
    count: int = Field(1, ge=1, le=1_000_000)


# Responses

class TierSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    creator_id: str
    tier_level: str
    total_views: int
    rate_per_view: Decimal
    rate_version: str
    requested_at: Optional[datetime] = None
    approved_at: Optional[datetime] = None
    approved_by: Optional[str] = None
    upgraded_at: Optional[datetime] = None


class WalletSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    creator_id: str
    crypto_type: str
    wallet_address: str
    last_changed_at: datetime
    can_change_at: datetime


class WalletChangeSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    crypto_type: str
    wallet_address: str
    set_at: Optional[datetime] = None
    changed_at: datetime


class PayoutRequestSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    creator_id: str
    amount_usd: Decimal
    crypto_type: str
    wallet_address: str
    status: str
    requested_at: datetime
    processed_at: Optional[datetime] = None
    processed_by: Optional[str] = None
    admin_note: Optional[str] = None
    transaction_hash: Optional[str] = None
    rejection_reason: Optional[str] = None


class EarningsDaySchema(BaseModel):
    date: date
    views: int
    earnings_usd: Decimal


class ContentEarningsSchema(BaseModel):
    content_id: str
    content_type: str
    views: int
    earnings_usd: Decimal


class EarningsSummarySchema(BaseModel):
    creator_id: str
    tier_level: str
    rate_per_view: Decimal
    current_balance_usd: Decimal
    lifetime_earnings_usd: Decimal
    paid_out_usd: Decimal
    lifetime_views: int
    month_views: int
    history: List[EarningsDaySchema]
    top_content: List[ContentEarningsSchema]
