"""
Wallet and withdrawal PIN routes for the Creator Ledger API.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

import structlog

from creator_ledger.api.dependencies import get_creator_id, get_database
from creator_ledger.api.schemas.common import SuccessResponse, create_success_response, serialize_list
from creator_ledger.api.schemas.ledger import (
    SetPinRequest,
    SetWalletRequest,
    VerifyPinRequest,
    WalletChangeSchema,
    WalletSchema,
)
from creator_ledger.core.exceptions import InvalidPinError
from creator_ledger.services.pin_service import PinService
from creator_ledger.services.wallet_service import WalletService

logger = structlog.get_logger(__name__)

router = APIRouter()


# ===== Wallet =====

@router.get(
    "/wallet",
    response_model=SuccessResponse,
    summary="Get Wallet",
    description="Saved payout destination and when it may next change"
)
async def get_wallet(
    creator_id: str = Depends(get_creator_id),
    db: AsyncSession = Depends(get_database)
):
    wallet = await WalletService(db).get_wallet(creator_id)
    return create_success_response(
        data=WalletSchema.model_validate(wallet) if wallet else None
    )


@router.post(
    "/wallet",
    response_model=SuccessResponse,
    summary="Set Wallet",
    description="Register or replace the payout destination, subject to the change cooldown"
)
async def set_wallet(
    payload: SetWalletRequest,
    creator_id: str = Depends(get_creator_id),
    db: AsyncSession = Depends(get_database)
):
    wallet = await WalletService(db).set_wallet(creator_id, payload.crypto_type, payload.wallet_address)
    return create_success_response(
        data=WalletSchema.model_validate(wallet),
        message="Wallet saved"
    )


@router.get(
    "/wallet/history",
    response_model=SuccessResponse,
    summary="Wallet Change History",
    description="Previous payout destinations, oldest first"
)
async def get_wallet_history(
    creator_id: str = Depends(get_creator_id),
    db: AsyncSession = Depends(get_database)
):
    history = await WalletService(db).get_history(creator_id)
    return create_success_response(data=serialize_list(history, WalletChangeSchema))


# ===== PIN =====

@router.get(
    "/pin",
    response_model=SuccessResponse,
    summary="PIN Status",
    description="Whether a withdrawal PIN has been set"
)
async def get_pin_status(
    creator_id: str = Depends(get_creator_id),
    db: AsyncSession = Depends(get_database)
):
    has_pin = await PinService(db).has_pin(creator_id)
    return create_success_response(data={"has_pin": has_pin})


@router.post(
    "/pin",
    response_model=SuccessResponse,
    summary="Set Or Change PIN",
    description="Create a PIN, or change it by supplying the current one"
)
async def set_pin(
    payload: SetPinRequest,
    creator_id: str = Depends(get_creator_id),
    db: AsyncSession = Depends(get_database)
):
    pin = await PinService(db).create_or_change(creator_id, payload.new_pin, payload.old_pin)
    return create_success_response(
        data={"has_pin": True, "last_changed_at": pin.last_changed_at.isoformat()},
        message="PIN saved"
    )


@router.put(
    "/pin",
    response_model=SuccessResponse,
    summary="Verify PIN",
    description="Check a PIN without withdrawing. Failures count towards the lockout."
)
async def verify_pin(
    payload: VerifyPinRequest,
    creator_id: str = Depends(get_creator_id),
    db: AsyncSession = Depends(get_database)
):
    if not await PinService(db).verify(creator_id, payload.pin):
        raise InvalidPinError()
    return create_success_response(data={"valid": True})
