"""
Withdrawal routes for the Creator Ledger API.
"""

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from creator_ledger.api.dependencies import get_client_ip, get_creator_id, get_database
from creator_ledger.api.schemas.common import SuccessResponse, create_success_response, serialize_list
from creator_ledger.api.schemas.ledger import PayoutRequestSchema, WithdrawalRequest
from creator_ledger.services.payout_service import PayoutService
from creator_ledger.services.security_service import record_ip_activity

router = APIRouter()


@router.post(
    "/withdrawals",
    response_model=SuccessResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Submit Withdrawal",
    description="Create a pending payout request against the unpaid balance"
)
async def submit_withdrawal(
    payload: WithdrawalRequest,
    request: Request,
    background_tasks: BackgroundTasks,
    creator_id: str = Depends(get_creator_id),
    db: AsyncSession = Depends(get_database)
):
    payout = await PayoutService(db).submit(
        creator_id,
        payload.amount_usd,
        payload.crypto_type,
        payload.wallet_address,
        payload.pin,
    )

    background_tasks.add_task(
        record_ip_activity,
        creator_id,
        get_client_ip(request),
        "withdrawal_request",
        request.headers.get("user-agent"),
    )

    return create_success_response(
        data=PayoutRequestSchema.model_validate(payout),
        message="Withdrawal request submitted"
    )


@router.get(
    "/withdrawals",
    response_model=SuccessResponse,
    summary="Withdrawal History",
    description="The creator's payout requests, newest first"
)
async def get_withdrawal_history(
    limit: int = Query(50, ge=1, le=200),
    creator_id: str = Depends(get_creator_id),
    db: AsyncSession = Depends(get_database)
):
    history = await PayoutService(db).get_history(creator_id, limit=limit)
    return create_success_response(data=serialize_list(history, PayoutRequestSchema))
