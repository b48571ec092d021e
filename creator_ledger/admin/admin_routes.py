"""
Admin API routes for payouts, tiers, fraud and creator balances.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

import structlog

from creator_ledger.admin.admin_auth import require_admin_auth
from creator_ledger.api.dependencies import get_database, get_pagination_params
from creator_ledger.api.schemas.admin import (
    BalanceAdjustmentRequest,
    BonusMultiplierRequest,
    BonusMultiplierSchema,
    ChargebackSchema,
    CreateFraudFlagRequest,
    CreatorSettingsSchema,
    FileChargebackRequest,
    FraudFlagSchema,
    IPActivitySchema,
    PayoutActionRequest,
    TierActionRequest,
    UpdateCreatorSettingsRequest,
    UpdateFraudFlagRequest,
)
from creator_ledger.api.schemas.common import (
    PaginationParams,
    SuccessResponse,
    create_success_response,
    serialize_list,
)
from creator_ledger.api.schemas.ledger import PayoutRequestSchema, TierSchema
from creator_ledger.core.exceptions import ValidationError
from creator_ledger.models.payout import PayoutStatus
from creator_ledger.services.creator_settings_service import CreatorSettingsService
from creator_ledger.services.earnings_service import EarningsService
from creator_ledger.services.payout_service import PayoutService
from creator_ledger.services.security_service import SecurityService
from creator_ledger.services.tier_service import TierService

logger = structlog.get_logger(__name__)

admin_router = APIRouter(prefix="/admin", tags=["Admin"])


def _parse_status(value: str) -> Optional[PayoutStatus]:
    if value == "all":
        return None
    try:
        return PayoutStatus(value)
    except ValueError:
        raise ValidationError(
            "Unknown payout status",
            {"status": value, "allowed": ["all"] + [s.value for s in PayoutStatus]}
        )


# ===== Payouts =====

@admin_router.get(
    "/payouts",
    response_model=SuccessResponse,
    summary="List Payout Requests",
    description="Payout requests filtered by status (default pending, 'all' for every status)"
)
async def list_payouts(
    status_filter: str = Query("pending", alias="status"),
    pagination: PaginationParams = Depends(get_pagination_params),
    auth: dict = Depends(require_admin_auth),
    db: AsyncSession = Depends(get_database)
):
    requests = await PayoutService(db).list_requests(
        status=_parse_status(status_filter),
        limit=pagination.limit,
        offset=pagination.offset,
    )
    return create_success_response(data=serialize_list(requests, PayoutRequestSchema))


@admin_router.post(
    "/payouts/action",
    response_model=SuccessResponse,
    summary="Act On Payout Request",
    description="Approve, complete or reject a payout request"
)
async def payout_action(
    body: PayoutActionRequest,
    auth: dict = Depends(require_admin_auth),
    db: AsyncSession = Depends(get_database)
):
    action = body.root
    request = await PayoutService(db).apply(action.to_command(), auth["admin_id"])
    return create_success_response(
        data=PayoutRequestSchema.model_validate(request),
        message=f"Payout request {action.action} applied"
    )


# ===== Tiers =====

@admin_router.get(
    "/tiers/pending",
    response_model=SuccessResponse,
    summary="Pending Tier Requests"
)
async def list_pending_tiers(
    auth: dict = Depends(require_admin_auth),
    db: AsyncSession = Depends(get_database)
):
    tiers = await TierService(db).list_pending_requests()
    return create_success_response(data=serialize_list(tiers, TierSchema))


@admin_router.post(
    "/tiers/action",
    response_model=SuccessResponse,
    summary="Decide Tier Request",
    description="Approve or deny an upgrade request, or adjust a tier upward directly"
)
async def tier_action(
    body: TierActionRequest,
    auth: dict = Depends(require_admin_auth),
    db: AsyncSession = Depends(get_database)
):
    action = body.root
    tier = await TierService(db).apply(action.to_command(), auth["admin_id"])
    return create_success_response(
        data=TierSchema.model_validate(tier),
        message=f"Tier {action.action} applied"
    )


# ===== Fraud flags =====

@admin_router.get(
    "/fraud-flags",
    response_model=SuccessResponse,
    summary="List Fraud Flags"
)
async def list_fraud_flags(
    status_filter: Optional[str] = Query(None, alias="status"),
    severity: Optional[str] = Query(None),
    creator_id: Optional[str] = Query(None),
    limit: int = Query(100, ge=1, le=1000),
    auth: dict = Depends(require_admin_auth),
    db: AsyncSession = Depends(get_database)
):
    flags = await SecurityService(db).list_fraud_flags(
        status=status_filter, severity=severity, creator_id=creator_id, limit=limit
    )
    return create_success_response(data=serialize_list(flags, FraudFlagSchema))


@admin_router.post(
    "/fraud-flags",
    response_model=SuccessResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Raise Fraud Flag"
)
async def create_fraud_flag(
    payload: CreateFraudFlagRequest,
    auth: dict = Depends(require_admin_auth),
    db: AsyncSession = Depends(get_database)
):
    flag = await SecurityService(db).create_fraud_flag(
        payload.creator_id,
        payload.flag_type,
        payload.severity,
        payload.description,
        auth["admin_id"],
        evidence=payload.evidence,
    )
    return create_success_response(data=FraudFlagSchema.model_validate(flag), message="Fraud flag raised")


@admin_router.patch(
    "/fraud-flags",
    response_model=SuccessResponse,
    summary="Update Fraud Flag"
)
async def update_fraud_flag(
    payload: UpdateFraudFlagRequest,
    auth: dict = Depends(require_admin_auth),
    db: AsyncSession = Depends(get_database)
):
    flag = await SecurityService(db).update_fraud_flag(
        payload.flag_id, payload.status, auth["admin_id"], action_taken=payload.action_taken
    )
    return create_success_response(data=FraudFlagSchema.model_validate(flag), message="Fraud flag updated")


# ===== Chargebacks =====

@admin_router.get(
    "/chargebacks",
    response_model=SuccessResponse,
    summary="List Chargebacks"
)
async def list_chargebacks(
    creator_id: Optional[str] = Query(None),
    limit: int = Query(100, ge=1, le=1000),
    auth: dict = Depends(require_admin_auth),
    db: AsyncSession = Depends(get_database)
):
    chargebacks = await SecurityService(db).list_chargebacks(creator_id=creator_id, limit=limit)
    return create_success_response(data=serialize_list(chargebacks, ChargebackSchema))


@admin_router.post(
    "/chargebacks",
    response_model=SuccessResponse,
    status_code=status.HTTP_201_CREATED,
    summary="File Chargeback",
    description="Reverse a completed payout and debit the creator"
)
async def file_chargeback(
    payload: FileChargebackRequest,
    auth: dict = Depends(require_admin_auth),
    db: AsyncSession = Depends(get_database)
):
    chargeback = await SecurityService(db).file_chargeback(
        payload.creator_id,
        payload.payout_request_id,
        payload.amount_usd,
        payload.reason,
        auth["admin_id"],
    )
    return create_success_response(
        data=ChargebackSchema.model_validate(chargeback),
        message="Chargeback completed"
    )


# ===== IP activity =====

@admin_router.get(
    "/ip-logs",
    response_model=SuccessResponse,
    summary="IP Activity Log"
)
async def list_ip_logs(
    creator_id: Optional[str] = Query(None),
    days: int = Query(7, ge=1, le=90),
    suspicious_only: bool = Query(False),
    limit: int = Query(100, ge=1, le=1000),
    auth: dict = Depends(require_admin_auth),
    db: AsyncSession = Depends(get_database)
):
    logs = await SecurityService(db).list_ip_logs(
        creator_id=creator_id, days=days, suspicious_only=suspicious_only, limit=limit
    )
    return create_success_response(data=serialize_list(logs, IPActivitySchema))


# ===== Creator balances =====

@admin_router.get(
    "/creators",
    response_model=SuccessResponse,
    summary="Creator Balances",
    description="Creators with tier, wallet, totals and payout settings, largest unpaid balance first"
)
async def list_creator_balances(
    pagination: PaginationParams = Depends(get_pagination_params),
    auth: dict = Depends(require_admin_auth),
    db: AsyncSession = Depends(get_database)
):
    balances = await CreatorSettingsService(db).list_creator_balances(
        limit=pagination.limit, offset=pagination.offset
    )
    return create_success_response(data=balances)


@admin_router.post(
    "/creators/balance",
    response_model=SuccessResponse,
    summary="Adjust Creator Balance",
    description="Fund or debit a creator outside of accrual and payouts"
)
async def adjust_balance(
    payload: BalanceAdjustmentRequest,
    auth: dict = Depends(require_admin_auth),
    db: AsyncSession = Depends(get_database)
):
    earnings = EarningsService(db)
    if payload.action == "fund":
        record = await earnings.fund(payload.creator_id, payload.amount_usd, payload.reason, auth["admin_id"])
    else:
        record = await earnings.debit(payload.creator_id, payload.amount_usd, payload.reason, auth["admin_id"])

    balance = await earnings.get_unpaid_balance(payload.creator_id)
    return create_success_response(
        data={
            "record_id": record.id,
            "amount_usd": str(record.earnings_usd),
            "current_balance_usd": str(balance),
        },
        message=f"Balance {payload.action} applied"
    )


@admin_router.patch(
    "/creators/settings",
    response_model=SuccessResponse,
    summary="Update Creator Payout Settings",
    description="Pause or resume withdrawals and set the monthly limit"
)
async def update_creator_settings(
    payload: UpdateCreatorSettingsRequest,
    auth: dict = Depends(require_admin_auth),
    db: AsyncSession = Depends(get_database)
):
    setting = await CreatorSettingsService(db).update_settings(
        payload.creator_id,
        auth["admin_id"],
        can_withdraw=payload.can_withdraw,
        paused_reason=payload.paused_reason,
        monthly_withdrawal_limit_usd=payload.monthly_withdrawal_limit_usd,
    )
    return create_success_response(data=CreatorSettingsSchema.model_validate(setting))


@admin_router.get(
    "/creators/{creator_id}/bonus-multipliers",
    response_model=SuccessResponse,
    summary="List Bonus Multipliers"
)
async def list_bonus_multipliers(
    creator_id: str,
    auth: dict = Depends(require_admin_auth),
    db: AsyncSession = Depends(get_database)
):
    bonuses = await CreatorSettingsService(db).list_bonus_multipliers(creator_id)
    return create_success_response(data=serialize_list(bonuses, BonusMultiplierSchema))


@admin_router.post(
    "/creators/bonus-multipliers",
    response_model=SuccessResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Grant Bonus Multiplier"
)
async def grant_bonus_multiplier(
    payload: BonusMultiplierRequest,
    auth: dict = Depends(require_admin_auth),
    db: AsyncSession = Depends(get_database)
):
    bonus = await CreatorSettingsService(db).grant_bonus_multiplier(
        payload.creator_id,
        payload.multiplier,
        auth["admin_id"],
        reason=payload.reason,
        starts_at=payload.starts_at,
        ends_at=payload.ends_at,
    )
    return create_success_response(data=BonusMultiplierSchema.model_validate(bonus), message="Bonus multiplier granted")
