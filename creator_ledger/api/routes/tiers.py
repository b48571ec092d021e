"""
Tier routes for the Creator Ledger API.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from creator_ledger.api.dependencies import get_creator_id, get_database
from creator_ledger.api.schemas.common import SuccessResponse, create_success_response
from creator_ledger.api.schemas.ledger import TierSchema
from creator_ledger.services.tier_service import TierService

router = APIRouter()


@router.get(
    "/tier",
    response_model=SuccessResponse,
    summary="Get Tier",
    description="Current tier, rate and upgrade eligibility"
)
async def get_tier(
    creator_id: str = Depends(get_creator_id),
    db: AsyncSession = Depends(get_database)
):
    service = TierService(db)
    tier = await service.get_tier(creator_id)
    eligibility = await service.recompute_eligibility(creator_id)

    return create_success_response(
        data={
            "tier": TierSchema.model_validate(tier),
            "eligibility": {
                "current_tier": eligibility.current_tier.value,
                "next_tier": eligibility.next_tier.value if eligibility.next_tier else None,
                "views_needed": eligibility.views_needed,
                "total_views": eligibility.total_views,
                "can_request_upgrade": eligibility.can_request_upgrade,
                "has_pending_request": tier.has_pending_request,
            },
        }
    )


@router.post(
    "/tier/upgrade-request",
    response_model=SuccessResponse,
    summary="Request Tier Upgrade",
    description="Ask an admin to move the creator to the next tier"
)
async def request_tier_upgrade(
    creator_id: str = Depends(get_creator_id),
    db: AsyncSession = Depends(get_database)
):
    tier = await TierService(db).request_upgrade(creator_id)
    return create_success_response(
        data=TierSchema.model_validate(tier),
        message="Tier upgrade requested"
    )
