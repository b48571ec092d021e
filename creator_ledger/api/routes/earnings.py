"""
Earnings routes for the Creator Ledger API.
Handles the creator's earnings summary and view event ingestion.
"""

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

import structlog

from creator_ledger.admin.admin_auth import require_ingest_auth
from creator_ledger.api.dependencies import get_creator_id, get_database
from creator_ledger.api.schemas.common import SuccessResponse, create_success_response
from creator_ledger.api.schemas.ledger import EarningsSummarySchema, ViewEvent
from creator_ledger.services.earnings_service import EarningsService
from creator_ledger.services.view_events import on_content_viewed

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.get(
    "/earnings",
    response_model=SuccessResponse,
    summary="Get Earnings Summary",
    description="Current balance, lifetime totals, daily history and top content"
)
async def get_earnings_summary(
    history_days: int = Query(30, ge=1, le=365, description="Days of daily history"),
    creator_id: str = Depends(get_creator_id),
    db: AsyncSession = Depends(get_database)
):
    summary = await EarningsService(db).get_summary(creator_id, history_days=history_days)
    return create_success_response(
        data=EarningsSummarySchema(**summary),
        message="Earnings summary retrieved"
    )


@router.post(
    "/views",
    response_model=SuccessResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Record Content Views",
    description="Queue a view increment for accrual. Processing happens after the response. "
                "Internal collaborators only: requires the ingestion key or an admin credential."
)
async def record_views(
    event: ViewEvent,
    background_tasks: BackgroundTasks,
    caller: str = Depends(require_ingest_auth)
):
    background_tasks.add_task(
        on_content_viewed,
        event.creator_id,
        event.content_id,
        event.content_type,
        event.count,
    )
    logger.debug(
        "View event queued",
        caller=caller,
        creator_id=event.creator_id,
        content_id=event.content_id,
        count=event.count
    )
    return create_success_response(
        data={"queued": True, "count": event.count},
        message="View event accepted"
    )
