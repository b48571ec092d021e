"""
Tier engine business logic.
Maps lifetime views to rate brackets and runs the upgrade request workflow.
"""

from typing import List

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update

import structlog

from creator_ledger.core.database import atomic
from creator_ledger.core.exceptions import (
    AlreadyPendingError,
    NoPendingTierRequestError,
    TierDowngradeError,
    TopTierReachedError,
)
from creator_ledger.core.tiers import (
    DEFAULT_RATE_SCHEDULE, RateSchedule, TierEligibility, TierLevel
)
from creator_ledger.models.tier import CreatorTier
from creator_ledger.services.commands import (
    AdjustTier, ApproveTierUpgrade, DenyTierUpgrade, TierCommand, TIER_TRANSITIONS
)
from creator_ledger.utils.clock import utcnow

logger = structlog.get_logger(__name__)


class TierService:
    """Service for creator tiers and upgrade requests."""

    def __init__(self, db: AsyncSession, schedule: RateSchedule = DEFAULT_RATE_SCHEDULE):
        self.db = db
        self.schedule = schedule

    async def get_or_create_tier(self, creator_id: str) -> CreatorTier:
        """Load the creator's tier, creating a lowest-tier row on first use."""
        result = await self.db.execute(
            select(CreatorTier).where(CreatorTier.creator_id == creator_id)
            .execution_options(populate_existing=True)
        )
        tier = result.scalar_one_or_none()

        if not tier:
            lowest = self.schedule.lowest
            now = utcnow()
            tier = CreatorTier(
                creator_id=creator_id,
                tier_level=lowest.level.value,
                total_views=0,
                rate_per_view=lowest.rate_per_view,
                rate_version=self.schedule.version,
                upgraded_at=now,
                created_at=now,
                updated_at=now,
            )
            self.db.add(tier)
            await self.db.flush()
            logger.info("Created creator tier", creator_id=creator_id, tier=tier.tier_level)

        return tier

    async def add_views(self, creator_id: str, view_delta: int) -> None:
        await self.get_or_create_tier(creator_id)
        await self.db.execute(
            update(CreatorTier)
            .where(CreatorTier.creator_id == creator_id)
            .values(
                total_views=CreatorTier.total_views + view_delta,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )

    @atomic
    async def get_tier(self, creator_id: str) -> CreatorTier:
        return await self.get_or_create_tier(creator_id)

    @atomic
    async def recompute_eligibility(self, creator_id: str) -> TierEligibility:
        """Return the current tier, the next tier and the views still needed."""
        tier = await self.get_or_create_tier(creator_id)
        return self.schedule.eligibility(TierLevel(tier.tier_level), tier.total_views)

    @atomic
    async def request_upgrade(self, creator_id: str) -> CreatorTier:
        """
        Record an upgrade request.

        Raises:
            TopTierReachedError: The creator is already on the highest tier
            AlreadyPendingError: An earlier request is still unresolved
        """
        tier = await self.get_or_create_tier(creator_id)

        if self.schedule.next_tier(TierLevel(tier.tier_level)) is None:
            raise TopTierReachedError(tier.tier_level)

        now = utcnow()
        # Check and write in one statement so concurrent requests cannot both pass
        result = await self.db.execute(
            update(CreatorTier)
            .where(
                CreatorTier.creator_id == creator_id,
                CreatorTier.requested_at.is_(None),
            )
            .values(requested_at=now, updated_at=now)
            .execution_options(synchronize_session=False)
        )

        if result.rowcount == 0:
            logger.warning("Tier upgrade already pending", creator_id=creator_id)
            raise AlreadyPendingError(creator_id)

        await self.db.refresh(tier)
        logger.info("Tier upgrade requested", creator_id=creator_id, current_tier=tier.tier_level)
        return tier

    async def list_pending_requests(self) -> List[CreatorTier]:
        result = await self.db.execute(
            select(CreatorTier)
            .where(CreatorTier.requested_at.isnot(None))
            .order_by(CreatorTier.requested_at.desc())
        )
        return list(result.scalars().all())

    @atomic
    async def apply(self, command: TierCommand, admin_id: str) -> CreatorTier:
        """Run an admin tier decision through the transition table."""
        requires_request, changes_level = TIER_TRANSITIONS[type(command)]

        tier = await self.get_or_create_tier(command.creator_id)
        observed_level = tier.tier_level

        conditions = [
            CreatorTier.creator_id == command.creator_id,
            CreatorTier.tier_level == observed_level,
        ]

        if requires_request:
            if not tier.has_pending_request:
                raise NoPendingTierRequestError(command.creator_id)
            conditions.append(CreatorTier.requested_at.isnot(None))

        now = utcnow()
        values = {"requested_at": None, "updated_at": now}

        if changes_level:
            target = TierLevel(command.tier_level)
            if self.schedule.rank(target) <= self.schedule.rank(TierLevel(observed_level)):
                raise TierDowngradeError(observed_level, target.value)
            values.update(
                tier_level=target.value,
                rate_per_view=self.schedule.rate_for(target),
                rate_version=self.schedule.version,
                approved_at=now,
                approved_by=admin_id,
                upgraded_at=now,
            )

        result = await self.db.execute(
            update(CreatorTier)
            .where(*conditions)
            .values(**values)
            .execution_options(synchronize_session=False)
        )

        if result.rowcount == 0:
            # Another admin decided first
            if requires_request:
                raise NoPendingTierRequestError(command.creator_id)
            raise TierDowngradeError(observed_level, values.get("tier_level", observed_level))

        await self.db.refresh(tier)

        if isinstance(command, DenyTierUpgrade):
            logger.info("Tier upgrade denied", creator_id=command.creator_id, admin_id=admin_id)
        elif isinstance(command, ApproveTierUpgrade):
            logger.info(
                "Tier upgrade approved",
                creator_id=command.creator_id,
                tier=tier.tier_level,
                rate_per_view=str(tier.rate_per_view),
                admin_id=admin_id
            )
        elif isinstance(command, AdjustTier):
            logger.info(
                "Tier manually adjusted",
                creator_id=command.creator_id,
                tier=tier.tier_level,
                admin_id=admin_id
            )

        return tier
