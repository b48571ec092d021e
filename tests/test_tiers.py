"""
Test the rate schedule and tier upgrade workflow.
"""

from decimal import Decimal

import pytest

from creator_ledger.core.exceptions import (
    AlreadyPendingError,
    ConfigurationError,
    NoPendingTierRequestError,
    TierDowngradeError,
    TopTierReachedError,
)
from creator_ledger.core.tiers import DEFAULT_RATE_SCHEDULE, RateSchedule, TierLevel, TierSpec
from creator_ledger.services.commands import AdjustTier, ApproveTierUpgrade, DenyTierUpgrade
from creator_ledger.services.tier_service import TierService

from tests.helpers import ADMIN, CREATOR, accrue


def test_default_schedule_rates():
    assert DEFAULT_RATE_SCHEDULE.rate_for(TierLevel.BRONZE) == Decimal("0.0008")
    assert DEFAULT_RATE_SCHEDULE.rate_for(TierLevel.SILVER) == Decimal("0.005")
    assert DEFAULT_RATE_SCHEDULE.rate_for(TierLevel.GOLD) == Decimal("0.01")
    assert DEFAULT_RATE_SCHEDULE.rate_for(TierLevel.PLATINUM) == Decimal("0.025")
    assert DEFAULT_RATE_SCHEDULE.lowest.level == TierLevel.BRONZE
    assert DEFAULT_RATE_SCHEDULE.highest.level == TierLevel.PLATINUM


def test_schedule_rejects_decreasing_rates():
    with pytest.raises(ConfigurationError):
        RateSchedule(
            version="broken",
            tiers=(
                TierSpec(TierLevel.BRONZE, 0, Decimal("0.005")),
                TierSpec(TierLevel.SILVER, 10_000, Decimal("0.001")),
            ),
        )


def test_schedule_rejects_nonzero_floor():
    with pytest.raises(ConfigurationError):
        RateSchedule(version="broken", tiers=(TierSpec(TierLevel.BRONZE, 100, Decimal("0.001")),))


@pytest.mark.parametrize("level,views,next_tier,needed", [
    (TierLevel.BRONZE, 0, TierLevel.SILVER, 10_000),
    (TierLevel.BRONZE, 9_999, TierLevel.SILVER, 1),
    (TierLevel.BRONZE, 25_000, TierLevel.SILVER, 0),
    (TierLevel.SILVER, 10_000, TierLevel.GOLD, 40_000),
    (TierLevel.GOLD, 150_000, TierLevel.PLATINUM, 50_000),
])
def test_eligibility(level, views, next_tier, needed):
    eligibility = DEFAULT_RATE_SCHEDULE.eligibility(level, views)
    assert eligibility.next_tier == next_tier
    assert eligibility.views_needed == needed
    assert eligibility.can_request_upgrade == (needed == 0)


def test_eligibility_at_top_tier():
    eligibility = DEFAULT_RATE_SCHEDULE.eligibility(TierLevel.PLATINUM, 1_000_000)
    assert eligibility.next_tier is None
    assert eligibility.views_needed == 0
    assert not eligibility.can_request_upgrade


@pytest.mark.asyncio
async def test_new_creator_starts_on_bronze(session):
    tier = await TierService(session).get_tier(CREATOR)
    assert tier.tier_level == "bronze"
    assert tier.total_views == 0
    assert Decimal(tier.rate_per_view) == Decimal("0.0008")
    assert tier.rate_version == DEFAULT_RATE_SCHEDULE.version


@pytest.mark.asyncio
async def test_accrual_updates_eligibility(session):
    await accrue(session, 10_000)
    eligibility = await TierService(session).recompute_eligibility(CREATOR)
    assert eligibility.total_views == 10_000
    assert eligibility.views_needed == 0
    assert eligibility.can_request_upgrade


@pytest.mark.asyncio
async def test_second_request_while_pending_fails(session):
    service = TierService(session)
    tier = await service.request_upgrade(CREATOR)
    assert tier.requested_at is not None

    with pytest.raises(AlreadyPendingError):
        await service.request_upgrade(CREATOR)

    pending = await service.list_pending_requests()
    assert [t.creator_id for t in pending] == [CREATOR]


@pytest.mark.asyncio
async def test_approve_sets_rate_and_clears_request(session):
    service = TierService(session)
    await service.request_upgrade(CREATOR)

    tier = await service.apply(ApproveTierUpgrade(CREATOR, TierLevel.SILVER), ADMIN)

    assert tier.tier_level == "silver"
    assert Decimal(tier.rate_per_view) == Decimal("0.005")
    assert tier.requested_at is None
    assert tier.approved_at is not None
    assert tier.approved_by == ADMIN
    assert await service.list_pending_requests() == []


@pytest.mark.asyncio
async def test_deny_keeps_tier(session):
    service = TierService(session)
    await service.request_upgrade(CREATOR)

    tier = await service.apply(DenyTierUpgrade(CREATOR), ADMIN)

    assert tier.tier_level == "bronze"
    assert tier.requested_at is None
    # A new request can follow a decision
    await service.request_upgrade(CREATOR)


@pytest.mark.asyncio
async def test_decision_without_request_fails(session):
    with pytest.raises(NoPendingTierRequestError):
        await TierService(session).apply(ApproveTierUpgrade(CREATOR, TierLevel.SILVER), ADMIN)


@pytest.mark.asyncio
async def test_tier_never_decreases(session):
    service = TierService(session)
    await service.apply(AdjustTier(CREATOR, TierLevel.GOLD), ADMIN)
    await service.request_upgrade(CREATOR)

    with pytest.raises(TierDowngradeError):
        await service.apply(ApproveTierUpgrade(CREATOR, TierLevel.SILVER), ADMIN)

    with pytest.raises(TierDowngradeError):
        await service.apply(AdjustTier(CREATOR, TierLevel.GOLD), ADMIN)

    tier = await service.get_tier(CREATOR)
    assert tier.tier_level == "gold"
    assert tier.has_pending_request


@pytest.mark.asyncio
async def test_top_tier_cannot_request(session):
    service = TierService(session)
    await service.apply(AdjustTier(CREATOR, TierLevel.PLATINUM), ADMIN)

    with pytest.raises(TopTierReachedError):
        await service.request_upgrade(CREATOR)


@pytest.mark.asyncio
async def test_upgrade_does_not_reprice_past_earnings(session):
    first = await accrue(session, 1_000)
    await TierService(session).apply(AdjustTier(CREATOR, TierLevel.SILVER), ADMIN)
    second = await accrue(session, 1_000)

    assert second.id != first.id
    await session.refresh(first)
    assert Decimal(first.tier_rate_at_time) == Decimal("0.0008")
    assert Decimal(first.earnings_usd) == Decimal("0.8")
    assert Decimal(second.tier_rate_at_time) == Decimal("0.005")
    assert Decimal(second.earnings_usd) == Decimal("5")
