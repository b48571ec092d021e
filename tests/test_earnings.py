"""
Test view accrual, balances, adjustments and the earnings summary.
"""

from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy import select

from creator_ledger.core.exceptions import InvalidAmountError
from creator_ledger.models.creator import CreatorPayoutSetting
from creator_ledger.models.earnings import EarningsRecord
from creator_ledger.services.creator_settings_service import CreatorSettingsService
from creator_ledger.services.earnings_service import EarningsService
from creator_ledger.services.tier_service import TierService
from creator_ledger.utils.clock import utcnow

from tests.helpers import ADMIN, CREATOR, accrue, fund


@pytest.mark.asyncio
async def test_accrual_at_bronze_rate(session):
    record = await accrue(session, 10_000)

    assert record.views == 10_000
    assert Decimal(record.earnings_usd) == Decimal("8")
    assert Decimal(record.tier_rate_at_time) == Decimal("0.0008")
    assert record.is_paid is False

    service = EarningsService(session)
    assert await service.get_unpaid_balance(CREATOR) == Decimal("8")

    tier = await TierService(session).get_tier(CREATOR)
    assert tier.total_views == 10_000


@pytest.mark.asyncio
async def test_same_day_views_share_a_bucket(session):
    first = await accrue(session, 300)
    second = await accrue(session, 200)

    assert first.id == second.id
    assert second.views == 500
    assert Decimal(second.earnings_usd) == Decimal("0.4")

    result = await session.execute(
        select(EarningsRecord).where(EarningsRecord.creator_id == CREATOR)
    )
    assert len(result.scalars().all()) == 1


@pytest.mark.asyncio
async def test_buckets_are_per_content(session):
    await accrue(session, 100, content_id="movie-1")
    await accrue(session, 100, content_id="movie-2")

    records = await EarningsService(session).list_unpaid_records(CREATOR)
    assert sorted(r.content_id for r in records) == ["movie-1", "movie-2"]


@pytest.mark.asyncio
@pytest.mark.parametrize("delta", [0, -5, 1.5, True])
async def test_invalid_view_delta_is_not_credited(session, delta):
    record = await EarningsService(session).accrue(CREATOR, "movie-1", "movie", delta)

    assert record is None
    assert await EarningsService(session).get_unpaid_balance(CREATOR) == Decimal("0")


@pytest.mark.asyncio
async def test_running_balance_follows_accruals(session):
    await accrue(session, 10_000)
    await fund(session, "2.50")

    setting = await CreatorSettingsService(session).get_settings(CREATOR)
    assert Decimal(setting.running_balance_usd) == Decimal("10.5")


@pytest.mark.asyncio
async def test_fund_and_debit_append_adjustments(session):
    service = EarningsService(session)
    credit = await service.fund(CREATOR, Decimal("10"), "launch bonus", ADMIN)
    debit = await service.debit(CREATOR, Decimal("3.25"), "duplicate views", ADMIN)

    assert credit.content_type == "bonus"
    assert credit.entry_kind == "adjustment"
    assert credit.adjusted_by == ADMIN
    assert credit.views == 0
    assert debit.content_type == "deduction"
    assert Decimal(debit.earnings_usd) == Decimal("-3.25")
    assert await service.get_unpaid_balance(CREATOR) == Decimal("6.75")


@pytest.mark.asyncio
@pytest.mark.parametrize("amount", ["0", "-1", "1.005", "NaN"])
async def test_fund_rejects_bad_amounts(session, amount):
    with pytest.raises(InvalidAmountError):
        await EarningsService(session).fund(CREATOR, amount, "bad", ADMIN)


@pytest.mark.asyncio
async def test_active_bonus_multiplier_applies(session):
    settings_service = CreatorSettingsService(session)
    await settings_service.grant_bonus_multiplier(CREATOR, Decimal("1.5"), ADMIN, reason="promo")
    await settings_service.grant_bonus_multiplier(CREATOR, Decimal("2"), ADMIN, reason="bigger promo")

    record = await accrue(session, 1_000)

    assert Decimal(record.bonus_multiplier) == Decimal("2")
    assert Decimal(record.earnings_usd) == Decimal("1.6")


@pytest.mark.asyncio
async def test_expired_bonus_multiplier_is_ignored(session):
    past = utcnow() - timedelta(days=10)
    await CreatorSettingsService(session).grant_bonus_multiplier(
        CREATOR, Decimal("3"), ADMIN, starts_at=past, ends_at=past + timedelta(days=1)
    )

    record = await accrue(session, 1_000)
    assert Decimal(record.bonus_multiplier) == Decimal("1")
    assert Decimal(record.earnings_usd) == Decimal("0.8")


@pytest.mark.asyncio
async def test_summary(session):
    await accrue(session, 10_000, content_id="movie-1")
    await accrue(session, 2_000, content_id="movie-2")
    await fund(session, "1")

    summary = await EarningsService(session).get_summary(CREATOR)

    assert summary["tier_level"] == "bronze"
    assert summary["current_balance_usd"] == Decimal("10.6")
    assert summary["lifetime_earnings_usd"] == Decimal("10.6")
    assert summary["paid_out_usd"] == Decimal("0")
    assert summary["lifetime_views"] == 12_000
    assert summary["month_views"] == 12_000
    assert len(summary["history"]) == 1
    assert summary["history"][0]["views"] == 12_000
    assert [c["content_id"] for c in summary["top_content"]] == ["movie-1", "movie-2"]


@pytest.mark.asyncio
async def test_settings_row_created_lazily(session):
    result = await session.execute(select(CreatorPayoutSetting))
    assert result.scalars().all() == []

    setting = await CreatorSettingsService(session).get_settings(CREATOR)
    assert setting.can_withdraw is True
    assert Decimal(setting.monthly_withdrawal_limit_usd) == Decimal("100")
