"""
Test withdrawal submission, the payout state machine and settlement.
"""

import asyncio
from decimal import Decimal

import pytest
from sqlalchemy import select

from creator_ledger.core.exceptions import (
    BelowMinimumError,
    InsufficientBalanceError,
    InvalidAmountError,
    InvalidPinError,
    InvalidStateTransitionError,
    LedgerError,
    MonthlyLimitExceededError,
    PayoutRequestNotFoundError,
    PendingRequestExistsError,
    SetupIncompleteError,
    ValidationError,
    WalletMismatchError,
    WithdrawalsPausedError,
)
from creator_ledger.core.tiers import TierLevel
from creator_ledger.models.earnings import EarningsRecord
from creator_ledger.models.payout import PayoutRequest, PayoutStatus, PayoutTransaction
from creator_ledger.services.commands import (
    ApprovePayout,
    ApproveTierUpgrade,
    CompletePayout,
    RejectPayout,
)
from creator_ledger.services.creator_settings_service import CreatorSettingsService
from creator_ledger.services.earnings_service import EarningsService
from creator_ledger.services.payout_service import PayoutService
from creator_ledger.services.pin_service import PinService
from creator_ledger.services.tier_service import TierService

from tests.helpers import ADMIN, CREATOR, PIN, SOL_ADDRESS, accrue, fund, set_up_withdrawals


async def submit(db, amount="18", pin=PIN, crypto_type="SOL", wallet_address=SOL_ADDRESS):
    return await PayoutService(db).submit(CREATOR, Decimal(amount), crypto_type, wallet_address, pin)


async def approved_and_completed(db, amount="18"):
    payouts = PayoutService(db)
    request = await submit(db, amount)
    await payouts.apply(ApprovePayout(request.id), ADMIN)
    return await payouts.apply(CompletePayout(request.id, "tx-hash-1"), ADMIN)


# ===== Submission checks =====

@pytest.mark.asyncio
async def test_setup_required(session):
    await fund(session, "50")

    with pytest.raises(SetupIncompleteError) as exc_info:
        await submit(session)
    assert exc_info.value.details["missing"] == ["wallet", "pin"]


@pytest.mark.asyncio
async def test_paused_is_checked_first(session):
    await CreatorSettingsService(session).pause_withdrawals(CREATOR, "under review", ADMIN)

    with pytest.raises(WithdrawalsPausedError) as exc_info:
        await submit(session, "1")
    assert exc_info.value.details["reason"] == "under review"


@pytest.mark.asyncio
async def test_resume_allows_withdrawals(session):
    await set_up_withdrawals(session)
    await fund(session, "50")
    settings_service = CreatorSettingsService(session)
    await settings_service.pause_withdrawals(CREATOR, "under review", ADMIN)
    await settings_service.resume_withdrawals(CREATOR, ADMIN)

    request = await submit(session)
    assert request.status == "pending"


@pytest.mark.asyncio
async def test_wrong_pin_is_counted(session):
    await set_up_withdrawals(session)
    await fund(session, "50")

    with pytest.raises(InvalidPinError):
        await submit(session, pin="9999")

    stored = await PinService(session).get_pin(CREATOR)
    assert stored.failed_attempts == 1
    assert await PayoutService(session).get_pending_request(CREATOR) is None


@pytest.mark.asyncio
async def test_minimum_withdrawal(session):
    await set_up_withdrawals(session)
    await fund(session, "50")

    with pytest.raises(BelowMinimumError):
        await submit(session, "17.99")


@pytest.mark.asyncio
@pytest.mark.parametrize("amount", ["0", "-18", "18.001"])
async def test_malformed_amount(session, amount):
    with pytest.raises(InvalidAmountError):
        await submit(session, amount)


@pytest.mark.asyncio
async def test_balance_must_cover_amount(session):
    await set_up_withdrawals(session)
    await accrue(session, 10_000)

    with pytest.raises(InsufficientBalanceError) as exc_info:
        await submit(session)
    assert Decimal(exc_info.value.details["available_usd"]) == Decimal("8")


@pytest.mark.asyncio
async def test_monthly_limit(session):
    await set_up_withdrawals(session)
    await fund(session, "100")
    await CreatorSettingsService(session).update_settings(
        CREATOR, ADMIN, monthly_withdrawal_limit_usd=Decimal("30")
    )

    first = await submit(session, "20")
    await PayoutService(session).apply(ApprovePayout(first.id), ADMIN)

    with pytest.raises(MonthlyLimitExceededError):
        await submit(session, "18")


@pytest.mark.asyncio
async def test_one_pending_request_per_creator(session):
    await set_up_withdrawals(session)
    await fund(session, "50")

    await submit(session)
    with pytest.raises(PendingRequestExistsError):
        await submit(session)


@pytest.mark.asyncio
async def test_destination_must_match_saved_wallet(session):
    await set_up_withdrawals(session)
    await fund(session, "50")

    with pytest.raises(WalletMismatchError):
        await submit(session, crypto_type="TRC20")
    with pytest.raises(WalletMismatchError):
        await submit(session, wallet_address="SomeOtherAddress1234567890")
    with pytest.raises(WalletMismatchError):
        await submit(session, crypto_type="", wallet_address="")

    request = await submit(session, crypto_type="sol", wallet_address=f" {SOL_ADDRESS} ")
    assert request.wallet_address == SOL_ADDRESS
    assert request.crypto_type == "SOL"
    assert Decimal(request.amount_usd) == Decimal("18")


# ===== State machine =====

@pytest.mark.asyncio
async def test_reject_requires_reason_and_keeps_balance(session):
    await set_up_withdrawals(session)
    await fund(session, "20")
    payouts = PayoutService(session)
    request_id = (await submit(session)).id

    with pytest.raises(ValidationError):
        await payouts.apply(RejectPayout(request_id, "  "), ADMIN)

    rejected = await payouts.apply(RejectPayout(request_id, "suspicious"), ADMIN)
    assert rejected.status == "rejected"
    assert rejected.rejection_reason == "suspicious"
    assert rejected.processed_by == ADMIN
    assert await EarningsService(session).get_unpaid_balance(CREATOR) == Decimal("20")


@pytest.mark.asyncio
@pytest.mark.parametrize("command_factory", [
    lambda rid: ApprovePayout(rid),
    lambda rid: CompletePayout(rid, "tx"),
    lambda rid: RejectPayout(rid, "late"),
])
async def test_terminal_states_accept_nothing(session, command_factory):
    await set_up_withdrawals(session)
    await fund(session, "20")
    payouts = PayoutService(session)
    request = await submit(session)
    await payouts.apply(RejectPayout(request.id, "no"), ADMIN)

    with pytest.raises(InvalidStateTransitionError):
        await payouts.apply(command_factory(request.id), ADMIN)


@pytest.mark.asyncio
async def test_complete_requires_approval(session):
    await set_up_withdrawals(session)
    await fund(session, "20")
    request_id = (await submit(session)).id

    with pytest.raises(InvalidStateTransitionError):
        await PayoutService(session).apply(CompletePayout(request_id, "tx"), ADMIN)

    assert (await PayoutService(session).get_request(request_id)).status == "pending"


@pytest.mark.asyncio
async def test_approved_cannot_be_rejected(session):
    await set_up_withdrawals(session)
    await fund(session, "20")
    payouts = PayoutService(session)
    request = await submit(session)
    await payouts.apply(ApprovePayout(request.id, note="looks fine"), ADMIN)

    with pytest.raises(InvalidStateTransitionError):
        await payouts.apply(RejectPayout(request.id, "changed my mind"), ADMIN)


@pytest.mark.asyncio
async def test_complete_requires_hash(session):
    await set_up_withdrawals(session)
    await fund(session, "20")
    payouts = PayoutService(session)
    request_id = (await submit(session)).id
    await payouts.apply(ApprovePayout(request_id), ADMIN)

    with pytest.raises(ValidationError):
        await payouts.apply(CompletePayout(request_id, " "), ADMIN)
    assert (await payouts.get_request(request_id)).status == "approved"


@pytest.mark.asyncio
async def test_unknown_request(session):
    with pytest.raises(PayoutRequestNotFoundError):
        await PayoutService(session).apply(ApprovePayout(404), ADMIN)


@pytest.mark.asyncio
async def test_list_requests_by_status(session):
    await set_up_withdrawals(session)
    await fund(session, "50")
    payouts = PayoutService(session)
    request = await submit(session)

    assert [r.id for r in await payouts.list_requests()] == [request.id]
    await payouts.apply(ApprovePayout(request.id), ADMIN)
    assert await payouts.list_requests() == []
    assert [r.id for r in await payouts.list_requests(status=PayoutStatus.APPROVED)] == [request.id]
    assert len(await payouts.list_requests(status=None)) == 1


# ===== Settlement =====

@pytest.mark.asyncio
async def test_completion_settles_oldest_first_and_splits(session):
    await set_up_withdrawals(session)
    await accrue(session, 10_000, content_id="movie-1")   # $8
    await accrue(session, 15_000, content_id="movie-2")   # $12

    completed = await approved_and_completed(session, "18")

    assert completed.status == "completed"
    assert completed.transaction_hash == "tx-hash-1"
    assert await EarningsService(session).get_unpaid_balance(CREATOR) == Decimal("2")

    result = await session.execute(
        select(EarningsRecord).order_by(EarningsRecord.id)
    )
    first, second, remainder = result.scalars().all()

    assert first.is_paid and first.payout_request_id == completed.id
    assert second.is_paid and Decimal(second.earnings_usd) == Decimal("10")
    assert second.views == 12_500
    assert not remainder.is_paid
    assert remainder.split_from_id == second.id
    assert remainder.content_id == "movie-2"
    assert remainder.views == 2_500
    assert Decimal(remainder.earnings_usd) == Decimal("2")

    transactions = (await session.execute(select(PayoutTransaction))).scalars().all()
    assert len(transactions) == 1
    assert transactions[0].payout_request_id == completed.id
    assert Decimal(transactions[0].amount_usd) == Decimal("18")

    setting = await CreatorSettingsService(session).get_settings(CREATOR)
    assert Decimal(setting.running_balance_usd) == Decimal("2")


@pytest.mark.asyncio
async def test_completion_fails_when_balance_shrank(session):
    await set_up_withdrawals(session)
    await fund(session, "20")
    payouts = PayoutService(session)
    request_id = (await submit(session)).id
    await payouts.apply(ApprovePayout(request_id), ADMIN)
    await EarningsService(session).debit(CREATOR, Decimal("5"), "fraud", ADMIN)

    with pytest.raises(InsufficientBalanceError):
        await payouts.apply(CompletePayout(request_id, "tx"), ADMIN)

    # Nothing half-applied
    assert (await payouts.get_request(request_id)).status == "approved"
    assert await EarningsService(session).get_unpaid_balance(CREATOR) == Decimal("15")
    assert (await session.execute(select(PayoutTransaction))).scalars().all() == []


# ===== End to end =====

@pytest.mark.asyncio
async def test_creator_lifecycle(session):
    await set_up_withdrawals(session)
    earnings = EarningsService(session)
    tiers = TierService(session)
    payouts = PayoutService(session)

    await accrue(session, 10_000)
    assert await earnings.get_unpaid_balance(CREATOR) == Decimal("8")

    await tiers.request_upgrade(CREATOR)
    await tiers.apply(ApproveTierUpgrade(CREATOR, TierLevel.SILVER), ADMIN)

    with pytest.raises(InsufficientBalanceError):
        await submit(session)

    silver = await accrue(session, 2_400)
    assert Decimal(silver.tier_rate_at_time) == Decimal("0.005")
    assert await earnings.get_unpaid_balance(CREATOR) == Decimal("20")

    first = await submit(session)
    assert first.status == "pending"

    await payouts.apply(RejectPayout(first.id, "verify identity"), ADMIN)
    assert await earnings.get_unpaid_balance(CREATOR) == Decimal("20")

    second = await submit(session)
    await payouts.apply(ApprovePayout(second.id), ADMIN)
    completed = await payouts.apply(CompletePayout(second.id, "5Kx9abc"), ADMIN)

    assert completed.status == "completed"
    assert await earnings.get_unpaid_balance(CREATOR) == Decimal("2")

    history = await payouts.get_history(CREATOR)
    assert [r.status for r in history] == ["completed", "rejected"]


# ===== Concurrency =====

@pytest.mark.asyncio
async def test_concurrent_submissions_create_one_pending_request(session, session_factory):
    await set_up_withdrawals(session)
    await fund(session, "100")

    async def attempt():
        async with session_factory() as db:
            return await PayoutService(db).submit(CREATOR, Decimal("18"), "SOL", SOL_ADDRESS, PIN)

    results = await asyncio.gather(*(attempt() for _ in range(3)), return_exceptions=True)

    successes = [r for r in results if isinstance(r, PayoutRequest)]
    failures = [r for r in results if not isinstance(r, PayoutRequest)]
    assert len(successes) == 1
    assert all(isinstance(f, LedgerError) for f in failures)

    pending = (await session.execute(
        select(PayoutRequest).where(PayoutRequest.status == "pending")
    )).scalars().all()
    assert len(pending) == 1
