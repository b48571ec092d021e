"""
Test the wallet registry and its change cooldown.
"""

from datetime import timedelta

import pytest

from creator_ledger.core.exceptions import (
    CooldownActiveError,
    InvalidWalletAddressError,
    UnknownCryptoTypeError,
)
from creator_ledger.services import wallet_service
from creator_ledger.services.wallet_service import WalletService, days_until
from creator_ledger.utils.clock import utcnow

from tests.helpers import CREATOR, SOL_ADDRESS, TRC_ADDRESS


def shift_clock(monkeypatch, days: float):
    moment = utcnow() + timedelta(days=days)
    monkeypatch.setattr(wallet_service, "utcnow", lambda: moment)


def test_days_until_rounds_up():
    now = utcnow()
    assert days_until(now + timedelta(days=20, hours=1), now) == 21
    assert days_until(now + timedelta(hours=1), now) == 1
    assert days_until(now + timedelta(days=3), now) == 3


@pytest.mark.asyncio
async def test_first_wallet_is_saved(session):
    wallet = await WalletService(session).set_wallet(CREATOR, "SOL", f"  {SOL_ADDRESS}  ")

    assert wallet.crypto_type == "SOL"
    assert wallet.wallet_address == SOL_ADDRESS
    assert wallet.can_change_at - wallet.last_changed_at == timedelta(days=21)
    assert await WalletService(session).get_history(CREATOR) == []


@pytest.mark.asyncio
async def test_unknown_network_rejected(session):
    with pytest.raises(UnknownCryptoTypeError):
        await WalletService(session).set_wallet(CREATOR, "BTC", SOL_ADDRESS)
    assert await WalletService(session).get_wallet(CREATOR) is None


@pytest.mark.asyncio
async def test_short_address_rejected(session):
    with pytest.raises(InvalidWalletAddressError):
        await WalletService(session).set_wallet(CREATOR, "SOL", "abc")


@pytest.mark.asyncio
async def test_change_during_cooldown_reports_days_left(session, monkeypatch):
    service = WalletService(session)
    await service.set_wallet(CREATOR, "SOL", SOL_ADDRESS)

    shift_clock(monkeypatch, 10)
    with pytest.raises(CooldownActiveError) as exc_info:
        await service.set_wallet(CREATOR, "TRC20", TRC_ADDRESS)

    assert exc_info.value.days_remaining == 11
    wallet = await service.get_wallet(CREATOR)
    assert wallet.wallet_address == SOL_ADDRESS


@pytest.mark.asyncio
async def test_change_after_cooldown_records_history(session, monkeypatch):
    service = WalletService(session)
    first = await service.set_wallet(CREATOR, "SOL", SOL_ADDRESS)
    first_set_at = first.last_changed_at

    shift_clock(monkeypatch, 22)
    wallet = await service.set_wallet(CREATOR, "TRC20", TRC_ADDRESS)

    assert wallet.crypto_type == "TRC20"
    assert wallet.wallet_address == TRC_ADDRESS
    assert wallet.can_change_at - wallet.last_changed_at == timedelta(days=21)

    history = await service.get_history(CREATOR)
    assert len(history) == 1
    assert history[0].crypto_type == "SOL"
    assert history[0].wallet_address == SOL_ADDRESS
    assert history[0].set_at == first_set_at

    # The cooldown restarts from the change
    with pytest.raises(CooldownActiveError):
        await service.set_wallet(CREATOR, "BEP20", "0x52908400098527886E0F7030069857D2E4169EE7")
