"""
Wallet registry business logic.
One payout destination per creator, guarded by a change cooldown.
"""

import math
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

import structlog

from creator_ledger.core.config import settings
from creator_ledger.core.database import atomic
from creator_ledger.core.exceptions import CooldownActiveError
from creator_ledger.models.wallet import CreatorWallet, WalletChange
from creator_ledger.utils.clock import utcnow
from creator_ledger.utils.validation import LedgerValidator

logger = structlog.get_logger(__name__)


def days_until(moment: datetime, now: datetime) -> int:
    """Whole days left until ``moment``, rounded up."""
    return max(1, math.ceil((moment - now).total_seconds() / 86400))


class WalletService:
    """Service for the creator wallet registry."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_wallet(self, creator_id: str) -> Optional[CreatorWallet]:
        result = await self.db.execute(
            select(CreatorWallet).where(CreatorWallet.creator_id == creator_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_history(self, creator_id: str) -> List[WalletChange]:
        """Previous destinations, oldest first."""
        result = await self.db.execute(
            select(WalletChange)
            .where(WalletChange.creator_id == creator_id)
            .order_by(WalletChange.changed_at, WalletChange.id)
        )
        return list(result.scalars().all())

    @atomic
    async def set_wallet(self, creator_id: str, crypto_type: str, address: str) -> CreatorWallet:
        """
        Register or replace the creator's payout destination.

        Raises:
            UnknownCryptoTypeError: crypto_type is not SOL, TRC20 or BEP20
            InvalidWalletAddressError: address is too short
            CooldownActiveError: the previous change is too recent
        """
        network = LedgerValidator.validate_crypto_type(crypto_type)
        address = LedgerValidator.validate_wallet_address(address)

        now = utcnow()
        can_change_at = now + timedelta(days=settings.wallet_change_cooldown_days)

        wallet = await self.get_wallet(creator_id)

        if wallet is None:
            wallet = CreatorWallet(
                creator_id=creator_id,
                crypto_type=network.value,
                wallet_address=address,
                last_changed_at=now,
                can_change_at=can_change_at,
                created_at=now,
                updated_at=now,
            )
            self.db.add(wallet)
            try:
                await self.db.flush()
            except IntegrityError:
                # A concurrent first registration won
                raise CooldownActiveError(settings.wallet_change_cooldown_days)

            logger.info("Wallet added", creator_id=creator_id, crypto_type=network.value)
            return wallet

        if now < wallet.can_change_at:
            days_left = days_until(wallet.can_change_at, now)
            logger.warning("Wallet change during cooldown", creator_id=creator_id, days_remaining=days_left)
            raise CooldownActiveError(days_left)

        previous = WalletChange(
            creator_id=creator_id,
            crypto_type=wallet.crypto_type,
            wallet_address=wallet.wallet_address,
            set_at=wallet.last_changed_at,
            changed_at=now,
        )

        # Only succeeds if nobody changed the wallet since it was read
        result = await self.db.execute(
            update(CreatorWallet)
            .where(
                CreatorWallet.id == wallet.id,
                CreatorWallet.can_change_at == wallet.can_change_at,
            )
            .values(
                crypto_type=network.value,
                wallet_address=address,
                last_changed_at=now,
                can_change_at=can_change_at,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )

        if result.rowcount == 0:
            raise CooldownActiveError(settings.wallet_change_cooldown_days)

        self.db.add(previous)
        await self.db.flush()
        await self.db.refresh(wallet)

        logger.info("Wallet updated", creator_id=creator_id, crypto_type=network.value)
        return wallet
