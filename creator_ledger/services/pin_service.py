"""
Withdrawal PIN store.

PINs are bcrypt-hashed and verified in constant time. Consecutive failures
lock the PIN for a configurable period.
"""

import math
from datetime import timedelta
from typing import Optional

import bcrypt
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

import structlog

from creator_ledger.core.config import settings
from creator_ledger.core.database import atomic
from creator_ledger.core.exceptions import InvalidPinError, PinLockedError, PinNotSetError
from creator_ledger.models.pin import WithdrawalPin
from creator_ledger.utils.clock import utcnow
from creator_ledger.utils.validation import LedgerValidator

logger = structlog.get_logger(__name__)


def hash_pin(pin: str) -> str:
    return bcrypt.hashpw(pin.encode("utf-8"), bcrypt.gensalt(rounds=settings.pin_hash_rounds)).decode("utf-8")


def check_pin(pin: str, pin_hash: str) -> bool:
    try:
        return bcrypt.checkpw(pin.encode("utf-8"), pin_hash.encode("utf-8"))
    except ValueError:
        # Malformed stored hash
        logger.error("Stored PIN hash is not a valid bcrypt hash")
        return False


class PinService:
    """Service for creating, changing and verifying withdrawal PINs."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_pin(self, creator_id: str) -> Optional[WithdrawalPin]:
        result = await self.db.execute(
            select(WithdrawalPin).where(WithdrawalPin.creator_id == creator_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def has_pin(self, creator_id: str) -> bool:
        return await self.get_pin(creator_id) is not None

    @atomic
    async def create_or_change(
        self,
        creator_id: str,
        new_pin: str,
        old_pin: Optional[str] = None
    ) -> WithdrawalPin:
        """
        Set the PIN, or replace it after verifying the old one.

        Raises:
            InvalidPinFormatError: new_pin is not 4-6 digits
            InvalidPinError: a PIN exists and old_pin is missing or wrong
            PinLockedError: too many failed attempts
        """
        LedgerValidator.validate_pin(new_pin)
        now = utcnow()

        result = await self.db.execute(
            select(WithdrawalPin)
            .where(WithdrawalPin.creator_id == creator_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        pin = result.scalar_one_or_none()

        if pin is None:
            pin = WithdrawalPin(
                creator_id=creator_id,
                pin_hash=hash_pin(new_pin),
                last_changed_at=now,
                failed_attempts=0,
                created_at=now,
                updated_at=now,
            )
            self.db.add(pin)
            await self.db.flush()
            logger.info("Withdrawal PIN created", creator_id=creator_id)
            return pin

        if not old_pin:
            raise InvalidPinError("Current PIN is required to change it")

        if not await self._check(pin, old_pin):
            # Keep the failure count, nothing else has been written
            await self.db.commit()
            raise InvalidPinError("Current PIN is incorrect")

        pin.pin_hash = hash_pin(new_pin)
        pin.last_changed_at = now
        pin.updated_at = now
        await self.db.flush()

        logger.info("Withdrawal PIN changed", creator_id=creator_id)
        return pin

    @atomic
    async def verify(self, creator_id: str, pin: str) -> bool:
        """Check a PIN. Failures count towards the lockout."""
        stored = await self.get_pin(creator_id)
        if stored is None:
            raise PinNotSetError(creator_id)
        return await self._check(stored, pin)

    async def check_for_withdrawal(self, creator_id: str, pin: str) -> bool:
        """Verify inside the caller's transaction without committing."""
        stored = await self.get_pin(creator_id)
        if stored is None:
            return False
        return await self._check(stored, pin)

    async def _check(self, stored: WithdrawalPin, pin: str) -> bool:
        """
        Compare ``pin`` to the stored hash and update the failure counter.

        Raises:
            PinLockedError: the PIN is locked
        """
        now = utcnow()

        if stored.locked_until is not None and stored.locked_until > now:
            minutes = math.ceil((stored.locked_until - now).total_seconds() / 60)
            raise PinLockedError(minutes)

        if isinstance(pin, str) and check_pin(pin, stored.pin_hash):
            if stored.failed_attempts or stored.locked_until is not None:
                stored.failed_attempts = 0
                stored.locked_until = None
                await self.db.flush()
            return True

        stored.failed_attempts = (stored.failed_attempts or 0) + 1
        if stored.failed_attempts >= settings.pin_max_failed_attempts:
            stored.locked_until = now + timedelta(minutes=settings.pin_lockout_minutes)
            stored.failed_attempts = 0
            logger.warning(
                "Withdrawal PIN locked",
                creator_id=stored.creator_id,
                locked_until=stored.locked_until.isoformat()
            )
        else:
            logger.warning(
                "Withdrawal PIN mismatch",
                creator_id=stored.creator_id,
                failed_attempts=stored.failed_attempts
            )
        stored.updated_at = now
        await self.db.flush()
        return False
