"""
Admin-controlled creator settings: withdrawal switches, monthly limits,
bonus multipliers and the creator balances overview.
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Dict, Any

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, case, desc, or_

import structlog

from creator_ledger.core.config import settings
from creator_ledger.core.database import atomic
from creator_ledger.core.exceptions import InvalidAmountError, ValidationError
from creator_ledger.models.creator import CreatorPayoutSetting, BonusMultiplier
from creator_ledger.models.earnings import EarningsRecord
from creator_ledger.models.tier import CreatorTier
from creator_ledger.models.wallet import CreatorWallet
from creator_ledger.utils.clock import utcnow
from creator_ledger.utils.validation import LedgerValidator

logger = structlog.get_logger(__name__)


class CreatorSettingsService:
    """Service for per-creator payout settings."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_or_create(self, creator_id: str, lock: bool = False) -> CreatorPayoutSetting:
        """
        Load the creator's payout settings, creating defaults on first use.

        With ``lock`` the row is selected FOR UPDATE and serializes
        money-affecting operations of the same creator.
        """
        query = (
            select(CreatorPayoutSetting)
            .where(CreatorPayoutSetting.creator_id == creator_id)
            .execution_options(populate_existing=True)
        )
        if lock:
            query = query.with_for_update()

        result = await self.db.execute(query)
        setting = result.scalar_one_or_none()

        if not setting:
            now = utcnow()
            setting = CreatorPayoutSetting(
                creator_id=creator_id,
                can_withdraw=True,
                monthly_withdrawal_limit_usd=settings.default_monthly_withdrawal_limit_usd,
                running_balance_usd=Decimal("0"),
                created_at=now,
                updated_at=now,
            )
            self.db.add(setting)
            await self.db.flush()

        return setting

    @atomic
    async def get_settings(self, creator_id: str) -> CreatorPayoutSetting:
        return await self.get_or_create(creator_id)

    @atomic
    async def update_settings(
        self,
        creator_id: str,
        admin_id: str,
        can_withdraw: Optional[bool] = None,
        paused_reason: Optional[str] = None,
        monthly_withdrawal_limit_usd: Optional[Decimal] = None
    ) -> CreatorPayoutSetting:
        """Pause or resume withdrawals and change the monthly limit."""
        setting = await self.get_or_create(creator_id, lock=True)

        if can_withdraw is not None:
            setting.can_withdraw = can_withdraw
            setting.paused_reason = None if can_withdraw else (paused_reason or "Paused by admin")

        if monthly_withdrawal_limit_usd is not None:
            setting.monthly_withdrawal_limit_usd = LedgerValidator.validate_amount(
                monthly_withdrawal_limit_usd
            )

        setting.updated_by = admin_id
        setting.updated_at = utcnow()
        await self.db.flush()

        logger.info(
            "Creator payout settings updated",
            creator_id=creator_id,
            can_withdraw=setting.can_withdraw,
            monthly_limit_usd=str(setting.monthly_withdrawal_limit_usd),
            admin_id=admin_id
        )
        return setting

    async def pause_withdrawals(self, creator_id: str, reason: str, admin_id: str) -> CreatorPayoutSetting:
        return await self.update_settings(creator_id, admin_id, can_withdraw=False, paused_reason=reason)

    async def resume_withdrawals(self, creator_id: str, admin_id: str) -> CreatorPayoutSetting:
        return await self.update_settings(creator_id, admin_id, can_withdraw=True)

    # ===== Bonus multipliers =====

    @atomic
    async def grant_bonus_multiplier(
        self,
        creator_id: str,
        multiplier: Decimal,
        admin_id: str,
        reason: Optional[str] = None,
        starts_at: Optional[datetime] = None,
        ends_at: Optional[datetime] = None
    ) -> BonusMultiplier:
        try:
            value = Decimal(str(multiplier))
        except ArithmeticError:
            raise InvalidAmountError(multiplier)
        if not value.is_finite() or value < 1:
            raise ValidationError("Bonus multiplier must be at least 1", {"multiplier": str(multiplier)})

        starts_at = starts_at or utcnow()
        if ends_at is not None and ends_at <= starts_at:
            raise ValidationError("Bonus multiplier must end after it starts")

        bonus = BonusMultiplier(
            creator_id=creator_id,
            multiplier=value.quantize(Decimal("0.01")),
            reason=reason,
            starts_at=starts_at,
            ends_at=ends_at,
            created_by=admin_id,
        )
        self.db.add(bonus)
        await self.db.flush()

        logger.info(
            "Bonus multiplier granted",
            creator_id=creator_id,
            multiplier=str(bonus.multiplier),
            admin_id=admin_id
        )
        return bonus

    async def get_active_multiplier(self, creator_id: str, at: Optional[datetime] = None) -> Decimal:
        """Highest multiplier active at ``at``, or 1 when none applies."""
        at = at or utcnow()
        result = await self.db.execute(
            select(func.max(BonusMultiplier.multiplier)).where(
                BonusMultiplier.creator_id == creator_id,
                BonusMultiplier.starts_at <= at,
                or_(BonusMultiplier.ends_at.is_(None), BonusMultiplier.ends_at > at),
            )
        )
        best = result.scalar_one_or_none()
        if best is None:
            return Decimal("1")
        return max(Decimal("1"), Decimal(best).quantize(Decimal("0.01")))

    async def list_bonus_multipliers(self, creator_id: str) -> List[BonusMultiplier]:
        result = await self.db.execute(
            select(BonusMultiplier)
            .where(BonusMultiplier.creator_id == creator_id)
            .order_by(desc(BonusMultiplier.starts_at))
        )
        return list(result.scalars().all())

    # ===== Balances overview =====

    async def list_creator_balances(self, limit: int = 100, offset: int = 0) -> List[Dict[str, Any]]:
        """Per-creator totals ordered by unpaid balance, largest first."""
        unpaid = func.coalesce(
            func.sum(case((EarningsRecord.is_paid.is_(False), EarningsRecord.earnings_usd), else_=0)),
            0
        )
        paid = func.coalesce(
            func.sum(case((EarningsRecord.is_paid.is_(True), EarningsRecord.earnings_usd), else_=0)),
            0
        )
        lifetime = func.coalesce(func.sum(EarningsRecord.earnings_usd), 0)

        totals = (
            select(
                EarningsRecord.creator_id.label("creator_id"),
                unpaid.label("unpaid"),
                paid.label("paid"),
                lifetime.label("lifetime"),
            )
            .group_by(EarningsRecord.creator_id)
            .subquery()
        )

        result = await self.db.execute(
            select(
                totals.c.creator_id,
                totals.c.unpaid,
                totals.c.paid,
                totals.c.lifetime,
                CreatorTier,
                CreatorWallet,
                CreatorPayoutSetting,
            )
            .outerjoin(CreatorTier, CreatorTier.creator_id == totals.c.creator_id)
            .outerjoin(CreatorWallet, CreatorWallet.creator_id == totals.c.creator_id)
            .outerjoin(CreatorPayoutSetting, CreatorPayoutSetting.creator_id == totals.c.creator_id)
            .order_by(desc(totals.c.unpaid))
            .limit(limit)
            .offset(offset)
        )

        balances = []
        for row in result.all():
            tier, wallet, setting = row.CreatorTier, row.CreatorWallet, row.CreatorPayoutSetting
            balances.append({
                "creator_id": row.creator_id,
                "tier_level": tier.tier_level if tier else None,
                "total_views": tier.total_views if tier else 0,
                "crypto_type": wallet.crypto_type if wallet else None,
                "wallet_address": wallet.wallet_address if wallet else None,
                "unpaid_usd": _usd(row.unpaid),
                "paid_usd": _usd(row.paid),
                "lifetime_usd": _usd(row.lifetime),
                "can_withdraw": setting.can_withdraw if setting else True,
                "paused_reason": setting.paused_reason if setting else None,
                "monthly_withdrawal_limit_usd": (
                    setting.monthly_withdrawal_limit_usd if setting
                    else settings.default_monthly_withdrawal_limit_usd
                ),
                "running_balance_usd": setting.running_balance_usd if setting else Decimal("0"),
            })
        return balances


def _usd(value: Any) -> Decimal:
    return Decimal(str(value or 0)).quantize(Decimal("0.000001"))
