"""
Earnings accrual store.

Credits creators for views at the rate locked at accrual time, computes the
spendable (unpaid) balance and settles payouts oldest-first.
"""

from datetime import date, datetime, timedelta
from decimal import Decimal, ROUND_FLOOR
from typing import List, Optional, Dict, Any

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, func, desc
from sqlalchemy.exc import IntegrityError

import structlog

from creator_ledger.core.database import atomic
from creator_ledger.core.exceptions import InsufficientBalanceError, ValidationError
from creator_ledger.core.tiers import DEFAULT_RATE_SCHEDULE, RateSchedule
from creator_ledger.models.creator import CreatorPayoutSetting
from creator_ledger.models.earnings import EarningsRecord, EntryKind
from creator_ledger.services.creator_settings_service import CreatorSettingsService
from creator_ledger.services.tier_service import TierService
from creator_ledger.utils.clock import utcnow
from creator_ledger.utils.validation import LedgerValidator, quantize_usd

logger = structlog.get_logger(__name__)

ACCRUAL_ATTEMPTS = 2


class EarningsService:
    """Service for crediting, querying and settling creator earnings."""

    def __init__(self, db: AsyncSession, schedule: RateSchedule = DEFAULT_RATE_SCHEDULE):
        self.db = db
        self.schedule = schedule
        self.tiers = TierService(db, schedule)
        self.creator_settings = CreatorSettingsService(db)

    # ===== Accrual =====

    async def accrue(
        self,
        creator_id: str,
        content_id: str,
        content_type: str,
        view_delta: int
    ) -> Optional[EarningsRecord]:
        """
        Credit ``view_delta`` views to today's bucket for this content.

        Never raises: a failed accrual is logged and rolled back so the
        caller's view counting path is unaffected.
        """
        for attempt in range(1, ACCRUAL_ATTEMPTS + 1):
            try:
                record = await self._accrue(creator_id, content_id, content_type, view_delta)
                await self.db.commit()
                return record
            except IntegrityError:
                # A concurrent accrual opened the same bucket first
                await self.db.rollback()
                if attempt == ACCRUAL_ATTEMPTS:
                    logger.error(
                        "Accrual failed after retry",
                        creator_id=creator_id,
                        content_id=content_id
                    )
            except Exception as e:
                await self.db.rollback()
                logger.error(
                    "Accrual failed",
                    creator_id=creator_id,
                    content_id=content_id,
                    view_delta=view_delta,
                    error=str(e)
                )
                return None
        return None

    async def _accrue(
        self,
        creator_id: str,
        content_id: str,
        content_type: str,
        view_delta: int
    ) -> EarningsRecord:
        if isinstance(view_delta, bool) or not isinstance(view_delta, int) or view_delta <= 0:
            raise ValidationError("View delta must be a positive integer", {"view_delta": view_delta})

        now = utcnow()
        today = now.date()

        tier = await self.tiers.get_or_create_tier(creator_id)
        rate = Decimal(tier.rate_per_view)
        multiplier = await self.creator_settings.get_active_multiplier(creator_id, now)
        amount = quantize_usd(view_delta * rate * multiplier)

        result = await self.db.execute(
            select(EarningsRecord).where(
                EarningsRecord.creator_id == creator_id,
                EarningsRecord.content_id == content_id,
                EarningsRecord.earnings_date == today,
                EarningsRecord.tier_rate_at_time == rate,
                EarningsRecord.bonus_multiplier == multiplier,
                EarningsRecord.entry_kind == EntryKind.ACCRUAL.value,
                EarningsRecord.is_paid == False,
            )
        )
        record = result.scalar_one_or_none()

        if record:
            await self.db.execute(
                update(EarningsRecord)
                .where(EarningsRecord.id == record.id, EarningsRecord.is_paid == False)
                .values(
                    views=EarningsRecord.views + view_delta,
                    earnings_usd=EarningsRecord.earnings_usd + amount,
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            await self.db.refresh(record)
        else:
            record = EarningsRecord(
                creator_id=creator_id,
                content_id=content_id,
                content_type=content_type,
                entry_kind=EntryKind.ACCRUAL.value,
                earnings_date=today,
                views=view_delta,
                earnings_usd=amount,
                tier_rate_at_time=rate,
                bonus_multiplier=multiplier,
                rate_version=tier.rate_version,
                is_paid=False,
                created_at=now,
                updated_at=now,
            )
            self.db.add(record)
            await self.db.flush()

        await self.tiers.add_views(creator_id, view_delta)
        await self._move_running_balance(creator_id, amount)

        logger.debug(
            "Views accrued",
            creator_id=creator_id,
            content_id=content_id,
            views=view_delta,
            amount_usd=str(amount)
        )
        return record

    async def _move_running_balance(self, creator_id: str, delta: Decimal) -> None:
        await self.creator_settings.get_or_create(creator_id)
        await self.db.execute(
            update(CreatorPayoutSetting)
            .where(CreatorPayoutSetting.creator_id == creator_id)
            .values(running_balance_usd=CreatorPayoutSetting.running_balance_usd + delta)
            .execution_options(synchronize_session=False)
        )

    # ===== Balance =====

    async def get_unpaid_balance(self, creator_id: str) -> Decimal:
        """Sum of unpaid earnings. This is the spendable balance."""
        result = await self.db.execute(
            select(func.coalesce(func.sum(EarningsRecord.earnings_usd), 0)).where(
                EarningsRecord.creator_id == creator_id,
                EarningsRecord.is_paid == False,
            )
        )
        return quantize_usd(Decimal(str(result.scalar_one())))

    async def list_unpaid_records(self, creator_id: str, lock: bool = False) -> List[EarningsRecord]:
        """Unpaid rows in settlement order: oldest day first."""
        query = (
            select(EarningsRecord)
            .where(
                EarningsRecord.creator_id == creator_id,
                EarningsRecord.is_paid == False,
            )
            .order_by(EarningsRecord.earnings_date, EarningsRecord.created_at, EarningsRecord.id)
            .execution_options(populate_existing=True)
        )
        if lock:
            query = query.with_for_update()
        result = await self.db.execute(query)
        return list(result.scalars().all())

    # ===== Admin adjustments =====

    @atomic
    async def fund(self, creator_id: str, amount: Any, reason: str, admin_id: str) -> EarningsRecord:
        """Credit the creator outside of view accrual."""
        value = LedgerValidator.validate_amount(amount)
        return await self._adjust(creator_id, value, "bonus", reason, admin_id)

    @atomic
    async def debit(self, creator_id: str, amount: Any, reason: str, admin_id: str) -> EarningsRecord:
        """Debit the creator outside of payouts and chargebacks."""
        value = LedgerValidator.validate_amount(amount)
        return await self._adjust(creator_id, -value, "deduction", reason, admin_id)

    async def _adjust(
        self,
        creator_id: str,
        amount: Decimal,
        content_type: str,
        reason: str,
        admin_id: str
    ) -> EarningsRecord:
        await self.creator_settings.get_or_create(creator_id, lock=True)
        now = utcnow()
        record = EarningsRecord(
            creator_id=creator_id,
            content_id=f"admin-{content_type}",
            content_type=content_type,
            entry_kind=EntryKind.ADJUSTMENT.value,
            earnings_date=now.date(),
            views=0,
            earnings_usd=amount,
            tier_rate_at_time=Decimal("0"),
            bonus_multiplier=Decimal("1"),
            is_paid=False,
            adjusted_by=admin_id,
            note=reason,
            created_at=now,
            updated_at=now,
        )
        self.db.add(record)
        await self.db.flush()
        await self._move_running_balance(creator_id, amount)

        logger.info(
            "Balance adjusted",
            creator_id=creator_id,
            amount_usd=str(amount),
            kind=content_type,
            admin_id=admin_id
        )
        return record

    async def append_chargeback_debit(
        self,
        creator_id: str,
        amount: Decimal,
        payout_request_id: int,
        reason: str,
        admin_id: str,
        at: datetime
    ) -> EarningsRecord:
        """Negative unpaid row reflecting a chargeback in the spendable balance."""
        record = EarningsRecord(
            creator_id=creator_id,
            content_id=f"chargeback-{payout_request_id}",
            content_type="chargeback",
            entry_kind=EntryKind.CHARGEBACK.value,
            earnings_date=at.date(),
            views=0,
            earnings_usd=-amount,
            tier_rate_at_time=Decimal("0"),
            bonus_multiplier=Decimal("1"),
            is_paid=False,
            payout_request_id=payout_request_id,
            adjusted_by=admin_id,
            note=reason,
            created_at=at,
            updated_at=at,
        )
        self.db.add(record)
        await self.db.flush()
        await self._move_running_balance(creator_id, -amount)
        return record

    # ===== Settlement =====

    async def settle(
        self,
        creator_id: str,
        amount: Decimal,
        payout_request_id: int,
        at: datetime
    ) -> List[EarningsRecord]:
        """
        Mark unpaid rows paid, oldest first, until ``amount`` is covered.

        The last row touched is split when it overshoots: the original row
        keeps the consumed part and is marked paid, and a new unpaid row with
        the same bucket carries the remainder. Must run inside the caller's
        transaction.

        Raises:
            InsufficientBalanceError: Unpaid rows do not cover ``amount``
        """
        records = await self.list_unpaid_records(creator_id, lock=True)

        # Negative rows count towards the balance wherever they sit in the walk
        available = quantize_usd(sum((Decimal(r.earnings_usd) for r in records), Decimal("0")))
        if available < amount:
            logger.warning(
                "Settlement exceeds unpaid balance",
                creator_id=creator_id,
                amount_usd=str(amount),
                available_usd=str(available)
            )
            raise InsufficientBalanceError(amount, available)

        remaining = amount
        settled = []

        for record in records:
            if remaining <= 0:
                break

            value = Decimal(record.earnings_usd)
            if value <= remaining:
                self._mark_paid(record, payout_request_id, at)
                remaining -= value
                settled.append(record)
                continue

            remainder = await self._split(record, remaining, payout_request_id, at)
            settled.append(record)
            logger.debug(
                "Split earnings record during settlement",
                record_id=record.id,
                remainder_id=remainder.id,
                remainder_usd=str(remainder.earnings_usd)
            )
            remaining = Decimal("0")

        await self._move_running_balance(creator_id, -amount)
        await self.db.flush()
        return settled

    def _mark_paid(self, record: EarningsRecord, payout_request_id: int, at: datetime) -> None:
        record.is_paid = True
        record.paid_at = at
        record.payout_request_id = payout_request_id
        record.updated_at = at

    async def _split(
        self,
        record: EarningsRecord,
        consumed: Decimal,
        payout_request_id: int,
        at: datetime
    ) -> EarningsRecord:
        value = Decimal(record.earnings_usd)
        unit = Decimal(record.tier_rate_at_time) * Decimal(record.bonus_multiplier)
        paid_views = 0
        if unit > 0:
            paid_views = min(
                record.views,
                int((consumed / unit).to_integral_value(rounding=ROUND_FLOOR))
            )

        remainder = EarningsRecord(
            creator_id=record.creator_id,
            content_id=record.content_id,
            content_type=record.content_type,
            entry_kind=record.entry_kind,
            earnings_date=record.earnings_date,
            views=record.views - paid_views,
            earnings_usd=value - consumed,
            tier_rate_at_time=record.tier_rate_at_time,
            bonus_multiplier=record.bonus_multiplier,
            rate_version=record.rate_version,
            is_paid=False,
            split_from_id=record.id,
            adjusted_by=record.adjusted_by,
            note=record.note,
            created_at=record.created_at,
            updated_at=at,
        )

        record.views = paid_views
        record.earnings_usd = consumed
        self._mark_paid(record, payout_request_id, at)
        # The paid row must leave the open-bucket index before the remainder enters it
        await self.db.flush()

        self.db.add(remainder)
        await self.db.flush()
        return remainder

    # ===== Summary =====

    async def get_summary(self, creator_id: str, history_days: int = 30) -> Dict[str, Any]:
        """Balance, totals, daily history and best content for the dashboard."""
        tier = await self.tiers.get_or_create_tier(creator_id)
        today = utcnow().date()

        lifetime = await self.db.execute(
            select(func.coalesce(func.sum(EarningsRecord.earnings_usd), 0)).where(
                EarningsRecord.creator_id == creator_id
            )
        )
        lifetime_usd = lifetime.scalar_one()

        paid = await self.db.execute(
            select(func.coalesce(func.sum(EarningsRecord.earnings_usd), 0)).where(
                EarningsRecord.creator_id == creator_id,
                EarningsRecord.is_paid == True,
            )
        )

        month_start = today.replace(day=1)
        month_views = await self.db.execute(
            select(func.coalesce(func.sum(EarningsRecord.views), 0)).where(
                EarningsRecord.creator_id == creator_id,
                EarningsRecord.earnings_date >= month_start,
            )
        )

        since = today - timedelta(days=history_days)
        history = await self.db.execute(
            select(
                EarningsRecord.earnings_date,
                func.sum(EarningsRecord.views),
                func.sum(EarningsRecord.earnings_usd),
            )
            .where(
                EarningsRecord.creator_id == creator_id,
                EarningsRecord.earnings_date >= since,
            )
            .group_by(EarningsRecord.earnings_date)
            .order_by(EarningsRecord.earnings_date)
        )

        earnings_sum = func.sum(EarningsRecord.earnings_usd)
        top_content = await self.db.execute(
            select(
                EarningsRecord.content_id,
                EarningsRecord.content_type,
                func.sum(EarningsRecord.views),
                earnings_sum,
            )
            .where(
                EarningsRecord.creator_id == creator_id,
                EarningsRecord.entry_kind == EntryKind.ACCRUAL.value,
            )
            .group_by(EarningsRecord.content_id, EarningsRecord.content_type)
            .order_by(desc(earnings_sum))
            .limit(10)
        )

        return {
            "creator_id": creator_id,
            "tier_level": tier.tier_level,
            "rate_per_view": Decimal(tier.rate_per_view),
            "current_balance_usd": await self.get_unpaid_balance(creator_id),
            "lifetime_earnings_usd": quantize_usd(Decimal(str(lifetime_usd))),
            "paid_out_usd": quantize_usd(Decimal(str(paid.scalar_one()))),
            "lifetime_views": int(tier.total_views),
            "month_views": int(month_views.scalar_one()),
            "history": [
                {
                    "date": day if isinstance(day, date) else date.fromisoformat(str(day)),
                    "views": int(views or 0),
                    "earnings_usd": quantize_usd(Decimal(str(usd or 0))),
                }
                for day, views, usd in history.all()
            ],
            "top_content": [
                {
                    "content_id": content_id,
                    "content_type": content_type,
                    "views": int(views or 0),
                    "earnings_usd": quantize_usd(Decimal(str(usd or 0))),
                }
                for content_id, content_type, views, usd in top_content.all()
            ],
        }
