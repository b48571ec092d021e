"""
Payout request state machine.

Creators submit withdrawals; admins approve, complete, reject or charge
them back. Every transition is a conditional update on the source state,
so a request can never take two transitions concurrently.

    pending -> approved -> completed -> charged_back
    pending -> rejected
"""

from datetime import datetime, timedelta
from decimal import Decimal
from typing import List, Optional, Any, Union

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, func, desc
from sqlalchemy.exc import IntegrityError

import structlog

from creator_ledger.core.config import settings
from creator_ledger.core.database import atomic
from creator_ledger.core.exceptions import (
    BelowMinimumError,
    InsufficientBalanceError,
    InvalidPinError,
    InvalidStateTransitionError,
    MonthlyLimitExceededError,
    PayoutRequestNotFoundError,
    PendingRequestExistsError,
    PolicyViolationError,
    SetupIncompleteError,
    ValidationError,
    WalletMismatchError,
    WithdrawalsPausedError,
)
from creator_ledger.core.tiers import DEFAULT_RATE_SCHEDULE, RateSchedule
from creator_ledger.models.payout import PayoutRequest, PayoutStatus, PayoutTransaction
from creator_ledger.models.security import Chargeback, ChargebackStatus
from creator_ledger.services.commands import (
    ApprovePayout,
    CompletePayout,
    FileChargeback,
    PayoutCommand,
    RejectPayout,
    PAYOUT_ACTION_NAMES,
    PAYOUT_TRANSITIONS,
)
from creator_ledger.services.creator_settings_service import CreatorSettingsService
from creator_ledger.services.earnings_service import EarningsService
from creator_ledger.services.pin_service import PinService
from creator_ledger.services.wallet_service import WalletService
from creator_ledger.utils.clock import utcnow
from creator_ledger.utils.validation import LedgerValidator

logger = structlog.get_logger(__name__)


class PayoutService:
    """Service for the withdrawal lifecycle."""

    def __init__(self, db: AsyncSession, schedule: RateSchedule = DEFAULT_RATE_SCHEDULE):
        self.db = db
        self.earnings = EarningsService(db, schedule)
        self.creator_settings = CreatorSettingsService(db)
        self.wallets = WalletService(db)
        self.pins = PinService(db)
        self._handlers = {
            ApprovePayout: self._approve,
            CompletePayout: self._complete,
            RejectPayout: self._reject,
            FileChargeback: self._charge_back,
        }

    # ===== Creator side =====

    @atomic
    async def submit(
        self,
        creator_id: str,
        amount_usd: Any,
        crypto_type: str,
        wallet_address: str,
        pin: str
    ) -> PayoutRequest:
        """
        Create a pending withdrawal to the saved wallet.

        ``crypto_type`` and ``wallet_address`` must repeat the saved wallet;
        a request naming any other destination is refused.

        Checks run in a fixed order: paused, setup, PIN, minimum, balance,
        monthly limit, existing pending request, destination match.
        """
        amount = LedgerValidator.validate_amount(amount_usd)

        # Serializes submissions, completions and chargebacks of this creator
        setting = await self.creator_settings.get_or_create(creator_id, lock=True)

        if not setting.can_withdraw:
            logger.warning("Withdrawal while paused", creator_id=creator_id)
            raise WithdrawalsPausedError(setting.paused_reason)

        wallet = await self.wallets.get_wallet(creator_id)
        has_pin = await self.pins.has_pin(creator_id)
        missing = []
        if wallet is None:
            missing.append("wallet")
        if not has_pin:
            missing.append("pin")
        if missing:
            raise SetupIncompleteError(missing)

        if not await self.pins.check_for_withdrawal(creator_id, pin):
            # Persist the failed attempt; nothing else was written
            await self.db.commit()
            raise InvalidPinError()

        if amount < settings.min_withdrawal_usd:
            raise BelowMinimumError(settings.min_withdrawal_usd)

        balance = await self.earnings.get_unpaid_balance(creator_id)
        if amount > balance:
            logger.warning(
                "Withdrawal exceeds balance",
                creator_id=creator_id,
                amount_usd=str(amount),
                balance_usd=str(balance)
            )
            raise InsufficientBalanceError(amount, balance)

        now = utcnow()
        withdrawn = await self.withdrawn_in_window(creator_id, now)
        limit = Decimal(setting.monthly_withdrawal_limit_usd)
        if withdrawn + amount > limit:
            raise MonthlyLimitExceededError(limit, withdrawn)

        if await self.get_pending_request(creator_id) is not None:
            raise PendingRequestExistsError(creator_id)

        if (crypto_type or "").strip().upper() != wallet.crypto_type:
            raise WalletMismatchError()
        if (wallet_address or "").strip() != wallet.wallet_address:
            raise WalletMismatchError()

        request = PayoutRequest(
            creator_id=creator_id,
            amount_usd=amount,
            crypto_type=wallet.crypto_type,
            wallet_address=wallet.wallet_address,
            status=PayoutStatus.PENDING.value,
            requested_at=now,
            created_at=now,
            updated_at=now,
        )
        self.db.add(request)
        try:
            await self.db.flush()
        except IntegrityError:
            # Partial unique index on pending requests
            raise PendingRequestExistsError(creator_id)

        logger.info(
            "Withdrawal requested",
            creator_id=creator_id,
            request_id=request.id,
            amount_usd=str(amount)
        )
        return request

    async def withdrawn_in_window(self, creator_id: str, now: datetime) -> Decimal:
        """Approved plus completed amounts requested in the trailing payout window."""
        since = now - timedelta(days=settings.payout_window_days)
        result = await self.db.execute(
            select(func.coalesce(func.sum(PayoutRequest.amount_usd), 0)).where(
                PayoutRequest.creator_id == creator_id,
                PayoutRequest.status.in_([PayoutStatus.APPROVED.value, PayoutStatus.COMPLETED.value]),
                PayoutRequest.requested_at >= since,
            )
        )
        return Decimal(str(result.scalar_one())).quantize(Decimal("0.01"))

    async def get_pending_request(self, creator_id: str) -> Optional[PayoutRequest]:
        result = await self.db.execute(
            select(PayoutRequest).where(
                PayoutRequest.creator_id == creator_id,
                PayoutRequest.status == PayoutStatus.PENDING.value,
            )
        )
        return result.scalar_one_or_none()

    async def get_history(self, creator_id: str, limit: int = 50) -> List[PayoutRequest]:
        result = await self.db.execute(
            select(PayoutRequest)
            .where(PayoutRequest.creator_id == creator_id)
            .order_by(desc(PayoutRequest.requested_at), desc(PayoutRequest.id))
            .limit(limit)
        )
        return list(result.scalars().all())

    # ===== Admin side =====

    async def get_request(self, request_id: int) -> PayoutRequest:
        result = await self.db.execute(
            select(PayoutRequest).where(PayoutRequest.id == request_id)
            .execution_options(populate_existing=True)
        )
        request = result.scalar_one_or_none()
        if not request:
            raise PayoutRequestNotFoundError(request_id)
        return request

    async def list_requests(
        self,
        status: Optional[PayoutStatus] = PayoutStatus.PENDING,
        limit: int = 100,
        offset: int = 0
    ) -> List[PayoutRequest]:
        query = select(PayoutRequest)
        if status is not None:
            query = query.where(PayoutRequest.status == PayoutStatus(status).value)
        result = await self.db.execute(
            query.order_by(desc(PayoutRequest.requested_at)).limit(limit).offset(offset)
        )
        return list(result.scalars().all())

    @atomic
    async def apply(self, command: PayoutCommand, admin_id: str) -> Union[PayoutRequest, Chargeback]:
        """Run an admin command as one transaction."""
        return await self.execute(command, admin_id)

    async def execute(self, command: PayoutCommand, admin_id: str) -> Union[PayoutRequest, Chargeback]:
        """
        Dispatch a command through the transition table inside the caller's
        transaction. Returns the updated request, or the Chargeback for
        FileChargeback.

        Raises:
            PayoutRequestNotFoundError: unknown request id
            InvalidStateTransitionError: request is not in the source state
        """
        source, target = PAYOUT_TRANSITIONS[type(command)]
        request = await self.get_request(command.request_id)

        if request.status != source.value:
            logger.warning(
                "Rejected payout transition",
                request_id=request.id,
                status=request.status,
                action=PAYOUT_ACTION_NAMES[type(command)]
            )
            raise InvalidStateTransitionError(
                "payout request", request.id, request.status, PAYOUT_ACTION_NAMES[type(command)]
            )

        handler = self._handlers[type(command)]
        return await handler(request, command, admin_id, source, target)

    async def _transition(
        self,
        request: PayoutRequest,
        command: PayoutCommand,
        source: PayoutStatus,
        target: PayoutStatus,
        **values
    ) -> None:
        now = values.pop("now", None) or utcnow()
        result = await self.db.execute(
            update(PayoutRequest)
            .where(PayoutRequest.id == request.id, PayoutRequest.status == source.value)
            .values(status=target.value, updated_at=now, **values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            await self.db.refresh(request)
            raise InvalidStateTransitionError(
                "payout request", request.id, request.status, PAYOUT_ACTION_NAMES[type(command)]
            )
        await self.db.refresh(request)

    async def _approve(self, request, command: ApprovePayout, admin_id, source, target) -> PayoutRequest:
        now = utcnow()
        await self._transition(
            request, command, source, target,
            now=now,
            processed_at=now,
            processed_by=admin_id,
            admin_note=command.note or "",
        )
        logger.info("Payout approved", request_id=request.id, creator_id=request.creator_id, admin_id=admin_id)
        return request

    async def _reject(self, request, command: RejectPayout, admin_id, source, target) -> PayoutRequest:
        if not command.reason or not command.reason.strip():
            raise ValidationError("Rejection reason is required")
        now = utcnow()
        await self._transition(
            request, command, source, target,
            now=now,
            processed_at=now,
            processed_by=admin_id,
            rejection_reason=command.reason.strip(),
        )
        logger.info("Payout rejected", request_id=request.id, creator_id=request.creator_id, admin_id=admin_id)
        return request

    async def _complete(self, request, command: CompletePayout, admin_id, source, target) -> PayoutRequest:
        tx_hash = (command.transaction_hash or "").strip()
        if not tx_hash:
            raise ValidationError("Transaction hash is required")

        await self.creator_settings.get_or_create(request.creator_id, lock=True)
        now = utcnow()

        values = dict(
            now=now,
            processed_at=now,
            processed_by=admin_id,
            transaction_hash=tx_hash,
        )
        if command.note:
            values["admin_note"] = command.note
        await self._transition(request, command, source, target, **values)

        amount = Decimal(request.amount_usd)
        settled = await self.earnings.settle(request.creator_id, amount, request.id, now)

        self.db.add(PayoutTransaction(
            payout_request_id=request.id,
            creator_id=request.creator_id,
            amount_usd=amount,
            crypto_type=request.crypto_type,
            wallet_address=request.wallet_address,
            transaction_hash=tx_hash,
            processed_at=now,
            processed_by=admin_id,
            created_at=now,
            updated_at=now,
        ))
        await self.db.flush()

        logger.info(
            "Payout completed",
            request_id=request.id,
            creator_id=request.creator_id,
            amount_usd=str(amount),
            records_settled=len(settled),
            admin_id=admin_id
        )
        return request

    async def _charge_back(self, request, command: FileChargeback, admin_id, source, target) -> Chargeback:
        amount = LedgerValidator.validate_amount(command.amount_usd)
        if request.creator_id != command.creator_id:
            raise ValidationError(
                "Payout request belongs to another creator",
                {"request_id": request.id, "creator_id": command.creator_id}
            )
        if amount > Decimal(request.amount_usd):
            raise PolicyViolationError(
                "Chargeback cannot exceed the payout amount",
                {"amount_usd": str(amount), "payout_usd": str(request.amount_usd)},
                code="CHARGEBACK_EXCEEDS_PAYOUT"
            )
        if not command.reason or not command.reason.strip():
            raise ValidationError("Chargeback reason is required")

        await self.creator_settings.get_or_create(request.creator_id, lock=True)
        now = utcnow()

        chargeback = Chargeback(
            creator_id=request.creator_id,
            payout_request_id=request.id,
            amount_usd=amount,
            reason=command.reason.strip(),
            initiated_by=admin_id,
            status=ChargebackStatus.PENDING.value,
            initiated_at=now,
            created_at=now,
            updated_at=now,
        )
        self.db.add(chargeback)
        await self.db.flush()

        await self.earnings.append_chargeback_debit(
            request.creator_id, amount, request.id, chargeback.reason, admin_id, now
        )
        await self._transition(request, command, source, target, now=now)

        chargeback.status = ChargebackStatus.COMPLETED.value
        chargeback.completed_at = now
        chargeback.updated_at = now
        await self.db.flush()

        logger.info(
            "Chargeback completed",
            chargeback_id=chargeback.id,
            request_id=request.id,
            creator_id=request.creator_id,
            amount_usd=str(amount),
            admin_id=admin_id
        )
        return chargeback
