"""
Fraud and audit business logic.

Fraud flags are pure record keeping. Chargebacks reverse a completed payout
and debit the creator in a single transaction. IP activity logging is
best-effort and never shares a transaction with money-affecting writes.
"""

from datetime import timedelta
from decimal import Decimal
from typing import List, Optional, Dict, Any

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, desc

import structlog

from creator_ledger.core.config import settings
from creator_ledger.core.database import atomic, get_async_session
from creator_ledger.core.exceptions import FraudFlagNotFoundError, ValidationError
from creator_ledger.core.tiers import DEFAULT_RATE_SCHEDULE, RateSchedule
from creator_ledger.models.security import (
    Chargeback, FraudFlag, FraudFlagStatus, FraudSeverity, IPActivityLog
)
from creator_ledger.services.commands import FileChargeback
from creator_ledger.services.payout_service import PayoutService
from creator_ledger.utils.clock import utcnow

logger = structlog.get_logger(__name__)


class SecurityService:
    """Service for fraud flags, chargebacks and IP activity."""

    def __init__(self, db: AsyncSession, schedule: RateSchedule = DEFAULT_RATE_SCHEDULE):
        self.db = db
        self.payouts = PayoutService(db, schedule)

    # ===== Fraud flags =====

    @atomic
    async def create_fraud_flag(
        self,
        creator_id: str,
        flag_type: str,
        severity: str,
        description: str,
        admin_id: str,
        evidence: Optional[Dict[str, Any]] = None
    ) -> FraudFlag:
        try:
            severity = FraudSeverity(severity).value
        except ValueError:
            raise ValidationError(
                "Invalid severity",
                {"severity": severity, "allowed": [s.value for s in FraudSeverity]}
            )
        if not flag_type or not description:
            raise ValidationError("Flag type and description are required")

        now = utcnow()
        flag = FraudFlag(
            creator_id=creator_id,
            flag_type=flag_type,
            severity=severity,
            description=description,
            evidence=evidence or {},
            status=FraudFlagStatus.PENDING.value,
            raised_by=admin_id,
            created_at=now,
            updated_at=now,
        )
        self.db.add(flag)
        await self.db.flush()

        logger.info(
            "Fraud flag created",
            flag_id=flag.id,
            creator_id=creator_id,
            flag_type=flag_type,
            severity=severity
        )
        return flag

    @atomic
    async def update_fraud_flag(
        self,
        flag_id: int,
        status: str,
        admin_id: str,
        action_taken: Optional[str] = None
    ) -> FraudFlag:
        """Change a flag's status. Resolving or confirming stamps resolved_at."""
        try:
            new_status = FraudFlagStatus(status)
        except ValueError:
            raise ValidationError(
                "Invalid fraud flag status",
                {"status": status, "allowed": [s.value for s in FraudFlagStatus]}
            )

        result = await self.db.execute(
            select(FraudFlag).where(FraudFlag.id == flag_id).with_for_update()
        )
        flag = result.scalar_one_or_none()
        if not flag:
            raise FraudFlagNotFoundError(flag_id)

        now = utcnow()
        flag.status = new_status.value
        flag.resolved_by = admin_id
        flag.updated_at = now
        if action_taken is not None:
            flag.action_taken = action_taken
        if new_status in (FraudFlagStatus.RESOLVED, FraudFlagStatus.CONFIRMED):
            flag.resolved_at = now
        await self.db.flush()

        logger.info("Fraud flag updated", flag_id=flag_id, status=flag.status, admin_id=admin_id)
        return flag

    async def list_fraud_flags(
        self,
        status: Optional[str] = None,
        severity: Optional[str] = None,
        creator_id: Optional[str] = None,
        limit: int = 100
    ) -> List[FraudFlag]:
        query = select(FraudFlag)
        if status:
            query = query.where(FraudFlag.status == status)
        if severity:
            query = query.where(FraudFlag.severity == severity)
        if creator_id:
            query = query.where(FraudFlag.creator_id == creator_id)
        result = await self.db.execute(
            query.order_by(desc(FraudFlag.created_at), desc(FraudFlag.id)).limit(limit)
        )
        return list(result.scalars().all())

    # ===== Chargebacks =====

    @atomic
    async def file_chargeback(
        self,
        creator_id: str,
        payout_request_id: int,
        amount_usd: Decimal,
        reason: str,
        admin_id: str
    ) -> Chargeback:
        """
        Reverse a completed payout.

        Inserts the chargeback, debits the creator, flips the request to
        charged_back and completes the chargeback, all or nothing.
        """
        command = FileChargeback(
            request_id=payout_request_id,
            creator_id=creator_id,
            amount_usd=amount_usd,
            reason=reason,
        )
        return await self.payouts.execute(command, admin_id)

    async def list_chargebacks(self, creator_id: Optional[str] = None, limit: int = 100) -> List[Chargeback]:
        query = select(Chargeback)
        if creator_id:
            query = query.where(Chargeback.creator_id == creator_id)
        result = await self.db.execute(
            query.order_by(desc(Chargeback.initiated_at), desc(Chargeback.id)).limit(limit)
        )
        return list(result.scalars().all())

    # ===== IP activity =====

    @atomic
    async def log_ip_activity(
        self,
        creator_id: str,
        ip_address: str,
        action: str,
        user_agent: Optional[str] = None
    ) -> IPActivityLog:
        """Append an IP log entry, flagging it when the creator hops between many IPs."""
        now = utcnow()
        since = now - timedelta(hours=settings.ip_log_window_hours)

        result = await self.db.execute(
            select(func.count(func.distinct(IPActivityLog.ip_address))).where(
                IPActivityLog.creator_id == creator_id,
                IPActivityLog.timestamp >= since,
                IPActivityLog.ip_address != ip_address,
            )
        )
        distinct_ips = result.scalar_one() + 1

        entry = IPActivityLog(
            creator_id=creator_id,
            ip_address=ip_address,
            action=action,
            user_agent=user_agent,
            is_suspicious=distinct_ips > settings.ip_log_suspicious_distinct_ips,
            timestamp=now,
        )
        self.db.add(entry)
        await self.db.flush()

        if entry.is_suspicious:
            logger.warning(
                "Suspicious IP activity",
                creator_id=creator_id,
                distinct_ips=distinct_ips,
                action=action
            )
        return entry

    async def list_ip_logs(
        self,
        creator_id: Optional[str] = None,
        days: int = 7,
        suspicious_only: bool = False,
        limit: int = 100
    ) -> List[IPActivityLog]:
        since = utcnow() - timedelta(days=days)
        query = select(IPActivityLog).where(IPActivityLog.timestamp >= since)
        if creator_id:
            query = query.where(IPActivityLog.creator_id == creator_id)
        if suspicious_only:
            query = query.where(IPActivityLog.is_suspicious == True)
        result = await self.db.execute(
            query.order_by(desc(IPActivityLog.timestamp), desc(IPActivityLog.id)).limit(limit)
        )
        return list(result.scalars().all())


async def record_ip_activity(
    creator_id: str,
    ip_address: Optional[str],
    action: str,
    user_agent: Optional[str] = None
) -> None:
    """
    Background task: log IP activity in its own session.

    Failures are logged and swallowed; they never affect the request that
    scheduled them.
    """
    if not ip_address:
        return
    try:
        async with get_async_session() as session:
            await SecurityService(session).log_ip_activity(creator_id, ip_address, action, user_agent)
    except Exception as e:
        logger.error("Failed to record IP activity", creator_id=creator_id, action=action, error=str(e))
