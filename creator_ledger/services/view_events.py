"""
View event ingestion.

Content views arrive as fire-and-forget increments and are credited in a
session of their own, outside of any request transaction.
"""

import structlog

from creator_ledger.core.database import get_async_session
from creator_ledger.services.earnings_service import EarningsService

logger = structlog.get_logger(__name__)


async def on_content_viewed(creator_id: str, content_id: str, content_type: str, count: int) -> None:
    """Credit ``count`` views. Never raises."""
    try:
        async with get_async_session() as session:
            record = await EarningsService(session).accrue(creator_id, content_id, content_type, count)
    except Exception as e:
        logger.error("View event dropped", creator_id=creator_id, content_id=content_id, error=str(e))
        return

    if record is None:
        logger.warning("View event not credited", creator_id=creator_id, content_id=content_id, count=count)
