"""
Test helpers shared across modules.
"""

from decimal import Decimal

from creator_ledger.services.earnings_service import EarningsService
from creator_ledger.services.pin_service import PinService
from creator_ledger.services.wallet_service import WalletService


CREATOR = "creator-1"
ADMIN = "admin-1"
INGEST_KEY = "test-ingest-key"
PIN = "1234"
SOL_ADDRESS = "7xKXtg2CW87d97TXJSDpbD5jBkheTqA83TZRuJosgAsU"
TRC_ADDRESS = "TQn9Y2khEsLJW1ChVWFMSMeRDow5KcbLSE"


def creator_headers(creator_id: str = CREATOR) -> dict:
    return {"Authorization": f"Bearer {creator_id}"}


def admin_headers(admin_id: str = ADMIN) -> dict:
    return {"Authorization": f"Bearer {admin_id}"}


def ingest_headers() -> dict:
    return {"Authorization": f"Bearer {INGEST_KEY}"}


async def accrue(db, views: int, creator_id: str = CREATOR, content_id: str = "movie-1"):
    record = await EarningsService(db).accrue(creator_id, content_id, "movie", views)
    assert record is not None
    return record


async def fund(db, amount: str, creator_id: str = CREATOR):
    return await EarningsService(db).fund(creator_id, Decimal(amount), "test credit", ADMIN)


async def set_up_withdrawals(db, creator_id: str = CREATOR):
    """Register a wallet and PIN so submissions pass the setup check."""
    await WalletService(db).set_wallet(creator_id, "SOL", SOL_ADDRESS)
    await PinService(db).create_or_change(creator_id, PIN)
