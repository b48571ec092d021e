"""
Shared fixtures: a file-backed SQLite ledger per test and an ASGI client.
"""

import pytest
from httpx import ASGITransport, AsyncClient

from creator_ledger.core import database
from creator_ledger.core.config import settings
from creator_ledger.core.database import init_database, close_database, DatabaseManager

from tests.helpers import ADMIN, INGEST_KEY


@pytest.fixture(autouse=True)
def fast_settings(monkeypatch):
    """Cheap bcrypt rounds, a known admin and an ingestion key for every test."""
    monkeypatch.setattr(settings, "pin_hash_rounds", 4)
    monkeypatch.setattr(settings, "admin_ids", ADMIN)
    monkeypatch.setattr(settings, "admin_api_key", "test-admin-key")
    monkeypatch.setattr(settings, "ingest_api_key", INGEST_KEY)


@pytest.fixture
async def ledger_db(tmp_path):
    """Initialise the global engine against a fresh database file."""
    await init_database(f"sqlite:///{tmp_path / 'ledger.db'}")
    await DatabaseManager.create_tables()
    yield
    await close_database()


@pytest.fixture
async def session(ledger_db):
    async with database.async_session_maker() as db:
        yield db


@pytest.fixture
def session_factory(ledger_db):
    """Open independent sessions, one per simulated request."""
    return database.async_session_maker


@pytest.fixture
async def client(ledger_db):
    from creator_ledger.api.main import app

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as http:
        yield http
