"""
Test the HTTP surface end to end through the ASGI app.
"""

from decimal import Decimal

import pytest

from tests.helpers import (
    ADMIN, CREATOR, PIN, SOL_ADDRESS, TRC_ADDRESS, admin_headers, creator_headers, ingest_headers,
)

API = "/api/v1"


def withdrawal(amount: str) -> dict:
    return {"amount_usd": amount, "pin": PIN, "crypto_type": "SOL", "wallet_address": SOL_ADDRESS}


async def set_up_creator(client, creator_id: str = CREATOR):
    headers = creator_headers(creator_id)
    response = await client.post(
        f"{API}/wallet", json={"crypto_type": "SOL", "wallet_address": SOL_ADDRESS}, headers=headers
    )
    assert response.status_code == 200
    response = await client.post(f"{API}/pin", json={"new_pin": PIN}, headers=headers)
    assert response.status_code == 200


async def admin_fund(client, amount: str, creator_id: str = CREATOR):
    response = await client.post(
        f"{API}/admin/creators/balance",
        json={"creator_id": creator_id, "action": "fund", "amount_usd": amount, "reason": "test"},
        headers=admin_headers(),
    )
    assert response.status_code == 200
    return response.json()["data"]


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert response.headers["X-Content-Type-Options"] == "nosniff"


@pytest.mark.asyncio
async def test_creator_auth_required(client):
    response = await client.get(f"{API}/tier")
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_admin_routes_refuse_creators(client):
    response = await client.get(f"{API}/admin/payouts", headers=creator_headers())
    assert response.status_code == 403
    assert response.json()["error"] == "ADMIN_ACCESS_REQUIRED"

    response = await client.get(f"{API}/admin/payouts")
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_view_events_accrue_in_background(client):
    response = await client.post(
        f"{API}/views",
        json={"creator_id": CREATOR, "content_id": "movie-1", "content_type": "movie", "count": 10_000},
        headers=ingest_headers(),
    )
    assert response.status_code == 202

    response = await client.get(f"{API}/earnings", headers=creator_headers())
    assert response.status_code == 200
    data = response.json()["data"]
    assert Decimal(data["current_balance_usd"]) == Decimal("8")
    assert data["lifetime_views"] == 10_000
    assert data["top_content"][0]["content_id"] == "movie-1"


@pytest.mark.asyncio
async def test_view_event_validation(client):
    response = await client.post(
        f"{API}/views",
        json={"creator_id": CREATOR, "content_id": "movie-1", "count": 0},
        headers=ingest_headers(),
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_view_ingestion_refuses_anonymous_and_creator_callers(client):
    event = {"creator_id": CREATOR, "content_id": "movie-1", "content_type": "movie", "count": 1_000_000}

    response = await client.post(f"{API}/views", json=event)
    assert response.status_code == 401

    response = await client.post(f"{API}/views", json=event, headers=creator_headers())
    assert response.status_code == 403
    assert response.json()["error"] == "INGEST_ACCESS_REQUIRED"

    response = await client.post(f"{API}/views", json=event, headers={"Authorization": "Bearer wrong-key"})
    assert response.status_code == 403

    response = await client.get(f"{API}/earnings", headers=creator_headers())
    data = response.json()["data"]
    assert Decimal(data["current_balance_usd"]) == Decimal("0")
    assert data["lifetime_views"] == 0


@pytest.mark.asyncio
async def test_admins_may_record_views(client):
    response = await client.post(
        f"{API}/views",
        json={"creator_id": CREATOR, "content_id": "movie-1", "count": 1_000},
        headers=admin_headers(),
    )
    assert response.status_code == 202

    response = await client.get(f"{API}/earnings", headers=creator_headers())
    assert response.json()["data"]["lifetime_views"] == 1_000


@pytest.mark.asyncio
async def test_tier_flow(client):
    response = await client.get(f"{API}/tier", headers=creator_headers())
    assert response.status_code == 200
    body = response.json()["data"]
    assert body["tier"]["tier_level"] == "bronze"
    assert body["eligibility"]["next_tier"] == "silver"
    assert body["eligibility"]["views_needed"] == 10_000

    response = await client.post(f"{API}/tier/upgrade-request", headers=creator_headers())
    assert response.status_code == 200
    response = await client.post(f"{API}/tier/upgrade-request", headers=creator_headers())
    assert response.status_code == 400
    assert response.json()["error"] == "TIER_REQUEST_PENDING"

    response = await client.get(f"{API}/admin/tiers/pending", headers=admin_headers())
    assert [t["creator_id"] for t in response.json()["data"]] == [CREATOR]

    response = await client.post(
        f"{API}/admin/tiers/action",
        json={"action": "approve", "creator_id": CREATOR, "new_tier": "silver"},
        headers=admin_headers(),
    )
    assert response.status_code == 200
    assert response.json()["data"]["tier_level"] == "silver"
    assert Decimal(response.json()["data"]["rate_per_view"]) == Decimal("0.005")

    response = await client.post(
        f"{API}/admin/tiers/action",
        json={"action": "manual-adjust", "creator_id": CREATOR, "new_tier": "bronze"},
        headers=admin_headers(),
    )
    assert response.status_code == 400
    assert response.json()["error"] == "TIER_DOWNGRADE"


@pytest.mark.asyncio
async def test_unknown_admin_action_is_rejected(client):
    response = await client.post(
        f"{API}/admin/payouts/action",
        json={"action": "refund", "request_id": 1},
        headers=admin_headers(),
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_wallet_cooldown_over_http(client):
    await set_up_creator(client)

    response = await client.post(
        f"{API}/wallet", json={"crypto_type": "TRC20", "wallet_address": TRC_ADDRESS}, headers=creator_headers()
    )
    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["error"] == "COOLDOWN_ACTIVE"
    assert body["details"]["days_remaining"] == 21

    response = await client.get(f"{API}/wallet", headers=creator_headers())
    assert response.json()["data"]["wallet_address"] == SOL_ADDRESS

    response = await client.get(f"{API}/wallet/history", headers=creator_headers())
    assert response.json()["data"] == []


@pytest.mark.asyncio
async def test_pin_endpoints(client):
    response = await client.get(f"{API}/pin", headers=creator_headers())
    assert response.json()["data"]["has_pin"] is False

    response = await client.post(f"{API}/pin", json={"new_pin": "12"}, headers=creator_headers())
    assert response.status_code == 400
    assert response.json()["error"] == "INVALID_PIN_FORMAT"

    await client.post(f"{API}/pin", json={"new_pin": PIN}, headers=creator_headers())
    response = await client.get(f"{API}/pin", headers=creator_headers())
    assert response.json()["data"]["has_pin"] is True

    response = await client.put(f"{API}/pin", json={"pin": PIN}, headers=creator_headers())
    assert response.status_code == 200
    response = await client.put(f"{API}/pin", json={"pin": "0000"}, headers=creator_headers())
    assert response.status_code == 401
    assert response.json()["error"] == "INVALID_PIN"


@pytest.mark.asyncio
async def test_withdrawal_lifecycle_over_http(client):
    await set_up_creator(client)

    response = await client.post(
        f"{API}/withdrawals", json=withdrawal("18"), headers=creator_headers()
    )
    assert response.status_code == 400
    assert response.json()["error"] == "INSUFFICIENT_BALANCE"

    funded = await admin_fund(client, "20")
    assert Decimal(funded["current_balance_usd"]) == Decimal("20")

    response = await client.post(
        f"{API}/withdrawals", json=withdrawal("18"), headers=creator_headers()
    )
    assert response.status_code == 201
    request_id = response.json()["data"]["id"]
    assert response.json()["data"]["status"] == "pending"

    response = await client.get(f"{API}/admin/payouts", headers=admin_headers())
    assert [r["id"] for r in response.json()["data"]] == [request_id]

    response = await client.post(
        f"{API}/admin/payouts/action",
        json={"action": "approve", "request_id": request_id},
        headers=admin_headers(),
    )
    assert response.status_code == 200
    assert response.json()["data"]["status"] == "approved"
    assert response.json()["data"]["processed_by"] == ADMIN

    response = await client.post(
        f"{API}/admin/payouts/action",
        json={"action": "reject", "request_id": request_id, "rejection_reason": "too late"},
        headers=admin_headers(),
    )
    assert response.status_code == 409
    assert response.json()["error"] == "INVALID_STATE_TRANSITION"

    response = await client.post(
        f"{API}/admin/payouts/action",
        json={"action": "complete", "request_id": request_id, "transaction_hash": "5Kx9abc"},
        headers={"Authorization": "Bearer test-admin-key"},
    )
    assert response.status_code == 200
    assert response.json()["data"]["status"] == "completed"
    assert response.json()["data"]["processed_by"] == "api-key"

    response = await client.get(f"{API}/earnings", headers=creator_headers())
    data = response.json()["data"]
    assert Decimal(data["current_balance_usd"]) == Decimal("2")
    assert Decimal(data["paid_out_usd"]) == Decimal("18")

    response = await client.get(f"{API}/withdrawals", headers=creator_headers())
    assert [r["status"] for r in response.json()["data"]] == ["completed"]

    response = await client.get(f"{API}/admin/ip-logs", params={"creator_id": CREATOR}, headers=admin_headers())
    logs = response.json()["data"]
    assert len(logs) == 1
    assert logs[0]["action"] == "withdrawal_request"


@pytest.mark.asyncio
async def test_paused_creator_gets_forbidden(client):
    await set_up_creator(client)
    await admin_fund(client, "50")

    response = await client.patch(
        f"{API}/admin/creators/settings",
        json={"creator_id": CREATOR, "can_withdraw": False, "paused_reason": "KYC"},
        headers=admin_headers(),
    )
    assert response.status_code == 200
    assert response.json()["data"]["can_withdraw"] is False

    response = await client.post(
        f"{API}/withdrawals", json=withdrawal("18"), headers=creator_headers()
    )
    assert response.status_code == 403
    assert response.json()["error"] == "WITHDRAWALS_PAUSED"


@pytest.mark.asyncio
async def test_fraud_and_chargeback_admin_routes(client):
    await set_up_creator(client)
    await admin_fund(client, "20")
    response = await client.post(
        f"{API}/withdrawals", json=withdrawal("18"), headers=creator_headers()
    )
    request_id = response.json()["data"]["id"]
    for body in (
        {"action": "approve", "request_id": request_id},
        {"action": "complete", "request_id": request_id, "transaction_hash": "tx"},
    ):
        response = await client.post(f"{API}/admin/payouts/action", json=body, headers=admin_headers())
        assert response.status_code == 200

    response = await client.post(
        f"{API}/admin/fraud-flags",
        json={"creator_id": CREATOR, "flag_type": "view_botting", "severity": "high", "description": "bots"},
        headers=admin_headers(),
    )
    assert response.status_code == 201
    flag_id = response.json()["data"]["id"]

    response = await client.patch(
        f"{API}/admin/fraud-flags",
        json={"flag_id": flag_id, "status": "confirmed", "action_taken": "chargeback"},
        headers=admin_headers(),
    )
    assert response.json()["data"]["status"] == "confirmed"

    response = await client.post(
        f"{API}/admin/chargebacks",
        json={"creator_id": CREATOR, "payout_request_id": request_id, "amount_usd": "18", "reason": "fraud"},
        headers=admin_headers(),
    )
    assert response.status_code == 201
    assert response.json()["data"]["status"] == "completed"

    response = await client.get(f"{API}/admin/chargebacks", headers=admin_headers())
    assert len(response.json()["data"]) == 1

    response = await client.get(f"{API}/admin/payouts", params={"status": "charged_back"}, headers=admin_headers())
    assert [r["id"] for r in response.json()["data"]] == [request_id]

    response = await client.get(f"{API}/admin/creators", headers=admin_headers())
    balances = response.json()["data"]
    assert balances[0]["creator_id"] == CREATOR
    assert Decimal(balances[0]["unpaid_usd"]) == Decimal("-16")


@pytest.mark.asyncio
async def test_withdrawal_requires_destination(client):
    await set_up_creator(client)
    await admin_fund(client, "20")

    response = await client.post(
        f"{API}/withdrawals", json={"amount_usd": "18", "pin": PIN}, headers=creator_headers()
    )
    assert response.status_code == 422

    body = withdrawal("18")
    body["wallet_address"] = TRC_ADDRESS
    response = await client.post(f"{API}/withdrawals", json=body, headers=creator_headers())
    assert response.status_code == 400
    assert response.json()["error"] == "WALLET_MISMATCH"

    response = await client.get(f"{API}/withdrawals", headers=creator_headers())
    assert response.json()["data"] == []
