"""
backend/tests/test_api.py

Purpose:
    HTTP surface over the round engine: bet placement, error mapping,
    round and wallet queries and admin gating.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import uuid4

import httpx
import pytest
import pytest_asyncio

import api.dependencies as api_dependencies
from api.dependencies import get_engine
from main import app


@pytest_asyncio.fixture
async def client(engine):
    app.dependency_overrides[get_engine] = lambda: engine
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
        yield http
    app.dependency_overrides.clear()


@pytest.fixture
def admin_key(monkeypatch):
    monkeypatch.setattr(api_dependencies.settings, "admin_api_key", "test-admin-key")
    return {"X-Admin-Key": "test-admin-key"}


@pytest.mark.asyncio
async def test_place_bet_and_read_pool(client, fund, open_round):
    user_id = uuid4()
    await fund(user_id)
    round = await open_round()

    response = await client.post(
        "/bets",
        json={"round_id": str(round.id), "prediction": "up", "amount": "1000"},
        headers={"X-User-Id": str(user_id)},
    )

    assert response.status_code == 201
    body = response.json()
    assert Decimal(body["bet"]["stake_amount"]) == Decimal("800")
    assert Decimal(body["bet"]["fee_amount"]) == Decimal("200")
    assert Decimal(body["available_balance"]) == Decimal("9000")

    current = await client.get("/rounds/current")
    assert current.status_code == 200
    pool = current.json()
    assert pool["id"] == str(round.id)
    assert Decimal(pool["up_stake_total"]) == Decimal("800")
    assert Decimal(pool["up_multiplier"]) == Decimal("1")
    assert pool["seconds_to_lock"] > 0

    wallet = await client.get("/wallet", headers={"X-User-Id": str(user_id)})
    assert Decimal(wallet.json()["locked_balance"]) == Decimal("800")

    active = await client.get("/bets/active", headers={"X-User-Id": str(user_id)})
    assert [b["round_id"] for b in active.json()] == [str(round.id)]


@pytest.mark.asyncio
async def test_bet_errors_carry_specific_codes(client, fund, open_round):
    user_id = uuid4()
    await fund(user_id)
    round = await open_round()
    headers = {"X-User-Id": str(user_id)}
    payload = {"round_id": str(round.id), "prediction": "down", "amount": "500"}

    assert (await client.post("/bets", json=payload, headers=headers)).status_code == 201

    duplicate = await client.post("/bets", json=payload, headers=headers)
    assert duplicate.status_code == 409
    assert duplicate.json() == {
        "error": {"code": "DUPLICATE_BET", "message": "You already have a bet on this round"}
    }

    too_small = await client.post(
        "/bets", json={**payload, "amount": "50"}, headers={"X-User-Id": str(uuid4())}
    )
    assert too_small.status_code == 400
    assert too_small.json()["error"]["code"] == "INVALID_AMOUNT"

    broke = await client.post("/bets", json=payload, headers={"X-User-Id": str(uuid4())})
    assert broke.status_code == 400
    assert broke.json()["error"]["code"] == "INSUFFICIENT_FUNDS"

    closed = await client.post(
        "/bets", json={**payload, "round_id": str(uuid4())}, headers=headers
    )
    assert closed.status_code == 409
    assert closed.json()["error"]["code"] == "ROUND_NOT_OPEN"


@pytest.mark.asyncio
async def test_bet_requires_user_header(client, open_round):
    round = await open_round()

    response = await client.post(
        "/bets", json={"round_id": str(round.id), "prediction": "up", "amount": "1000"}
    )

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_unknown_round_is_404(client):
    response = await client.get(f"/rounds/{uuid4()}")

    assert response.status_code == 404
    assert response.json()["error"]["code"] == "ROUND_NOT_FOUND"


@pytest.mark.asyncio
async def test_round_history_lists_finished_rounds(client, open_round, lock_and_settle):
    first = await open_round()
    await open_round()
    await lock_and_settle(first.id, "50001")

    response = await client.get("/rounds/history")

    body = response.json()
    assert body["total"] == 1
    assert body["items"][0]["id"] == str(first.id)
    assert body["items"][0]["result"] == "up"


@pytest.mark.asyncio
async def test_admin_endpoints_require_key(client, open_round, monkeypatch):
    monkeypatch.setattr(api_dependencies.settings, "admin_api_key", "")
    round = await open_round()

    cancel = await client.post(f"/rounds/{round.id}/cancel", json={"reason": "test"})
    credit = await client.post("/wallet/credit", json={"user_id": str(uuid4()), "amount": "10"})

    assert cancel.status_code == 403
    assert credit.status_code == 403


@pytest.mark.asyncio
async def test_admin_cancel_and_credit(client, open_round, admin_key):
    round = await open_round()
    user_id = uuid4()

    credit = await client.post(
        "/wallet/credit",
        json={"user_id": str(user_id), "amount": "250.00"},
        headers=admin_key,
    )
    assert credit.status_code == 200
    assert Decimal(credit.json()["available"]) == Decimal("250")

    cancel = await client.post(
        f"/rounds/{round.id}/cancel", json={"reason": "feed outage"}, headers=admin_key
    )
    assert cancel.status_code == 200
    assert cancel.json()["status"] == "cancelled"

    again = await client.post(
        f"/rounds/{round.id}/cancel", json={"reason": "feed outage"}, headers=admin_key
    )
    assert again.status_code == 409
    assert again.json()["error"]["code"] == "INVALID_ROUND_TRANSITION"

    wrong_key = await client.post(
        "/wallet/credit",
        json={"user_id": str(user_id), "amount": "1.00"},
        headers={"X-Admin-Key": "nope"},
    )
    assert wrong_key.status_code == 403
