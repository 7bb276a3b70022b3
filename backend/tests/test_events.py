"""
backend/tests/test_events.py

Purpose:
    Post-commit side effects run in isolation, and WebSocket delivery sends
    balance updates only to their owner.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import uuid4

import pytest

from schemas.websocket import WSBalanceUpdate, WSPriceUpdate
from services.lifecycle_events import run_post_commit
from services.websocket_service import ConnectionManager, WebSocketService
from utils.errors import CommissionHookFailure


class FakeWebSocket:
    def __init__(self, fail: bool = False):
        self.accepted = False
        self.sent: list[dict] = []
        self.fail = fail

    async def accept(self):
        self.accepted = True

    async def send_json(self, message):
        if self.fail:
            raise RuntimeError("connection reset")
        self.sent.append(message)


@pytest.mark.asyncio
async def test_post_commit_actions_are_isolated():
    ran = []

    async def _ok():
        ran.append("ok")

    async def _hook_fails():
        raise CommissionHookFailure("referrer lookup failed")

    async def _crashes():
        raise RuntimeError("publisher gone")

    async def _last():
        ran.append("last")

    failures = await run_post_commit([
        ("ok", _ok),
        ("hook", _hook_fails),
        ("crash", _crashes),
        ("last", _last),
    ])

    assert failures == 2
    assert ran == ["ok", "last"]


@pytest.mark.asyncio
async def test_balance_updates_go_only_to_owner():
    service = WebSocketService(ConnectionManager())
    owner, other = uuid4(), uuid4()
    owner_ws, other_ws, anonymous_ws = FakeWebSocket(), FakeWebSocket(), FakeWebSocket()
    await service.connect(owner_ws, owner)
    await service.connect(other_ws, other)
    await service.connect(anonymous_ws)

    await service.publish(WSBalanceUpdate(
        user_id=owner,
        balance=Decimal("9800"),
        locked_balance=Decimal("800"),
        available=Decimal("9000"),
    ))
    await service.broadcast_price_update(Decimal("50000.5"))

    assert [m["type"] for m in owner_ws.sent] == ["balance_update", "price_update"]
    assert owner_ws.sent[0]["available"] == "9000"
    assert [m["type"] for m in other_ws.sent] == ["price_update"]
    assert [m["type"] for m in anonymous_ws.sent] == ["price_update"]


@pytest.mark.asyncio
async def test_broken_connections_are_dropped():
    manager = ConnectionManager()
    service = WebSocketService(manager)
    user_id = uuid4()
    healthy, broken = FakeWebSocket(), FakeWebSocket(fail=True)
    await service.connect(healthy, user_id)
    await service.connect(broken, user_id)

    await service.publish(WSPriceUpdate(price=Decimal("1")))

    assert manager.get_total_connections() == 1
    assert manager.user_connections[user_id] == {healthy}

    service.disconnect(healthy)
    assert manager.get_total_connections() == 0
    assert user_id not in manager.user_connections
