"""
backend/tests/conftest.py

Purpose:
    Shared pytest fixtures: import path bootstrap, a throwaway SQLite
    database per test, and fake clock, oracle, publisher and commission hook
    wired into a round engine.
"""

from __future__ import annotations

import sys
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path

import pytest
import pytest_asyncio

_BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(_BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(_BACKEND_DIR))

from config import settings as base_settings  # noqa: E402
from database.session import (  # noqa: E402
    close_db,
    configure_engine,
    get_db_session,
    init_db,
)
from services.ledger_service import LedgerService  # noqa: E402
from services.round_engine import build_round_engine  # noqa: E402
from utils.errors import PriceUnavailable  # noqa: E402

T0 = datetime(2026, 1, 5, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now += timedelta(seconds=seconds)
        return self.now

    def set(self, moment: datetime) -> datetime:
        self.now = moment
        return self.now


class FakeOracle:
    def __init__(self, price: str = "50000"):
        self.price = Decimal(price)
        self.available = True
        self.near_calls: list[datetime] = []

    async def current_price(self) -> Decimal:
        if not self.available:
            raise PriceUnavailable("price feed down")
        return self.price

    async def price_near(self, moment: datetime) -> Decimal:
        self.near_calls.append(moment)
        return await self.current_price()


class RecordingPublisher:
    def __init__(self):
        self.events = []

    async def publish(self, event) -> None:
        self.events.append(event)

    def types(self) -> list[str]:
        return [e.type.value for e in self.events]

    def of_type(self, name: str) -> list:
        return [e for e in self.events if e.type.value == name]


class RecordingCommissionHook:
    def __init__(self):
        self.first_bets: list[tuple] = []
        self.losses: list[tuple] = []

    async def on_first_bet(self, user_id, bet_id, stake_amount) -> None:
        self.first_bets.append((user_id, bet_id, stake_amount))

    async def on_bet_lost(self, user_id, bet_id, stake_amount) -> None:
        self.losses.append((user_id, bet_id, stake_amount))


@pytest.fixture
def test_settings():
    return base_settings.model_copy(update={
        "min_bet": Decimal("100"),
        "max_bet": Decimal("100000"),
        "fee_percent": Decimal("20"),
        "platform_cut_percent": Decimal("30"),
        "tie_threshold_percent": Decimal("0"),
        "round_duration_seconds": 600,
        "lock_window_seconds": 300,
        "upcoming_buffer_seconds": 10,
        "round_tick_seconds": 30,
        "settlement_alert_threshold": 3,
    })


@pytest_asyncio.fixture
async def database(tmp_path):
    configure_engine(f"sqlite+aiosqlite:///{tmp_path / 'rounds.db'}")
    await init_db()
    yield
    await close_db()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def oracle():
    return FakeOracle()


@pytest.fixture
def publisher():
    return RecordingPublisher()


@pytest.fixture
def commission_hook():
    return RecordingCommissionHook()


@pytest.fixture
def engine(database, test_settings, clock, oracle, publisher, commission_hook):
    return build_round_engine(
        settings=test_settings,
        oracle=oracle,
        events=publisher,
        commission_hook=commission_hook,
        ledger=LedgerService(),
        session_scope=get_db_session,
        clock=clock,
    )


@pytest.fixture
def fund(engine):
    async def _fund(user_id, amount: str = "10000"):
        async with get_db_session() as db:
            wallet = await engine.ledger.credit(db, user_id, Decimal(amount), "test deposit")
            await db.commit()
            return wallet
    return _fund


@pytest.fixture
def wallet_of(engine):
    async def _wallet_of(user_id):
        async with get_db_session() as db:
            return await engine.ledger.get_wallet(db, user_id)
    return _wallet_of


@pytest.fixture
def open_round(engine, clock):
    """Create a round and start it right away at ``start_price``."""
    async def _open_round(start_price: str = "50000"):
        async with get_db_session() as db:
            created = await engine.rounds.create_round(db, clock())
            await db.commit()
        async with get_db_session() as db:
            return await engine.rounds.start_round(db, created.id, Decimal(start_price))
    return _open_round


@pytest.fixture
def place(engine):
    async def _place(user_id, round_id, prediction: str, amount: str):
        async with get_db_session() as db:
            return await engine.bets.place_bet(db, user_id, round_id, prediction, Decimal(amount))
    return _place


@pytest.fixture
def lock_and_settle(engine):
    async def _lock_and_settle(round_id, end_price: str):
        async with get_db_session() as db:
            await engine.rounds.lock_round(db, round_id)
        async with get_db_session() as db:
            return await engine.settlement.settle_round(db, round_id, Decimal(end_price))
    return _lock_and_settle


@pytest.fixture
def load_round(engine):
    async def _load_round(round_id):
        async with get_db_session() as db:
            return await engine.rounds.get_round_with_bets(db, round_id)
    return _load_round
