"""
backend/tests/test_commission.py

Purpose:
    Referral commission hook: first-bet bonus, influencer loss commission,
    idempotence on bet id and isolation from bet admission.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from database.session import get_db_session
from models import CommissionEarning, CommissionKind
from services.commission_service import ReferralCommissionHook, Referrer
from services.ledger_service import LedgerService
from services.round_engine import build_round_engine
from utils.errors import CommissionHookFailure


def _lookup_for(mapping):
    async def _lookup(user_id):
        return mapping.get(user_id)
    return _lookup


async def _earnings() -> list[CommissionEarning]:
    async with get_db_session() as db:
        result = await db.execute(select(CommissionEarning))
        return list(result.scalars().all())


@pytest.mark.asyncio
async def test_first_bet_bonus_paid_once(database, wallet_of):
    user_id, referrer_id, bet_id = uuid4(), uuid4(), uuid4()
    hook = ReferralCommissionHook(
        _lookup_for({user_id: Referrer(user_id=referrer_id)}),
        ledger=LedgerService(),
        first_bet_bonus_percent=Decimal("5"),
    )

    await hook.on_first_bet(user_id, bet_id, Decimal("800"))
    await hook.on_first_bet(user_id, bet_id, Decimal("800"))

    wallet = await wallet_of(referrer_id)
    assert wallet.available == Decimal("40.00")
    earnings = await _earnings()
    assert len(earnings) == 1
    assert earnings[0].kind == CommissionKind.FIRST_BET
    assert earnings[0].bet_id == bet_id
    assert earnings[0].user_id == user_id


@pytest.mark.asyncio
async def test_regular_referrer_earns_nothing_on_losses(database):
    user_id = uuid4()
    hook = ReferralCommissionHook(
        _lookup_for({user_id: Referrer(user_id=uuid4())}),
        ledger=LedgerService(),
    )

    await hook.on_bet_lost(user_id, uuid4(), Decimal("800"))

    assert await _earnings() == []


@pytest.mark.asyncio
async def test_influencer_earns_share_of_losing_stake(database, wallet_of):
    user_id, influencer_id, bet_id = uuid4(), uuid4(), uuid4()
    influencer = Referrer(
        user_id=influencer_id,
        is_influencer=True,
        commission_percent=Decimal("10"),
    )
    hook = ReferralCommissionHook(_lookup_for({user_id: influencer}), ledger=LedgerService())

    await hook.on_first_bet(user_id, bet_id, Decimal("800"))
    await hook.on_bet_lost(user_id, bet_id, Decimal("800"))
    await hook.on_bet_lost(user_id, bet_id, Decimal("800"))

    wallet = await wallet_of(influencer_id)
    assert wallet.available == Decimal("80.00")
    earnings = await _earnings()
    assert [e.kind for e in earnings] == [CommissionKind.LOSS]


@pytest.mark.asyncio
async def test_user_without_referrer(database):
    hook = ReferralCommissionHook(_lookup_for({}), ledger=LedgerService())

    await hook.on_first_bet(uuid4(), uuid4(), Decimal("800"))

    async with get_db_session() as db:
        assert await db.scalar(select(func.count(CommissionEarning.id))) == 0


@pytest.mark.asyncio
async def test_lookup_error_is_wrapped(database):
    async def _lookup(user_id):
        raise ConnectionError("user service down")

    hook = ReferralCommissionHook(_lookup, ledger=LedgerService())

    with pytest.raises(CommissionHookFailure):
        await hook.on_first_bet(uuid4(), uuid4(), Decimal("800"))


@pytest.mark.asyncio
async def test_hook_failure_does_not_undo_bet(
    database, test_settings, clock, oracle, publisher, fund, wallet_of
):
    async def _lookup(user_id):
        raise ConnectionError("user service down")

    ledger = LedgerService()
    engine = build_round_engine(
        settings=test_settings,
        oracle=oracle,
        events=publisher,
        commission_hook=ReferralCommissionHook(_lookup, ledger=ledger),
        ledger=ledger,
        clock=clock,
    )
    user_id = uuid4()
    await fund(user_id)

    async with get_db_session() as db:
        created = await engine.rounds.create_round(db)
        await db.commit()
    async with get_db_session() as db:
        await engine.rounds.start_round(db, created.id, Decimal("50000"))
    async with get_db_session() as db:
        placement = await engine.bets.place_bet(db, user_id, created.id, "up", Decimal("1000"))

    assert placement.is_first_bet
    assert (await wallet_of(user_id)).available == Decimal("9000.00")
    assert "bet_placed" in publisher.types()


@pytest.mark.asyncio
async def test_referrer_credited_after_first_bet(
    database, test_settings, clock, oracle, publisher, fund, wallet_of
):
    user_id, referrer_id = uuid4(), uuid4()
    ledger = LedgerService()
    engine = build_round_engine(
        settings=test_settings,
        oracle=oracle,
        events=publisher,
        commission_hook=ReferralCommissionHook(
            _lookup_for({user_id: Referrer(user_id=referrer_id)}),
            ledger=ledger,
            first_bet_bonus_percent=Decimal("5"),
        ),
        ledger=ledger,
        clock=clock,
    )
    await fund(user_id)

    async with get_db_session() as db:
        created = await engine.rounds.create_round(db)
        await db.commit()
    async with get_db_session() as db:
        await engine.rounds.start_round(db, created.id, Decimal("50000"))
    async with get_db_session() as db:
        await engine.bets.place_bet(db, user_id, created.id, "down", Decimal("1000"))

    assert (await wallet_of(referrer_id)).available == Decimal("40.00")
