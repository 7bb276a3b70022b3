"""
backend/tests/test_settlement.py

Purpose:
    Settlement engine against a real database: payout identities, refund
    cases, idempotent re-runs, full rollback on failure and cancellation.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from database.session import get_db_session
from models import BetResult, RoundResult, RoundStatus, WalletTransaction
from utils.errors import InvalidRoundTransition, RoundNotFound, SettlementFailure


async def _transaction_count() -> int:
    async with get_db_session() as db:
        return await db.scalar(select(func.count(WalletTransaction.id)))


async def _three_bettor_round(fund, open_round, place):
    """A UP 1000, B UP 500, C DOWN 2000 on one round started at 50000."""
    a, b, c = uuid4(), uuid4(), uuid4()
    for user_id in (a, b, c):
        await fund(user_id)
    round = await open_round("50000")
    await place(a, round.id, "up", "1000")
    await place(b, round.id, "up", "500")
    await place(c, round.id, "down", "2000")
    return round, a, b, c


@pytest.mark.asyncio
async def test_normal_settlement_pays_winners_from_losing_pool(
    engine, fund, open_round, place, lock_and_settle, wallet_of, load_round
):
    round, a, b, c = await _three_bettor_round(fund, open_round, place)

    summary = await lock_and_settle(round.id, "50250.5")

    assert summary.plan.result == RoundResult.UP
    stored = await load_round(round.id)
    assert stored.status == RoundStatus.COMPLETED
    assert stored.result == RoundResult.UP
    assert stored.end_price == Decimal("50250.5")
    assert stored.is_processed
    assert stored.platform_cut == Decimal("480.00")
    assert stored.prize_pool == Decimal("1120.00")

    bets = {bet.user_id: bet for bet in stored.bets}
    assert all(bet.is_paid for bet in bets.values())
    assert bets[a].result == BetResult.WIN and bets[a].payout == Decimal("1546.67")
    assert bets[b].result == BetResult.WIN and bets[b].payout == Decimal("773.33")
    assert bets[c].result == BetResult.LOSS and bets[c].payout == Decimal("0")
    assert bets[c].profit == Decimal("-2000.00")

    winners = [bets[a], bets[b]]
    assert sum(w.payout for w in winners) == sum(w.stake_amount for w in winners) + stored.prize_pool
    assert stored.prize_pool + stored.platform_cut == bets[c].stake_amount

    assert (await wallet_of(a)).available == Decimal("10546.67")
    assert (await wallet_of(b)).available == Decimal("10273.33")
    loser = await wallet_of(c)
    assert loser.available == Decimal("8000.00")
    for user_id in (a, b, c):
        wallet = await wallet_of(user_id)
        assert wallet.locked_balance == Decimal("0.00")


@pytest.mark.asyncio
async def test_settlement_events_and_loss_hook(
    engine, fund, open_round, place, lock_and_settle, publisher, commission_hook
):
    round, a, b, c = await _three_bettor_round(fund, open_round, place)

    await lock_and_settle(round.id, "49000")

    ended = publisher.of_type("round_ended")
    assert len(ended) == 1
    assert ended[0].round_id == round.id
    assert ended[0].result == RoundResult.DOWN
    assert {e.user_id for e in publisher.of_type("balance_update")} >= {a, b, c}

    # DOWN won: A and B lost
    assert sorted(loss[0] for loss in commission_hook.losses) == sorted([a, b])


@pytest.mark.asyncio
async def test_tie_refunds_every_bet(engine, fund, open_round, place, lock_and_settle, wallet_of, load_round):
    round, a, b, c = await _three_bettor_round(fund, open_round, place)

    summary = await lock_and_settle(round.id, "50000")

    assert summary.plan.is_refund
    stored = await load_round(round.id)
    assert stored.status == RoundStatus.COMPLETED
    assert stored.result == RoundResult.TIE
    assert stored.platform_cut == Decimal("0")
    for bet in stored.bets:
        assert bet.result == BetResult.REFUND
        assert bet.payout == bet.total_amount
        assert bet.profit == Decimal("0")
    for user_id in (a, b, c):
        wallet = await wallet_of(user_id)
        assert wallet.available == Decimal("10000.00")
        assert wallet.locked_balance == Decimal("0.00")


@pytest.mark.asyncio
async def test_tie_threshold_turns_small_move_into_tie(
    engine, fund, open_round, place, lock_and_settle, load_round
):
    engine.settlement.settings = engine.settlement.settings.model_copy(
        update={"tie_threshold_percent": Decimal("0.01")}
    )
    round, *_ = await _three_bettor_round(fund, open_round, place)

    await lock_and_settle(round.id, "50003")

    stored = await load_round(round.id)
    assert stored.result == RoundResult.TIE


@pytest.mark.asyncio
async def test_one_sided_round_is_refunded(engine, fund, open_round, place, lock_and_settle, wallet_of, load_round):
    users = [uuid4() for _ in range(5)]
    round = await open_round()
    for user_id in users:
        await fund(user_id)
        await place(user_id, round.id, "up", "200")

    await lock_and_settle(round.id, "51000")

    stored = await load_round(round.id)
    assert stored.result == RoundResult.UP
    assert stored.prize_pool == Decimal("0")
    assert all(bet.result == BetResult.REFUND for bet in stored.bets)
    for user_id in users:
        assert (await wallet_of(user_id)).available == Decimal("10000.00")


@pytest.mark.asyncio
async def test_all_losers_round_is_refunded(engine, fund, open_round, place, lock_and_settle, load_round, commission_hook):
    users = [uuid4(), uuid4()]
    round = await open_round()
    for user_id in users:
        await fund(user_id)
        await place(user_id, round.id, "down", "300")

    await lock_and_settle(round.id, "51000")

    stored = await load_round(round.id)
    assert all(bet.result == BetResult.REFUND for bet in stored.bets)
    assert commission_hook.losses == []


@pytest.mark.asyncio
async def test_round_without_bets_completes(engine, open_round, lock_and_settle, load_round):
    round = await open_round()

    summary = await lock_and_settle(round.id, "49999")

    assert summary.bets_settled == 0
    stored = await load_round(round.id)
    assert stored.status == RoundStatus.COMPLETED
    assert stored.result == RoundResult.DOWN


@pytest.mark.asyncio
async def test_settling_twice_is_a_no_op(engine, fund, open_round, place, lock_and_settle, wallet_of):
    round, a, *_ = await _three_bettor_round(fund, open_round, place)
    await lock_and_settle(round.id, "50100")
    transactions = await _transaction_count()
    balance = (await wallet_of(a)).balance

    async with get_db_session() as db:
        again = await engine.settlement.settle_round(db, round.id, Decimal("40000"))

    assert again is None
    assert await _transaction_count() == transactions
    assert (await wallet_of(a)).balance == balance


@pytest.mark.asyncio
async def test_active_round_is_not_settled(engine, open_round, load_round):
    round = await open_round()

    async with get_db_session() as db:
        assert await engine.settlement.settle_round(db, round.id, Decimal("1")) is None

    assert (await load_round(round.id)).status == RoundStatus.ACTIVE


@pytest.mark.asyncio
async def test_failure_rolls_back_everything(
    engine, fund, open_round, place, wallet_of, load_round, monkeypatch
):
    round, a, b, c = await _three_bettor_round(fund, open_round, place)
    async with get_db_session() as db:
        await engine.rounds.lock_round(db, round.id)
    transactions = await _transaction_count()

    async def _broken_settle_loss(*args, **kwargs):
        raise RuntimeError("ledger unavailable")

    monkeypatch.setattr(engine.ledger, "settle_loss", _broken_settle_loss)

    with pytest.raises(SettlementFailure) as exc_info:
        async with get_db_session() as db:
            await engine.settlement.settle_round(db, round.id, Decimal("50100"))
    assert exc_info.value.round_id == round.id

    stored = await load_round(round.id)
    assert stored.status == RoundStatus.LOCKED
    assert not stored.is_processed
    assert all(bet.result == BetResult.PENDING for bet in stored.bets)
    assert await _transaction_count() == transactions
    winner = await wallet_of(a)
    assert winner.available == Decimal("9000.00")
    assert winner.locked_balance == Decimal("800.00")

    # Next attempt starts from scratch and succeeds
    monkeypatch.undo()
    async with get_db_session() as db:
        summary = await engine.settlement.settle_round(db, round.id, Decimal("50100"))
    assert summary.bets_settled == 3
    assert (await wallet_of(a)).available == Decimal("10546.67")


@pytest.mark.asyncio
async def test_settlement_without_start_price_fails(engine, clock, load_round):
    async with get_db_session() as db:
        round = await engine.rounds.create_round(db, clock())
        round.status = RoundStatus.LOCKED
        await db.commit()

    with pytest.raises(SettlementFailure):
        async with get_db_session() as db:
            await engine.settlement.settle_round(db, round.id, Decimal("50000"))

    assert (await load_round(round.id)).status == RoundStatus.LOCKED


@pytest.mark.asyncio
async def test_cancel_refunds_and_closes_round(
    engine, fund, open_round, place, wallet_of, load_round, publisher
):
    round, a, b, c = await _three_bettor_round(fund, open_round, place)

    async with get_db_session() as db:
        summary = await engine.settlement.cancel_round(db, round.id, "price feed outage")

    assert summary.bets_settled == 3
    stored = await load_round(round.id)
    assert stored.status == RoundStatus.CANCELLED
    assert stored.result == RoundResult.CANCELLED
    assert stored.cancel_reason == "price feed outage"
    assert stored.is_processed
    assert all(bet.result == BetResult.REFUND for bet in stored.bets)
    for user_id in (a, b, c):
        assert (await wallet_of(user_id)).available == Decimal("10000.00")
    assert publisher.of_type("round_ended")[-1].result == RoundResult.CANCELLED

    with pytest.raises(InvalidRoundTransition):
        async with get_db_session() as db:
            await engine.settlement.cancel_round(db, round.id, "again")


@pytest.mark.asyncio
async def test_cancel_upcoming_round_and_unknown_round(engine, clock, load_round):
    async with get_db_session() as db:
        upcoming = await engine.rounds.create_round(db, clock())
        await db.commit()

    async with get_db_session() as db:
        await engine.settlement.cancel_round(db, upcoming.id, "maintenance")
    assert (await load_round(upcoming.id)).status == RoundStatus.CANCELLED

    with pytest.raises(RoundNotFound):
        async with get_db_session() as db:
            await engine.settlement.cancel_round(db, uuid4(), "missing")
