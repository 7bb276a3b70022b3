"""Bet admission and bet queries."""

import logging
from dataclasses import dataclass
from decimal import Decimal
from functools import partial
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from config import Settings, settings as default_settings
from models import Bet, BetResult, Prediction, Round, RoundStatus, Wallet
from schemas.websocket import WSBetPlaced
from services.commission_service import CommissionHook, NoopCommissionHook
from services.ledger_service import LedgerService, ledger_service
from services.lifecycle_events import (
    EventPublisher,
    LoggingEventPublisher,
    balance_event,
    run_post_commit,
)
from services.payout_calculator import (
    estimate_multipliers,
    potential_payout,
    split_amount,
)
from utils.errors import BetRejected, DuplicateBet, InvalidAmount, RoundNotOpen
from utils.money import CENT, to_decimal
from utils.time_utils import Clock, ensure_utc, utcnow

logger = logging.getLogger(__name__)


@dataclass
class BetPlacement:
    """Outcome of a successful bet admission."""
    bet: Bet
    round: Round
    wallet: Wallet
    multipliers: dict[str, Decimal]
    is_first_bet: bool

    @property
    def multiplier(self) -> Decimal:
        return self.multipliers[self.bet.prediction]

    @property
    def potential_payout(self) -> Decimal:
        return potential_payout(self.bet.stake_amount, self.multiplier)


class BetService:
    """
    Admits bets against active rounds.

    All checks and mutations of one admission share a single transaction:
    the round row is locked first, so a concurrent lock transition either
    sees the new bet in the pool or the bet sees the round as locked.
    """

    def __init__(
        self,
        settings: Settings = default_settings,
        ledger: LedgerService = ledger_service,
        events: Optional[EventPublisher] = None,
        commission_hook: Optional[CommissionHook] = None,
        clock: Clock = utcnow,
    ):
        self.settings = settings
        self.ledger = ledger
        self.events = events or LoggingEventPublisher()
        self.commission_hook = commission_hook or NoopCommissionHook()
        self.clock = clock

    def validate_amount(self, amount: Decimal) -> Decimal:
        """Check bet bounds and precision."""
        try:
            amount = to_decimal(amount)
        except (TypeError, ArithmeticError) as e:
            raise InvalidAmount(f"Invalid bet amount: {amount}") from e

        if not amount.is_finite() or amount != amount.quantize(CENT):
            raise InvalidAmount(f"Bet amount {amount} must have at most 2 decimals")
        if amount < self.settings.min_bet or amount > self.settings.max_bet:
            raise InvalidAmount(
                f"Bet must be between {self.settings.min_bet} and {self.settings.max_bet}"
            )
        return amount

    async def place_bet(
        self,
        db: AsyncSession,
        user_id: UUID,
        round_id: UUID,
        prediction: str,
        amount: Decimal,
    ) -> BetPlacement:
        """
        Admit a bet.

        Process:
        1. Validate amount bounds
        2. Lock the round row; it must be active and before lock time
        3. Reject a second bet by the same user on the round
        4. Debit the wallet (fails when available balance is too low)
        5. Record the bet and bump the round's pool counters

        Raises:
            InvalidAmount, RoundNotOpen, DuplicateBet, InsufficientFunds
        """
        amount = self.validate_amount(amount)
        if prediction not in Prediction.ALL:
            raise BetRejected(f"Prediction must be one of {Prediction.ALL}")

        try:
            placement = await self._admit(db, user_id, round_id, prediction, amount)
            await db.commit()
        except IntegrityError as e:
            await db.rollback()
            if await self._find_existing_bet(db, user_id, round_id) is None:
                raise
            logger.info(f"Concurrent duplicate bet by {user_id} on round {round_id}")
            raise DuplicateBet("You already have a bet on this round") from e
        except Exception:
            await db.rollback()
            raise

        bet = placement.bet
        round = placement.round
        logger.info(
            f"Bet placed: user {user_id} {prediction.upper()} ${amount} "
            f"(stake ${bet.stake_amount}, fee ${bet.fee_amount}) on round #{round.round_number}"
        )

        actions = [
            ("bet_placed", partial(self.events.publish, self._bet_placed_event(placement))),
            ("balance_update", partial(self.events.publish, balance_event(placement.wallet))),
        ]
        if placement.is_first_bet:
            actions.append((
                "on_first_bet",
                partial(self.commission_hook.on_first_bet, user_id, bet.id, bet.stake_amount),
            ))
        await run_post_commit(actions)
        return placement

    async def _admit(
        self,
        db: AsyncSession,
        user_id: UUID,
        round_id: UUID,
        prediction: str,
        amount: Decimal,
    ) -> BetPlacement:
        result = await db.execute(
            select(Round).where(Round.id == round_id).with_for_update()
        )
        round = result.scalar_one_or_none()
        now = self.clock()
        if round is None or round.status != RoundStatus.ACTIVE:
            raise RoundNotOpen("Round is not accepting bets")
        if now >= ensure_utc(round.lock_time):
            raise RoundNotOpen("Betting for this round has closed")

        if await self._find_existing_bet(db, user_id, round_id) is not None:
            raise DuplicateBet("You already have a bet on this round")

        fee_amount, stake_amount = split_amount(amount, self.settings.fee_percent)
        bet_id = uuid4()
        wallet = await self.ledger.lock(
            db, user_id, amount, stake_amount, bet_id=bet_id, round_id=round_id
        )

        bet = Bet(
            id=bet_id,
            user_id=user_id,
            round_id=round_id,
            prediction=prediction,
            total_amount=amount,
            fee_amount=fee_amount,
            stake_amount=stake_amount,
            result=BetResult.PENDING,
            payout=Decimal("0"),
            is_paid=False,
        )
        db.add(bet)

        if prediction == Prediction.UP:
            round.up_stake_total += stake_amount
            round.up_bet_count += 1
        else:
            round.down_stake_total += stake_amount
            round.down_bet_count += 1
        round.fee_collected += fee_amount

        await db.flush()

        bet_count = await db.scalar(
            select(func.count(Bet.id)).where(Bet.user_id == user_id)
        )
        return BetPlacement(
            bet=bet,
            round=round,
            wallet=wallet,
            multipliers=estimate_multipliers(
                round.up_stake_total,
                round.down_stake_total,
                self.settings.platform_cut_percent,
            ),
            is_first_bet=bet_count == 1,
        )

    async def _find_existing_bet(
        self,
        db: AsyncSession,
        user_id: UUID,
        round_id: UUID,
    ) -> Optional[Bet]:
        result = await db.execute(
            select(Bet)
            .where(Bet.user_id == user_id)
            .where(Bet.round_id == round_id)
        )
        return result.scalar_one_or_none()

    def _bet_placed_event(self, placement: BetPlacement) -> WSBetPlaced:
        round = placement.round
        return WSBetPlaced(
            round_id=round.id,
            round_number=round.round_number,
            prediction=placement.bet.prediction,
            amount=placement.bet.stake_amount,
            up_stake_total=round.up_stake_total,
            down_stake_total=round.down_stake_total,
            up_bet_count=round.up_bet_count,
            down_bet_count=round.down_bet_count,
            up_multiplier=placement.multipliers[Prediction.UP],
            down_multiplier=placement.multipliers[Prediction.DOWN],
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_bet(self, db: AsyncSession, bet_id: UUID) -> Optional[Bet]:
        """Get a bet by ID."""
        result = await db.execute(select(Bet).where(Bet.id == bet_id))
        return result.scalar_one_or_none()

    async def get_round_bets(self, db: AsyncSession, round_id: UUID) -> list[Bet]:
        """Get all bets on a round."""
        result = await db.execute(
            select(Bet)
            .where(Bet.round_id == round_id)
            .order_by(Bet.created_at, Bet.id)
        )
        return list(result.scalars().all())

    async def get_active_bets(self, db: AsyncSession, user_id: UUID) -> list[Bet]:
        """A user's pending bets with their rounds loaded."""
        result = await db.execute(
            select(Bet)
            .options(selectinload(Bet.round))
            .where(Bet.user_id == user_id)
            .where(Bet.result == BetResult.PENDING)
            .order_by(Bet.created_at.desc())
        )
        return list(result.scalars().all())

    async def get_bet_history(
        self,
        db: AsyncSession,
        user_id: UUID,
        result: Optional[str] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[Bet], int]:
        """A user's settled bets, newest first, with the total count."""
        query = select(Bet).where(Bet.user_id == user_id)
        if result is not None:
            query = query.where(Bet.result == result)
        else:
            query = query.where(Bet.result != BetResult.PENDING)

        total = await db.scalar(select(func.count()).select_from(query.subquery()))
        rows = await db.execute(
            query.options(selectinload(Bet.round))
            .order_by(Bet.created_at.desc())
            .offset(offset)
            .limit(limit)
        )
        return list(rows.scalars().all()), total or 0

    def bet_multiplier(self, bet: Bet) -> Decimal:
        """Live multiplier for a pending bet's side of its round."""
        multipliers = estimate_multipliers(
            bet.round.up_stake_total,
            bet.round.down_stake_total,
            self.settings.platform_cut_percent,
        )
        return multipliers[bet.prediction]
