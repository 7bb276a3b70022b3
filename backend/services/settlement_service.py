"""Settlement engine: round outcome, pari-mutuel payouts, refunds."""

import logging
from dataclasses import dataclass
from decimal import Decimal
from functools import partial
from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from config import Settings, settings as default_settings
from models import Bet, BetResult, Round, RoundResult, RoundStatus, Wallet
from services.commission_service import CommissionHook, NoopCommissionHook
from services.ledger_service import LedgerService, ledger_service
from services.lifecycle_events import (
    EventPublisher,
    LoggingEventPublisher,
    PostCommitAction,
    balance_event,
    round_ended_event,
    run_post_commit,
)
from services.payout_calculator import (
    BetStake,
    SettlementPlan,
    compute_settlement,
    determine_result,
    refund_plan,
)
from utils.errors import InvalidRoundTransition, RoundNotFound, SettlementFailure
from utils.time_utils import Clock, utcnow

logger = logging.getLogger(__name__)


@dataclass
class SettlementSummary:
    """What a committed settlement or cancellation did."""
    round: Round
    plan: SettlementPlan
    wallets: list[Wallet]
    losing_bets: list[Bet]

    @property
    def bets_settled(self) -> int:
        return len(self.plan.outcomes)


class SettlementService:
    """
    Applies the final distribution for a round in one transaction.

    Either every bet of the round reaches a terminal result together with the
    round itself, or nothing is written and the round stays locked for the
    next scheduler tick to retry.
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

    async def settle_round(
        self,
        db: AsyncSession,
        round_id: UUID,
        end_price: Decimal,
    ) -> Optional[SettlementSummary]:
        """
        locked -> completed.

        Process:
        1. Lock the round row; skip unless it is locked and unprocessed
        2. Compare end price with start price
        3. Snapshot the round's bets and compute the distribution
        4. Apply ledger movements and bet results, close the round
        5. After commit: publish events, pay loss commissions

        Returns None when the round was not due for settlement.

        Raises:
            SettlementFailure: anything went wrong; the transaction is rolled back
        """
        try:
            round = await self._get_round_for_update(db, round_id)
            if round.status != RoundStatus.LOCKED or round.is_processed:
                status = round.status
                await db.rollback()
                logger.info(f"Round {round_id} is {status}, nothing to settle")
                return None
            if round.start_price is None:
                raise InvalidRoundTransition(f"Round {round_id} has no start price")

            result = determine_result(
                round.start_price, end_price, self.settings.tie_threshold_percent
            )
            bets = await self._pending_bets(db, round_id)
            plan = compute_settlement(
                [self._stake(b) for b in bets],
                result,
                self.settings.platform_cut_percent,
            )
            wallets = await self._apply_plan(db, round, bets, plan)

            round.status = RoundStatus.COMPLETED
            round.end_price = end_price
            round.result = plan.result
            round.platform_cut = plan.platform_cut
            round.prize_pool = plan.prize_pool
            round.is_processed = True
            round.settled_at = self.clock()
            await db.commit()
        except Exception as e:
            await db.rollback()
            raise SettlementFailure(round_id, e) from e

        losing = [b for b in bets if b.result == BetResult.LOSS]
        summary = SettlementSummary(round=round, plan=plan, wallets=wallets, losing_bets=losing)
        logger.info(
            f"Settled round #{round.round_number}: {round.start_price} -> {end_price} "
            f"= {plan.result.upper()}"
            f"{' (refunded)' if plan.is_refund else ''}, "
            f"{summary.bets_settled} bets, cut ${plan.platform_cut}, pool ${plan.prize_pool}"
        )

        actions = self._publish_actions(summary)
        for bet in losing:
            actions.append((
                f"on_bet_lost:{bet.id}",
                partial(self.commission_hook.on_bet_lost, bet.user_id, bet.id, bet.stake_amount),
            ))
        await run_post_commit(actions)
        return summary

    async def cancel_round(
        self,
        db: AsyncSession,
        round_id: UUID,
        reason: str,
    ) -> SettlementSummary:
        """
        Administrative override: refund every bet and close the round as cancelled.

        Raises:
            RoundNotFound: no such round
            InvalidRoundTransition: round already completed or cancelled
        """
        try:
            round = await self._get_round_for_update(db, round_id)
            if round.status in RoundStatus.TERMINAL:
                raise InvalidRoundTransition(
                    f"Round #{round.round_number} is already {round.status}"
                )

            bets = await self._pending_bets(db, round_id)
            plan = refund_plan([self._stake(b) for b in bets], RoundResult.CANCELLED)
            wallets = await self._apply_plan(db, round, bets, plan, reason=f"Round cancelled: {reason}")

            round.status = RoundStatus.CANCELLED
            round.result = RoundResult.CANCELLED
            round.is_processed = True
            round.cancel_reason = reason
            round.settled_at = self.clock()
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        summary = SettlementSummary(round=round, plan=plan, wallets=wallets, losing_bets=[])
        logger.warning(
            f"Cancelled round #{round.round_number} ({reason}), refunded {len(bets)} bets"
        )
        await run_post_commit(self._publish_actions(summary))
        return summary

    async def _get_round_for_update(self, db: AsyncSession, round_id: UUID) -> Round:
        result = await db.execute(
            select(Round).where(Round.id == round_id).with_for_update()
        )
        round = result.scalar_one_or_none()
        if round is None:
            raise RoundNotFound(f"Round {round_id} not found")
        return round

    async def _pending_bets(self, db: AsyncSession, round_id: UUID) -> list[Bet]:
        result = await db.execute(
            select(Bet)
            .where(Bet.round_id == round_id)
            .where(Bet.result == BetResult.PENDING)
            .order_by(Bet.created_at, Bet.id)
            .with_for_update()
        )
        return list(result.scalars().all())

    @staticmethod
    def _stake(bet: Bet) -> BetStake:
        return BetStake(
            bet_id=bet.id,
            user_id=bet.user_id,
            prediction=bet.prediction,
            total_amount=bet.total_amount,
            stake_amount=bet.stake_amount,
        )

    async def _apply_plan(
        self,
        db: AsyncSession,
        round: Round,
        bets: list[Bet],
        plan: SettlementPlan,
        reason: str = "Round refunded",
    ) -> list[Wallet]:
        """Write bet results and the matching ledger movements. Does not commit."""
        now = self.clock()
        wallets: dict[UUID, Wallet] = {}

        for bet in bets:
            outcome = plan.outcomes[bet.id]
            if outcome.result == BetResult.WIN:
                wallet = await self.ledger.settle_win(
                    db, bet.user_id, bet.stake_amount, outcome.payout,
                    bet_id=bet.id, round_id=round.id,
                )
            elif outcome.result == BetResult.LOSS:
                wallet = await self.ledger.settle_loss(
                    db, bet.user_id, bet.stake_amount, bet.total_amount,
                    bet_id=bet.id, round_id=round.id,
                )
            else:
                wallet = await self.ledger.refund(
                    db, bet.user_id, bet.stake_amount, bet.total_amount,
                    bet_id=bet.id, round_id=round.id, reason=reason,
                )

            bet.result = outcome.result
            bet.payout = outcome.payout
            bet.profit = outcome.profit
            bet.is_paid = True
            bet.settled_at = now
            wallets[wallet.user_id] = wallet

        return list(wallets.values())

    def _publish_actions(self, summary: SettlementSummary) -> list[PostCommitAction]:
        actions: list[PostCommitAction] = [
            ("round_ended", partial(self.events.publish, round_ended_event(summary.round))),
        ]
        for wallet in summary.wallets:
            actions.append((
                f"balance_update:{wallet.user_id}",
                partial(self.events.publish, balance_event(wallet)),
            ))
        return actions
