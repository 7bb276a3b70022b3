"""
Payout Calculator

Pure pari-mutuel math for bet admission and settlement. No I/O.

Formulas:
- Admission: fee = amount * fee_percent, stake = amount - fee
- Outcome: up if end > start, down if end < start, tie otherwise
  (or when the relative move is below the tie threshold)
- Losing pool: platform_cut = losing_stake * cut_percent,
               prize_pool = losing_stake - platform_cut
- Winning bet: payout = stake + prize_pool * stake / winning_stake
               profit = payout - total_amount
- Losing bet: payout = 0, profit = -total_amount
- Tie, no bets, or only one side: every bet refunded its total_amount
"""

from dataclasses import dataclass, field
from decimal import ROUND_DOWN, Decimal
from typing import Optional, Sequence
from uuid import UUID

from models.enums import BetResult, Prediction, RoundResult
from utils.money import CENT, HUNDRED, ZERO, percent_of, quantize_money, to_decimal


@dataclass(frozen=True)
class BetStake:
    """Settlement-relevant snapshot of one bet."""
    bet_id: UUID
    user_id: UUID
    prediction: str
    total_amount: Decimal
    stake_amount: Decimal


@dataclass(frozen=True)
class BetOutcome:
    """Final result of one bet."""
    bet_id: UUID
    result: str
    payout: Decimal
    profit: Decimal


@dataclass
class SettlementPlan:
    """Everything the settlement transaction needs to write."""
    result: str
    is_refund: bool
    platform_cut: Decimal = ZERO
    prize_pool: Decimal = ZERO
    winning_stake: Decimal = ZERO
    losing_stake: Decimal = ZERO
    outcomes: dict[UUID, BetOutcome] = field(default_factory=dict)

    @property
    def total_payout(self) -> Decimal:
        return sum((o.payout for o in self.outcomes.values()), ZERO)


def split_amount(amount: Decimal, fee_percent: Decimal) -> tuple[Decimal, Decimal]:
    """Split a gross bet into (fee, stake). The two always sum to ``amount``."""
    amount = to_decimal(amount)
    fee = quantize_money(percent_of(amount, fee_percent))
    return fee, amount - fee


def determine_result(
    start_price: Decimal,
    end_price: Decimal,
    tie_threshold_percent: Decimal = ZERO,
) -> str:
    """Compare prices and return up, down or tie."""
    start_price = to_decimal(start_price)
    end_price = to_decimal(end_price)
    if end_price == start_price:
        return RoundResult.TIE

    threshold = to_decimal(tie_threshold_percent)
    if threshold > 0 and start_price != 0:
        change = abs(end_price - start_price) / start_price * HUNDRED
        if change < threshold:
            return RoundResult.TIE

    return RoundResult.UP if end_price > start_price else RoundResult.DOWN


def estimate_multipliers(
    up_total: Decimal,
    down_total: Decimal,
    cut_percent: Decimal,
) -> dict[str, Decimal]:
    """
    Current payout multiplier per unit of stake for each side.

    A side with no stake shows 0; a side facing an empty opposing pool shows
    1 because such a round is refunded.
    """
    up_total = to_decimal(up_total)
    down_total = to_decimal(down_total)
    keep = (HUNDRED - to_decimal(cut_percent)) / HUNDRED

    def _multiplier(own: Decimal, other: Decimal) -> Decimal:
        if own <= 0:
            return ZERO
        if other <= 0:
            return Decimal("1.0000")
        return (1 + other * keep / own).quantize(Decimal("0.0001"), rounding=ROUND_DOWN)

    return {
        Prediction.UP: _multiplier(up_total, down_total),
        Prediction.DOWN: _multiplier(down_total, up_total),
    }


def refund_plan(bets: Sequence[BetStake], result: str) -> SettlementPlan:
    """Every bet gets its full amount back."""
    plan = SettlementPlan(result=result, is_refund=True)
    for bet in bets:
        plan.outcomes[bet.bet_id] = BetOutcome(
            bet_id=bet.bet_id,
            result=BetResult.REFUND,
            payout=bet.total_amount,
            profit=ZERO,
        )
    return plan


def allocate_prize_pool(
    prize_pool: Decimal,
    winners: Sequence[BetStake],
) -> dict[UUID, Decimal]:
    """
    Split ``prize_pool`` pro rata by stake, in whole cents.

    Shares are computed at full precision, floored to the cent, and the
    leftover cents go to the largest fractional remainders so the shares add
    up to the pool exactly.
    """
    winning_stake = sum((w.stake_amount for w in winners), ZERO)
    if not winners or winning_stake <= 0:
        return {}

    shares: dict[UUID, Decimal] = {}
    remainders: list[tuple[Decimal, int, UUID]] = []
    for position, winner in enumerate(winners):
        exact = prize_pool * winner.stake_amount / winning_stake
        floored = exact.quantize(CENT, rounding=ROUND_DOWN)
        shares[winner.bet_id] = floored
        remainders.append((exact - floored, -position, winner.bet_id))

    leftover_cents = int((prize_pool - sum(shares.values(), ZERO)) / CENT)
    remainders.sort(reverse=True)
    for _, _, bet_id in remainders[:leftover_cents]:
        shares[bet_id] += CENT

    return shares


def compute_settlement(
    bets: Sequence[BetStake],
    result: str,
    cut_percent: Decimal,
) -> SettlementPlan:
    """
    Build the final distribution for a round from one snapshot of its bets.

    Ties, empty rounds and rounds where nobody (or everybody) won are
    refunded because there is no opposing pool to redistribute.
    """
    if result not in (RoundResult.UP, RoundResult.DOWN) or not bets:
        return refund_plan(bets, result)

    winners = [b for b in bets if b.prediction == result]
    losers = [b for b in bets if b.prediction != result]
    if not winners or not losers:
        return refund_plan(bets, result)

    losing_stake = sum((b.stake_amount for b in losers), ZERO)
    winning_stake = sum((b.stake_amount for b in winners), ZERO)
    platform_cut = quantize_money(percent_of(losing_stake, cut_percent))
    prize_pool = losing_stake - platform_cut

    plan = SettlementPlan(
        result=result,
        is_refund=False,
        platform_cut=platform_cut,
        prize_pool=prize_pool,
        winning_stake=winning_stake,
        losing_stake=losing_stake,
    )

    shares = allocate_prize_pool(prize_pool, winners)
    for bet in winners:
        payout = bet.stake_amount + shares[bet.bet_id]
        plan.outcomes[bet.bet_id] = BetOutcome(
            bet_id=bet.bet_id,
            result=BetResult.WIN,
            payout=payout,
            profit=payout - bet.total_amount,
        )
    for bet in losers:
        plan.outcomes[bet.bet_id] = BetOutcome(
            bet_id=bet.bet_id,
            result=BetResult.LOSS,
            payout=ZERO,
            profit=-bet.total_amount,
        )

    return plan


def potential_payout(
    stake_amount: Decimal,
    multiplier: Optional[Decimal],
) -> Decimal:
    """Payout a pending bet would receive at the current multiplier."""
    if not multiplier:
        return ZERO
    return quantize_money(to_decimal(stake_amount) * multiplier)
