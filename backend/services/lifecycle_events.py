"""Lifecycle event publishing and post-commit side effects."""

import logging
from typing import Awaitable, Callable, Iterable, Protocol

import logfire

from models import Round, Wallet
from schemas.websocket import (
    WSBalanceUpdate,
    WSEvent,
    WSRoundEnded,
    WSRoundLocked,
    WSRoundStarted,
)
from utils.errors import CommissionHookFailure

logger = logging.getLogger(__name__)

PostCommitAction = tuple[str, Callable[[], Awaitable[None]]]


class EventPublisher(Protocol):
    """Anything that can deliver a lifecycle event to consumers."""

    async def publish(self, event: WSEvent) -> None:
        ...


class LoggingEventPublisher:
    """Publisher for processes without WebSocket clients (workers, CLI)."""

    async def publish(self, event: WSEvent) -> None:
        logfire.info(
            "Lifecycle event {type}",
            type=event.type.value,
            payload=event.model_dump(mode="json"),
        )


async def run_post_commit(actions: Iterable[PostCommitAction]) -> int:
    """
    Run side effects after a transaction has committed.

    Each action is its own error boundary: failures are logged and never
    raised. Returns the number of failed actions.
    """
    failures = 0
    for name, action in actions:
        try:
            await action()
        except CommissionHookFailure as e:
            failures += 1
            logger.warning(f"Commission hook {name} failed: {e}")
        except Exception as e:
            failures += 1
            logger.error(f"Post-commit action {name} failed: {e}", exc_info=True)
    return failures


def _round_fields(round: Round) -> dict:
    return {
        "round_id": round.id,
        "round_number": round.round_number,
        "status": round.status,
        "start_time": round.start_time,
        "lock_time": round.lock_time,
        "end_time": round.end_time,
        "up_stake_total": round.up_stake_total,
        "down_stake_total": round.down_stake_total,
        "up_bet_count": round.up_bet_count,
        "down_bet_count": round.down_bet_count,
    }


def round_started_event(round: Round) -> WSRoundStarted:
    return WSRoundStarted(start_price=round.start_price, **_round_fields(round))


def round_locked_event(round: Round) -> WSRoundLocked:
    return WSRoundLocked(start_price=round.start_price, **_round_fields(round))


def round_ended_event(round: Round) -> WSRoundEnded:
    return WSRoundEnded(
        start_price=round.start_price,
        end_price=round.end_price,
        result=round.result,
        platform_cut=round.platform_cut,
        prize_pool=round.prize_pool,
        **_round_fields(round),
    )


def balance_event(wallet: Wallet) -> WSBalanceUpdate:
    return WSBalanceUpdate(
        user_id=wallet.user_id,
        balance=wallet.balance,
        locked_balance=wallet.locked_balance,
        available=wallet.available,
    )
