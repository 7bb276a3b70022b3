"""Round lifecycle Celery tasks."""

import asyncio
import logging
from uuid import UUID

from celery_config import celery_app
from database.session import close_db, get_db_session
from services.round_engine import get_round_engine
from utils.errors import InvalidRoundTransition, PriceUnavailable, RoundNotFound

logger = logging.getLogger(__name__)


@celery_app.task(name="tasks.tick_rounds", queue="rounds")
def tick_rounds():
    """
    Scheduled: Every round_tick_seconds

    Starts, locks and settles every round that is due.
    """

    async def _tick():
        try:
            report = await get_round_engine().scheduler.tick()
            return report.as_dict()
        finally:
            await close_db()

    return asyncio.run(_tick())


@celery_app.task(
    name="tasks.settle_round",
    queue="rounds",
    bind=True,
    max_retries=5,
    default_retry_delay=30,
)
def settle_round(self, round_id: str):
    """
    Settles a single locked round outside the regular tick.
    Priced like the tick: the nearest recorded price to end_time once late.
    """

    async def _settle():
        engine = get_round_engine()
        try:
            price = await engine.scheduler.settlement_price(UUID(round_id))
            async with get_db_session() as db:
                summary = await engine.settlement.settle_round(db, UUID(round_id), price)
        finally:
            await close_db()

        if summary is None:
            return {"round_id": round_id, "skipped": True}
        return {
            "round_id": round_id,
            "result": summary.round.result,
            "bets_settled": summary.bets_settled,
            "platform_cut": str(summary.plan.platform_cut),
            "prize_pool": str(summary.plan.prize_pool),
        }

    try:
        return asyncio.run(_settle())
    except RoundNotFound as e:
        logger.warning(f"Settlement skipped for {round_id}: {e}")
        return {"round_id": round_id, "skipped": True, "reason": str(e)}
    except PriceUnavailable as e:
        logger.warning(f"Settlement of {round_id} deferred: {e}")
        raise self.retry(exc=e)
    except Exception as e:
        logger.error(f"Settlement failed for {round_id}: {e}")
        raise self.retry(exc=e)


@celery_app.task(name="tasks.cancel_round", queue="rounds")
def cancel_round(round_id: str, reason: str):
    """Cancels a round and refunds all of its bets."""

    async def _cancel():
        engine = get_round_engine()
        try:
            async with get_db_session() as db:
                summary = await engine.settlement.cancel_round(db, UUID(round_id), reason)
        finally:
            await close_db()
        return {
            "round_id": round_id,
            "bets_refunded": summary.bets_settled,
        }

    try:
        return asyncio.run(_cancel())
    except (RoundNotFound, InvalidRoundTransition) as e:
        # Non-retryable error (missing or already finished)
        logger.warning(f"Cancellation skipped for {round_id}: {e}")
        return {"round_id": round_id, "skipped": True, "reason": str(e)}
