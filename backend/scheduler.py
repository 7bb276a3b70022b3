"""Round scheduler drivers using APScheduler."""

import asyncio
import logging
from typing import NoReturn

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.interval import IntervalTrigger

from config import Settings
from database.session import close_db
from services.round_engine import RoundEngine, get_round_engine
from services.websocket_service import websocket_service
from utils.errors import PriceUnavailable

logger = logging.getLogger(__name__)


def _tick_job() -> None:
    """Run one tick on a fresh event loop (blocking driver)."""

    async def _tick():
        engine = get_round_engine()
        try:
            return await engine.scheduler.tick()
        finally:
            await close_db()

    asyncio.run(_tick())


def start_scheduler(settings: Settings) -> NoReturn:
    """Run the round scheduler in the foreground until interrupted."""

    async def _init():
        try:
            await get_round_engine().scheduler.initialize()
        finally:
            await close_db()

    asyncio.run(_init())

    scheduler = BlockingScheduler(timezone="UTC")
    scheduler.add_job(
        _tick_job,
        IntervalTrigger(seconds=settings.round_tick_seconds),
        id="round-tick",
        name="Rounds: lifecycle tick",
        max_instances=1,
        coalesce=True,
    )
    logger.info(f"Registered job: Rounds tick (every {settings.round_tick_seconds}s)")

    try:
        logger.info("Scheduler starting...")
        logger.info("Press Ctrl+C to stop")
        scheduler.start()

    except (KeyboardInterrupt, SystemExit):
        logger.info("Received interrupt signal")
        scheduler.shutdown()
        logger.info("Scheduler stopped cleanly")


def build_async_scheduler(engine: RoundEngine, settings: Settings) -> AsyncIOScheduler:
    """
    Scheduler that ticks inside the API's event loop.

    Used when the API process owns the rounds so lifecycle events reach its
    WebSocket clients directly.
    """
    scheduler = AsyncIOScheduler(timezone="UTC")
    scheduler.add_job(
        engine.scheduler.tick,
        IntervalTrigger(seconds=settings.round_tick_seconds),
        id="round-tick",
        name="Rounds: lifecycle tick",
        max_instances=1,
        coalesce=True,
    )
    if hasattr(engine.oracle, "fetch_price"):
        scheduler.add_job(
            _refresh_price(engine),
            IntervalTrigger(seconds=settings.price_refresh_seconds),
            id="price-refresh",
            name="Price: refresh",
            max_instances=1,
            coalesce=True,
        )
    return scheduler


def _refresh_price(engine: RoundEngine):
    """Fetch a fresh price into the oracle history and push it to clients."""

    async def _refresh() -> None:
        try:
            price = await engine.oracle.fetch_price()
        except PriceUnavailable as e:
            logger.warning(f"Price refresh failed: {e}")
            return
        await websocket_service.broadcast_price_update(price)

    return _refresh
