"""Round store and lifecycle state machine."""

import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from config import Settings, settings as default_settings
from models import Round, RoundStatus
from services.lifecycle_events import (
    EventPublisher,
    LoggingEventPublisher,
    round_locked_event,
    round_started_event,
    run_post_commit,
)
from utils.errors import RoundNotFound
from utils.money import ZERO
from utils.time_utils import Clock, ensure_utc, utcnow

logger = logging.getLogger(__name__)

# Column holding the due time for each scheduler-driven transition
DUE_COLUMNS = {
    RoundStatus.UPCOMING: Round.start_time,
    RoundStatus.ACTIVE: Round.lock_time,
    RoundStatus.LOCKED: Round.end_time,
}


class RoundService:
    """
    Creates rounds and moves them through
    upcoming -> active -> locked. Settlement and cancellation live in
    SettlementService.

    Every transition re-reads the round under a row lock and does nothing if
    it is no longer in the source state, so overlapping ticks cannot apply a
    transition twice.
    """

    def __init__(
        self,
        settings: Settings = default_settings,
        events: Optional[EventPublisher] = None,
        clock: Clock = utcnow,
    ):
        self.settings = settings
        self.events = events or LoggingEventPublisher()
        self.clock = clock

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_round(
        self,
        db: AsyncSession,
        round_id: UUID,
        for_update: bool = False,
    ) -> Optional[Round]:
        """Get a round by ID."""
        query = select(Round).where(Round.id == round_id)
        if for_update:
            query = query.with_for_update()
        result = await db.execute(query)
        return result.scalar_one_or_none()

    async def get_round_or_404(self, db: AsyncSession, round_id: UUID) -> Round:
        round = await self.get_round(db, round_id)
        if round is None:
            raise RoundNotFound(f"Round {round_id} not found")
        return round

    async def get_round_with_bets(self, db: AsyncSession, round_id: UUID) -> Round:
        """Get a round and eagerly load its bets."""
        result = await db.execute(
            select(Round)
            .options(selectinload(Round.bets))
            .where(Round.id == round_id)
        )
        round = result.scalar_one_or_none()
        if round is None:
            raise RoundNotFound(f"Round {round_id} not found")
        return round

    async def get_current_round(self, db: AsyncSession) -> Optional[Round]:
        """Latest round that is open for betting or waiting for its result."""
        result = await db.execute(
            select(Round)
            .where(Round.status.in_((RoundStatus.ACTIVE, RoundStatus.LOCKED)))
            .order_by(Round.round_number.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get_upcoming_round(self, db: AsyncSession) -> Optional[Round]:
        """Next round that has not started yet."""
        result = await db.execute(
            select(Round)
            .where(Round.status == RoundStatus.UPCOMING)
            .order_by(Round.start_time)
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get_round_history(
        self,
        db: AsyncSession,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[Round], int]:
        """Finished rounds, newest first, with the total count."""
        finished = Round.status.in_(RoundStatus.TERMINAL)
        total = await db.scalar(select(func.count(Round.id)).where(finished))
        result = await db.execute(
            select(Round)
            .where(finished)
            .order_by(Round.round_number.desc())
            .offset(offset)
            .limit(limit)
        )
        return list(result.scalars().all()), total or 0

    async def get_due_rounds(
        self,
        db: AsyncSession,
        status: str,
        now: Optional[datetime] = None,
    ) -> list[Round]:
        """Rounds in ``status`` whose next transition time has passed."""
        now = now or self.clock()
        column = DUE_COLUMNS[status]
        result = await db.execute(
            select(Round)
            .where(Round.status == status)
            .where(column <= now)
            .order_by(column)
        )
        return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def build_schedule(
        self,
        now: datetime,
        after: Optional[datetime] = None,
    ) -> tuple[datetime, datetime, datetime]:
        """
        Return (start, lock, end) for a round created at ``now``.

        ``after`` is the end of the round currently in progress; the new round
        starts one buffer after it so rounds run back to back.
        """
        base = max(now, after) if after is not None else now
        start = base + timedelta(seconds=self.settings.upcoming_buffer_seconds)
        end = start + timedelta(seconds=self.settings.round_duration_seconds)
        lock = end - timedelta(seconds=self.settings.lock_window_seconds)
        return start, lock, end

    async def create_round(self, db: AsyncSession, now: Optional[datetime] = None) -> Round:
        """Create the next upcoming round. Does not commit."""
        now = now or self.clock()
        last_number = await db.scalar(select(func.max(Round.round_number)))
        running_until = await db.scalar(
            select(func.max(Round.end_time))
            .where(Round.status.in_((RoundStatus.ACTIVE, RoundStatus.LOCKED)))
        )
        start, lock, end = self.build_schedule(now, ensure_utc(running_until))

        round = Round(
            round_number=(last_number or 0) + 1,
            status=RoundStatus.UPCOMING,
            start_time=start,
            lock_time=lock,
            end_time=end,
            up_stake_total=ZERO,
            down_stake_total=ZERO,
            up_bet_count=0,
            down_bet_count=0,
            fee_collected=ZERO,
            platform_cut=ZERO,
            prize_pool=ZERO,
            is_processed=False,
        )
        db.add(round)
        await db.flush()
        logger.info(
            f"Created round #{round.round_number}: starts {start.isoformat()}, "
            f"locks {lock.isoformat()}, ends {end.isoformat()}"
        )
        return round

    async def ensure_upcoming_round(
        self,
        db: AsyncSession,
        now: Optional[datetime] = None,
    ) -> Round:
        """Make sure exactly one upcoming round exists, creating it if missing."""
        existing = await self.get_upcoming_round(db)
        if existing is not None:
            return existing

        try:
            round = await self.create_round(db, now)
            await db.commit()
            return round
        except IntegrityError:
            # Another driver created the same round number first
            await db.rollback()
            logger.info("Upcoming round created concurrently")
            existing = await self.get_upcoming_round(db)
            if existing is None:
                raise
            return existing

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def start_round(
        self,
        db: AsyncSession,
        round_id: UUID,
        start_price: Decimal,
    ) -> Optional[Round]:
        """
        upcoming -> active, stamping the start price.

        Returns the round, or None if it was not upcoming any more.
        """
        round = await self.get_round(db, round_id, for_update=True)
        if round is None or round.status != RoundStatus.UPCOMING:
            await db.rollback()
            return None

        round.status = RoundStatus.ACTIVE
        round.start_price = start_price
        await db.commit()

        logger.info(f"Round #{round.round_number} started at price {start_price}")
        await run_post_commit([
            ("round_started", lambda: self.events.publish(round_started_event(round))),
        ])
        return round

    async def lock_round(self, db: AsyncSession, round_id: UUID) -> Optional[Round]:
        """
        active -> locked. No bet is admitted once this commits.

        Returns the round, or None if it was not active any more.
        """
        round = await self.get_round(db, round_id, for_update=True)
        if round is None or round.status != RoundStatus.ACTIVE:
            await db.rollback()
            return None

        round.status = RoundStatus.LOCKED
        await db.commit()

        logger.info(
            f"Round #{round.round_number} locked: "
            f"UP ${round.up_stake_total} ({round.up_bet_count}) / "
            f"DOWN ${round.down_stake_total} ({round.down_bet_count})"
        )
        await run_post_commit([
            ("round_locked", lambda: self.events.publish(round_locked_event(round))),
        ])
        return round

    def seconds_to_lock(self, round: Round, now: Optional[datetime] = None) -> int:
        now = now or self.clock()
        remaining = (ensure_utc(round.lock_time) - now).total_seconds()
        return max(0, int(remaining))
