"""Periodic driver that advances rounds through their lifecycle."""

import logging
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Callable, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from config import Settings, settings as default_settings
from database.session import get_db_session
from models import RoundStatus
from services.price_service import PriceOracle
from services.round_service import DUE_COLUMNS, RoundService
from services.settlement_service import SettlementService
from utils.errors import PriceUnavailable, RoundNotFound, SettlementFailure
from utils.logging import log_error
from utils.time_utils import Clock, ensure_utc, utcnow

logger = logging.getLogger(__name__)

SessionScope = Callable[[], AbstractAsyncContextManager[AsyncSession]]


@dataclass
class TickReport:
    """What one scheduler tick did."""
    started: list[UUID] = field(default_factory=list)
    locked: list[UUID] = field(default_factory=list)
    settled: list[UUID] = field(default_factory=list)
    deferred: list[UUID] = field(default_factory=list)
    failed: list[UUID] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {name: [str(i) for i in ids] for name, ids in self.__dict__.items()}


class RoundScheduler:
    """
    Polls the round store and applies due transitions.

    Each tick, in order: start due upcoming rounds, lock due active rounds,
    settle due locked rounds. Every round is handled in its own session and
    error boundary so one failure never blocks the others. A round whose
    price cannot be obtained is left as is and retried on the next tick.
    """

    def __init__(
        self,
        round_service: RoundService,
        settlement_service: SettlementService,
        oracle: PriceOracle,
        settings: Settings = default_settings,
        session_scope: SessionScope = get_db_session,
        clock: Clock = utcnow,
    ):
        self.rounds = round_service
        self.settlement = settlement_service
        self.oracle = oracle
        self.settings = settings
        self.session_scope = session_scope
        self.clock = clock
        self.late_after = timedelta(seconds=settings.round_tick_seconds)
        self.settlement_failures: dict[UUID, int] = {}

    async def initialize(self) -> None:
        """Guarantee an upcoming round exists before the first tick."""
        async with self.session_scope() as db:
            round = await self.rounds.ensure_upcoming_round(db)
        logger.info(f"Round scheduler ready, next round #{round.round_number}")

    async def tick(self, now: Optional[datetime] = None) -> TickReport:
        """Run one pass over all due transitions."""
        now = now or self.clock()
        report = TickReport()

        await self._start_due(now, report)
        await self._lock_due(now, report)
        await self._settle_due(now, report)
        await self._ensure_upcoming(now)

        if report.started or report.locked or report.settled or report.failed:
            logger.info(
                f"Tick: started={len(report.started)} locked={len(report.locked)} "
                f"settled={len(report.settled)} deferred={len(report.deferred)} "
                f"failed={len(report.failed)}"
            )
        return report

    async def _due(self, status: str, now: datetime) -> list[tuple[UUID, datetime]]:
        async with self.session_scope() as db:
            rounds = await self.rounds.get_due_rounds(db, status, now)
        key = DUE_COLUMNS[status].key
        return [(r.id, ensure_utc(getattr(r, key))) for r in rounds]

    async def price_for(self, due_at: datetime, now: datetime) -> Decimal:
        """Current price when on time, nearest recorded price when running late."""
        if now - due_at > self.late_after:
            return await self.oracle.price_near(due_at)
        return await self.oracle.current_price()

    async def settlement_price(self, round_id: UUID, now: Optional[datetime] = None) -> Decimal:
        """
        End price for settling one round outside the tick.

        Raises:
            RoundNotFound: no such round
            PriceUnavailable: the oracle has no usable price
        """
        now = now or self.clock()
        async with self.session_scope() as db:
            round = await self.rounds.get_round(db, round_id)
            if round is None:
                raise RoundNotFound(f"Round {round_id} not found")
            end_time = ensure_utc(round.end_time)
        return await self.price_for(end_time, now)

    async def _start_due(self, now: datetime, report: TickReport) -> None:
        try:
            due = await self._due(RoundStatus.UPCOMING, now)
        except Exception as e:
            logger.error(f"Failed to query upcoming rounds: {e}", exc_info=True)
            return

        for round_id, start_time in due:
            try:
                price = await self.price_for(start_time, now)
                async with self.session_scope() as db:
                    round = await self.rounds.start_round(db, round_id, price)
                if round is not None:
                    report.started.append(round_id)
                    await self._ensure_upcoming(now)
            except PriceUnavailable as e:
                report.deferred.append(round_id)
                logger.warning(f"Start of round {round_id} deferred: {e}")
            except Exception as e:
                report.failed.append(round_id)
                logger.error(f"Failed to start round {round_id}: {e}", exc_info=True)

    async def _lock_due(self, now: datetime, report: TickReport) -> None:
        try:
            due = await self._due(RoundStatus.ACTIVE, now)
        except Exception as e:
            logger.error(f"Failed to query active rounds: {e}", exc_info=True)
            return

        for round_id, _ in due:
            try:
                async with self.session_scope() as db:
                    round = await self.rounds.lock_round(db, round_id)
                if round is not None:
                    report.locked.append(round_id)
            except Exception as e:
                report.failed.append(round_id)
                logger.error(f"Failed to lock round {round_id}: {e}", exc_info=True)

    async def _settle_due(self, now: datetime, report: TickReport) -> None:
        try:
            due = await self._due(RoundStatus.LOCKED, now)
        except Exception as e:
            logger.error(f"Failed to query locked rounds: {e}", exc_info=True)
            return

        # Rounds that left the locked state some other way (cancelled) stop counting
        due_ids = {round_id for round_id, _ in due}
        for round_id in list(self.settlement_failures):
            if round_id not in due_ids:
                del self.settlement_failures[round_id]

        for round_id, end_time in due:
            try:
                price = await self.price_for(end_time, now)
                async with self.session_scope() as db:
                    summary = await self.settlement.settle_round(db, round_id, price)
                self.settlement_failures.pop(round_id, None)
                if summary is not None:
                    report.settled.append(round_id)
            except PriceUnavailable as e:
                report.deferred.append(round_id)
                logger.warning(f"Settlement of round {round_id} deferred: {e}")
            except Exception as e:
                report.failed.append(round_id)
                self._record_settlement_failure(round_id, e)

    def _record_settlement_failure(self, round_id: UUID, exc: Exception) -> None:
        count = self.settlement_failures.get(round_id, 0) + 1
        self.settlement_failures[round_id] = count
        if not isinstance(exc, SettlementFailure):
            exc = SettlementFailure(round_id, exc)

        if count >= self.settings.settlement_alert_threshold:
            log_error(
                logger,
                "Round settlement keeps failing",
                exc,
                attempts=count,
            )
        else:
            logger.warning(f"Settlement attempt {count} for round {round_id} failed: {exc}")

    async def _ensure_upcoming(self, now: datetime) -> None:
        try:
            async with self.session_scope() as db:
                await self.rounds.ensure_upcoming_round(db, now)
        except Exception as e:
            logger.error(f"Failed to ensure an upcoming round: {e}", exc_info=True)
