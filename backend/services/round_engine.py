"""Wiring of the round services for one process."""

from dataclasses import dataclass
from typing import Optional

from config import Settings, settings as default_settings
from database.session import get_db_session
from services.bet_service import BetService
from services.commission_service import CommissionHook, NoopCommissionHook
from services.ledger_service import LedgerService, ledger_service
from services.lifecycle_events import EventPublisher, LoggingEventPublisher
from services.price_service import PriceOracle, price_oracle
from services.round_scheduler import RoundScheduler, SessionScope
from services.round_service import RoundService
from services.settlement_service import SettlementService
from utils.time_utils import Clock, utcnow


@dataclass
class RoundEngine:
    """Services sharing one oracle, event publisher, commission hook and clock."""
    rounds: RoundService
    bets: BetService
    settlement: SettlementService
    scheduler: RoundScheduler
    ledger: LedgerService
    oracle: PriceOracle


def build_round_engine(
    settings: Settings = default_settings,
    oracle: Optional[PriceOracle] = None,
    events: Optional[EventPublisher] = None,
    commission_hook: Optional[CommissionHook] = None,
    ledger: LedgerService = ledger_service,
    session_scope: SessionScope = get_db_session,
    clock: Clock = utcnow,
) -> RoundEngine:
    """Build a fully wired engine. Tests pass fakes for every collaborator."""
    oracle = oracle or price_oracle
    events = events or LoggingEventPublisher()
    commission_hook = commission_hook or NoopCommissionHook()

    rounds = RoundService(settings=settings, events=events, clock=clock)
    bets = BetService(
        settings=settings,
        ledger=ledger,
        events=events,
        commission_hook=commission_hook,
        clock=clock,
    )
    settlement = SettlementService(
        settings=settings,
        ledger=ledger,
        events=events,
        commission_hook=commission_hook,
        clock=clock,
    )
    scheduler = RoundScheduler(
        round_service=rounds,
        settlement_service=settlement,
        oracle=oracle,
        settings=settings,
        session_scope=session_scope,
        clock=clock,
    )
    return RoundEngine(
        rounds=rounds,
        bets=bets,
        settlement=settlement,
        scheduler=scheduler,
        ledger=ledger,
        oracle=oracle,
    )


_engine: Optional[RoundEngine] = None


def configure_round_engine(**kwargs) -> RoundEngine:
    """Replace the process-wide engine (API startup wires in WebSockets)."""
    global _engine
    _engine = build_round_engine(**kwargs)
    return _engine


def get_round_engine() -> RoundEngine:
    """Return the process-wide engine, building a default one on first use."""
    global _engine
    if _engine is None:
        _engine = build_round_engine()
    return _engine
