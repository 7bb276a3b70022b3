"""Services module."""

from services.bet_service import BetPlacement, BetService
from services.commission_service import (
    CommissionHook,
    NoopCommissionHook,
    ReferralCommissionHook,
    Referrer,
)
from services.ledger_service import LedgerService, ledger_service
from services.price_service import HttpPriceOracle, PriceOracle, price_oracle
from services.round_engine import (
    RoundEngine,
    build_round_engine,
    configure_round_engine,
    get_round_engine,
)
from services.round_scheduler import RoundScheduler, TickReport
from services.round_service import RoundService
from services.settlement_service import SettlementService, SettlementSummary
from services.websocket_service import manager, websocket_service

__all__ = [
    "BetPlacement",
    "BetService",
    "CommissionHook",
    "NoopCommissionHook",
    "ReferralCommissionHook",
    "Referrer",
    "LedgerService",
    "ledger_service",
    "HttpPriceOracle",
    "PriceOracle",
    "price_oracle",
    "RoundEngine",
    "build_round_engine",
    "configure_round_engine",
    "get_round_engine",
    "RoundScheduler",
    "TickReport",
    "RoundService",
    "SettlementService",
    "SettlementSummary",
    "manager",
    "websocket_service",
]
