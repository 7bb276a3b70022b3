"""Database models module."""

from models.bet import Bet
from models.commission_earning import CommissionEarning
from models.enums import (
    BetResult,
    CommissionKind,
    Prediction,
    RoundResult,
    RoundStatus,
    TransactionType,
)
from models.round import Round
from models.wallet import Wallet
from models.wallet_transaction import WalletTransaction

__all__ = [
    "Bet",
    "CommissionEarning",
    "Round",
    "Wallet",
    "WalletTransaction",
    "BetResult",
    "CommissionKind",
    "Prediction",
    "RoundResult",
    "RoundStatus",
    "TransactionType",
]
