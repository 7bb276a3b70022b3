"""
Error types and formatting utilities.

Every failure the round engine can surface derives from RoundsError so API
handlers and schedulers can catch one base class.

Functions:
- format_api_error(exception): Convert to API error response
- format_log_error(exception): Convert to structured log entry
"""

from typing import Any, Optional
from uuid import UUID


class RoundsError(Exception):
    """Base class for all round engine errors."""

    code = "ROUNDS_ERROR"
    status_code = 500

    def __init__(self, message: str = ""):
        self.message = message or self.__class__.__doc__ or self.code
        super().__init__(self.message)


# ============================================================================
# Bet admission (user-correctable, never retried)
# ============================================================================

class BetRejected(RoundsError):
    """Bet could not be admitted."""

    code = "BET_REJECTED"
    status_code = 400


class InvalidAmount(BetRejected):
    """Bet amount is outside the allowed bounds."""

    code = "INVALID_AMOUNT"


class RoundNotOpen(BetRejected):
    """Round is not accepting bets."""

    code = "ROUND_NOT_OPEN"
    status_code = 409


class DuplicateBet(BetRejected):
    """User already has a bet on this round."""

    code = "DUPLICATE_BET"
    status_code = 409


class InsufficientFunds(BetRejected):
    """Available balance is lower than the bet amount."""

    code = "INSUFFICIENT_FUNDS"


# ============================================================================
# Round lifecycle
# ============================================================================

class RoundNotFound(RoundsError):
    """Round does not exist."""

    code = "ROUND_NOT_FOUND"
    status_code = 404


class InvalidRoundTransition(RoundsError):
    """Round is not in a state that allows this transition."""

    code = "INVALID_ROUND_TRANSITION"
    status_code = 409


class PriceUnavailable(RoundsError):
    """No usable price could be obtained from the oracle."""

    code = "PRICE_UNAVAILABLE"
    status_code = 503


class SettlementFailure(RoundsError):
    """Settlement transaction failed and was rolled back."""

    code = "SETTLEMENT_FAILURE"

    def __init__(self, round_id: UUID, cause: Optional[BaseException] = None):
        self.round_id = round_id
        self.cause = cause
        super().__init__(f"Settlement of round {round_id} failed: {cause}")


class CommissionHookFailure(RoundsError):
    """Commission side effect failed."""

    code = "COMMISSION_HOOK_FAILURE"


class LedgerInvariantError(RoundsError):
    """A ledger mutation would leave the wallet inconsistent."""

    code = "LEDGER_INVARIANT"


def format_api_error(exc: Exception) -> dict[str, Any]:
    """Convert an exception into the JSON body returned by the API."""
    if isinstance(exc, RoundsError):
        return {
            "error": {
                "code": exc.code,
                "message": exc.message,
            }
        }
    return {
        "error": {
            "code": "INTERNAL_ERROR",
            "message": "Internal server error",
        }
    }


def format_log_error(exc: Exception, **context: Any) -> dict[str, Any]:
    """Convert an exception into a structured log entry."""
    entry: dict[str, Any] = {
        "error_type": type(exc).__name__,
        "error_code": getattr(exc, "code", None),
        "message": str(exc),
    }
    round_id = getattr(exc, "round_id", None)
    if round_id is not None:
        entry["round_id"] = str(round_id)
    cause = getattr(exc, "cause", None)
    if cause is not None:
        entry["cause"] = repr(cause)
    entry.update({k: str(v) for k, v in context.items()})
    return entry
