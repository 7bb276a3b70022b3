"""String constants stored in status/result columns."""


class RoundStatus:
    UPCOMING = "upcoming"
    ACTIVE = "active"
    LOCKED = "locked"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    ALL = (UPCOMING, ACTIVE, LOCKED, COMPLETED, CANCELLED)
    TERMINAL = (COMPLETED, CANCELLED)


class RoundResult:
    UP = "up"
    DOWN = "down"
    TIE = "tie"
    CANCELLED = "cancelled"

    ALL = (UP, DOWN, TIE, CANCELLED)


class Prediction:
    UP = "up"
    DOWN = "down"

    ALL = (UP, DOWN)


class BetResult:
    PENDING = "pending"
    WIN = "win"
    LOSS = "loss"
    REFUND = "refund"

    ALL = (PENDING, WIN, LOSS, REFUND)


class TransactionType:
    BET_PLACE = "bet_place"
    BET_WIN = "bet_win"
    BET_LOSS = "bet_loss"
    REFUND = "refund"
    CREDIT = "credit"
    COMMISSION = "commission"

    ALL = (BET_PLACE, BET_WIN, BET_LOSS, REFUND, CREDIT, COMMISSION)


class CommissionKind:
    FIRST_BET = "first_bet"
    LOSS = "loss"

    ALL = (FIRST_BET, LOSS)


def sql_in(column: str, values: tuple) -> str:
    """Render a CHECK ... IN (...) clause for string constants."""
    quoted = ", ".join(f"'{v}'" for v in values)
    return f"{column} IN ({quoted})"
