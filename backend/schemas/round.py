"""Round Pydantic schemas."""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import Field

from schemas.common import BaseSchema, TimestampSchema


class RoundStatusEnum(str, Enum):
    """Round status enum."""

    UPCOMING = "upcoming"
    ACTIVE = "active"
    LOCKED = "locked"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class RoundResultEnum(str, Enum):
    """Round result enum."""

    UP = "up"
    DOWN = "down"
    TIE = "tie"
    CANCELLED = "cancelled"


class RoundResponse(TimestampSchema):
    """Round response schema."""

    id: UUID
    round_number: int
    status: RoundStatusEnum
    start_time: datetime
    lock_time: datetime
    end_time: datetime
    start_price: Optional[Decimal] = None
    end_price: Optional[Decimal] = None
    result: Optional[RoundResultEnum] = None
    up_stake_total: Decimal
    down_stake_total: Decimal
    up_bet_count: int
    down_bet_count: int
    fee_collected: Decimal
    platform_cut: Decimal
    prize_pool: Decimal
    is_processed: bool
    settled_at: Optional[datetime] = None


class RoundPoolResponse(RoundResponse):
    """Round with live pool multipliers."""

    up_multiplier: Decimal = Decimal("0")
    down_multiplier: Decimal = Decimal("0")
    seconds_to_lock: int = 0


class RoundBetSummary(BaseSchema):
    """Bet as shown on a round detail page."""

    id: UUID
    user_id: UUID
    prediction: str
    total_amount: Decimal
    stake_amount: Decimal
    result: str
    payout: Decimal
    profit: Optional[Decimal] = None
    created_at: datetime


class RoundDetailResponse(RoundResponse):
    """Round with all of its bets."""

    bets: list[RoundBetSummary] = Field(default_factory=list)


class CancelRoundRequest(BaseSchema):
    """Administrative cancellation request."""

    reason: str = Field(min_length=1, max_length=500)


class PriceResponse(BaseSchema):
    """Current reference price."""

    price: Decimal
    timestamp: datetime
