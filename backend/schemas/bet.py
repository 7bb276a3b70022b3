"""Bet Pydantic schemas."""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import Field

from schemas.common import BaseSchema


class PredictionEnum(str, Enum):
    """Bet prediction enum."""

    UP = "up"
    DOWN = "down"


class BetResultEnum(str, Enum):
    """Bet result enum."""

    PENDING = "pending"
    WIN = "win"
    LOSS = "loss"
    REFUND = "refund"


class BetCreate(BaseSchema):
    """Bet placement request."""

    round_id: UUID
    prediction: PredictionEnum
    amount: Decimal = Field(gt=0, decimal_places=2)


class BetResponse(BaseSchema):
    """Bet response schema."""

    id: UUID
    user_id: UUID
    round_id: UUID
    prediction: PredictionEnum
    total_amount: Decimal
    fee_amount: Decimal
    stake_amount: Decimal
    result: BetResultEnum
    payout: Decimal
    profit: Optional[Decimal] = None
    is_paid: bool
    settled_at: Optional[datetime] = None
    created_at: datetime


class BetPlacementResponse(BaseSchema):
    """Result of a successful bet placement."""

    bet: BetResponse
    round_number: int
    up_stake_total: Decimal
    down_stake_total: Decimal
    multiplier: Decimal
    potential_payout: Decimal
    available_balance: Decimal
    locked_balance: Decimal


class ActiveBetResponse(BetResponse):
    """Pending bet with live pool figures."""

    round_number: int
    round_status: str
    lock_time: datetime
    end_time: datetime
    start_price: Optional[Decimal] = None
    multiplier: Decimal
    potential_payout: Decimal
