"""WebSocket Pydantic schemas for round lifecycle events."""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional, Union
from uuid import UUID

from pydantic import Field

from schemas.common import BaseSchema
from utils.time_utils import utcnow


class WSServerMessageType(str, Enum):
    """Server WebSocket message types."""

    ROUND_STARTED = "round_started"
    ROUND_LOCKED = "round_locked"
    ROUND_ENDED = "round_ended"
    BET_PLACED = "bet_placed"
    BALANCE_UPDATE = "balance_update"
    PRICE_UPDATE = "price_update"
    ERROR = "error"


class WSEvent(BaseSchema):
    """Common envelope fields."""

    type: WSServerMessageType
    timestamp: datetime = Field(default_factory=utcnow)


class WSRoundEvent(WSEvent):
    """Round transition carrying pool totals."""

    round_id: UUID
    round_number: int
    status: str
    start_time: datetime
    lock_time: datetime
    end_time: datetime
    up_stake_total: Decimal
    down_stake_total: Decimal
    up_bet_count: int
    down_bet_count: int


class WSRoundStarted(WSRoundEvent):
    """Round opened for betting."""

    type: WSServerMessageType = WSServerMessageType.ROUND_STARTED
    start_price: Decimal


class WSRoundLocked(WSRoundEvent):
    """Betting closed for a round."""

    type: WSServerMessageType = WSServerMessageType.ROUND_LOCKED
    start_price: Optional[Decimal] = None


class WSRoundEnded(WSRoundEvent):
    """Round settled or cancelled."""

    type: WSServerMessageType = WSServerMessageType.ROUND_ENDED
    start_price: Optional[Decimal] = None
    end_price: Optional[Decimal] = None
    result: str
    platform_cut: Decimal
    prize_pool: Decimal


class WSBetPlaced(WSEvent):
    """New bet changed the pool totals."""

    type: WSServerMessageType = WSServerMessageType.BET_PLACED
    round_id: UUID
    round_number: int
    prediction: str
    amount: Decimal
    up_stake_total: Decimal
    down_stake_total: Decimal
    up_bet_count: int
    down_bet_count: int
    up_multiplier: Decimal
    down_multiplier: Decimal


class WSBalanceUpdate(WSEvent):
    """A user's wallet changed."""

    type: WSServerMessageType = WSServerMessageType.BALANCE_UPDATE
    user_id: UUID
    balance: Decimal
    locked_balance: Decimal
    available: Decimal


class WSPriceUpdate(WSEvent):
    """Price update message."""

    type: WSServerMessageType = WSServerMessageType.PRICE_UPDATE
    price: Decimal


class WSErrorMessage(WSEvent):
    """Error message."""

    type: WSServerMessageType = WSServerMessageType.ERROR
    message: str
    code: Optional[str] = None


# Union type for all server messages
WSServerMessage = Union[
    WSRoundStarted,
    WSRoundLocked,
    WSRoundEnded,
    WSBetPlaced,
    WSBalanceUpdate,
    WSPriceUpdate,
    WSErrorMessage,
]
