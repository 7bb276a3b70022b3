"""Wallet Pydantic schemas."""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import Field

from schemas.common import BaseSchema


class WalletResponse(BaseSchema):
    """Wallet summary."""

    user_id: UUID
    balance: Decimal
    locked_balance: Decimal
    available: Decimal
    total_won: Decimal
    total_lost: Decimal
    total_wagered: Decimal
    total_deposited: Decimal


class WalletTransactionResponse(BaseSchema):
    """Ledger entry."""

    id: UUID
    type: str
    amount: Decimal
    balance_before: Decimal
    balance_after: Decimal
    locked_after: Decimal
    bet_id: Optional[UUID] = None
    round_id: Optional[UUID] = None
    description: Optional[str] = None
    created_at: datetime


class CreditRequest(BaseSchema):
    """Administrative wallet credit."""

    user_id: UUID
    amount: Decimal = Field(gt=0, decimal_places=2)
    reason: str = Field(default="Administrative credit", max_length=200)
