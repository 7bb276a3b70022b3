"""Wallet API routes."""

from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import get_current_user_id, get_engine, require_admin
from database.dependencies import get_db
from schemas.wallet import CreditRequest, WalletResponse, WalletTransactionResponse
from services.round_engine import RoundEngine
from utils.money import ZERO

router = APIRouter(prefix="/wallet", tags=["Wallet"])


@router.get("", response_model=WalletResponse)
async def get_wallet(
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    engine: RoundEngine = Depends(get_engine),
):
    """Caller's balances and lifetime totals."""
    wallet = await engine.ledger.get_wallet(db, user_id)
    if wallet is None:
        return WalletResponse(
            user_id=user_id,
            balance=ZERO,
            locked_balance=ZERO,
            available=ZERO,
            total_won=ZERO,
            total_lost=ZERO,
            total_wagered=ZERO,
            total_deposited=ZERO,
        )
    return WalletResponse.model_validate(wallet)


@router.get("/transactions", response_model=list[WalletTransactionResponse])
async def get_transactions(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    engine: RoundEngine = Depends(get_engine),
):
    """Caller's ledger history, newest first."""
    transactions = await engine.ledger.get_transactions(db, user_id, limit=limit, offset=offset)
    return [WalletTransactionResponse.model_validate(t) for t in transactions]


@router.post(
    "/credit",
    response_model=WalletResponse,
    dependencies=[Depends(require_admin)],
)
async def credit_wallet(
    request: CreditRequest,
    db: AsyncSession = Depends(get_db),
    engine: RoundEngine = Depends(get_engine),
):
    """Administrative credit to a user's wallet."""
    wallet = await engine.ledger.credit(db, request.user_id, request.amount, request.reason)
    await db.commit()
    return WalletResponse.model_validate(wallet)
