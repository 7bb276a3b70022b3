"""Bets API routes."""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import get_current_user_id, get_engine
from config import settings
from database.dependencies import get_db
from schemas.bet import (
    ActiveBetResponse,
    BetCreate,
    BetPlacementResponse,
    BetResponse,
    BetResultEnum,
)
from schemas.common import PaginatedResponse
from services.payout_calculator import potential_payout
from services.round_engine import RoundEngine

router = APIRouter(prefix="/bets", tags=["Bets"])


@router.post("", response_model=BetPlacementResponse, status_code=201)
async def place_bet(
    request: BetCreate,
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    engine: RoundEngine = Depends(get_engine),
):
    """Place a bet on the active round."""
    placement = await engine.bets.place_bet(
        db,
        user_id=user_id,
        round_id=request.round_id,
        prediction=request.prediction.value,
        amount=request.amount,
    )
    return BetPlacementResponse(
        bet=BetResponse.model_validate(placement.bet),
        round_number=placement.round.round_number,
        up_stake_total=placement.round.up_stake_total,
        down_stake_total=placement.round.down_stake_total,
        multiplier=placement.multiplier,
        potential_payout=placement.potential_payout,
        available_balance=placement.wallet.available,
        locked_balance=placement.wallet.locked_balance,
    )


@router.get("/active", response_model=list[ActiveBetResponse])
async def get_active_bets(
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    engine: RoundEngine = Depends(get_engine),
):
    """Caller's pending bets with live multipliers."""
    bets = await engine.bets.get_active_bets(db, user_id)

    response = []
    for bet in bets:
        multiplier = engine.bets.bet_multiplier(bet)
        response.append(
            ActiveBetResponse(
                **BetResponse.model_validate(bet).model_dump(),
                round_number=bet.round.round_number,
                round_status=bet.round.status,
                lock_time=bet.round.lock_time,
                end_time=bet.round.end_time,
                start_price=bet.round.start_price,
                multiplier=multiplier,
                potential_payout=potential_payout(bet.stake_amount, multiplier),
            )
        )
    return response


@router.get("/history", response_model=PaginatedResponse[BetResponse])
async def get_bet_history(
    result: Optional[BetResultEnum] = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(settings.pagination_default_limit, ge=1, le=settings.pagination_max_limit),
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    engine: RoundEngine = Depends(get_engine),
):
    """Caller's settled bets, newest first."""
    bets, total = await engine.bets.get_bet_history(
        db,
        user_id,
        result=result.value if result else None,
        limit=page_size,
        offset=(page - 1) * page_size,
    )
    return PaginatedResponse[BetResponse](
        items=[BetResponse.model_validate(b) for b in bets],
        total=total,
        page=page,
        page_size=page_size,
        pages=(total + page_size - 1) // page_size,
    )
