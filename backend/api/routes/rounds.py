"""Rounds API routes."""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import get_engine, require_admin
from config import settings
from database.dependencies import get_db
from models import Prediction, Round
from schemas.common import PaginatedResponse
from schemas.round import (
    CancelRoundRequest,
    RoundDetailResponse,
    RoundPoolResponse,
    RoundResponse,
)
from services.payout_calculator import estimate_multipliers
from services.round_engine import RoundEngine

router = APIRouter(prefix="/rounds", tags=["Rounds"])


def _with_pool(round: Round, engine: RoundEngine) -> RoundPoolResponse:
    multipliers = estimate_multipliers(
        round.up_stake_total,
        round.down_stake_total,
        settings.platform_cut_percent,
    )
    response = RoundPoolResponse.model_validate(round)
    response.up_multiplier = multipliers[Prediction.UP]
    response.down_multiplier = multipliers[Prediction.DOWN]
    response.seconds_to_lock = engine.rounds.seconds_to_lock(round)
    return response


@router.get("/current", response_model=RoundPoolResponse)
async def get_current_round(
    db: AsyncSession = Depends(get_db),
    engine: RoundEngine = Depends(get_engine),
):
    """Round currently open for betting or awaiting its result."""
    round = await engine.rounds.get_current_round(db)
    if round is None:
        raise HTTPException(status_code=404, detail="No active round")
    return _with_pool(round, engine)


@router.get("/upcoming", response_model=RoundResponse)
async def get_upcoming_round(
    db: AsyncSession = Depends(get_db),
    engine: RoundEngine = Depends(get_engine),
):
    """Next round to start."""
    round = await engine.rounds.get_upcoming_round(db)
    if round is None:
        raise HTTPException(status_code=404, detail="No upcoming round")
    return RoundResponse.model_validate(round)


@router.get("/history", response_model=PaginatedResponse[RoundResponse])
async def get_round_history(
    page: int = Query(1, ge=1),
    page_size: int = Query(settings.pagination_default_limit, ge=1, le=settings.pagination_max_limit),
    db: AsyncSession = Depends(get_db),
    engine: RoundEngine = Depends(get_engine),
):
    """Finished rounds, newest first."""
    rounds, total = await engine.rounds.get_round_history(
        db, limit=page_size, offset=(page - 1) * page_size
    )
    return PaginatedResponse[RoundResponse](
        items=[RoundResponse.model_validate(r) for r in rounds],
        total=total,
        page=page,
        page_size=page_size,
        pages=(total + page_size - 1) // page_size,
    )


@router.get("/{round_id}", response_model=RoundDetailResponse)
async def get_round(
    round_id: UUID,
    db: AsyncSession = Depends(get_db),
    engine: RoundEngine = Depends(get_engine),
):
    """Round details including every bet."""
    round = await engine.rounds.get_round_with_bets(db, round_id)
    return RoundDetailResponse.model_validate(round)


@router.post(
    "/{round_id}/cancel",
    response_model=RoundResponse,
    dependencies=[Depends(require_admin)],
)
async def cancel_round(
    round_id: UUID,
    request: CancelRoundRequest,
    db: AsyncSession = Depends(get_db),
    engine: RoundEngine = Depends(get_engine),
):
    """Administrative cancellation: refund all bets and close the round."""
    summary = await engine.settlement.cancel_round(db, round_id, request.reason)
    return RoundResponse.model_validate(summary.round)
