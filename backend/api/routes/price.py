"""Price API routes."""

from fastapi import APIRouter, Depends

from api.dependencies import get_engine
from schemas.round import PriceResponse
from services.round_engine import RoundEngine
from utils.time_utils import utcnow

router = APIRouter(prefix="/price", tags=["Price"])


@router.get("", response_model=PriceResponse)
async def get_price(engine: RoundEngine = Depends(get_engine)):
    """Current reference price."""
    price = await engine.oracle.current_price()
    return PriceResponse(price=price, timestamp=utcnow())
