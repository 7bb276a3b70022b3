"""API routes module."""

from api.routes.bets import router as bets_router
from api.routes.price import router as price_router
from api.routes.rounds import router as rounds_router
from api.routes.wallet import router as wallet_router
from api.routes.websocket import router as websocket_router

__all__ = [
    "bets_router",
    "price_router",
    "rounds_router",
    "wallet_router",
    "websocket_router",
]
