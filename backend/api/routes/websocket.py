"""WebSocket API routes."""

import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect

from services.websocket_service import manager, websocket_service

logger = logging.getLogger(__name__)

router = APIRouter(tags=["WebSocket"])


@router.websocket("/ws")
async def websocket_endpoint(
    websocket: WebSocket,
    user_id: Optional[str] = Query(default=None),
):
    """
    Real-time round updates.

    Connect with ``/ws?user_id=<uuid>`` to also receive that user's balance
    updates.

    Server sends:
    - {"type": "round_started", "round_id": "uuid", "start_price": "...", ...}
    - {"type": "round_locked", "round_id": "uuid", ...}
    - {"type": "round_ended", "round_id": "uuid", "result": "up", ...}
    - {"type": "bet_placed", "round_id": "uuid", "up_stake_total": "...", ...}
    - {"type": "balance_update", "user_id": "uuid", "available": "...", ...}
    - {"type": "price_update", "price": "...", "timestamp": "..."}
    - {"type": "error", "message": "...", "code": "..."}
    """
    owner: Optional[UUID] = None
    if user_id:
        try:
            owner = UUID(user_id)
        except ValueError:
            await websocket.accept()
            await websocket.send_json({
                "type": "error",
                "message": "Invalid user_id format",
                "code": "INVALID_UUID",
            })
            await websocket.close()
            return

    await websocket_service.connect(websocket, owner)

    try:
        while True:
            # Clients only listen; incoming text is treated as a keep-alive
            data = await websocket.receive_text()
            if data == "ping":
                await websocket.send_json({"type": "pong"})

    except WebSocketDisconnect:
        websocket_service.disconnect(websocket)
        logger.debug("WebSocket disconnected")

    except Exception as e:
        logger.error(f"WebSocket error: {e}")
        websocket_service.disconnect(websocket)


@router.get("/ws/stats")
async def get_websocket_stats():
    """Get WebSocket connection statistics."""
    return {
        "total_connections": manager.get_total_connections(),
        "users": len(manager.user_connections),
    }
