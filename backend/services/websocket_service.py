"""WebSocket service for real-time round updates."""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional
from uuid import UUID

from fastapi import WebSocket

from schemas.websocket import WSBalanceUpdate, WSEvent, WSPriceUpdate

logger = logging.getLogger(__name__)


class ConnectionManager:
    """Manages WebSocket connections and per-user channels."""

    def __init__(self):
        # All active connections
        self.active_connections: list[WebSocket] = []
        # User channels: user_id -> set of websockets
        self.user_connections: dict[UUID, set[WebSocket]] = {}
        # Connection metadata
        self.connection_info: dict[WebSocket, dict] = {}

    async def connect(self, websocket: WebSocket, user_id: Optional[UUID] = None) -> None:
        """Accept a new WebSocket connection."""
        await websocket.accept()
        self.active_connections.append(websocket)
        self.connection_info[websocket] = {
            "connected_at": datetime.now(timezone.utc),
            "user_id": user_id,
        }
        if user_id is not None:
            self.user_connections.setdefault(user_id, set()).add(websocket)
        logger.info(f"WebSocket connected. Total: {len(self.active_connections)}")

    def disconnect(self, websocket: WebSocket) -> None:
        """Handle WebSocket disconnection."""
        if websocket in self.active_connections:
            self.active_connections.remove(websocket)

        info = self.connection_info.pop(websocket, {})
        user_id = info.get("user_id")
        if user_id in self.user_connections:
            self.user_connections[user_id].discard(websocket)
            if not self.user_connections[user_id]:
                del self.user_connections[user_id]

        logger.info(f"WebSocket disconnected. Total: {len(self.active_connections)}")

    async def _send_many(self, websockets: list[WebSocket], message: dict) -> None:
        disconnected = []

        for websocket in websockets:
            try:
                await websocket.send_json(message)
            except Exception as e:
                logger.warning(f"Failed to send to websocket: {e}")
                disconnected.append(websocket)

        # Clean up disconnected
        for ws in disconnected:
            self.disconnect(ws)

    async def send_to_user(self, user_id: UUID, message: dict) -> None:
        """Send a message to every connection of one user."""
        await self._send_many(list(self.user_connections.get(user_id, ())), message)

    async def broadcast_to_all(self, message: dict) -> None:
        """Broadcast message to all connected clients."""
        await self._send_many(list(self.active_connections), message)

    def get_total_connections(self) -> int:
        """Get total number of active connections."""
        return len(self.active_connections)


# Singleton connection manager
manager = ConnectionManager()


class WebSocketService:
    """
    Lifecycle event publisher backed by WebSocket connections.

    Balance updates go only to the owning user; everything else is broadcast.
    """

    def __init__(self, connection_manager: Optional[ConnectionManager] = None):
        self.manager = connection_manager or manager

    async def connect(self, websocket: WebSocket, user_id: Optional[UUID] = None) -> None:
        """Accept connection and optionally join the user's channel."""
        await self.manager.connect(websocket, user_id)

    def disconnect(self, websocket: WebSocket) -> None:
        """Handle disconnection."""
        self.manager.disconnect(websocket)

    async def publish(self, event: WSEvent) -> None:
        """Deliver a lifecycle event."""
        message = event.model_dump(mode="json")
        if isinstance(event, WSBalanceUpdate):
            await self.manager.send_to_user(event.user_id, message)
        else:
            await self.manager.broadcast_to_all(message)

    async def broadcast_price_update(self, price: Decimal) -> None:
        """Broadcast the latest reference price."""
        await self.publish(WSPriceUpdate(price=price))


# Singleton instance
websocket_service = WebSocketService()
