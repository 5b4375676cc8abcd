# dream60/api/websocket.py
import logging
from typing import Dict, Set

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from sqlalchemy.ext.asyncio import AsyncSession

from dream60.core.clock import Clock, get_clock
from dream60.core.database import get_db
from dream60.core.exceptions import NotFoundError
from dream60.schemas.auction import auction_payload
from dream60.services import bidding_service, replica_sync

logger = logging.getLogger(__name__)

router = APIRouter()

LIVE_CHANNEL = "live"


class ConnectionManager:
    """Manage WebSocket connections per channel (one per auction, plus the live feed)"""

    def __init__(self):
        self.active_connections: Dict[str, Set[WebSocket]] = {}

    async def connect(self, websocket: WebSocket, channel: str):
        """Accept a new WebSocket connection for a channel"""
        await websocket.accept()
        self.active_connections.setdefault(channel, set()).add(websocket)
        logger.info(
            f"✓ WebSocket connected to {channel}. "
            f"Total connections: {len(self.active_connections[channel])}"
        )

    def disconnect(self, websocket: WebSocket, channel: str):
        """Remove a WebSocket connection"""
        if channel in self.active_connections:
            self.active_connections[channel].discard(websocket)
            if not self.active_connections[channel]:
                del self.active_connections[channel]
        logger.info(f"✓ WebSocket disconnected from {channel}")

    def connection_count(self, channel: str) -> int:
        return len(self.active_connections.get(channel, ()))

    async def broadcast(self, channel: str, message: dict):
        """Broadcast a message to all connections of a channel"""
        if channel not in self.active_connections:
            return

        disconnected = set()
        for connection in list(self.active_connections[channel]):
            try:
                await connection.send_json(message)
            except Exception as e:
                logger.warning(f"⚠ Error sending to WebSocket on {channel}: {e}")
                disconnected.add(connection)

        for connection in disconnected:
            self.disconnect(connection, channel)


manager = ConnectionManager()


async def broadcast_auction_update(payload: dict) -> None:
    """Push an auction's current state to its watchers and the live feed."""
    message = {"type": "auction_update", "data": payload}
    await manager.broadcast(payload["hourly_auction_id"], message)
    await manager.broadcast(LIVE_CHANNEL, message)


async def broadcast_auctions(db: AsyncSession, hourly_auction_ids: list[str]) -> int:
    """Load and broadcast each auction. Call after the changes are committed."""
    if not hourly_auction_ids or not manager.active_connections:
        return 0

    sent = 0
    for hourly_auction_id in hourly_auction_ids:
        auction = await replica_sync.load_hourly_auction(db, hourly_auction_id)
        if auction is None:
            continue
        await broadcast_auction_update(auction_payload(auction))
        sent += 1
    return sent


async def _keep_alive(websocket: WebSocket) -> None:
    while True:
        data = await websocket.receive_text()
        if data == "ping":
            await websocket.send_text("pong")


@router.websocket("/ws/auctions/{hourly_auction_id}")
async def auction_websocket(
    websocket: WebSocket,
    hourly_auction_id: str,
    db: AsyncSession = Depends(get_db),
):
    """
    Real-time state of one hourly auction.

    Sends the current auction on connect, then every `auction_update`
    broadcast for it. Clients may send "ping" to keep the connection open.
    """
    await manager.connect(websocket, hourly_auction_id)
    try:
        auction = await replica_sync.load_hourly_auction(db, hourly_auction_id)
        if auction is not None:
            await websocket.send_json({"type": "auction_update", "data": auction_payload(auction)})
        else:
            await websocket.send_json({"type": "error", "message": "Hourly auction not found"})
        await _keep_alive(websocket)
    except WebSocketDisconnect:
        manager.disconnect(websocket, hourly_auction_id)
    except Exception as e:
        logger.error(f"❌ WebSocket error on {hourly_auction_id}: {e}")
        manager.disconnect(websocket, hourly_auction_id)


@router.websocket("/ws/live")
async def live_websocket(
    websocket: WebSocket,
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """Feed of every auction update, starting with the current live auction."""
    await manager.connect(websocket, LIVE_CHANNEL)
    try:
        try:
            live = await bidding_service.get_live_auction(db, clock.now())
            await websocket.send_json({"type": "auction_update", "data": live})
        except NotFoundError as e:
            await websocket.send_json({"type": "no_live_auction", "message": e.message})
        await _keep_alive(websocket)
    except WebSocketDisconnect:
        manager.disconnect(websocket, LIVE_CHANNEL)
    except Exception as e:
        logger.error(f"❌ Live WebSocket error: {e}")
        manager.disconnect(websocket, LIVE_CHANNEL)
