"""
Unit Tests for the WebSocket connection manager
"""
from unittest.mock import AsyncMock

from dream60.api.websocket import LIVE_CHANNEL, ConnectionManager, broadcast_auction_update, manager


def fake_socket(fail: bool = False) -> AsyncMock:
    socket = AsyncMock()
    if fail:
        socket.send_json.side_effect = RuntimeError("connection closed")
    return socket


class TestConnectionManager:
    async def test_connect_and_disconnect(self):
        connections = ConnectionManager()
        socket = fake_socket()

        await connections.connect(socket, "auction-1")
        assert connections.connection_count("auction-1") == 1
        socket.accept.assert_awaited_once()

        connections.disconnect(socket, "auction-1")
        assert connections.connection_count("auction-1") == 0
        assert "auction-1" not in connections.active_connections

    async def test_broadcast_drops_broken_connections(self):
        connections = ConnectionManager()
        healthy, broken = fake_socket(), fake_socket(fail=True)
        await connections.connect(healthy, "auction-1")
        await connections.connect(broken, "auction-1")

        await connections.broadcast("auction-1", {"type": "auction_update"})

        healthy.send_json.assert_awaited_once_with({"type": "auction_update"})
        assert connections.connection_count("auction-1") == 1

    async def test_broadcast_to_unknown_channel_is_a_no_op(self):
        await ConnectionManager().broadcast("nobody", {"type": "auction_update"})


async def test_auction_update_reaches_watchers_and_live_feed():
    watcher, live = fake_socket(), fake_socket()
    await manager.connect(watcher, "auction-42")
    await manager.connect(live, LIVE_CHANNEL)
    try:
        await broadcast_auction_update({"hourly_auction_id": "auction-42", "status": "LIVE"})
    finally:
        manager.disconnect(watcher, "auction-42")
        manager.disconnect(live, LIVE_CHANNEL)

    message = {"type": "auction_update", "data": {"hourly_auction_id": "auction-42", "status": "LIVE"}}
    watcher.send_json.assert_awaited_once_with(message)
    live.send_json.assert_awaited_once_with(message)
