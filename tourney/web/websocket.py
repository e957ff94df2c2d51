"""
WebSocket handlers for live tournament displays.

Displays connect to a channel (debate_state, scores, tiebreak), get the
current snapshot straight away and then a push after every write.
"""
import asyncio
import logging
from typing import Any, Dict, Optional, Set

from fastapi import WebSocket

from tourney.web.service import CHANNELS, TournamentService

logger = logging.getLogger(__name__)


class ConnectionManager:
    """Manages WebSocket connections per push channel."""

    def __init__(self, service: TournamentService):
        self.service = service
        # Map channel -> set of connected WebSockets
        self.connections: Dict[str, Set[WebSocket]] = {}
        # Map websocket -> channel
        self.socket_channels: Dict[WebSocket, str] = {}
        self.loop: Optional[asyncio.AbstractEventLoop] = None
        self._unsubscribers = []

    def start(self, loop: asyncio.AbstractEventLoop):
        """Forward store writes on every channel to connected sockets."""
        self.loop = loop
        for channel in CHANNELS:
            self._unsubscribers.append(self.service.subscribe(channel, self.publish))

    def stop(self):
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []
        self.loop = None

    def publish(self, channel: str, data: Any):
        """
        Push a snapshot to a channel.

        Store callbacks run wherever the write happened, so the broadcast is
        handed to the server's event loop.
        """
        if self.loop is None or self.loop.is_closed() or channel not in self.connections:
            return
        message = {"type": "state", "channel": channel, "data": data}
        asyncio.run_coroutine_threadsafe(self.broadcast(channel, message), self.loop)

    async def connect(self, websocket: WebSocket, channel: str):
        """Connect a WebSocket to a channel."""
        await websocket.accept()

        if channel not in self.connections:
            self.connections[channel] = set()

        self.connections[channel].add(websocket)
        self.socket_channels[websocket] = channel

    def disconnect(self, websocket: WebSocket):
        """Disconnect a WebSocket."""
        channel = self.socket_channels.get(websocket)
        if channel and channel in self.connections:
            self.connections[channel].discard(websocket)
            if not self.connections[channel]:
                del self.connections[channel]
        if websocket in self.socket_channels:
            del self.socket_channels[websocket]

    async def broadcast(self, channel: str, message: dict):
        """Broadcast a message to all connections on a channel."""
        if channel in self.connections:
            dead_sockets = set()
            for websocket in list(self.connections[channel]):
                try:
                    await websocket.send_json(message)
                except Exception:
                    dead_sockets.add(websocket)

            # Clean up dead connections
            for ws in dead_sockets:
                logger.debug("Dropping dead connection on %s", channel)
                self.disconnect(ws)

    async def send_personal(self, websocket: WebSocket, message: dict):
        """Send a message to a specific WebSocket."""
        try:
            await websocket.send_json(message)
        except Exception:
            self.disconnect(websocket)


class ChannelWebSocketHandler:
    """Handles WebSocket messages from display clients."""

    def __init__(self, connection_manager: ConnectionManager):
        self.manager = connection_manager
        self.service = connection_manager.service

    async def handle_message(self, websocket: WebSocket, channel: str, data: dict):
        """
        Handle an incoming WebSocket message.

        Args:
            websocket: The WebSocket connection
            channel: Channel the socket is connected to
            data: Parsed JSON message
        """
        msg_type = data.get("type")

        handlers = {
            "get_state": self.handle_get_state,
            "ping": self.handle_ping,
        }

        handler = handlers.get(msg_type)
        if handler:
            await handler(websocket, channel, data)
        else:
            await self.send_error(websocket, f"Unknown message type: {msg_type}")

    async def handle_get_state(self, websocket: WebSocket, channel: str, data: dict):
        """Send the channel's current snapshot."""
        await self.manager.send_personal(websocket, {
            "type": "state",
            "channel": channel,
            "data": self.service.snapshot(channel)
        })

    async def handle_ping(self, websocket: WebSocket, channel: str, data: dict):
        """Respond to ping."""
        await self.manager.send_personal(websocket, {"type": "pong"})

    async def send_error(self, websocket: WebSocket, message: str):
        """Send an error message."""
        await self.manager.send_personal(websocket, {
            "type": "error",
            "message": message
        })
