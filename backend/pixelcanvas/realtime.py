"""
Realtime broadcast relay.

Committed placements and chat messages are pushed to every connected
WebSocket as ``{"event": <name>, "data": {...}}``. There is no per-client
filtering; a connection whose send fails is dropped.
"""
import logging
import uuid
from typing import Dict

from fastapi import WebSocket

logger = logging.getLogger(__name__)

PIXEL_PLACED = "pixelPlaced"
CHAT_MESSAGE = "chatMessage"


class ConnectionManager:
    def __init__(self):
        self.connections: Dict[str, WebSocket] = {}

    async def connect(self, ws: WebSocket) -> str:
        await ws.accept()
        connection_id = uuid.uuid4().hex
        self.connections[connection_id] = ws
        logger.info(f"Opened connection {connection_id} ({len(self.connections)} open)")
        return connection_id

    def disconnect(self, connection_id: str):
        if self.connections.pop(connection_id, None) is not None:
            logger.info(f"Closed connection {connection_id} ({len(self.connections)} open)")

    async def broadcast(self, event: str, data: dict) -> int:
        """Send one event to every connection; returns how many received it."""
        message = {"event": event, "data": data}
        delivered = 0
        for connection_id, ws in tuple(self.connections.items()):
            try:
                await ws.send_json(message)
                delivered += 1
            except Exception as e:
                logger.warning(f"Dropping connection {connection_id}: {str(e)}")
                self.disconnect(connection_id)
        logger.debug(f"Broadcast {event} to {delivered} connections")
        return delivered

    async def close_all(self):
        for connection_id, ws in tuple(self.connections.items()):
            try:
                await ws.close()
            except Exception as e:
                logger.debug(f"Close failed for {connection_id}: {str(e)}")
            self.disconnect(connection_id)


# Global relay instance
manager = ConnectionManager()
