"""
WebSocket endpoint subscribing clients to pixelPlaced / chatMessage events.

Clients only listen; the single command they may send is ``ping``.
"""
import logging
from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from pixelcanvas.realtime import manager

logger = logging.getLogger(__name__)

router = APIRouter(tags=["realtime"])


@router.websocket("/ws")
async def subscribe(ws: WebSocket):
    connection_id = await manager.connect(ws)
    try:
        while True:
            message = await ws.receive_text()
            if message.strip().lower() == "ping":
                await ws.send_text("pong")
            else:
                logger.debug(f"Ignoring message from {connection_id}: {message[:100]}")
    except WebSocketDisconnect:
        pass
    except Exception as exc:
        logger.exception("Error when handling websocket", exc_info=exc)
    finally:
        manager.disconnect(connection_id)
