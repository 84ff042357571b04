"""WebSocket endpoint for live feed updates."""

import logging

from fastapi import APIRouter, WebSocket
from starlette.websockets import WebSocketDisconnect

from doodleboard.services.live import LiveUpdateHub

router = APIRouter()
logger = logging.getLogger(__name__)


@router.websocket("/ws")
async def live_socket(websocket: WebSocket):
    hub: LiveUpdateHub = websocket.app.state.hub
    conn = await hub.add(websocket)
    if conn is None:
        return
    try:
        while True:
            raw = await websocket.receive_text()
            await hub.handle_message(conn, raw)
    except WebSocketDisconnect:
        pass
    except Exception as exc:
        logger.warning("Live client %s errored: %s", conn.id, exc)
    finally:
        hub.remove(conn)
