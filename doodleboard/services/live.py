"""
Live update hub: registry of connected WebSocket clients and channel fan-out.

The hub is created in the application lifespan and closed on shutdown. Its
only mutators are ``add``, ``remove`` and ``publish``; everything else reads.
Delivery is best effort: no retry, no replay, and one broken socket never
affects the publisher or the other subscribers. A subscriber that does not
take a message within ``send_timeout`` seconds is dropped like a failed one.
"""

import asyncio
import json
import logging
import uuid
from dataclasses import dataclass, field
from typing import Annotated, Any, Dict, List, Literal, Optional, Set, Union

from fastapi import WebSocket
from pydantic import BaseModel, Field, TypeAdapter, ValidationError
from starlette.websockets import WebSocketState

from doodleboard.services import metrics

logger = logging.getLogger(__name__)

DEFAULT_CHANNEL = "doodles"
GOING_AWAY = 1001
SEND_TIMEOUT_SECONDS = 5.0


# Client -> server messages
class PingMessage(BaseModel):
    type: Literal["ping"]


class SubscribeMessage(BaseModel):
    type: Literal["subscribe"]
    channels: List[str] = Field(default_factory=lambda: [DEFAULT_CHANNEL])


ClientMessage = TypeAdapter(Annotated[Union[PingMessage, SubscribeMessage], Field(discriminator="type")])


# Server -> client messages
def connected_message(client_id: str, total_clients: int) -> Dict[str, Any]:
    return {"type": "connected", "clientId": client_id, "totalClients": total_clients}


def new_doodle_message(doodle: Dict[str, Any]) -> Dict[str, Any]:
    return {"type": "new_doodle", "data": doodle}


def reaction_update_message(doodle_id: str, reactions: Dict[str, int]) -> Dict[str, Any]:
    return {"type": "reaction_update", "data": {"doodleId": doodle_id, "reactions": reactions}}


PONG = {"type": "pong"}


@dataclass(eq=False)
class LiveConnection:
    websocket: WebSocket
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    channels: Set[str] = field(default_factory=lambda: {DEFAULT_CHANNEL})

    @property
    def is_open(self) -> bool:
        return (
            self.websocket.client_state == WebSocketState.CONNECTED
            and self.websocket.application_state == WebSocketState.CONNECTED
        )

    async def send(self, message: Dict[str, Any]) -> None:
        await self.websocket.send_text(json.dumps(message))


class LiveUpdateHub:
    def __init__(self, send_timeout: float = SEND_TIMEOUT_SECONDS):
        self._connections: Dict[str, LiveConnection] = {}
        self._accepting = True
        self.send_timeout = send_timeout

    @property
    def count(self) -> int:
        return len(self._connections)

    async def add(self, websocket: WebSocket) -> Optional[LiveConnection]:
        """Accept a socket, register it and send the welcome message; None if shutting down."""
        if not self._accepting:
            await websocket.close(code=GOING_AWAY)
            return None
        await websocket.accept()
        conn = LiveConnection(websocket)
        self._connections[conn.id] = conn
        metrics.set_live_connections(self.count)
        logger.info("Live client connected: %s", conn.id)
        try:
            await conn.send(connected_message(conn.id, self.count))
        except Exception:
            self.remove(conn)
            raise
        return conn

    def remove(self, conn: LiveConnection) -> None:
        if self._connections.pop(conn.id, None) is not None:
            metrics.set_live_connections(self.count)
            logger.info("Live client disconnected: %s", conn.id)

    async def handle_message(self, conn: LiveConnection, raw: str) -> None:
        """Dispatch one inbound frame; unknown or malformed messages are ignored."""
        try:
            message = ClientMessage.validate_json(raw)
        except ValidationError:
            logger.info("Ignoring unknown live message from %s: %.200s", conn.id, raw)
            return
        if isinstance(message, PingMessage):
            await conn.send(PONG)
        elif isinstance(message, SubscribeMessage):
            conn.channels = set(message.channels)
            logger.debug("Client %s subscribed to %s", conn.id, sorted(conn.channels))

    async def publish(self, message: Dict[str, Any], channel: str = DEFAULT_CHANNEL) -> int:
        """Send ``message`` to every open subscriber of ``channel``; returns the delivery count."""
        targets = [c for c in list(self._connections.values()) if channel in c.channels]
        results = await asyncio.gather(*(self._deliver(c, message) for c in targets))
        delivered = sum(1 for ok in results if ok)
        metrics.record_live_published(message.get("type", "unknown"), delivered)
        return delivered

    async def _deliver(self, conn: LiveConnection, message: Dict[str, Any]) -> bool:
        if not conn.is_open:
            return False
        try:
            await asyncio.wait_for(conn.send(message), timeout=self.send_timeout)
            return True
        except asyncio.TimeoutError:
            logger.warning("Dropping live client %s: send timed out after %ss", conn.id, self.send_timeout)
            self.remove(conn)
            return False
        except Exception as exc:
            logger.warning("Dropping live client %s after send failure: %s", conn.id, exc)
            self.remove(conn)
            return False

    async def close(self) -> None:
        """Stop accepting connections and close the ones we have."""
        self._accepting = False
        conns = list(self._connections.values())
        self._connections.clear()
        metrics.set_live_connections(0)
        for conn in conns:
            if conn.is_open:
                try:
                    await conn.websocket.close(code=GOING_AWAY)
                except Exception as exc:
                    logger.debug("Error closing live client %s: %s", conn.id, exc)
        logger.info("Live hub closed (%s connections)", len(conns))
