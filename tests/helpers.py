import asyncio
import base64
import json
import uuid
from io import BytesIO

from PIL import Image
from redis.exceptions import ConnectionError as RedisConnectionError
from starlette.websockets import WebSocketState

from doodleboard.models.doodle import APPROVED
from doodleboard.services.store import NewDoodle


def png_bytes(color=(255, 0, 0), size=(10, 10), mode="RGB") -> bytes:
    buf = BytesIO()
    Image.new(mode, size, color).save(buf, format="PNG")
    return buf.getvalue()


def gradient_png(size: int = 256) -> bytes:
    """Mixed-brightness image standing in for a normal photo."""
    ramp = Image.linear_gradient("L").resize((size, size))
    im = Image.merge("RGB", (ramp, ramp.rotate(90), Image.new("L", (size, size), 128)))
    buf = BytesIO()
    im.save(buf, format="PNG")
    return buf.getvalue()


def data_uri(raw: bytes) -> str:
    return "data:image/png;base64," + base64.b64encode(raw).decode("ascii")


def new_doodle(i: int = 0, status: str = APPROVED, session: str | None = None) -> NewDoodle:
    return NewDoodle(
        id=uuid.uuid4(),
        image_url=f"/uploads/test-{i}.png",
        image_fingerprint=f"{i:032x}",
        session_id=session or f"session-{i}",
        waitlist_rank=i + 1,
        moderation_status=status,
    )


class FakeWebSocket:
    """Just enough of starlette's WebSocket for the hub."""

    def __init__(self):
        self.client_state = WebSocketState.CONNECTING
        self.application_state = WebSocketState.CONNECTING
        self.sent = []
        self.fail_sends = False
        self.hang_sends = False
        self.close_code = None

    async def accept(self):
        self.client_state = WebSocketState.CONNECTED
        self.application_state = WebSocketState.CONNECTED

    async def send_text(self, text: str):
        if self.fail_sends:
            raise RuntimeError("socket is gone")
        if self.hang_sends:
            # a client that stopped reading
            await asyncio.Event().wait()
        self.sent.append(json.loads(text))

    async def close(self, code: int = 1000):
        self.close_code = code
        self.client_state = WebSocketState.DISCONNECTED
        self.application_state = WebSocketState.DISCONNECTED

    def of_type(self, kind: str):
        return [m for m in self.sent if m.get("type") == kind]


class BrokenBackend:
    """Cache backend whose server is unreachable."""

    async def get(self, key):
        raise RedisConnectionError("connection refused")

    async def setex(self, key, ttl, raw):
        raise RedisConnectionError("connection refused")

    async def delete_prefix(self, prefix):
        raise RedisConnectionError("connection refused")

    async def close(self):
        pass
