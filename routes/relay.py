"""
Relay WebSocket route.

Each connection becomes a RelayHub member. Frames are JSON text:
{"event", "data", "ack"}; acknowledged requests get one "ack" reply.
"""

import json
from uuid import uuid4

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
import structlog

from services.relay_service import get_relay_hub

logger = structlog.get_logger(__name__)

router = APIRouter()


class WebSocketMember:
    """Adapter between a FastAPI WebSocket and the hub."""

    def __init__(self, websocket: WebSocket):
        self.websocket = websocket
        self.member_id = uuid4().hex[:12]

    async def send(self, frame: dict) -> None:
        await self.websocket.send_text(json.dumps(frame, default=str))


@router.websocket("/ws/relay")
async def relay_socket(websocket: WebSocket):
    """Relay endpoint for counting devices."""
    hub = get_relay_hub()
    await websocket.accept()

    member = WebSocketMember(websocket)
    hub.connect(member)

    try:
        while True:
            message = await websocket.receive_text()
            try:
                frame = json.loads(message)
            except ValueError:
                logger.warning("relay_message_invalid", member_id=member.member_id)
                continue

            if not isinstance(frame, dict):
                logger.warning("relay_message_invalid", member_id=member.member_id)
                continue

            reply = await hub.handle(member, frame)
            if reply is not None:
                await member.send(reply)

    except WebSocketDisconnect:
        pass
    finally:
        hub.disconnect(member)
