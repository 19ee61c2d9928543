"""
Relay wire protocol.

Every frame is a JSON text message:

    {"event": "<name>", "data": {...}, "ack": <int or null>}

Requests that carry an ack id get exactly one reply frame with event "ack"
and the same id. update-products and leave-session are fire-and-forget.
"""

from typing import Any, Optional

from pydantic import BaseModel, Field


CREATE_SESSION = "create-session"
JOIN_SESSION = "join-session"
UPDATE_PRODUCTS = "update-products"
LEAVE_SESSION = "leave-session"
PRODUCTS_UPDATED = "products-updated"
ACK = "ack"

CLIENT_EVENTS = (CREATE_SESSION, JOIN_SESSION, UPDATE_PRODUCTS, LEAVE_SESSION)


class RelayFrame(BaseModel):
    """One message on the relay connection."""

    event: str = Field(..., min_length=1)
    data: dict[str, Any] = Field(default_factory=dict)
    ack: Optional[int] = None


def ack_payload(
    success: bool,
    data: Optional[dict] = None,
    error: Optional[str] = None,
    code: Optional[str] = None,
) -> dict:
    """Body of an acknowledgement: {success, data?, error?, code?}."""
    payload: dict[str, Any] = {"success": success}
    if data is not None:
        payload["data"] = data
    if error is not None:
        payload["error"] = error
    if code is not None:
        payload["code"] = code
    return payload


def ack_frame(ack_id: int, payload: dict) -> dict:
    """Wrap an acknowledgement body in a reply frame."""
    return {"event": ACK, "ack": ack_id, "data": payload}
