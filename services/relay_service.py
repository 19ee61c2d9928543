"""
Relay hub — the shared process behind the relay sync backend.

Sessions live in memory only; restarting the process loses them. Each
connected device is a member; members join a session's room by creating or
joining it, and every products update is re-broadcast to the other members
of that room. The last update to arrive wins.
"""

from typing import Any, Optional, Protocol
import structlog

from pydantic import ValidationError as PydanticValidationError

from models.product import ProductRecord
from models.relay import (
    CREATE_SESSION,
    JOIN_SESSION,
    LEAVE_SESSION,
    PRODUCTS_UPDATED,
    UPDATE_PRODUCTS,
    RelayFrame,
    ack_frame,
    ack_payload,
)
from models.session import SessionData, now_ms

logger = structlog.get_logger(__name__)


class RelayMember(Protocol):
    """A connected device as seen by the hub."""

    member_id: str

    async def send(self, frame: dict) -> None:
        ...


class RelayHub:
    """
    In-memory session registry with per-session broadcast.

    Runs on a single event loop; handlers never await between reading and
    writing shared state, so no locking is needed.
    """

    def __init__(self):
        self.sessions: dict[str, SessionData] = {}
        self.rooms: dict[str, set[str]] = {}
        self.members: dict[str, RelayMember] = {}

    # ===================
    # MEMBERSHIP
    # ===================

    def connect(self, member: RelayMember) -> None:
        self.members[member.member_id] = member
        logger.info("relay_member_connected", member_id=member.member_id, members=len(self.members))

    def disconnect(self, member: RelayMember) -> None:
        self.members.pop(member.member_id, None)
        for room in self.rooms.values():
            room.discard(member.member_id)
        logger.info("relay_member_disconnected", member_id=member.member_id, members=len(self.members))

    def _join_room(self, member: RelayMember, session_id: str) -> None:
        self.rooms.setdefault(session_id, set()).add(member.member_id)

    def room_size(self, session_id: str) -> int:
        return len(self.rooms.get(session_id, ()))

    # ===================
    # SESSION OPERATIONS
    # ===================

    def create_session(
        self,
        member: RelayMember,
        session_id: str,
        data: dict[str, Any],
        overwrite: bool = True,
    ) -> dict:
        """Register a session and put the creator in its room."""
        if not session_id:
            return ack_payload(False, error="Missing sessionId", code="VALIDATION_ERROR")

        if not overwrite and session_id in self.sessions:
            logger.warning("relay_session_exists", session_id=session_id)
            return ack_payload(False, error="Session already exists", code="SESSION_EXISTS")

        try:
            session = SessionData.model_validate({**data, "sessionId": session_id})
        except PydanticValidationError as e:
            logger.warning("relay_session_invalid", session_id=session_id, error=str(e))
            return ack_payload(False, error="Invalid session data", code="VALIDATION_ERROR")

        if session_id in self.sessions:
            logger.warning("relay_session_overwritten", session_id=session_id)

        self.sessions[session_id] = session
        self._join_room(member, session_id)

        logger.info(
            "relay_session_created",
            session_id=session_id,
            products=len(session.products),
            member_id=member.member_id,
        )
        return ack_payload(True)

    def join_session(self, member: RelayMember, session_id: str) -> dict:
        """Look a session up and put the member in its room."""
        session = self.sessions.get(session_id)
        if session is None:
            logger.info("relay_session_not_found", session_id=session_id)
            return ack_payload(False, error="Session not found", code="SESSION_NOT_FOUND")

        self._join_room(member, session_id)
        logger.info("relay_session_joined", session_id=session_id, member_id=member.member_id)
        return ack_payload(True, data=session.to_wire())

    def leave_session(self, member: RelayMember, session_id: str) -> None:
        room = self.rooms.get(session_id)
        if room is not None:
            room.discard(member.member_id)
        logger.info("relay_session_left", session_id=session_id, member_id=member.member_id)

    async def update_products(self, member: RelayMember, session_id: str, products: list[Any]) -> int:
        """
        Replace a session's products and tell the other members.

        Returns:
            Number of members the update was delivered to
        """
        session = self.sessions.get(session_id)
        if session is None:
            logger.warning("relay_update_unknown_session", session_id=session_id)
            return 0

        try:
            records = [ProductRecord.model_validate(p) for p in products]
        except PydanticValidationError as e:
            logger.warning("relay_update_invalid", session_id=session_id, error=str(e))
            return 0

        self.sessions[session_id] = session.with_products(records, now_ms())

        frame = {
            "event": PRODUCTS_UPDATED,
            "data": {
                "sessionId": session_id,
                "products": [r.to_wire() for r in records],
            },
        }

        delivered = 0
        for member_id in list(self.rooms.get(session_id, ())):
            if member_id == member.member_id:
                continue
            target = self.members.get(member_id)
            if target is None:
                continue
            try:
                await target.send(frame)
                delivered += 1
            except Exception as e:
                logger.warning("relay_broadcast_failed", member_id=member_id, error=str(e))
                self.disconnect(target)

        logger.info(
            "relay_products_updated",
            session_id=session_id,
            products=len(records),
            delivered=delivered,
        )
        return delivered

    def get_session(self, session_id: str) -> Optional[SessionData]:
        return self.sessions.get(session_id)

    # ===================
    # FRAME DISPATCH
    # ===================

    async def handle(self, member: RelayMember, raw: dict) -> Optional[dict]:
        """
        Process one frame from a member.

        Returns:
            The reply frame for acknowledged requests, otherwise None
        """
        try:
            frame = RelayFrame.model_validate(raw)
        except PydanticValidationError:
            logger.warning("relay_frame_invalid", member_id=member.member_id)
            return None

        data = frame.data
        session_id = str(data.get("sessionId") or "")

        if frame.event == CREATE_SESSION:
            payload = self.create_session(
                member,
                session_id,
                data.get("data") or {},
                overwrite=bool(data.get("overwrite", True)),
            )
        elif frame.event == JOIN_SESSION:
            payload = self.join_session(member, session_id)
        elif frame.event == UPDATE_PRODUCTS:
            await self.update_products(member, session_id, data.get("products") or [])
            payload = None
        elif frame.event == LEAVE_SESSION:
            self.leave_session(member, session_id)
            payload = None
        else:
            logger.warning("relay_unknown_event", event_name=frame.event, member_id=member.member_id)
            payload = ack_payload(False, error=f"Unknown event: {frame.event}", code="UNKNOWN_EVENT")

        if frame.ack is None or payload is None:
            return None
        return ack_frame(frame.ack, payload)


_relay_hub: Optional[RelayHub] = None


def get_relay_hub() -> RelayHub:
    """Get or create the process-wide RelayHub."""
    global _relay_hub
    if _relay_hub is None:
        _relay_hub = RelayHub()
    return _relay_hub
