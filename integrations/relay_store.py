"""
Relay session store (Backend A).

The store owns one explicit RelayConnection. Two connection flavours exist:

    WebSocketRelayConnection  talks to the relay route of a running API
    LocalRelayConnection      joins a RelayHub in the same process

Event handlers are registered per subscription and removed by the disposer
the subscription returns, so repeated joins never stack duplicate handlers.

The relay only broadcasts to sockets in a session's room. When a dropped
WebSocket is reopened the store joins its session again before anything
else is sent.
"""

import asyncio
import itertools
import json
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Optional
from uuid import uuid4
import structlog

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from config.settings import Settings
from exceptions import SessionExistsError, SessionNotFoundError, TransportError
from integrations.session_store import SessionStore, SnapshotCallback, Unsubscribe
from models.product import ProductRecord
from models.relay import (
    ACK,
    CREATE_SESSION,
    JOIN_SESSION,
    LEAVE_SESSION,
    PRODUCTS_UPDATED,
    UPDATE_PRODUCTS,
)
from models.session import SessionData
from services.relay_service import RelayHub

logger = structlog.get_logger(__name__)

BACKEND = "relay"

EventHandler = Callable[[dict], None]
ReconnectHook = Callable[[], Awaitable[None]]


class RelayConnection(ABC):
    """
    Bidirectional link to the relay process.

    Subclasses implement the transport; handler and reconnect hook
    bookkeeping lives here.
    """

    def __init__(self):
        self._handlers: dict[str, list[EventHandler]] = {}
        self._reconnect_hooks: list[ReconnectHook] = []

    @abstractmethod
    async def connect(self) -> None:
        """Open the link; a no-op when it is already up."""

    @abstractmethod
    async def request(self, event: str, data: dict) -> dict:
        """Send a frame and wait for its acknowledgement body."""

    @abstractmethod
    async def emit(self, event: str, data: dict) -> None:
        """Send a fire-and-forget frame."""

    @abstractmethod
    async def close(self) -> None:
        """Close the link for good."""

    def on_reconnect(self, hook: ReconnectHook) -> None:
        """Register a coroutine to run after a dropped link comes back up."""
        self._reconnect_hooks.append(hook)

    async def _run_reconnect_hooks(self) -> None:
        for hook in list(self._reconnect_hooks):
            await hook()

    def on(self, event: str, handler: EventHandler) -> Callable[[], None]:
        """
        Register a handler for a server event.

        Returns:
            Disposer removing exactly this handler
        """
        self._handlers.setdefault(event, []).append(handler)

        def dispose() -> None:
            handlers = self._handlers.get(event, [])
            if handler in handlers:
                handlers.remove(handler)

        return dispose

    def handler_count(self, event: str) -> int:
        return len(self._handlers.get(event, []))

    def _dispatch(self, frame: dict) -> None:
        event = frame.get("event")
        for handler in list(self._handlers.get(event, [])):
            try:
                handler(frame.get("data") or {})
            except Exception as e:
                logger.error("relay_handler_failed", event_name=event, error=str(e), error_type=type(e).__name__)


class WebSocketRelayConnection(RelayConnection):
    """Relay connection over a WebSocket, JSON text frames."""

    def __init__(
        self,
        url: str,
        connect_attempts: int = 5,
        connect_delay: float = 1.0,
        request_timeout: float = 10.0,
    ):
        super().__init__()
        self.url = url
        self.connect_attempts = connect_attempts
        self.connect_delay = connect_delay
        self.request_timeout = request_timeout
        self._ws = None
        self._reader: Optional[asyncio.Task] = None
        self._pending: dict[int, asyncio.Future] = {}
        self._ack_ids = itertools.count(1)

    @classmethod
    def from_settings(cls, settings: Settings) -> "WebSocketRelayConnection":
        return cls(
            url=settings.relay_url,
            connect_attempts=settings.relay_connect_attempts,
            connect_delay=settings.relay_connect_delay_seconds,
            request_timeout=settings.relay_request_timeout_seconds,
        )

    @property
    def connected(self) -> bool:
        return self._ws is not None and self._reader is not None and not self._reader.done()

    async def connect(self) -> None:
        """
        Open the socket, retrying up to connect_attempts times.

        A socket that dropped since the last connect counts as a reconnect:
        the reconnect hooks run before connect() returns. If a hook fails
        the new socket is dropped again, so the next send retries both.

        Raises:
            TransportError: If no attempt succeeds
        """
        if self.connected:
            return

        reconnecting = self._ws is not None
        last_error: Optional[Exception] = None
        for attempt in range(1, self.connect_attempts + 1):
            try:
                self._ws = await websockets.connect(self.url)
                self._reader = asyncio.create_task(self._read_loop())
                logger.info("relay_connected", url=self.url, attempt=attempt, reconnect=reconnecting)
                break
            except (OSError, WebSocketException, asyncio.TimeoutError) as e:
                last_error = e
                logger.warning("relay_connect_failed", url=self.url, attempt=attempt, error=str(e))
                if attempt < self.connect_attempts:
                    await asyncio.sleep(self.connect_delay)
        else:
            raise TransportError(
                BACKEND,
                "Could not connect to relay server",
                details={"url": self.url, "error": str(last_error)},
            )

        if reconnecting:
            try:
                await self._run_reconnect_hooks()
            except Exception:
                await self._drop()
                raise

    async def _read_loop(self) -> None:
        try:
            async for message in self._ws:
                try:
                    frame = json.loads(message)
                except (TypeError, ValueError):
                    logger.warning("relay_message_invalid")
                    continue

                if frame.get("event") == ACK:
                    future = self._pending.pop(frame.get("ack"), None)
                    if future is not None and not future.done():
                        future.set_result(frame.get("data") or {})
                    continue

                self._dispatch(frame)
        except ConnectionClosed as e:
            logger.info("relay_disconnected", code=e.rcvd.code if e.rcvd else None)
        finally:
            self._fail_pending("Relay connection closed")

    def _fail_pending(self, message: str) -> None:
        for future in self._pending.values():
            if not future.done():
                future.set_exception(TransportError(BACKEND, message))
        self._pending.clear()

    async def _send(self, frame: dict) -> None:
        await self.connect()
        try:
            await self._ws.send(json.dumps(frame, default=str))
        except (ConnectionClosed, OSError) as e:
            raise TransportError(BACKEND, "Failed to send to relay server", details={"error": str(e)}) from e

    async def request(self, event: str, data: dict) -> dict:
        ack_id = next(self._ack_ids)
        future = asyncio.get_running_loop().create_future()
        self._pending[ack_id] = future

        try:
            await self._send({"event": event, "data": data, "ack": ack_id})
        except TransportError:
            self._pending.pop(ack_id, None)
            future.cancel()
            raise

        try:
            return await asyncio.wait_for(future, timeout=self.request_timeout)
        except asyncio.TimeoutError as e:
            self._pending.pop(ack_id, None)
            raise TransportError(
                BACKEND,
                f"Relay server did not answer {event}",
                details={"timeout": self.request_timeout},
            ) from e

    async def emit(self, event: str, data: dict) -> None:
        await self._send({"event": event, "data": data})

    async def _drop(self) -> None:
        if self._ws is not None:
            await self._ws.close()
        if self._reader is not None:
            try:
                await self._reader
            except asyncio.CancelledError:
                pass

    async def close(self) -> None:
        await self._drop()
        self._ws = None
        self._reader = None
        logger.info("relay_connection_closed", url=self.url)


class LocalRelayConnection(RelayConnection):
    """
    Relay connection to a hub in the same process.

    Used when the counting device and the relay run together, and in tests.
    """

    def __init__(self, hub: RelayHub):
        super().__init__()
        self.hub = hub
        self.member_id = f"local-{uuid4().hex[:8]}"
        self._joined = False

    async def connect(self) -> None:
        if not self._joined:
            self.hub.connect(self)
            self._joined = True

    async def send(self, frame: dict) -> None:
        """Called by the hub to deliver a broadcast."""
        self._dispatch(frame)

    async def request(self, event: str, data: dict) -> dict:
        await self.connect()
        reply = await self.hub.handle(self, {"event": event, "data": data, "ack": 0})
        return (reply or {}).get("data") or {}

    async def emit(self, event: str, data: dict) -> None:
        await self.connect()
        await self.hub.handle(self, {"event": event, "data": data})

    async def close(self) -> None:
        if self._joined:
            self.hub.disconnect(self)
            self._joined = False


class RelaySessionStore(SessionStore):
    """Session store backed by a relay process."""

    backend = BACKEND

    def __init__(self, connection: RelayConnection):
        self.connection = connection
        self.session_id: Optional[str] = None
        connection.on_reconnect(self._rejoin)

    async def _rejoin(self) -> None:
        """Put a fresh socket back into the room of the followed session."""
        if self.session_id is None:
            return
        logger.info("relay_rejoining", session_id=self.session_id)
        await self.join_session(self.session_id)

    async def create_session(self, session_id: str, data: SessionData, overwrite: bool = True) -> None:
        logger.info("creating_session", backend=BACKEND, session_id=session_id, products=len(data.products))

        response = await self.connection.request(
            CREATE_SESSION,
            {"sessionId": session_id, "data": data.to_wire(), "overwrite": overwrite},
        )

        if response.get("success"):
            logger.info("session_created", backend=BACKEND, session_id=session_id)
            self.session_id = session_id
            return

        logger.error("session_create_failed", backend=BACKEND, session_id=session_id, error=response.get("error"))
        if response.get("code") == "SESSION_EXISTS":
            raise SessionExistsError(session_id)
        raise TransportError(BACKEND, response.get("error") or "Failed to create session")

    async def join_session(self, session_id: str) -> SessionData:
        response = await self.connection.request(JOIN_SESSION, {"sessionId": session_id})

        if response.get("success") and response.get("data"):
            logger.info("session_joined", backend=BACKEND, session_id=session_id)
            self.session_id = session_id
            return SessionData.model_validate(response["data"])

        logger.warning("session_join_failed", backend=BACKEND, session_id=session_id, error=response.get("error"))
        if response.get("code") == "SESSION_NOT_FOUND":
            raise SessionNotFoundError(session_id)
        raise TransportError(BACKEND, response.get("error") or "Failed to join session")

    async def update_session(self, session_id: str, products: list[ProductRecord]) -> None:
        await self.connection.emit(
            UPDATE_PRODUCTS,
            {"sessionId": session_id, "products": [p.to_wire() for p in products]},
        )
        logger.debug("products_sent", backend=BACKEND, session_id=session_id, products=len(products))

    def subscribe(self, session_id: str, on_snapshot: SnapshotCallback) -> Unsubscribe:
        def handle(data: dict[str, Any]) -> None:
            target = data.get("sessionId")
            if target is not None and target != session_id:
                return
            products = [ProductRecord.model_validate(p) for p in data.get("products") or []]
            logger.debug("products_received", backend=BACKEND, session_id=session_id, products=len(products))
            on_snapshot(products)

        return self.connection.on(PRODUCTS_UPDATED, handle)

    async def leave_session(self, session_id: str) -> None:
        if session_id == self.session_id:
            self.session_id = None
        await self.connection.emit(LEAVE_SESSION, {"sessionId": session_id})

    async def close(self) -> None:
        self.session_id = None
        await self.connection.close()
