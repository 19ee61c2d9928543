"""
Sync client — one device's adapter to the session store.

Create and join failures propagate: they block the state transition.
Push failures do not: local state is already updated, so the failure is
logged and returned as a PushResult and nothing is retried.
"""

import asyncio
from typing import Callable, Optional
import structlog

from exceptions import AppError
from integrations.session_store import SessionStore, Unsubscribe
from models.product import ProductRecord
from models.session import PushResult, SessionData

logger = structlog.get_logger(__name__)


def _fingerprint(products: list[ProductRecord]) -> list[dict]:
    return [p.to_wire() for p in products]


class SyncClient:
    """
    Pushes local snapshots to a store and applies remote ones.

    Holds at most one subscription. Snapshots equal to the last one pushed
    or applied are dropped, so a backend echoing our own write back is
    harmless.
    """

    def __init__(self, store: SessionStore):
        self.store = store
        self.session_id: Optional[str] = None
        self.last_push: Optional[PushResult] = None
        self._unsubscribe: Optional[Unsubscribe] = None
        self._last_snapshot: Optional[list[dict]] = None
        self._push_lock = asyncio.Lock()

    @property
    def backend(self) -> str:
        return self.store.backend

    @property
    def subscribed(self) -> bool:
        return self._unsubscribe is not None

    # ===================
    # SESSION LIFECYCLE
    # ===================

    async def create(self, data: SessionData, overwrite: bool = True) -> None:
        await self.store.create_session(data.session_id, data, overwrite=overwrite)
        self.session_id = data.session_id
        self._last_snapshot = _fingerprint(data.products)

    async def join(self, session_id: str) -> SessionData:
        data = await self.store.join_session(session_id)
        self.session_id = session_id
        self._last_snapshot = _fingerprint(data.products)
        return data

    def start(self, on_snapshot: Callable[[list[ProductRecord]], None]) -> None:
        """Follow remote snapshots of the current session."""
        if self.session_id is None:
            raise RuntimeError("start() called before create() or join()")

        self._dispose_subscription()

        def handle(products: list[ProductRecord]) -> None:
            fingerprint = _fingerprint(products)
            if fingerprint == self._last_snapshot:
                logger.debug("snapshot_echo_ignored", session_id=self.session_id)
                return
            self._last_snapshot = fingerprint
            logger.info("snapshot_applied", session_id=self.session_id, products=len(products))
            on_snapshot(products)

        self._unsubscribe = self.store.subscribe(self.session_id, handle)

    def _dispose_subscription(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    async def stop(self) -> None:
        """Detach from the session; the store connection stays open."""
        self._dispose_subscription()

        if self.session_id is not None:
            try:
                await self.store.leave_session(self.session_id)
            except AppError as e:
                logger.warning("leave_session_failed", session_id=self.session_id, error=e.message)

        self.session_id = None
        self._last_snapshot = None

    async def close(self) -> None:
        await self.stop()
        await self.store.close()

    # ===================
    # PUSH
    # ===================

    async def push(self, products: list[ProductRecord]) -> PushResult:
        """
        Send a snapshot, fire-and-forget from the caller's point of view.

        Returns:
            PushResult describing what happened; never raises for backend
            failures
        """
        if self.session_id is None:
            return PushResult(ok=False, skipped=True, product_count=len(products))

        session_id = self.session_id
        snapshot = list(products)

        async with self._push_lock:
            self._last_snapshot = _fingerprint(snapshot)
            try:
                await self.store.update_session(session_id, snapshot)
            except AppError as e:
                logger.warning(
                    "push_failed",
                    backend=self.backend,
                    session_id=session_id,
                    error=e.message,
                    code=e.code,
                )
                result = PushResult(
                    ok=False,
                    session_id=session_id,
                    product_count=len(snapshot),
                    error=e.message,
                )
            else:
                result = PushResult(ok=True, session_id=session_id, product_count=len(snapshot))

        self.last_push = result
        return result
