"""
Cloud session store (Backend B).

One Supabase row per session:

    session_id        text primary key
    created_at        bigint (epoch ms)
    file_name         text
    products          jsonb  (camelCase product records)
    original_headers  jsonb
    column_mapping    jsonb  ({codeIndex, descIndex, stockIndex})
    last_updated      bigint (epoch ms)

Updates write the products column and a last_updated stamp; every other
column keeps the value it was created with. Subscriptions
re-read the row on an interval and fire whenever last_updated advances,
which includes the subscriber's own writes coming back. A poll that
returns a row stamped before this store's latest write is a stale read
and is dropped, so an in-flight poll never rolls back a newer push.
"""

import asyncio
from typing import Any, Callable, Optional
import structlog

from supabase import Client

from config.settings import Settings
from exceptions import SessionExistsError, SessionNotFoundError, TransportError
from integrations.session_store import SessionStore, SnapshotCallback, Unsubscribe
from models.product import ColumnMapping, ProductRecord
from models.session import SessionData, now_ms

logger = structlog.get_logger(__name__)

BACKEND = "cloud"


def session_to_row(data: SessionData) -> dict:
    """Flatten a session into table columns."""
    wire = data.to_wire()
    return {
        "session_id": data.session_id,
        "created_at": data.created_at,
        "file_name": data.file_name,
        "products": wire["products"],
        "original_headers": wire["originalHeaders"],
        "column_mapping": wire["columnMapping"],
        "last_updated": data.last_updated,
    }


def row_to_session(row: dict) -> SessionData:
    """Rebuild a session from table columns."""
    return SessionData(
        session_id=row["session_id"],
        created_at=row.get("created_at") or 0,
        file_name=row.get("file_name") or "",
        products=[ProductRecord.model_validate(p) for p in row.get("products") or []],
        original_headers=row.get("original_headers") or [],
        column_mapping=ColumnMapping.model_validate(row.get("column_mapping") or {"codeIndex": 0, "descIndex": 1}),
        last_updated=row.get("last_updated"),
    )


class SupabaseSessionStore(SessionStore):
    """Session store keeping one document per session in Supabase."""

    backend = BACKEND

    def __init__(
        self,
        client_factory: Callable[[], Client],
        table: str = "count_sessions",
        poll_interval: float = 1.0,
    ):
        self._client_factory = client_factory
        self.table = table
        self.poll_interval = poll_interval
        self._client: Optional[Client] = None
        self._watchers: set[asyncio.Task] = set()
        self._written: dict[str, int] = {}

    @classmethod
    def from_settings(cls, settings: Settings) -> "SupabaseSessionStore":
        from config.database import get_supabase_client
        return cls(get_supabase_client, settings.sessions_table, settings.cloud_poll_interval_seconds)

    @property
    def db(self) -> Client:
        if self._client is None:
            self._client = self._client_factory()
        return self._client

    async def _run(self, operation: str, fn: Callable[[], Any]) -> Any:
        """Run a blocking Supabase call off the event loop, mapping failures."""
        try:
            return await asyncio.to_thread(fn)
        except (SessionExistsError, SessionNotFoundError):
            raise
        except Exception as e:
            logger.error(
                "cloud_operation_failed",
                operation=operation,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise TransportError(BACKEND, f"Cloud {operation} failed", details={"error": str(e)}) from e

    def _fetch(self, session_id: str, columns: str = "*") -> Optional[dict]:
        result = (
            self.db.table(self.table)
            .select(columns)
            .eq("session_id", session_id)
            .limit(1)
            .execute()
        )
        return result.data[0] if result.data else None

    def _stamp(self, session_id: str) -> int:
        """Next last_updated value for a write, strictly increasing per session."""
        stamp = max(now_ms(), self._written.get(session_id, 0) + 1)
        self._written[session_id] = stamp
        return stamp

    def _is_stale(self, session_id: str, updated: int) -> bool:
        return updated < self._written.get(session_id, 0)

    # ===================
    # STORE CONTRACT
    # ===================

    async def create_session(self, session_id: str, data: SessionData, overwrite: bool = True) -> None:
        logger.info("creating_session", backend=BACKEND, session_id=session_id, products=len(data.products))
        stamp = self._stamp(session_id)
        row = session_to_row(data.model_copy(update={"session_id": session_id, "last_updated": stamp}))

        def write() -> None:
            if not overwrite and self._fetch(session_id, "session_id") is not None:
                raise SessionExistsError(session_id)
            self.db.table(self.table).upsert(row).execute()

        await self._run("create", write)
        logger.info("session_created", backend=BACKEND, session_id=session_id)

    async def join_session(self, session_id: str) -> SessionData:
        row = await self._run("join", lambda: self._fetch(session_id))

        if row is None:
            logger.warning("session_not_found", backend=BACKEND, session_id=session_id)
            raise SessionNotFoundError(session_id)

        logger.info("session_joined", backend=BACKEND, session_id=session_id)
        return row_to_session(row)

    async def update_session(self, session_id: str, products: list[ProductRecord]) -> None:
        # Stamped before the write starts so polls already in flight read as stale
        payload = {
            "products": [p.to_wire() for p in products],
            "last_updated": self._stamp(session_id),
        }

        await self._run(
            "update",
            lambda: self.db.table(self.table).update(payload).eq("session_id", session_id).execute(),
        )
        logger.debug("products_sent", backend=BACKEND, session_id=session_id, products=len(products))

    def subscribe(self, session_id: str, on_snapshot: SnapshotCallback) -> Unsubscribe:
        task = asyncio.get_running_loop().create_task(self._watch(session_id, on_snapshot))
        self._watchers.add(task)
        logger.info("cloud_subscribed", session_id=session_id, interval=self.poll_interval)

        def dispose() -> None:
            task.cancel()
            self._watchers.discard(task)
            logger.info("cloud_unsubscribed", session_id=session_id)

        return dispose

    async def _watch(self, session_id: str, on_snapshot: SnapshotCallback) -> None:
        last_seen: Optional[int] = None

        while True:
            try:
                row = await asyncio.to_thread(self._fetch, session_id, "products,last_updated")
            except Exception as e:
                logger.warning("cloud_poll_failed", session_id=session_id, error=str(e))
                row = None

            if row is not None:
                updated = row.get("last_updated") or 0
                if self._is_stale(session_id, updated):
                    logger.debug("cloud_stale_row_skipped", session_id=session_id, last_updated=updated)
                elif last_seen is None or updated > last_seen:
                    last_seen = updated
                    try:
                        on_snapshot([ProductRecord.model_validate(p) for p in row.get("products") or []])
                    except Exception as e:
                        logger.error("cloud_snapshot_handler_failed", session_id=session_id, error=str(e))

            await asyncio.sleep(self.poll_interval)

    async def close(self) -> None:
        for task in list(self._watchers):
            task.cancel()
        self._watchers.clear()
