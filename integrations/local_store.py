"""
Local session store (Backend C).

Single-device fallback without a network: each session is a JSON file
named after its key, "stock-session-<id>". There are no push
notifications; other readers see changes only when they read again.
"""

import json
from pathlib import Path
from typing import Optional, Union
import structlog

from pydantic import ValidationError as PydanticValidationError

from config.settings import Settings
from exceptions import SessionExistsError, SessionNotFoundError, TransportError
from integrations.session_store import SessionStore, SnapshotCallback, Unsubscribe
from models.product import ProductRecord
from models.session import SessionData, now_ms

logger = structlog.get_logger(__name__)

BACKEND = "local"
SESSION_PREFIX = "stock-session-"
HOUR_MS = 60 * 60 * 1000


def session_key(session_id: str) -> str:
    """Storage key for a session id."""
    return SESSION_PREFIX + session_id


class LocalSessionStore(SessionStore):
    """Session store writing JSON files to a directory."""

    backend = BACKEND

    def __init__(self, storage_dir: Union[str, Path], max_age_hours: int = 24):
        self.storage_dir = Path(storage_dir)
        self.max_age_hours = max_age_hours

    @classmethod
    def from_settings(cls, settings: Settings) -> "LocalSessionStore":
        return cls(settings.local_storage_dir, settings.session_max_age_hours)

    # ===================
    # KEY-VALUE HELPERS
    # ===================

    def _path(self, key: str) -> Path:
        return self.storage_dir / f"{key}.json"

    def _read(self, session_id: str) -> Optional[SessionData]:
        path = self._path(session_key(session_id))
        if not path.exists():
            return None

        try:
            return SessionData.model_validate_json(path.read_text(encoding="utf-8"))
        except OSError as e:
            raise TransportError(BACKEND, "Failed to read session file", details={"error": str(e)}) from e
        except PydanticValidationError as e:
            logger.error("session_parse_failed", backend=BACKEND, session_id=session_id, error=str(e))
            return None

    def _write(self, data: SessionData) -> None:
        path = self._path(session_key(data.session_id))
        try:
            self.storage_dir.mkdir(parents=True, exist_ok=True)
            tmp = path.with_suffix(".tmp")
            tmp.write_text(json.dumps(data.to_wire(), ensure_ascii=False), encoding="utf-8")
            tmp.replace(path)
        except OSError as e:
            raise TransportError(BACKEND, "Failed to write session file", details={"error": str(e)}) from e

    def session_exists(self, session_id: str) -> bool:
        return self._path(session_key(session_id)).exists()

    # ===================
    # STORE CONTRACT
    # ===================

    async def create_session(self, session_id: str, data: SessionData, overwrite: bool = True) -> None:
        if not overwrite and self.session_exists(session_id):
            raise SessionExistsError(session_id)

        stored = data.model_copy(update={"session_id": session_id, "last_updated": now_ms()})
        self._write(stored)
        logger.info("session_created", backend=BACKEND, session_id=session_id, products=len(data.products))

    async def join_session(self, session_id: str) -> SessionData:
        data = self._read(session_id)
        if data is None:
            logger.warning("session_not_found", backend=BACKEND, session_id=session_id)
            raise SessionNotFoundError(session_id)

        logger.info("session_loaded", backend=BACKEND, session_id=session_id)
        return data

    async def update_session(self, session_id: str, products: list[ProductRecord]) -> None:
        data = self._read(session_id)
        if data is None:
            logger.error("session_update_not_found", backend=BACKEND, session_id=session_id)
            raise SessionNotFoundError(session_id)

        self._write(data.with_products(products, now_ms()))
        logger.info("products_saved", backend=BACKEND, session_id=session_id, count=len(products))

    def subscribe(self, session_id: str, on_snapshot: SnapshotCallback) -> Unsubscribe:
        logger.debug("local_subscribe_noop", session_id=session_id)

        def dispose() -> None:
            return None

        return dispose

    # ===================
    # MAINTENANCE
    # ===================

    def get_last_updated(self, session_id: str) -> int:
        """Epoch ms of the last write, 0 if the session is unknown."""
        data = self._read(session_id)
        if data is None:
            return 0
        return data.last_updated or 0

    def cleanup_old_sessions(self, now: Optional[int] = None) -> int:
        """
        Remove sessions created more than max_age_hours ago.

        Unreadable session files are removed as well.

        Returns:
            Number of sessions removed
        """
        if not self.storage_dir.exists():
            return 0

        now = now if now is not None else now_ms()
        max_age = self.max_age_hours * HOUR_MS
        removed = 0

        for path in self.storage_dir.glob(f"{SESSION_PREFIX}*.json"):
            try:
                created_at = json.loads(path.read_text(encoding="utf-8")).get("createdAt")
                expired = not isinstance(created_at, (int, float)) or now - created_at > max_age
            except (OSError, ValueError, AttributeError):
                expired = True

            if expired:
                path.unlink(missing_ok=True)
                removed += 1
                logger.info("old_session_removed", key=path.stem)

        return removed
