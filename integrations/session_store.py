"""
Session store contract and backend selection.

A session store holds the authoritative product list for a session id and
tells subscribers when it changes. Three interchangeable backends exist:

    relay  in-memory relay process reached over a WebSocket
    cloud  one Supabase row per session, watched for changes
    local  JSON files on this device, no push notifications

Consistency is last-writer-wins on the whole products list.
"""

from abc import ABC, abstractmethod
from typing import Callable, Optional

from config.settings import Settings, get_settings
from models.product import ProductRecord
from models.session import SessionData

SnapshotCallback = Callable[[list[ProductRecord]], None]
Unsubscribe = Callable[[], None]


class SessionStore(ABC):
    """Backend-independent session replication contract."""

    backend: str = "base"

    @abstractmethod
    async def create_session(self, session_id: str, data: SessionData, overwrite: bool = True) -> None:
        """
        Register a new session.

        Raises:
            SessionExistsError: If overwrite is False and the id is live
            TransportError: If the backend cannot be reached
        """

    @abstractmethod
    async def join_session(self, session_id: str) -> SessionData:
        """
        Fetch the current snapshot of a session.

        Raises:
            SessionNotFoundError: If the id is unknown or expired
            TransportError: If the backend cannot be reached
        """

    @abstractmethod
    async def update_session(self, session_id: str, products: list[ProductRecord]) -> None:
        """
        Replace the session's products with a new snapshot.

        Raises:
            TransportError: If the backend cannot be reached
        """

    @abstractmethod
    def subscribe(self, session_id: str, on_snapshot: SnapshotCallback) -> Unsubscribe:
        """
        Call on_snapshot with every remote products snapshot.

        Returns a disposer; calling it detaches exactly this subscription.
        """

    async def leave_session(self, session_id: str) -> None:
        """Tell the backend this device stopped following the session."""
        return None

    async def close(self) -> None:
        """Release connections held by the store."""
        return None


def get_session_store(settings: Optional[Settings] = None) -> SessionStore:
    """
    Build the session store selected by SYNC_BACKEND.

    Args:
        settings: Settings to use (defaults to the cached settings)

    Returns:
        A new, unconnected SessionStore
    """
    settings = settings or get_settings()

    if settings.sync_backend == "relay":
        from integrations.relay_store import RelaySessionStore, WebSocketRelayConnection
        return RelaySessionStore(WebSocketRelayConnection.from_settings(settings))

    if settings.sync_backend == "cloud":
        from integrations.supabase_store import SupabaseSessionStore
        return SupabaseSessionStore.from_settings(settings)

    from integrations.local_store import LocalSessionStore
    return LocalSessionStore.from_settings(settings)
