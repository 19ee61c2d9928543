"""
Counting session — the per-device controller.

Drives the SETUP -> MAPPING -> ACTIVE lifecycle and runs the
scan -> confirm -> push loop. Every change to the working set is applied
locally first, then pushed through the sync client; a failed push is
reported but never undone.
"""

import secrets
import string
from io import BytesIO
from pathlib import Path
from typing import Any, Optional, Union
from urllib.parse import urlencode
import structlog

from config.settings import Settings, get_settings
from exceptions import InvalidStateError, MappingError, SessionExistsError, SpreadsheetImportError
from models.product import ColumnMapping, InventoryStats, ProductRecord
from models.session import MatchResult, PushResult, SessionData, SessionState, now_ms
from parsers.excel_parser import default_column_mapping, map_rows_to_products, read_excel_raw
from services import reconcile_service, scan_service
from services.export_service import export_file_name, get_export_service
from services.sync_client import SyncClient

logger = structlog.get_logger(__name__)

MAX_ID_ATTEMPTS = 5


def generate_session_id(length: int = 6) -> str:
    """Short random numeric id, easy to type on a scanner keypad."""
    return "".join(secrets.choice(string.digits) for _ in range(length))


class CountingSession:
    """
    One device's view of an inventory count.

    The sync client is optional; without one the session runs purely
    locally.
    """

    def __init__(self, sync: Optional[SyncClient] = None, settings: Optional[Settings] = None):
        self.sync = sync
        self.settings = settings or get_settings()
        self._clear()

    def _clear(self) -> None:
        self.state = SessionState.SETUP
        self.raw_rows: Optional[list[list[Any]]] = None
        self.file_name = ""
        self.original_headers: list[Any] = []
        self.mapping: Optional[ColumnMapping] = None
        self.products: list[ProductRecord] = []
        self.session_id: Optional[str] = None
        self.created_at: Optional[int] = None
        self.last_push: Optional[PushResult] = None

    def _require(self, operation: str, *states: SessionState) -> None:
        if self.state not in states:
            raise InvalidStateError(self.state.value, operation)

    # ===================
    # IMPORT
    # ===================

    def load_rows(self, rows: list[list[Any]], file_name: str = "") -> ColumnMapping:
        """
        Take raw spreadsheet rows and wait for a column mapping.

        Returns:
            Proposed default mapping

        Raises:
            SpreadsheetImportError: If there are no rows
        """
        self._require("load a spreadsheet", SessionState.SETUP, SessionState.MAPPING)

        if not rows:
            raise SpreadsheetImportError(message="The spreadsheet is empty.")

        self.raw_rows = rows
        self.file_name = file_name
        self.products = []
        self.state = SessionState.MAPPING

        logger.info("rows_loaded", file_name=file_name, rows=len(rows))
        return default_column_mapping(rows)

    def load_file(self, file: Union[str, Path, BytesIO, bytes], file_name: Optional[str] = None) -> ColumnMapping:
        """Read a workbook and load its first sheet."""
        if file_name is None:
            file_name = Path(file).name if isinstance(file, (str, Path)) else ""
        return self.load_rows(read_excel_raw(file), file_name)

    async def confirm_mapping(self, mapping: ColumnMapping) -> SessionData:
        """
        Build the catalog and open the session.

        The session id is minted here. When a sync client is attached the
        session is registered with the backend before the state changes,
        so a transport failure leaves the device in MAPPING.

        Raises:
            MappingError: If the mapping yields no products
            TransportError: If the backend cannot register the session
        """
        self._require("confirm the mapping", SessionState.MAPPING)

        products = map_rows_to_products(self.raw_rows, mapping)
        if not products:
            raise MappingError(mapping.to_wire(), len(self.raw_rows) - 1)

        data = SessionData(
            session_id=generate_session_id(self.settings.session_id_length),
            file_name=self.file_name,
            products=products,
            original_headers=list(self.raw_rows[0]),
            column_mapping=mapping,
            created_at=now_ms(),
        )

        if self.sync is not None:
            data = await self._register(data)

        self._activate(data)
        self.raw_rows = None
        return data

    async def _register(self, data: SessionData) -> SessionData:
        if not self.settings.session_id_collision_check:
            await self.sync.create(data)
            return data

        attempt = 1
        while True:
            try:
                await self.sync.create(data, overwrite=False)
                return data
            except SessionExistsError:
                logger.warning("session_id_collision", session_id=data.session_id, attempt=attempt)
                if attempt == MAX_ID_ATTEMPTS:
                    raise
                attempt += 1
                data = data.model_copy(update={"session_id": generate_session_id(self.settings.session_id_length)})

    async def join(self, session_id: str) -> SessionData:
        """
        Follow an existing session created on another device.

        Raises:
            SessionNotFoundError: If the id is unknown
            TransportError: If the backend cannot be reached
        """
        self._require("join a session", SessionState.SETUP)
        if self.sync is None:
            raise InvalidStateError(self.state.value, "join a session without a sync backend")

        data = await self.sync.join(session_id.strip())
        self._activate(data)
        return data

    def _activate(self, data: SessionData) -> None:
        self.session_id = data.session_id
        self.products = list(data.products)
        self.original_headers = list(data.original_headers)
        self.mapping = data.column_mapping
        self.file_name = data.file_name
        self.created_at = data.created_at
        self.state = SessionState.ACTIVE

        if self.sync is not None:
            self.sync.start(self._apply_remote)

        logger.info(
            "session_active",
            session_id=self.session_id,
            products=len(self.products),
            backend=self.sync.backend if self.sync else None,
        )

    def _apply_remote(self, products: list[ProductRecord]) -> None:
        self.products = list(products)
        logger.info("remote_snapshot_received", session_id=self.session_id, products=len(products))

    # ===================
    # SCAN LOOP
    # ===================

    def scan(self, raw: str) -> MatchResult:
        """Resolve a scanned code against the current working set."""
        self._require("scan", SessionState.ACTIVE)
        return scan_service.resolve(raw, self.products)

    async def confirm(
        self,
        match: MatchResult,
        qty: int = 1,
        description: Optional[str] = None,
    ) -> PushResult:
        """Apply a confirmed quantity, then push the new snapshot."""
        self._require("confirm a quantity", SessionState.ACTIVE)
        self.products = reconcile_service.confirm(self.products, match, qty, description)
        return await self._push()

    async def adjust(self, record_id: str, delta: int) -> PushResult:
        """Manual +/- on one record, then push."""
        self._require("adjust stock", SessionState.ACTIVE)
        self.products = reconcile_service.adjust(self.products, record_id, delta)
        return await self._push()

    async def _push(self) -> PushResult:
        if self.sync is None:
            self.last_push = PushResult(ok=False, skipped=True, product_count=len(self.products))
        else:
            self.last_push = await self.sync.push(self.products)
        return self.last_push

    # ===================
    # READ-ONLY VIEWS
    # ===================

    def search(self, term: str) -> list[ProductRecord]:
        return scan_service.search_products(self.products, term)

    def stats(self) -> InventoryStats:
        return reconcile_service.compute_stats(self.products)

    def snapshot(self) -> SessionData:
        """Current state as a SessionData."""
        self._require("take a snapshot", SessionState.ACTIVE)
        return SessionData(
            session_id=self.session_id,
            file_name=self.file_name,
            products=self.products,
            original_headers=self.original_headers,
            column_mapping=self.mapping,
            created_at=self.created_at or now_ms(),
            last_updated=now_ms(),
        )

    def export(self) -> BytesIO:
        """Counted workbook for the current working set."""
        self._require("export", SessionState.ACTIVE)
        return get_export_service().generate_inventory_excel(
            self.products,
            self.original_headers,
            self.mapping,
        )

    def export_file_name(self) -> str:
        return export_file_name(self.file_name)

    def share_url(self) -> str:
        """Join link handed to the QR renderer."""
        self._require("share", SessionState.ACTIVE)
        return build_share_url(self.settings.share_base_url, self.session_id)

    # ===================
    # TEARDOWN
    # ===================

    async def reset(self) -> None:
        """Discard the session and catalog and return to SETUP."""
        if self.sync is not None:
            await self.sync.stop()
        logger.info("session_reset", session_id=self.session_id)
        self._clear()

    async def close(self) -> None:
        if self.sync is not None:
            await self.sync.close()


def build_share_url(base_url: str, session_id: str) -> str:
    """'http://host/' + '123456' -> 'http://host/?session=123456'"""
    return f"{base_url}?{urlencode({'session': session_id})}"
