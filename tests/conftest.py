"""
Shared test fixtures.
"""

import sys
from pathlib import Path

# Add project root to Python path
root_dir = Path(__file__).parent.parent
sys.path.insert(0, str(root_dir))

import pytest
from unittest.mock import patch
from typing import Generator

from models.product import ColumnMapping, ProductRecord
from models.session import SessionData
from parsers.excel_parser import map_rows_to_products

# ===================
# MOCK SUPABASE CLIENT
# ===================

class MockSupabaseResponse:
    """Mock Supabase query response."""

    def __init__(self, data: list = None, count: int = None):
        self.data = data or []
        self.count = count if count is not None else len(self.data)


class MockSupabaseQuery:
    """
    Mock Supabase query builder with chainable methods.

    Writes go to the owning table's rows, so a later select sees them.
    """

    def __init__(self, table: "MockSupabaseTable"):
        self._table = table
        self._operation = "select"
        self._payload = None
        self._filters: list[tuple[str, object]] = []
        self._limit = None

    def select(self, *args, **kwargs):
        self._operation = "select"
        return self

    def insert(self, data):
        self._operation = "insert"
        self._payload = data
        return self

    def upsert(self, data):
        self._operation = "upsert"
        self._payload = data
        return self

    def update(self, data):
        self._operation = "update"
        self._payload = data
        return self

    def delete(self):
        self._operation = "delete"
        return self

    def eq(self, column, value):
        self._filters.append((column, value))
        return self

    def limit(self, count):
        self._limit = count
        return self

    def _matches(self, row: dict) -> bool:
        return all(row.get(column) == value for column, value in self._filters)

    def execute(self) -> MockSupabaseResponse:
        self._table.calls.append(self._operation)

        if self._table.error is not None:
            raise self._table.error

        rows = self._table.rows

        if self._operation in ("insert", "upsert"):
            items = self._payload if isinstance(self._payload, list) else [self._payload]
            for item in items:
                existing = [r for r in rows if r.get("session_id") == item.get("session_id")]
                if existing and self._operation == "upsert":
                    existing[0].update(item)
                else:
                    rows.append(dict(item))
            return MockSupabaseResponse(data=list(items))

        if self._operation == "update":
            updated = []
            for row in rows:
                if self._matches(row):
                    row.update(self._payload)
                    updated.append(row)
            return MockSupabaseResponse(data=updated)

        if self._operation == "delete":
            kept = [r for r in rows if not self._matches(r)]
            removed = len(rows) - len(kept)
            rows[:] = kept
            return MockSupabaseResponse(count=removed)

        found = [dict(r) for r in rows if self._matches(r)]
        if self._limit is not None:
            found = found[:self._limit]
        return MockSupabaseResponse(data=found)


class MockSupabaseTable:
    """Mock Supabase table holding rows in memory."""

    def __init__(self):
        self.rows: list[dict] = []
        self.calls: list[str] = []
        self.error: Exception = None

    def select(self, *args, **kwargs):
        return MockSupabaseQuery(self).select(*args, **kwargs)

    def insert(self, data):
        return MockSupabaseQuery(self).insert(data)

    def upsert(self, data):
        return MockSupabaseQuery(self).upsert(data)

    def update(self, data):
        return MockSupabaseQuery(self).update(data)

    def delete(self):
        return MockSupabaseQuery(self).delete()


class MockSupabaseClient:
    """Mock Supabase client."""

    def __init__(self):
        self._tables: dict[str, MockSupabaseTable] = {}

    def set_table_data(self, table_name: str, data: list):
        """Configure mock rows for a table."""
        self.table(table_name).rows = [dict(row) for row in data]

    def fail_table(self, table_name: str, error: Exception):
        """Make every query on a table raise."""
        self.table(table_name).error = error

    def table(self, name: str) -> MockSupabaseTable:
        """Get mock table."""
        return self._tables.setdefault(name, MockSupabaseTable())


# ===================
# FIXTURES
# ===================

@pytest.fixture
def mock_supabase() -> MockSupabaseClient:
    """
    Create a mock Supabase client.

    Usage:
        def test_something(mock_supabase):
            mock_supabase.set_table_data("count_sessions", [
                {"session_id": "123456", "products": [...], ...}
            ])
    """
    return MockSupabaseClient()


@pytest.fixture
def mock_db(mock_supabase) -> Generator:
    """Patch the cached Supabase client with the mock."""
    with patch("config.database.get_supabase_client", return_value=mock_supabase):
        yield mock_supabase


@pytest.fixture
def sample_rows() -> list:
    """Raw spreadsheet rows as read from a workbook, header first."""
    return [
        ["Cod", "Denumire", "Stoc", "Gestiune"],
        ["CF280A", "Toner HP 80A", 5, "Depozit"],
        ["MLT-D101S", "Toner Samsung", "3 buc", "Depozit"],
        ["AB", "Cod prea scurt", 1, "Depozit"],
        ["Q2612A", None, 0, "Magazin"],
        ["TN-2420", "Toner Brother", 2.0, "Magazin"],
    ]


@pytest.fixture
def sample_mapping() -> ColumnMapping:
    """Code, description and stock in the first three columns."""
    return ColumnMapping(code_index=0, desc_index=1, stock_index=2)


@pytest.fixture
def sample_products(sample_rows, sample_mapping) -> list:
    """Catalog built from sample_rows."""
    return map_rows_to_products(sample_rows, sample_mapping)


@pytest.fixture
def sample_session(sample_rows, sample_mapping, sample_products) -> SessionData:
    """Session document for the sample catalog."""
    return SessionData(
        session_id="123456",
        file_name="stoc.xlsx",
        products=sample_products,
        original_headers=sample_rows[0],
        column_mapping=sample_mapping,
        created_at=1_700_000_000_000,
    )


@pytest.fixture
def new_record() -> ProductRecord:
    """Item created while scanning."""
    return ProductRecord(
        id="NEW_1700000000000_XYZ12345",
        code="XYZ12345",
        description="XYZ12345 - Cablu",
        actual_stock=2,
        is_new=True,
    )


@pytest.fixture
def relay_hub():
    """Fresh relay hub, installed as the process-wide instance."""
    import services.relay_service as relay_service

    hub = relay_service.RelayHub()
    with patch.object(relay_service, "_relay_hub", hub):
        yield hub


@pytest.fixture
def test_client(relay_hub):
    """
    FastAPI test client.

    Used as a context manager so websocket sessions share one event loop.
    """
    from fastapi.testclient import TestClient
    from main import app

    with TestClient(app) as client:
        yield client
