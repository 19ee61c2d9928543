"""
Unit tests for the spreadsheet parser.

Tests reading raw rows from a workbook and mapping them to catalog records.
"""

from io import BytesIO

import pytest
from openpyxl import Workbook

from exceptions import SpreadsheetImportError
from models.product import ColumnMapping, DEFAULT_DESCRIPTION
from parsers.excel_parser import (
    default_column_mapping,
    map_rows_to_products,
    read_excel_raw,
)


def create_excel_file(rows: list[list]) -> BytesIO:
    """Helper to create test Excel files in memory."""
    wb = Workbook()
    ws = wb.active
    for row in rows:
        ws.append(row)

    output = BytesIO()
    wb.save(output)
    output.seek(0)
    return output


# ===================
# READ RAW ROWS
# ===================

class TestReadExcelRaw:
    """Tests for reading the first worksheet."""

    def test_reads_rows_with_header(self):
        # Arrange
        file = create_excel_file([
            ["Cod", "Denumire", "Stoc"],
            ["CF280A", "Toner", 5],
        ])

        # Act
        rows = read_excel_raw(file)

        # Assert
        assert rows[0] == ["Cod", "Denumire", "Stoc"]
        assert rows[1] == ["CF280A", "Toner", 5]

    def test_empty_cells_become_none(self):
        file = create_excel_file([
            ["Cod", "Denumire", "Stoc"],
            ["CF280A", None, 5],
        ])

        rows = read_excel_raw(file)

        assert rows[1] == ["CF280A", None, 5]

    def test_accepts_bytes(self):
        file = create_excel_file([["Cod"], ["CF280A"]])

        rows = read_excel_raw(file.getvalue())

        assert rows == [["Cod"], ["CF280A"]]

    def test_invalid_file_raises(self):
        with pytest.raises(SpreadsheetImportError) as exc_info:
            read_excel_raw(BytesIO(b"not an excel file"))

        assert exc_info.value.code == "SPREADSHEET_IMPORT_ERROR"
        assert exc_info.value.status_code == 422

    def test_empty_workbook_raises(self):
        file = create_excel_file([])

        with pytest.raises(SpreadsheetImportError):
            read_excel_raw(file)


# ===================
# DEFAULT MAPPING
# ===================

class TestDefaultColumnMapping:

    def test_three_columns_proposes_stock(self):
        mapping = default_column_mapping([["Cod", "Denumire", "Stoc"]])
        assert mapping == ColumnMapping(code_index=0, desc_index=1, stock_index=2)

    def test_two_columns_has_no_stock(self):
        mapping = default_column_mapping([["Cod", "Denumire"]])
        assert mapping.stock_index == -1
        assert mapping.has_stock is False


# ===================
# MAP ROWS
# ===================

class TestMapRowsToProducts:
    """Tests for building catalog records."""

    def test_builds_records_in_sheet_order(self, sample_rows, sample_mapping):
        products = map_rows_to_products(sample_rows, sample_mapping)

        assert [p.code for p in products] == ["CF280A", "MLT-D101S", "Q2612A", "TN-2420"]

    def test_short_codes_dropped(self, sample_rows, sample_mapping):
        products = map_rows_to_products(sample_rows, sample_mapping)

        assert all(p.code != "AB" for p in products)

    def test_ids_count_dropped_rows(self, sample_rows, sample_mapping):
        products = map_rows_to_products(sample_rows, sample_mapping)

        # "AB" at data index 2 is dropped but still counted
        assert [p.id for p in products] == ["CF280A_0", "MLT-D101S_1", "Q2612A_3", "TN-2420_4"]
        assert [p.row_original_index for p in products] == [1, 2, 4, 5]

    def test_stock_parsed_from_prefix(self, sample_rows, sample_mapping):
        products = map_rows_to_products(sample_rows, sample_mapping)

        assert [p.scriptic_stock for p in products] == [5, 3, 0, 2]

    def test_missing_description_uses_default(self, sample_rows, sample_mapping):
        products = map_rows_to_products(sample_rows, sample_mapping)

        q2612 = next(p for p in products if p.code == "Q2612A")
        assert q2612.description == DEFAULT_DESCRIPTION

    def test_counted_starts_at_zero(self, sample_products):
        assert all(p.actual_stock == 0 for p in sample_products)
        assert all(p.is_new is False for p in sample_products)

    def test_original_row_kept(self, sample_rows, sample_products):
        assert sample_products[0].original_data == sample_rows[1]

    def test_without_stock_column(self, sample_rows):
        mapping = ColumnMapping(code_index=0, desc_index=1, stock_index=-1)

        products = map_rows_to_products(sample_rows, mapping)

        assert all(p.scriptic_stock == 0 for p in products)

    def test_code_extracted_from_text(self):
        rows = [["Articol", "Denumire"], ["Kit HP CF280A", "Toner"]]

        products = map_rows_to_products(rows, ColumnMapping(code_index=0, desc_index=1))

        assert products[0].code == "CF280A"
        assert products[0].id == "CF280A_0"

    def test_short_rows_tolerated(self, sample_mapping):
        rows = [["Cod", "Denumire", "Stoc"], ["CF280A"]]

        products = map_rows_to_products(rows, sample_mapping)

        assert products[0].description == DEFAULT_DESCRIPTION
        assert products[0].scriptic_stock == 0

    def test_header_only_gives_nothing(self, sample_mapping):
        assert map_rows_to_products([["Cod", "Denumire", "Stoc"]], sample_mapping) == []

    def test_wrong_column_gives_nothing(self):
        # Description column holds no code-like values of 3+ characters
        rows = [["Cod", "X"], ["CF280A", None], ["Q2612A", ""]]

        products = map_rows_to_products(rows, ColumnMapping(code_index=1, desc_index=0))

        assert products == []
