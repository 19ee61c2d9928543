"""
Spreadsheet parser for count lists.

Two steps, matching the import flow:
    1. read_excel_raw: first sheet as a list of rows (row 0 = header)
    2. map_rows_to_products: apply the chosen column mapping and build the
       catalog, dropping rows without a usable code
"""

from datetime import datetime
from io import BytesIO
from pathlib import Path
from typing import Any, Union
import math
import structlog

import pandas as pd

from exceptions import SpreadsheetImportError
from models.product import ColumnMapping, ProductRecord, DEFAULT_DESCRIPTION
from utils.code_utils import cell_to_text, is_valid_code, normalize_code, parse_int_prefix

logger = structlog.get_logger(__name__)


def _clean_cell(value: Any) -> Any:
    """Turn pandas placeholders into plain Python values."""
    if value is None:
        return None
    if isinstance(value, float) and math.isnan(value):
        return None
    if value is pd.NaT:
        return None
    if isinstance(value, pd.Timestamp):
        return value.to_pydatetime()
    if isinstance(value, datetime):
        return value
    # numpy scalars -> python scalars
    if hasattr(value, "item") and not isinstance(value, (str, bytes)):
        try:
            return value.item()
        except (ValueError, TypeError):
            return value
    return value


def _trim_row(row: list[Any]) -> list[Any]:
    """Drop trailing empty cells so short rows stay short."""
    end = len(row)
    while end > 0 and row[end - 1] is None:
        end -= 1
    return row[:end]


def read_excel_raw(file: Union[str, Path, BytesIO, bytes]) -> list[list[Any]]:
    """
    Read the first worksheet as raw rows.

    Args:
        file: File path, bytes or file-like object

    Returns:
        List of rows; row 0 is the header

    Raises:
        SpreadsheetImportError: If the file cannot be read or holds no rows
    """
    logger.info("reading_spreadsheet", file_type=type(file).__name__)

    if isinstance(file, bytes):
        file = BytesIO(file)

    try:
        df = pd.read_excel(file, sheet_name=0, header=None, dtype=object, engine="openpyxl")
    except Exception as e:
        logger.error("spreadsheet_read_failed", error=str(e), error_type=type(e).__name__)
        raise SpreadsheetImportError(
            message="Failed to read spreadsheet. Make sure it is a valid Excel file.",
            details={"original_error": str(e)}
        )

    rows = [
        _trim_row([_clean_cell(value) for value in row])
        for row in df.itertuples(index=False, name=None)
    ]

    if not rows:
        logger.warning("spreadsheet_empty")
        raise SpreadsheetImportError(message="The spreadsheet is empty.")

    logger.info("spreadsheet_read", rows=len(rows), columns=len(df.columns))
    return rows


def default_column_mapping(rows: list[list[Any]]) -> ColumnMapping:
    """
    First guess at the column layout: code, description, stock.

    The stock column is only proposed when the header has a third column.
    """
    header = rows[0] if rows else []
    return ColumnMapping(
        code_index=0,
        desc_index=1,
        stock_index=2 if len(header) > 2 else -1,
    )


def _cell(row: list[Any], index: int) -> Any:
    if index < 0 or index >= len(row):
        return None
    return row[index]


def map_rows_to_products(
    rows: list[list[Any]],
    mapping: ColumnMapping,
    header_row_index: int = 0,
) -> list[ProductRecord]:
    """
    Build catalog records from raw rows.

    Rows whose normalized code is shorter than 3 characters are dropped.
    Record ids are "{code}_{index}" where index counts data rows after the
    header, dropped rows included, so ids stay stable for a given sheet.

    Args:
        rows: Raw rows, header at header_row_index
        mapping: Chosen column layout
        header_row_index: Row holding the header

    Returns:
        Catalog records in sheet order
    """
    if len(rows) <= header_row_index + 1:
        return []

    products: list[ProductRecord] = []
    dropped = 0

    for index, row in enumerate(rows[header_row_index + 1:]):
        row = list(row or [])
        code = normalize_code(_cell(row, mapping.code_index))

        if not is_valid_code(code):
            dropped += 1
            continue

        description = cell_to_text(_cell(row, mapping.desc_index)) or DEFAULT_DESCRIPTION

        scriptic_stock = 0
        if mapping.has_stock:
            scriptic_stock = parse_int_prefix(_cell(row, mapping.stock_index), default=0)

        products.append(ProductRecord(
            id=f"{code}_{index}",
            code=code,
            description=description,
            scriptic_stock=scriptic_stock,
            actual_stock=0,
            row_original_index=index + header_row_index + 1,
            original_data=row,
            is_new=False,
        ))

    logger.info(
        "rows_mapped",
        products=len(products),
        dropped=dropped,
        code_index=mapping.code_index,
        desc_index=mapping.desc_index,
        stock_index=mapping.stock_index,
    )

    return products
