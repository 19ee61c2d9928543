"""
Spreadsheet parsers module.
"""

from parsers.excel_parser import (
    read_excel_raw,
    default_column_mapping,
    map_rows_to_products,
)

__all__ = [
    "read_excel_raw",
    "default_column_mapping",
    "map_rows_to_products",
]
