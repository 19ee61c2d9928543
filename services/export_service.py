"""
Export service — write the counted list back to a spreadsheet.

The original sheet is rebuilt row by row with one extra column holding the
counted quantity. Items created while scanning get a synthesized row.
Counted cells are coloured: red when above the ledger quantity, green when
below.
"""

from datetime import date
from io import BytesIO
from pathlib import PurePath
from typing import Any, Optional, Sequence

from openpyxl import Workbook
from openpyxl.styles import Font, Alignment, PatternFill
import structlog

from models.product import ColumnMapping, ProductRecord
from utils.code_utils import parse_int_prefix

logger = structlog.get_logger(__name__)

COUNTED_HEADER = "Stoc Faptic (Scanat)"
SHEET_TITLE = "Inventar"

SURPLUS_FILL = "FF9999"   # counted > ledger
SHORTAGE_FILL = "99FF99"  # counted < ledger


def build_export_rows(
    products: Sequence[ProductRecord],
    original_headers: Sequence[Any],
    mapping: ColumnMapping,
) -> list[list[Any]]:
    """
    Rebuild the sheet as rows, header first.

    Catalog records keep their original row, padded to the header width.
    New records get a blank row with code, description and a zero ledger
    stock in the mapped columns. Every row ends with the counted quantity.
    """
    col_count = len(original_headers)
    rows: list[list[Any]] = [list(original_headers) + [COUNTED_HEADER]]

    for product in products:
        if not product.is_new:
            row = list(product.original_data)
            while len(row) < col_count:
                row.append("")
        else:
            width = max(col_count, mapping.code_index + 1, mapping.desc_index + 1, mapping.stock_index + 1)
            row = [""] * width
            row[mapping.code_index] = product.code
            row[mapping.desc_index] = product.description
            if mapping.has_stock:
                row[mapping.stock_index] = 0

        row.append(product.actual_stock)
        rows.append(row)

    return rows


def export_file_name(file_name: str, today: Optional[date] = None) -> str:
    """
    Name for the exported workbook.

    'stoc.xlsx' -> 'stoc_actualizat_2026-10-18.xlsx'
    """
    today = today or date.today()
    stem = PurePath(file_name or "").name.split(".")[0] or "inventar"
    return f"{stem}_actualizat_{today.isoformat()}.xlsx"


def counted_fill(actual: Any, scriptic: Any) -> Optional[str]:
    """Fill colour for a counted cell, None when counted equals ledger."""
    actual_val = parse_int_prefix(actual, default=0)
    scriptic_val = parse_int_prefix(scriptic, default=0)

    if actual_val > scriptic_val:
        return SURPLUS_FILL
    if actual_val < scriptic_val:
        return SHORTAGE_FILL
    return None


class ExportService:
    """Service for generating the counted inventory workbook."""

    def generate_inventory_excel(
        self,
        products: Sequence[ProductRecord],
        original_headers: Sequence[Any],
        mapping: ColumnMapping,
    ) -> BytesIO:
        """
        Generate the counted workbook.

        Args:
            products: Final working set
            original_headers: Header row of the imported sheet
            mapping: Column mapping chosen at import

        Returns:
            BytesIO containing the Excel file
        """
        rows = build_export_rows(products, original_headers, mapping)

        logger.info(
            "generating_inventory_export",
            product_count=len(products),
            columns=len(rows[0]),
        )

        wb = Workbook()
        ws = wb.active
        ws.title = SHEET_TITLE

        for row in rows:
            ws.append(row)

        bold_font = Font(bold=True)
        centered = Alignment(horizontal="center")

        highlighted = 0
        for excel_row, row in enumerate(rows[1:], start=2):
            counted_cell = ws.cell(row=excel_row, column=len(row))
            scriptic = row[mapping.stock_index] if mapping.has_stock and mapping.stock_index < len(row) - 1 else 0

            fill = counted_fill(counted_cell.value, scriptic)
            if fill:
                counted_cell.fill = PatternFill(start_color=fill, end_color=fill, fill_type="solid")
                counted_cell.font = bold_font
                counted_cell.alignment = centered
                highlighted += 1

        logger.info("inventory_export_generated", rows=len(rows) - 1, highlighted=highlighted)

        # Save to BytesIO
        output = BytesIO()
        wb.save(output)
        output.seek(0)

        return output


_export_service: Optional[ExportService] = None


def get_export_service() -> ExportService:
    """Get or create ExportService instance."""
    global _export_service
    if _export_service is None:
        _export_service = ExportService()
    return _export_service
