"""
Product record and column mapping schemas.
"""

from pydantic import ConfigDict, Field
from typing import Any

from models.base import BaseSchema, WireSchema


# rowOriginalIndex used for items created while scanning
NEW_ITEM_ROW_INDEX = 999999

DEFAULT_DESCRIPTION = "Fără descriere"


class ColumnMapping(WireSchema):
    """
    Which spreadsheet columns hold the code, description and ledger stock.

    stock_index = -1 means the sheet has no scriptic stock column.
    Chosen once at import time.
    """
    model_config = ConfigDict(frozen=True)

    code_index: int = Field(..., ge=0, description="Column holding the product code")
    desc_index: int = Field(..., ge=0, description="Column holding the description")
    stock_index: int = Field(-1, ge=-1, description="Column holding scriptic stock, -1 if none")

    @property
    def has_stock(self) -> bool:
        return self.stock_index != -1


class ProductRecord(WireSchema):
    """
    One line of the count list.

    Records are immutable snapshots; the reconciler replaces a record with
    an updated copy rather than editing it in place.
    """
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1, description="Stable identity within the session")
    code: str = Field(..., min_length=1, description="Normalized product code (match key)")
    description: str = Field(DEFAULT_DESCRIPTION, description="Free text")
    scriptic_stock: int = Field(0, description="Ledger quantity at session start")
    actual_stock: int = Field(0, ge=0, description="Counted quantity")
    row_original_index: int = Field(NEW_ITEM_ROW_INDEX, description="Row position in the source sheet")
    original_data: list[Any] = Field(default_factory=list, description="Source row, passed through to export")
    is_new: bool = Field(False, description="Created during scanning")

    @property
    def has_discrepancy(self) -> bool:
        return self.actual_stock != self.scriptic_stock


class InventoryStats(BaseSchema):
    """Counters shown next to the count list."""

    total_items: int = Field(..., description="Records in the working set")
    scanned_items: int = Field(..., description="Records with a counted quantity")
    total_actual_stock: int = Field(..., description="Sum of counted quantities")
    new_items: int = Field(..., description="Records created while scanning")
    discrepancies: int = Field(..., description="Records where counted differs from ledger")
