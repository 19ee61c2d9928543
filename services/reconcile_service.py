"""
Quantity reconciler.

Applies confirmed quantities to the working set. Every function returns a
new list; records that did not change are the very same objects as in the
input, and actual_stock never goes below zero.
"""

from typing import Any, Optional, Sequence
import structlog

from exceptions import ProductNotFoundError
from models.product import InventoryStats, ProductRecord
from models.session import MatchResult
from utils.code_utils import LEADING_INT_PATTERN

logger = structlog.get_logger(__name__)

NEW_ITEM_DESCRIPTION = "Produs Nou"


def parse_quantity(text: Any, default: int = 1) -> int:
    """
    Quantity typed in the confirmation prompt.

    Blank or unparsable input counts as the default (1).
    """
    if text is None:
        return default
    if isinstance(text, int):
        return text

    match = LEADING_INT_PATTERN.match(str(text))
    if not match:
        return default
    return int(match.group(1))


def new_item_description(code: str, description: Optional[str] = None) -> str:
    """
    Final description for an item created while scanning.

    "Cable" -> "XYZ123 - Cable"; blank -> "XYZ123 - Produs Nou"; a text that
    already starts with the code is kept as typed.
    """
    clean_code = code.strip()
    text = (description or "").strip()

    if not text:
        return f"{clean_code} - {NEW_ITEM_DESCRIPTION}"
    if text.startswith(clean_code):
        return text
    return f"{clean_code} - {text}"


def _with_stock(record: ProductRecord, actual_stock: int) -> ProductRecord:
    return record.model_copy(update={"actual_stock": max(0, actual_stock)})


def _index_of(working_set: Sequence[ProductRecord], record_id: str) -> int:
    for index, record in enumerate(working_set):
        if record.id == record_id:
            return index
    return -1


def confirm(
    working_set: Sequence[ProductRecord],
    match: MatchResult,
    qty_to_add: int,
    description: Optional[str] = None,
) -> list[ProductRecord]:
    """
    Apply a confirmed scan.

    Args:
        working_set: Current records
        match: Result of resolve()
        qty_to_add: Quantity to add (may be negative, result is clamped at 0)
        description: Operator text for new items, ignored for found ones

    Returns:
        Next working set

    Raises:
        ProductNotFoundError: If a found record is no longer in the working
            set (a remote snapshot replaced it meanwhile)
    """
    products = list(working_set)
    index = _index_of(products, match.record.id)

    if match.found:
        if index == -1:
            logger.warning("confirm_stale_record", product_id=match.record.id)
            raise ProductNotFoundError(match.record.id)

        current = products[index]
        products[index] = _with_stock(current, current.actual_stock + qty_to_add)

        logger.info(
            "quantity_confirmed",
            product_id=current.id,
            added=qty_to_add,
            actual_stock=products[index].actual_stock,
        )
        return products

    if index != -1:
        # Same placeholder confirmed twice: count it, do not duplicate it
        current = products[index]
        products[index] = _with_stock(current, current.actual_stock + qty_to_add)
        logger.info("new_item_incremented", product_id=current.id, added=qty_to_add)
        return products

    placeholder = match.record
    entry = placeholder.model_copy(update={
        "description": new_item_description(placeholder.code, description),
        "actual_stock": max(0, qty_to_add),
    })
    products.append(entry)

    logger.info(
        "new_item_added",
        product_id=entry.id,
        code=entry.code,
        actual_stock=entry.actual_stock,
    )
    return products


def adjust(working_set: Sequence[ProductRecord], record_id: str, delta: int) -> list[ProductRecord]:
    """
    Manual +/- on one record, clamped at zero.

    Unknown ids leave the working set unchanged.
    """
    products = list(working_set)
    index = _index_of(products, record_id)

    if index == -1:
        logger.warning("adjust_unknown_product", product_id=record_id, delta=delta)
        return products

    current = products[index]
    products[index] = _with_stock(current, current.actual_stock + delta)

    logger.debug(
        "stock_adjusted",
        product_id=record_id,
        delta=delta,
        actual_stock=products[index].actual_stock,
    )
    return products


def compute_stats(working_set: Sequence[ProductRecord]) -> InventoryStats:
    """Totals for the count list header."""
    return InventoryStats(
        total_items=len(working_set),
        scanned_items=sum(1 for p in working_set if p.actual_stock > 0),
        total_actual_stock=sum(p.actual_stock for p in working_set),
        new_items=sum(1 for p in working_set if p.is_new),
        discrepancies=sum(1 for p in working_set if p.has_discrepancy),
    )
