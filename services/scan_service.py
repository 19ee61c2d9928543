"""
Scan resolver.

Maps a scanned code to a record of the working set, or builds a placeholder
for an item the catalog has never seen. Resolution only classifies; the
working set is changed later by the reconciler, after the operator confirms.

Tiers, tried in order, all case-insensitive:
    1. EXACT         record code equals the scanned code
    2. PREFIX_STRIP  scanned code minus its first character equals a record
                     code (labels often prepend a field letter, "P" for part
                     number: PCF280A -> CF280A). Only for codes longer than 2.
    3. SUBSTRING     record code contains the scanned code

Within a tier the first record in working-set order wins.
"""

from typing import Callable, Optional, Sequence
import structlog

from exceptions import EmptyScanError
from models.product import ProductRecord, NEW_ITEM_ROW_INDEX
from models.session import MatchResult, MatchTier, now_ms

logger = structlog.get_logger(__name__)


def _first(
    working_set: Sequence[ProductRecord],
    predicate: Callable[[str], bool],
) -> Optional[ProductRecord]:
    for record in working_set:
        if predicate(record.code.lower()):
            return record
    return None


def build_placeholder(scanned: str, timestamp_ms: Optional[int] = None) -> ProductRecord:
    """New-item record for a code absent from the working set."""
    timestamp_ms = timestamp_ms if timestamp_ms is not None else now_ms()
    return ProductRecord(
        id=f"NEW_{timestamp_ms}_{scanned}",
        code=scanned,
        description="",
        scriptic_stock=0,
        actual_stock=0,
        row_original_index=NEW_ITEM_ROW_INDEX,
        original_data=[],
        is_new=True,
    )


def resolve(
    scanned_raw: str,
    working_set: Sequence[ProductRecord],
    timestamp_ms: Optional[int] = None,
) -> MatchResult:
    """
    Resolve a scanned code against the working set.

    Args:
        scanned_raw: Decoded barcode or typed code
        working_set: Current records, in display order
        timestamp_ms: Clock value for placeholder ids (defaults to now)

    Returns:
        MatchResult, found=True with the matched record or found=False with
        a placeholder

    Raises:
        EmptyScanError: If the input is blank
    """
    scanned = (scanned_raw or "").strip()
    if not scanned:
        raise EmptyScanError()

    needle = scanned.lower()

    record = _first(working_set, lambda code: code == needle)
    if record:
        logger.debug("scan_matched", code=scanned, tier=MatchTier.EXACT.value, product_id=record.id)
        return MatchResult.found_record(record, MatchTier.EXACT, scanned)

    if len(needle) > 2:
        stripped = needle[1:]
        record = _first(working_set, lambda code: code == stripped)
        if record:
            logger.debug("scan_matched", code=scanned, tier=MatchTier.PREFIX_STRIP.value, product_id=record.id)
            return MatchResult.found_record(record, MatchTier.PREFIX_STRIP, scanned)

    # TODO: break ties between several substring hits (shortest code first)
    record = _first(working_set, lambda code: needle in code)
    if record:
        logger.debug("scan_matched", code=scanned, tier=MatchTier.SUBSTRING.value, product_id=record.id)
        return MatchResult.found_record(record, MatchTier.SUBSTRING, scanned)

    logger.info("scan_not_found", code=scanned, working_set=len(working_set))
    return MatchResult.not_found(build_placeholder(scanned, timestamp_ms), scanned)


def search_products(working_set: Sequence[ProductRecord], term: str) -> list[ProductRecord]:
    """
    Filter the working set by code or description.

    Case-insensitive substring search; an empty term returns everything.
    """
    term = (term or "").strip().lower()
    if not term:
        return list(working_set)

    return [
        record for record in working_set
        if term in record.code.lower() or term in record.description.lower()
    ]
