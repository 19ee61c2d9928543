"""
Session, scan match and sync outcome schemas.
"""

from enum import Enum
from typing import Any, Optional
import time

from pydantic import Field

from models.base import BaseSchema, WireSchema
from models.product import ColumnMapping, ProductRecord


def now_ms() -> int:
    """Current time as epoch milliseconds."""
    return int(time.time() * 1000)


class SessionState(str, Enum):
    """Client-observed lifecycle of a counting session."""
    SETUP = "SETUP"        # no working set yet
    MAPPING = "MAPPING"    # raw rows loaded, columns not confirmed
    ACTIVE = "ACTIVE"      # working set exists, scan/confirm/push loop runs


class SessionData(WireSchema):
    """
    The unit of replication.

    The whole products list is replaced on every update; there is no
    per-record diffing.
    """

    session_id: str = Field(..., min_length=1, description="Short numeric session identifier")
    file_name: str = Field("", description="Name of the imported spreadsheet")
    products: list[ProductRecord] = Field(default_factory=list)
    original_headers: list[Any] = Field(default_factory=list, description="Header row of the source sheet")
    column_mapping: ColumnMapping
    created_at: int = Field(default_factory=now_ms, description="Epoch ms")
    last_updated: Optional[int] = Field(None, description="Epoch ms of the last products update")

    def with_products(self, products: list[ProductRecord], updated_at: Optional[int] = None) -> "SessionData":
        """Return a copy holding a new products snapshot."""
        return self.model_copy(
            update={
                "products": list(products),
                "last_updated": updated_at if updated_at is not None else now_ms(),
            }
        )


class MatchTier(str, Enum):
    """Which resolver tier produced a match."""
    EXACT = "EXACT"
    PREFIX_STRIP = "PREFIX_STRIP"
    SUBSTRING = "SUBSTRING"
    NONE = "NONE"


class MatchResult(BaseSchema):
    """
    Outcome of resolving a scanned code.

    found=True carries the matched catalog record; found=False carries a
    placeholder new-item record that is not yet part of the working set.
    """

    record: ProductRecord
    found: bool
    tier: MatchTier = MatchTier.NONE
    scanned: str = Field("", description="Trimmed scanned input")

    @classmethod
    def found_record(cls, record: ProductRecord, tier: MatchTier, scanned: str) -> "MatchResult":
        return cls(record=record, found=True, tier=tier, scanned=scanned)

    @classmethod
    def not_found(cls, placeholder: ProductRecord, scanned: str) -> "MatchResult":
        return cls(record=placeholder, found=False, tier=MatchTier.NONE, scanned=scanned)


class PushResult(BaseSchema):
    """Outcome of pushing a snapshot to the session store."""

    ok: bool
    session_id: Optional[str] = None
    product_count: int = 0
    error: Optional[str] = None
    skipped: bool = Field(False, description="No session attached, nothing was sent")
