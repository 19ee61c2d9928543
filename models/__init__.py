"""
Pydantic models for validation and serialization.
"""

from models.base import BaseSchema, WireSchema
from models.product import (
    ColumnMapping,
    ProductRecord,
    InventoryStats,
    NEW_ITEM_ROW_INDEX,
    DEFAULT_DESCRIPTION,
)
from models.session import (
    SessionState,
    SessionData,
    MatchTier,
    MatchResult,
    PushResult,
    now_ms,
)

__all__ = [
    # Base
    "BaseSchema",
    "WireSchema",

    # Product
    "ColumnMapping",
    "ProductRecord",
    "InventoryStats",
    "NEW_ITEM_ROW_INDEX",
    "DEFAULT_DESCRIPTION",

    # Session
    "SessionState",
    "SessionData",
    "MatchTier",
    "MatchResult",
    "PushResult",
    "now_ms",
]
