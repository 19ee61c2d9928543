"""
Product code utilities.

Spreadsheet cells often hold a code buried in a longer text, e.g.
"Toner CF280A compatibil". These helpers pull out the most code-like token.
"""

import math
import re
from typing import Any

# Alphanumeric OEM-style codes: letters, digits, dash, dot; 5 to 20 chars
CODE_PATTERN = re.compile(r"[A-Za-z0-9\-.]{5,20}")

MIN_CODE_LENGTH = 3


def cell_to_text(value: Any) -> str:
    """
    Render a spreadsheet cell as trimmed text.

    - None / NaN -> ""
    - 280.0 -> "280" (pandas hands integer cells back as floats)
    - "  CF280A " -> "CF280A"
    """
    if value is None:
        return ""

    if isinstance(value, float):
        if math.isnan(value):
            return ""
        if value.is_integer():
            return str(int(value))

    return str(value).strip()


def normalize_code(raw: Any) -> str:
    """
    Extract a canonical product code from a raw cell or scanned string.

    Returns the leftmost run of 5-20 code characters. Falls back to the
    first space-delimited token, or "" for empty input. Never rejects:
    callers decide whether a short result is usable.

    Examples:
        "Kit HP CF280A" -> "CF280A"
        "MLT-D101S" -> "MLT-D101S"
        "Toner CF280A" -> "Toner" (first code-like run wins)
        "AB 12" -> "AB"
    """
    text = cell_to_text(raw)
    if not text:
        return ""

    match = CODE_PATTERN.search(text)
    if match:
        return match.group(0)

    return text.split(" ")[0].strip()


LEADING_INT_PATTERN = re.compile(r"^\s*([+-]?\d+)")


def parse_int_prefix(value: Any, default: int = 0) -> int:
    """
    Read the integer at the start of a cell.

    "12" -> 12, "3.7" -> 3, "12 buc" -> 12, 5.0 -> 5, "abc" -> default.
    """
    match = LEADING_INT_PATTERN.match(cell_to_text(value))
    if not match:
        return default
    return int(match.group(1))


def is_valid_code(code: str) -> bool:
    """True if a normalized code is long enough to become a catalog record."""
    return bool(code) and len(code) >= MIN_CODE_LENGTH
