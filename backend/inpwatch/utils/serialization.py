"""Serialization utilities for converting rows to API and CSV output."""
import re
from datetime import datetime
from typing import Optional

# Leading characters spreadsheets treat as formulas
_FORMULA_PREFIX = re.compile(r"^[=+\-@]")


def serialize_datetime(value: Optional[datetime]) -> Optional[str]:
    """
    Serialize datetime to ISO format string.

    Args:
        value: Datetime value or None

    Returns:
        ISO format string or None
    """
    return value.isoformat() if value else None


def csv_cell(value: Optional[str]) -> str:
    """
    Protect a CSV cell from being interpreted as a formula.

    Args:
        value: Raw cell text

    Returns:
        The text, prefixed with a tab when it would start a formula
    """
    text = value or ""
    if _FORMULA_PREFIX.match(text.lstrip()):
        return "\t" + text
    return text
