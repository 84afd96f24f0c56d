"""Pydantic schemas for event intake and reporting."""
from inpwatch.schemas.events import RawEventIn, SelectorEvent
from inpwatch.schemas.reports import OffenderRow, TopOffendersPage

__all__ = ["RawEventIn", "SelectorEvent", "OffenderRow", "TopOffendersPage"]
