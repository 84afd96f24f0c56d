"""Schemas for Top Offenders reporting."""
from typing import List

from pydantic import BaseModel, Field


class OffenderRow(BaseModel):
    """One selector ranked by p75 latency."""
    selector: str
    p75: int
    avg: int = Field(..., description="Weighted p50 when served from rollups, true mean from raw")
    worst: int
    events: int
    example_url: str


class TopOffendersPage(BaseModel):
    """A page of Top Offenders plus the total number of qualifying selectors."""
    rows: List[OffenderRow]
    total_count: int
    source: str = Field(..., description="rollups|raw")
