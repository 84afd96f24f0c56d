"""Models package."""
from inpwatch.models.raw_event import RawEvent
from inpwatch.models.rollup import RollupRow

__all__ = ["RawEvent", "RollupRow"]
