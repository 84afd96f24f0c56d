"""Rollup, retention and reporting services."""
from inpwatch.services.event_store import EventStore
from inpwatch.services.percentile import LatencySummary, percentile, percentiles, summarize
from inpwatch.services.query_router import QueryRouter
from inpwatch.services.retention import PruneResult, RetentionSweeper
from inpwatch.services.rollup_builder import RollupBuilder, RollupRunResult
from inpwatch.services.rollup_store import RollupStore

__all__ = [
    "EventStore",
    "LatencySummary",
    "percentile",
    "percentiles",
    "summarize",
    "QueryRouter",
    "PruneResult",
    "RetentionSweeper",
    "RollupBuilder",
    "RollupRunResult",
    "RollupStore",
]
