"""Top Offenders and Selector Detail queries.

Top Offenders is served from daily rollups when they are preferred and exist,
otherwise computed from raw events. The two sources agree on ``p75``,
``worst`` and ``events`` for fully rolled-up windows, but not on ``avg``:
rollups keep no sums, so the rollup path reports the count-weighted mean of
daily medians (p50) in place of the arithmetic mean. This is a deliberate
approximation of the storage format, not something to correct by storing
raw sums.
"""
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from inpwatch.config import Settings, settings as default_settings
from inpwatch.constants import QuerySource
from inpwatch.models.raw_event import RawEvent
from inpwatch.models.rollup import RollupRow
from inpwatch.schemas.events import SelectorEvent
from inpwatch.schemas.reports import OffenderRow, TopOffendersPage
from inpwatch.services.percentile import percentile, round_half_up
from inpwatch.services.rollup_store import RollupStore
from inpwatch.utils.clock import to_storage, utc_now
from inpwatch.utils.url import display_path


class QueryRouter:
    """Read-only reporting over one database session."""

    def __init__(self, db: Session, config: Settings = default_settings):
        self.db = db
        self.config = config

    def _limit(self, limit: int) -> int:
        return min(self.config.query_max_limit, max(1, int(limit)))

    def use_rollups(self, prefer_rollups: Optional[bool] = None) -> bool:
        """Whether a Top Offenders request would be served from rollups."""
        if prefer_rollups is None:
            prefer_rollups = self.config.prefer_rollups
        return bool(prefer_rollups) and RollupStore(self.db).has_data()

    def top_offenders(
        self,
        lookback_days: int = 7,
        min_events: int = 5,
        url_contains: str = "",
        limit: int = 50,
        offset: int = 0,
        prefer_rollups: Optional[bool] = None,
        now: Optional[datetime] = None,
    ) -> TopOffendersPage:
        """
        Selectors ranked by p75 latency over the lookback window.

        Args:
            lookback_days: Window length in days (at least 1)
            min_events: Minimum samples for a selector to qualify (at least 1)
            url_contains: Optional substring of the page URL/path
            limit: Page size, capped at ``query_max_limit``
            offset: Rows to skip
            prefer_rollups: Serve from rollups when any exist (None: configured default)
            now: Reference instant (defaults to current UTC time)

        Returns:
            TopOffendersPage with the requested rows and the qualifying total
        """
        lookback_days = max(1, int(lookback_days))
        min_events = max(1, int(min_events))
        limit = self._limit(limit)
        offset = max(0, int(offset))
        now = to_storage(now or utc_now())

        if self.use_rollups(prefer_rollups):
            rows, total = self._offenders_from_rollups(
                now, lookback_days, min_events, url_contains, limit, offset
            )
            return TopOffendersPage(rows=rows, total_count=total, source=QuerySource.ROLLUPS)

        rows, total = self._offenders_from_raw(
            now, lookback_days, min_events, url_contains, limit, offset
        )
        return TopOffendersPage(rows=rows, total_count=total, source=QuerySource.RAW)

    def top_offenders_count(
        self,
        lookback_days: int = 7,
        min_events: int = 5,
        url_contains: str = "",
        prefer_rollups: Optional[bool] = None,
        now: Optional[datetime] = None,
    ) -> int:
        """Number of selectors that qualify, ignoring pagination."""
        return self.top_offenders(
            lookback_days=lookback_days,
            min_events=min_events,
            url_contains=url_contains,
            limit=1,
            offset=0,
            prefer_rollups=prefer_rollups,
            now=now,
        ).total_count

    def selector_events(
        self,
        selector: str,
        lookback_days: int = 7,
        url_contains: str = "",
        limit: int = 20,
        offset: int = 0,
        now: Optional[datetime] = None,
    ) -> List[SelectorEvent]:
        """
        Recent raw samples for one selector, newest first.

        Always reads raw events; rollups keep no per-event rows.
        """
        now = to_storage(now or utc_now())
        cutoff = now - timedelta(days=max(1, int(lookback_days)))

        stmt = select(RawEvent).where(
            RawEvent.timestamp >= cutoff,
            RawEvent.target_selector == selector,
        )
        if url_contains:
            stmt = stmt.where(RawEvent.page_url.contains(url_contains, autoescape=True))
        stmt = (
            stmt.order_by(RawEvent.timestamp.desc(), RawEvent.id.desc())
            .limit(self._limit(limit))
            .offset(max(0, int(offset)))
        )
        return [SelectorEvent.model_validate(event) for event in self.db.scalars(stmt)]

    def _offenders_from_rollups(self, now, lookback_days, min_events, url_contains, limit, offset):
        today = now.date()
        start = today - timedelta(days=lookback_days)

        p75 = func.max(RollupRow.p75)
        events = func.sum(RollupRow.count)
        grouped = (
            select(
                RollupRow.target_selector.label("selector"),
                p75.label("p75"),
                func.sum(RollupRow.p50 * RollupRow.count).label("weighted_p50"),
                func.max(RollupRow.worst).label("worst"),
                events.label("events"),
                func.min(RollupRow.page_path).label("example_path"),
            )
            .where(
                RollupRow.day >= start,
                RollupRow.day < today,
                RollupRow.target_selector != "",
            )
            .group_by(RollupRow.target_selector)
            .having(events >= min_events)
        )
        if url_contains:
            grouped = grouped.where(RollupRow.page_path.contains(url_contains, autoescape=True))

        total = self.db.execute(select(func.count()).select_from(grouped.subquery())).scalar_one()
        if total == 0:
            return [], 0

        page = grouped.order_by(p75.desc(), RollupRow.target_selector.asc()).limit(limit).offset(offset)
        rows = [
            OffenderRow(
                selector=row.selector,
                p75=int(row.p75),
                avg=round_half_up(int(row.weighted_p50), int(row.events)),
                worst=int(row.worst),
                events=int(row.events),
                example_url=display_path(row.example_path),
            )
            for row in self.db.execute(page)
        ]
        return rows, total

    def _offenders_from_raw(self, now, lookback_days, min_events, url_contains, limit, offset):
        cutoff = now - timedelta(days=lookback_days)

        stmt = select(
            RawEvent.target_selector,
            RawEvent.page_url,
            RawEvent.interaction_latency_ms,
        ).where(
            RawEvent.timestamp >= cutoff,
            RawEvent.timestamp < now,
            RawEvent.target_selector != "",
        )
        if url_contains:
            stmt = stmt.where(RawEvent.page_url.contains(url_contains, autoescape=True))

        latencies: Dict[str, List[int]] = defaultdict(list)
        example_urls: Dict[str, str] = {}
        for selector, url, latency in self.db.execute(stmt.execution_options(yield_per=1000)):
            latencies[selector].append(latency)
            if selector not in example_urls or url < example_urls[selector]:
                example_urls[selector] = url

        qualifying = [
            OffenderRow(
                selector=selector,
                p75=percentile(values, 0.75),
                avg=round_half_up(sum(values), len(values)),
                worst=max(values),
                events=len(values),
                example_url=example_urls[selector],
            )
            for selector, values in latencies.items()
            if len(values) >= min_events
        ]
        qualifying.sort(key=lambda row: (-row.p75, row.selector))
        return qualifying[offset:offset + limit], len(qualifying)
