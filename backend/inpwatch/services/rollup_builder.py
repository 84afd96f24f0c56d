"""Daily rollup job: raw events of one UTC day into per-key percentile rows.

Rows are keyed by (day, page path, selector, device class). A day is computed
entirely in memory and written in a single transaction, so a failed run
leaves no partial rows and a retry converges to the same state.
"""
import threading
from collections import defaultdict
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date
from typing import Callable, Dict, List, Tuple

from sqlalchemy import Select, func, select
from sqlalchemy.exc import ProgrammingError, SQLAlchemyError
from sqlalchemy.orm import Session

from inpwatch.config import Settings, settings as default_settings
from inpwatch.constants import PAGE_PATH_MAX_LENGTH, ROLLUP_PERCENTILES, RollupPath
from inpwatch.database import SessionLocal
from inpwatch.models.raw_event import RawEvent
from inpwatch.services.event_store import EventStore
from inpwatch.services.percentile import LatencySummary, summarize
from inpwatch.services.rollup_store import RollupStore
from inpwatch.utils.clock import day_bounds
from inpwatch.utils.db import dialect_name
from inpwatch.utils.exceptions import StorageUnavailableError
from inpwatch.utils.logger import logger
from inpwatch.utils.url import page_path

# (page_path, target_selector, device_class)
RollupKey = Tuple[str, str, str]


@dataclass(frozen=True)
class RollupRunResult:
    """Outcome of one day's build."""
    day: date
    events: int
    partitions: int
    path: str


class RollupBuilder:
    """Builds and upserts the rollup rows of one calendar day."""

    # day -> (lock, number of runs holding or waiting for it)
    _day_locks: Dict[date, Tuple[threading.Lock, int]] = {}
    _day_locks_guard = threading.Lock()

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        config: Settings = default_settings,
    ):
        self.session_factory = session_factory
        self.config = config

    @classmethod
    @contextmanager
    def _day_lock(cls, day: date):
        with cls._day_locks_guard:
            lock, users = cls._day_locks.get(day, (None, 0))
            lock = lock or threading.Lock()
            cls._day_locks[day] = (lock, users + 1)
        try:
            with lock:
                yield
        finally:
            with cls._day_locks_guard:
                lock, users = cls._day_locks[day]
                if users == 1:
                    del cls._day_locks[day]
                else:
                    cls._day_locks[day] = (lock, users - 1)

    def run_for_day(self, day: date) -> RollupRunResult:
        """
        Build rollups for ``day`` (UTC) and upsert them.

        Args:
            day: Calendar day to aggregate

        Returns:
            RollupRunResult with event and partition counts

        Raises:
            StorageUnavailableError: If the store failed; nothing was committed
        """
        with self._day_lock(day):
            logger.info(f"Building rollups for {day.isoformat()}")
            db = self.session_factory()
            try:
                summaries, path = self.compute(db, day)
                if not summaries:
                    logger.info(f"No raw events for {day.isoformat()}, nothing to roll up")
                    return RollupRunResult(day=day, events=0, partitions=0, path=RollupPath.EMPTY)

                rows = self._to_rows(day, summaries)
                RollupStore(db).upsert_many(rows)
                db.commit()
            except SQLAlchemyError as e:
                db.rollback()
                logger.error(f"Rollup for {day.isoformat()} failed: {e}", exc_info=True)
                raise StorageUnavailableError(f"Rollup for {day.isoformat()} failed: {e}") from e
            finally:
                db.close()

        events = sum(summary.count for summary in summaries.values())
        logger.info(
            f"Rolled up {events} events into {len(rows)} rows for {day.isoformat()} "
            f"({path} path)"
        )
        return RollupRunResult(day=day, events=events, partitions=len(rows), path=path)

    def compute(self, db: Session, day: date) -> Tuple[Dict[RollupKey, LatencySummary], str]:
        """Per-key summaries for ``day`` and the path that produced them."""
        if self.supports_native_percentiles(db):
            try:
                native = self._compute_native(db, day)
            except ProgrammingError as e:
                db.rollback()
                logger.warning(f"Native percentiles unavailable, using fallback: {e}")
            else:
                if not self.config.rollup_verify_native:
                    return native, RollupPath.NATIVE
                fallback = self._compute_fallback(db, day)
                self._report_mismatches(day, native, fallback)
                return fallback, RollupPath.FALLBACK

        return self._compute_fallback(db, day), RollupPath.FALLBACK

    def supports_native_percentiles(self, db: Session) -> bool:
        """Whether the bound engine has ``percentile_disc ... WITHIN GROUP``."""
        if not self.config.rollup_use_native_percentiles:
            return False
        if dialect_name(db) != "postgresql":
            return False
        version = db.get_bind().dialect.server_version_info
        return version is None or version >= (9, 4)

    def _compute_native(self, db: Session, day: date) -> Dict[RollupKey, LatencySummary]:
        summaries = {}
        for path, selector, device, p50, p75, p95, count, worst in db.execute(self.native_statement(day)):
            summaries[(path, selector, device)] = LatencySummary(
                p50=int(p50), p75=int(p75), p95=int(p95), count=int(count), worst=int(worst)
            )
        return summaries

    @staticmethod
    def native_statement(day: date) -> Select:
        """PostgreSQL ordered-set aggregate over one day, grouped by rollup key."""
        # percentile_disc(p) is the first value whose cumulative share is >= p,
        # which is the nearest-rank definition used by summarize()
        start, end = day_bounds(day)
        latency = RawEvent.interaction_latency_ms
        path_expr = func.left(func.split_part(RawEvent.page_url, "?", 1), PAGE_PATH_MAX_LENGTH)
        return (
            select(
                path_expr.label("page_path"),
                RawEvent.target_selector,
                RawEvent.device_class,
                *[func.percentile_disc(p).within_group(latency.asc()) for p in ROLLUP_PERCENTILES],
                func.count(),
                func.max(latency),
            )
            .where(RawEvent.timestamp >= start, RawEvent.timestamp < end)
            .group_by(path_expr, RawEvent.target_selector, RawEvent.device_class)
        )

    def _compute_fallback(self, db: Session, day: date) -> Dict[RollupKey, LatencySummary]:
        start, end = day_bounds(day)
        groups: Dict[RollupKey, List[int]] = defaultdict(list)
        for url, selector, device, latency in EventStore(db).iter_latencies(
            start, end, batch_size=self.config.rollup_batch_size
        ):
            groups[(page_path(url), selector, device)].append(latency)

        summaries = {}
        # Release each partition's values as soon as it is summarized
        while groups:
            key, values = groups.popitem()
            summaries[key] = summarize(values)
        return summaries

    @staticmethod
    def _report_mismatches(
        day: date,
        native: Dict[RollupKey, LatencySummary],
        fallback: Dict[RollupKey, LatencySummary],
    ) -> None:
        mismatched = [key for key in native.keys() | fallback.keys() if native.get(key) != fallback.get(key)]
        for key in sorted(mismatched):
            logger.warning(
                f"Native rollup disagrees for {day.isoformat()} {key}: "
                f"native={native.get(key)} fallback={fallback.get(key)}"
            )
        if not mismatched:
            logger.debug(f"Native rollup verified for {day.isoformat()} ({len(native)} keys)")

    @staticmethod
    def _to_rows(day: date, summaries: Dict[RollupKey, LatencySummary]) -> List[dict]:
        rows = []
        for (path, selector, device), summary in sorted(summaries.items()):
            rows.append({
                "day": day,
                "page_path": path,
                "target_selector": selector,
                "device_class": device,
                **summary._asdict(),
            })
        return rows
