"""Append-only store of raw interaction samples."""
from datetime import datetime
from typing import Iterable, Iterator, List, Optional, Tuple

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from inpwatch.models.raw_event import RawEvent
from inpwatch.schemas.events import RawEventIn
from inpwatch.utils.clock import to_storage
from inpwatch.utils.logger import logger

# (page_url, target_selector, device_class, interaction_latency_ms)
LatencyRow = Tuple[str, str, str, int]


class EventStore:
    """Raw event access for one database session.

    Writes are append-only; rows are only ever removed by age.
    """

    def __init__(self, db: Session):
        self.db = db

    def insert_raw_event(self, event: RawEventIn) -> bool:
        """
        Persist one validated sample.

        Args:
            event: Sample as produced by intake validation

        Returns:
            True if stored, False if the store rejected the write
        """
        try:
            self.db.add(RawEvent(**event.model_dump()))
            self.db.commit()
            return True
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to store raw event for {event.page_url}: {e}", exc_info=True)
            return False

    def insert_raw_events(self, events: Iterable[RawEventIn]) -> int:
        """
        Persist a batch of samples in one transaction.

        Returns:
            Number of events stored (0 if the batch was rejected)
        """
        rows = [RawEvent(**event.model_dump()) for event in events]
        if not rows:
            return 0
        try:
            self.db.add_all(rows)
            self.db.commit()
            return len(rows)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to store batch of {len(rows)} raw events: {e}", exc_info=True)
            return 0

    def iter_latencies(
        self,
        start: datetime,
        end: datetime,
        batch_size: int = 1000,
    ) -> Iterator[LatencyRow]:
        """
        Stream the columns the rollup needs for ``[start, end)``.

        Only four narrow columns are fetched, in batches, so a full day never
        materializes as ORM objects.
        """
        stmt = (
            select(
                RawEvent.page_url,
                RawEvent.target_selector,
                RawEvent.device_class,
                RawEvent.interaction_latency_ms,
            )
            .where(RawEvent.timestamp >= to_storage(start), RawEvent.timestamp < to_storage(end))
            .execution_options(yield_per=batch_size)
        )
        for row in self.db.execute(stmt):
            yield row.page_url, row.target_selector, row.device_class, row.interaction_latency_ms

    def in_range(
        self,
        start: datetime,
        end: Optional[datetime] = None,
        selector: Optional[str] = None,
    ) -> List[RawEvent]:
        """Events with ``start <= timestamp < end``, optionally for one selector."""
        stmt = select(RawEvent).where(RawEvent.timestamp >= to_storage(start))
        if end is not None:
            stmt = stmt.where(RawEvent.timestamp < to_storage(end))
        if selector is not None:
            stmt = stmt.where(RawEvent.target_selector == selector)
        return list(self.db.scalars(stmt.order_by(RawEvent.timestamp.asc(), RawEvent.id.asc())))

    def delete_older_than(self, cutoff: datetime) -> int:
        """Delete events with ``timestamp < cutoff``. Does not commit."""
        result = self.db.execute(
            delete(RawEvent)
            .where(RawEvent.timestamp < to_storage(cutoff))
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0
