"""Keyed store of daily latency aggregates."""
from datetime import date
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from inpwatch.models.rollup import RollupRow
from inpwatch.utils.db import upsert

ROLLUP_KEY = ("day", "page_path", "target_selector", "device_class")


class RollupStore:
    """Rollup access for one database session."""

    def __init__(self, db: Session):
        self.db = db

    def upsert_many(self, rows: Sequence[Dict[str, Any]]) -> int:
        """
        Write rollup rows, replacing any row with the same key.

        Re-running a day overwrites its aggregates instead of summing them.
        Does not commit.
        """
        return upsert(self.db, RollupRow, rows, ROLLUP_KEY)

    def has_data(self) -> bool:
        """Whether any rollup row exists."""
        return self.db.execute(select(RollupRow.day).limit(1)).first() is not None

    def for_day(self, day: date) -> List[RollupRow]:
        """All rows of one day in key order."""
        stmt = (
            select(RollupRow)
            .where(RollupRow.day == day)
            .order_by(RollupRow.page_path, RollupRow.target_selector, RollupRow.device_class)
        )
        return list(self.db.scalars(stmt))

    def in_range(
        self,
        start: date,
        end: date,
        selector: Optional[str] = None,
    ) -> List[RollupRow]:
        """Rows with ``start <= day < end``, optionally for one selector."""
        stmt = select(RollupRow).where(RollupRow.day >= start, RollupRow.day < end)
        if selector is not None:
            stmt = stmt.where(RollupRow.target_selector == selector)
        return list(self.db.scalars(stmt.order_by(RollupRow.day, RollupRow.page_path)))

    def delete_before(self, cutoff: date) -> int:
        """Delete rows with ``day < cutoff``. Does not commit."""
        result = self.db.execute(
            delete(RollupRow)
            .where(RollupRow.day < cutoff)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0
