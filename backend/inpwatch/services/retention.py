"""Retention enforcement for raw events and rollups."""
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from inpwatch.config import Settings, settings as default_settings
from inpwatch.database import SessionLocal
from inpwatch.services.event_store import EventStore
from inpwatch.services.rollup_store import RollupStore
from inpwatch.utils.clock import to_storage, utc_now
from inpwatch.utils.exceptions import StorageUnavailableError
from inpwatch.utils.logger import logger


@dataclass(frozen=True)
class PruneResult:
    """Rows removed by one sweep and the cutoffs used."""
    raw_deleted: int
    rollups_deleted: int
    raw_cutoff: datetime
    rollup_cutoff: date


class RetentionSweeper:
    """Deletes raw events and rollups past their horizons."""

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        config: Settings = default_settings,
    ):
        self.session_factory = session_factory
        self.config = config

    def cutoffs(self, now: datetime):
        """Raw timestamp cutoff and rollup day cutoff for ``now``."""
        now = to_storage(now)
        raw_cutoff = now - timedelta(days=self.config.raw_retention_days)
        rollup_cutoff = now.date() - timedelta(days=self.config.rollup_retention_days)
        return raw_cutoff, rollup_cutoff

    def prune(self, now: Optional[datetime] = None) -> PruneResult:
        """
        Delete raw events older than the raw horizon and rollups older than
        the rollup horizon.

        Safe to repeat and safe on empty stores.

        Args:
            now: Reference instant (defaults to current UTC time)

        Returns:
            PruneResult with deleted row counts

        Raises:
            StorageUnavailableError: If the store failed; nothing was committed
        """
        raw_cutoff, rollup_cutoff = self.cutoffs(now or utc_now())

        db = self.session_factory()
        try:
            raw_deleted = EventStore(db).delete_older_than(raw_cutoff)
            rollups_deleted = RollupStore(db).delete_before(rollup_cutoff)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Retention sweep failed: {e}", exc_info=True)
            raise StorageUnavailableError(f"Retention sweep failed: {e}") from e
        finally:
            db.close()

        logger.info(
            f"Retention sweep removed {raw_deleted} raw events before {raw_cutoff.isoformat()} "
            f"and {rollups_deleted} rollups before {rollup_cutoff.isoformat()}"
        )
        return PruneResult(
            raw_deleted=raw_deleted,
            rollups_deleted=rollups_deleted,
            raw_cutoff=raw_cutoff,
            rollup_cutoff=rollup_cutoff,
        )
