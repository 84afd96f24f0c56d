"""ARQ background tasks for the daily rollup and retention sweep."""
import asyncio
from datetime import date, datetime, timedelta
from typing import Any, Dict, Optional

from arq.worker import Retry
from redis.exceptions import RedisError

from inpwatch.config import settings
from inpwatch.services.retention import RetentionSweeper
from inpwatch.services.rollup_builder import RollupBuilder
from inpwatch.utils.clock import utc_now, utc_today
from inpwatch.utils.exceptions import StorageUnavailableError
from inpwatch.utils.logger import logger
from inpwatch.workers.locks import acquire_rollup_lock, release_rollup_lock

# Seconds to wait before retrying a failed run, multiplied by the attempt number
RETRY_BACKOFF_SECONDS = 60

# Margin by which a day lock outlives the job that holds it
LOCK_TTL_MARGIN_SECONDS = 300


def rollup_lock_ttl_seconds() -> int:
    """Lock TTL; a cancelled job releases the lock before it can expire."""
    return settings.rollup_job_timeout_seconds + LOCK_TTL_MARGIN_SECONDS


def _builder(ctx: Dict[str, Any]) -> RollupBuilder:
    return ctx.get("rollup_builder") or RollupBuilder()


def _sweeper(ctx: Dict[str, Any]) -> RetentionSweeper:
    return ctx.get("retention_sweeper") or RetentionSweeper()


def _retry(ctx: Dict[str, Any]) -> Retry:
    return Retry(defer=ctx.get("job_try", 1) * RETRY_BACKOFF_SECONDS)


async def _build_day(ctx: Dict[str, Any], day: date) -> Dict[str, Any]:
    """Build one day under the Redis day lock."""
    redis = ctx.get("redis")
    token = None
    if redis is not None:
        try:
            token = await acquire_rollup_lock(redis, day, rollup_lock_ttl_seconds())
        except (RedisError, OSError) as e:
            logger.error(f"Rollup lock for {day.isoformat()} unavailable, will retry: {e}")
            raise _retry(ctx) from e
        if token is None:
            logger.warning(f"Rollup for {day.isoformat()} already running elsewhere, skipping")
            return {"success": False, "skipped": True, "day": day.isoformat()}

    try:
        result = await asyncio.to_thread(_builder(ctx).run_for_day, day)
    except StorageUnavailableError as e:
        logger.error(f"Rollup for {day.isoformat()} will be retried: {e}")
        raise _retry(ctx) from e
    finally:
        if token is not None:
            await release_rollup_lock(redis, day, token)

    return {
        "success": True,
        "day": result.day.isoformat(),
        "events": result.events,
        "partitions": result.partitions,
        "path": result.path,
    }


async def _prune(ctx: Dict[str, Any], now: datetime) -> Dict[str, Any]:
    try:
        result = await asyncio.to_thread(_sweeper(ctx).prune, now)
    except StorageUnavailableError as e:
        logger.error(f"Retention sweep will be retried: {e}")
        raise _retry(ctx) from e

    return {
        "success": True,
        "raw_deleted": result.raw_deleted,
        "rollups_deleted": result.rollups_deleted,
    }


async def run_daily_rollup(ctx: Dict[str, Any], now: Optional[datetime] = None) -> Dict[str, Any]:
    """
    Roll up yesterday (UTC), then enforce retention.

    Pruning only runs after a successful build, so a day's raw events are
    never purged before they have been rolled up.

    Returns:
        Dict with rollup and retention outcomes
    """
    now = now or utc_now()
    day = utc_today(now) - timedelta(days=1)

    rollup = await _build_day(ctx, day)
    if not rollup["success"]:
        return {"success": False, "rollup": rollup}

    retention = await _prune(ctx, now)
    return {"success": True, "rollup": rollup, "retention": retention}


async def run_rollup_for_day(ctx: Dict[str, Any], day_iso: str) -> Dict[str, Any]:
    """
    Build (or rebuild) rollups for one day, e.g. for a backfill.

    Args:
        ctx: ARQ context
        day_iso: Day in ISO format (YYYY-MM-DD)
    """
    try:
        day = date.fromisoformat(day_iso)
    except ValueError:
        return {"success": False, "error": f"Invalid day: {day_iso}"}
    return await _build_day(ctx, day)


async def prune_retention(ctx: Dict[str, Any]) -> Dict[str, Any]:
    """Run the retention sweep alone."""
    return await _prune(ctx, utc_now())
