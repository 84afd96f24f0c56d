"""ARQ worker configuration."""
from datetime import timezone
from urllib.parse import urlparse

from arq.connections import RedisSettings
from arq.cron import cron

from inpwatch.config import settings
from inpwatch.services.retention import RetentionSweeper
from inpwatch.services.rollup_builder import RollupBuilder
from inpwatch.utils.logger import logger

# Import the actual task functions
from inpwatch.workers.tasks import prune_retention, run_daily_rollup, run_rollup_for_day


def parse_redis_url(url: str) -> RedisSettings:
    """Parse Redis URL into RedisSettings."""
    parsed = urlparse(url)
    return RedisSettings(
        host=parsed.hostname or "localhost",
        port=parsed.port or 6379,
        password=parsed.password,
        database=int(parsed.path[1:]) if parsed.path and len(parsed.path) > 1 else 0,
    )


redis_settings = parse_redis_url(settings.redis_url)


async def startup(ctx):
    """Worker startup hook."""
    logger.info("ARQ worker starting up...")
    ctx["rollup_builder"] = RollupBuilder(config=settings)
    ctx["retention_sweeper"] = RetentionSweeper(config=settings)


async def shutdown(ctx):
    """Worker shutdown hook."""
    logger.info("ARQ worker shutting down...")


class WorkerSettings:
    """ARQ worker settings."""

    # Use actual function references, not strings
    functions = [
        run_daily_rollup,
        run_rollup_for_day,
        prune_retention,
    ]

    cron_jobs = [
        # Daily rollup of the previous UTC day, followed by retention
        cron(
            run_daily_rollup,
            hour={settings.rollup_cron_hour},
            minute={settings.rollup_cron_minute},
            unique=True,
        ),
    ]

    on_startup = startup
    on_shutdown = shutdown

    redis_settings = redis_settings

    # Cron times are UTC, matching rollup day boundaries
    timezone = timezone.utc

    # Job configuration
    max_jobs = 2
    job_timeout = settings.rollup_job_timeout_seconds  # a busy day can take a while on the fallback path
    keep_result = 86400
    retry_jobs = True
    max_tries = 3
