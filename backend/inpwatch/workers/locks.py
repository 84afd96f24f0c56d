"""Redis locks that keep a day's rollup single-writer across workers."""
import uuid
from datetime import date
from typing import Optional

from inpwatch.utils.logger import logger

# Delete the key only while it still holds the caller's token
_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
end
return 0
"""


def _rollup_lock_key(day: date) -> str:
    """Generate Redis key for a day's rollup lock."""
    return f"rollup_lock:{day.isoformat()}"


async def acquire_rollup_lock(redis, day: date, ttl_seconds: int) -> Optional[str]:
    """
    Acquire the rollup lock for a day.

    Args:
        redis: Async Redis client (the ARQ pool in worker context)
        day: Day being rolled up
        ttl_seconds: Lock TTL in seconds, longer than the job timeout

    Returns:
        The owner token if the lock was acquired, None if already locked

    Raises:
        redis.exceptions.RedisError: If Redis could not be reached
    """
    token = uuid.uuid4().hex
    # SET with NX (only if not exists) and EX (expiration)
    result = await redis.set(_rollup_lock_key(day), token, ex=ttl_seconds, nx=True)
    return token if result else None


async def release_rollup_lock(redis, day: date, token: str) -> bool:
    """
    Release the rollup lock for a day if ``token`` still owns it.

    Returns:
        True if this owner's lock was deleted, False otherwise
    """
    try:
        deleted = await redis.eval(_RELEASE_SCRIPT, 1, _rollup_lock_key(day), token)
    except Exception as e:
        logger.error(f"Failed to release rollup lock for {day.isoformat()}: {e}", exc_info=True)
        return False
    if not deleted:
        logger.warning(f"Rollup lock for {day.isoformat()} expired or changed owner before release")
    return bool(deleted)
