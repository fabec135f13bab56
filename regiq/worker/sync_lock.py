"""Redis run-lock so only one sync runs at a time."""

import asyncio
import json
import logging
import time
from datetime import datetime
from typing import Any, Dict, Optional
from uuid import uuid4

import redis.asyncio as redis
from redis.exceptions import RedisError

from regiq.config import settings

logger = logging.getLogger(__name__)

LOCK_KEY = "regiq:sync:lock"
HEARTBEAT_KEY = "regiq:sync:heartbeat"

# Both scripts return 0 = no lock, 1 = done, 2 = held by someone else
_RELEASE_SCRIPT = """
local value = redis.call('GET', KEYS[1])
if not value then
    return 0
end
local ok, data = pcall(cjson.decode, value)
if ok and data.run_id == ARGV[1] and data.token == ARGV[2] then
    redis.call('DEL', KEYS[1], KEYS[2])
    return 1
end
return 2
"""

_REFRESH_SCRIPT = """
local value = redis.call('GET', KEYS[1])
if not value then
    return 0
end
local ok, data = pcall(cjson.decode, value)
if ok and data.run_id == ARGV[1] and data.token == ARGV[2] then
    redis.call('EXPIRE', KEYS[1], ARGV[3])
    redis.call('SET', KEYS[2], ARGV[4], 'EX', ARGV[3])
    return 1
end
return 2
"""


class SyncLockManager:
    """
    Token-owned Redis lock around a sync run.

    The lock value is JSON ``{run_id, token, trigger, started_at}`` stored with
    SET NX EX, so a crashed holder frees it when the TTL runs out. Release and
    refresh only act when both run_id and token match.
    """

    def __init__(self, redis_url: Optional[str] = None):
        self.redis_url = redis_url or settings.redis_url
        self._redis: Optional[redis.Redis] = None

    async def _get_redis(self) -> redis.Redis:
        """Get or create Redis connection."""
        if self._redis is None:
            self._redis = redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
            )
        return self._redis

    async def close(self):
        """Close Redis connection."""
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    async def acquire_lock(
        self,
        run_id: str,
        trigger: str = "manual",
        ttl_seconds: Optional[int] = None,
    ) -> Optional[str]:
        """
        Try to take the lock.

        Args:
            run_id: Run identifier (UUID hex)
            trigger: "manual" or "scheduled", stored for diagnostics
            ttl_seconds: Lock lifetime (defaults to settings.sync_lock_ttl_seconds)

        Returns:
            Ownership token, or None if another run holds the lock

        Raises:
            RedisError: If Redis cannot be reached
        """
        client = await self._get_redis()
        ttl = ttl_seconds or settings.sync_lock_ttl_seconds
        token = uuid4().hex
        value = json.dumps({
            "run_id": run_id,
            "token": token,
            "trigger": trigger,
            "started_at": datetime.utcnow().isoformat(),
        })

        if not await client.set(LOCK_KEY, value, nx=True, ex=ttl):
            holder = await self.get_lock_info()
            holder_id = (holder or {}).get("run_id") or "unknown"
            logger.info(f"Sync lock held by run_id {holder_id[:16]}, not starting {run_id[:16]}")
            return None

        await client.set(HEARTBEAT_KEY, str(time.time()), ex=ttl)
        logger.info(f"Acquired sync lock for run_id {run_id[:16]} ({trigger})")
        return token

    async def release_lock(self, run_id: str, token: str) -> bool:
        """Release the lock if this run still owns it."""
        try:
            client = await self._get_redis()
            result = await client.eval(_RELEASE_SCRIPT, 2, LOCK_KEY, HEARTBEAT_KEY, run_id, token)
        except RedisError as e:
            logger.error(f"Failed to release sync lock for run_id {run_id[:16]}: {e}")
            return False

        if result == 2:
            logger.warning(f"Sync lock is owned by another run; not releasing for {run_id[:16]}")
            return False
        if result == 1:
            logger.info(f"Released sync lock for run_id {run_id[:16]}")
        return True

    async def refresh_lock(self, run_id: str, token: str, ttl_seconds: Optional[int] = None) -> bool:
        """Extend the lock TTL and stamp the heartbeat."""
        ttl = ttl_seconds or settings.sync_lock_ttl_seconds
        try:
            client = await self._get_redis()
            result = await client.eval(
                _REFRESH_SCRIPT, 2, LOCK_KEY, HEARTBEAT_KEY, run_id, token, str(ttl), str(time.time())
            )
        except RedisError as e:
            logger.error(f"Failed to refresh sync lock: {e}")
            return False
        return result == 1

    async def force_unlock(self) -> bool:
        """Clear the lock regardless of owner (operator recovery)."""
        try:
            client = await self._get_redis()
            await client.delete(LOCK_KEY, HEARTBEAT_KEY)
        except RedisError as e:
            logger.error(f"Failed to force unlock: {e}")
            return False
        logger.warning("Force-cleared sync lock")
        return True

    async def get_lock_info(self) -> Optional[Dict[str, Any]]:
        """Current holder details, or None when unlocked."""
        client = await self._get_redis()
        value = await client.get(LOCK_KEY)
        if not value:
            return None
        ttl = await client.ttl(LOCK_KEY)
        try:
            data = json.loads(value)
        except json.JSONDecodeError:
            return {"raw_value": value, "ttl_seconds": ttl if ttl > 0 else None}
        return {
            "run_id": data.get("run_id"),
            "trigger": data.get("trigger"),
            "started_at": data.get("started_at"),
            "ttl_seconds": ttl if ttl > 0 else None,
        }

    async def heartbeat(self, run_id: str, token: str, interval: int = 60) -> None:
        """Refresh the lock every ``interval`` seconds until cancelled."""
        failures = 0
        while True:
            await asyncio.sleep(interval)
            if await self.refresh_lock(run_id, token):
                failures = 0
                continue
            failures += 1
            logger.warning(f"Sync lock heartbeat failed for {run_id[:16]} ({failures} in a row)")
            if failures >= 3:
                logger.error(f"Stopping sync lock heartbeat for {run_id[:16]}")
                return


# Global lock manager instance
sync_lock_manager = SyncLockManager()
