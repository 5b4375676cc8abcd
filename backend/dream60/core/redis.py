import json
import logging
from typing import Any

from redis.asyncio import ConnectionPool, Redis
from redis.asyncio.lock import Lock
from redis.exceptions import LockError

from dream60.core.config import settings

logger = logging.getLogger(__name__)

LIVE_AUCTION_CACHE_KEY = "auction:live"


class RedisClient:
    """Redis client manager class"""

    def __init__(self):
        self._pool: ConnectionPool | None = None
        self._client: Redis | None = None

    async def connect(self) -> None:
        """Connect to Redis"""
        if self._pool is None:
            self._pool = ConnectionPool.from_url(
                settings.REDIS_URL,
                encoding="utf-8",
                decode_responses=True,
                max_connections=50,
            )
            self._client = Redis(connection_pool=self._pool)

    async def disconnect(self) -> None:
        """Disconnect from Redis"""
        if self._client:
            await self._client.aclose()
        if self._pool:
            await self._pool.disconnect()
        self._client = None
        self._pool = None

    def get_client(self) -> Redis:
        """Get Redis client instance"""
        if self._client is None:
            raise RuntimeError("Redis client is not connected. Call connect() first.")
        return self._client

    @property
    def is_connected(self) -> bool:
        return self._client is not None

    async def ping(self) -> bool:
        """Test Redis connection"""
        try:
            return await self._client.ping()
        except Exception:
            return False


redis_client = RedisClient()


async def get_redis() -> Redis:
    """FastAPI Dependency: Provide Redis client"""
    return redis_client.get_client()


class RedisService:
    """Redis operations used by the scheduler: job locks and JSON caches."""

    def __init__(self, redis: Redis):
        self.redis = redis

    async def delete(self, key: str) -> int:
        """Delete cache"""
        return await self.redis.delete(key)

    async def get_json(self, key: str) -> Any | None:
        """Get a JSON cache value, None on miss"""
        raw = await self.redis.get(key)
        if not raw:
            return None
        return json.loads(raw)

    async def set_json(self, key: str, value: Any, expire: int) -> bool:
        """Set a JSON cache value"""
        return await self.redis.set(key, json.dumps(value, default=str), ex=expire)

    async def acquire_lock(self, name: str, ttl_seconds: int) -> Lock | None:
        """
        Try to take a short-lived lock without waiting.

        Returns the held lock, None when another worker holds it.
        """
        lock = self.redis.lock(f"lock:{name}", timeout=ttl_seconds, blocking=False)
        if await lock.acquire():
            return lock
        return None

    async def release_lock(self, lock: Lock) -> bool:
        """Release a lock returned by acquire_lock, False if it expired meanwhile"""
        try:
            await lock.release()
        except LockError as e:
            logger.warning(f"⚠ Lock {lock.name} was lost before release: {e}")
            return False
        return True
