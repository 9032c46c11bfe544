"""
Async Redis access for short-lived request state (idempotency replays)

Redis is optional. While it is unreachable every read misses, every write is
dropped and every claim succeeds, so callers behave as if each request is new.
"""
import json
import logging
from typing import Any, Awaitable, Callable, Optional, TypeVar

import redis.asyncio as redis

from cinema_booking.core.config import settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RedisClient:

    def __init__(self, url: Optional[str] = None):
        self.url = url or settings.REDIS_URL
        self.redis: Optional[redis.Redis] = None

    @property
    def connected(self) -> bool:
        return self.redis is not None

    async def connect(self):
        client = redis.from_url(self.url, encoding="utf-8", decode_responses=True, max_connections=50)
        try:
            await client.ping()
        except Exception as e:
            logger.warning(f"Redis unavailable at {self.url}, continuing without it: {e}")
            await client.aclose()
            return
        self.redis = client
        logger.info("Redis connected")

    async def close(self):
        if self.redis is not None:
            await self.redis.aclose()
            self.redis = None
            logger.info("Redis connection closed")

    async def _run(self, op: str, key: str, call: Callable[[redis.Redis], Awaitable[T]], fallback: T) -> T:
        if self.redis is None:
            return fallback
        try:
            return await call(self.redis)
        except Exception as e:
            logger.error(f"Redis {op} failed for {key}: {e}")
            return fallback

    async def get_json(self, key: str) -> Optional[Any]:
        raw = await self._run("GET", key, lambda r: r.get(key), None)
        return json.loads(raw) if raw else None

    async def put_json(self, key: str, value: Any, ttl: int) -> bool:
        payload = json.dumps(value, default=str)

        async def call(r: redis.Redis) -> bool:
            await r.setex(key, ttl, payload)
            return True

        return await self._run("SETEX", key, call, False)

    async def claim(self, key: str, ttl: int) -> bool:
        """SET NX with expiry; True when this caller now owns ``key``"""

        async def call(r: redis.Redis) -> bool:
            return bool(await r.set(key, "1", ex=ttl, nx=True))

        return await self._run("SET NX", key, call, True)

    async def delete(self, key: str) -> bool:

        async def call(r: redis.Redis) -> bool:
            return bool(await r.delete(key))

        return await self._run("DEL", key, call, False)


redis_client = RedisClient()
