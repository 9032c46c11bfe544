"""
Replay protection for booking creation

A retried ``POST /bookings`` (double click, client timeout) must not end in a
seat conflict against the caller's own first attempt. The first response is
stored under a key derived from the caller and the request, and replayed.
"""
import hashlib
import json
import logging
from typing import Any, Dict, Optional

from cinema_booking.core.config import settings
from cinema_booking.core.redis import RedisClient, redis_client

logger = logging.getLogger(__name__)

IN_FLIGHT_TTL_SECONDS = 30


class IdempotencyService:

    def __init__(self, client: RedisClient = redis_client, ttl: int = settings.IDEMPOTENCY_TTL_SECONDS):
        self.redis = client
        self.ttl = ttl

    @staticmethod
    def key_for(
        user_id: int,
        operation: str,
        client_key: Optional[str] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> str:
        """
        Key for one logical request.

        A client supplied ``X-Idempotency-Key`` wins; otherwise the request
        parameters are hashed, so an identical body from the same user replays.
        """
        if client_key:
            return f"idempotency:{operation}:{user_id}:{client_key}"

        fingerprint = json.dumps(
            {"user_id": user_id, "params": params or {}},
            sort_keys=True,
            default=str,
        )
        digest = hashlib.sha256(fingerprint.encode()).hexdigest()
        return f"idempotency:{operation}:{digest}"

    async def replay(self, key: str) -> Optional[dict]:
        """Stored response of a completed request, if any"""
        stored = await self.redis.get_json(key)
        if stored is not None:
            logger.info(f"♻️ Replaying stored response for {key}")
        return stored

    async def remember(self, key: str, response: Dict[str, Any]):
        await self.redis.put_json(key, response, ttl=self.ttl)

    async def forget(self, key: str):
        """Drop a stored response that must no longer be replayed"""
        await self.redis.delete(key)

    async def claim(self, key: str) -> bool:
        """Mark the request in flight; False if another attempt holds it"""
        return await self.redis.claim(f"{key}:lock", ttl=IN_FLIGHT_TTL_SECONDS)

    async def release(self, key: str):
        await self.redis.delete(f"{key}:lock")


idempotency_service = IdempotencyService()
