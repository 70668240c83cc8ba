"""
Raw user id -> public user id hashing, cached in Redis.

A public id is sha256 hex applied DEFAULT_HASH_TIMES times. The first round
is cheap and computed locally; it also serves as the cache key so raw ids
never reach Redis. The remaining rounds are cached. Redis is advisory: when
it is missing or failing the hash is computed locally.
"""

import hashlib
from typing import Optional

from redis.exceptions import RedisError

from config import DEFAULT_HASH_TIMES, HASH_CACHE_KEY_PREFIX
from utils.async_redis_utils import AsyncRedisService
from utils.common_utils import get_logger

logger = get_logger(__name__)


def get_hash(value: str, times: int = DEFAULT_HASH_TIMES) -> str:
    """Apply sha256 hex `times` times; times <= 0 returns value unchanged."""
    for _ in range(times):
        value = hashlib.sha256(value.encode("utf-8")).hexdigest()
    return value


class HashCache:
    """Fail-open Redis cache in front of get_hash."""

    def __init__(self, redis_service: Optional[AsyncRedisService] = None):
        self.redis_service = redis_service

    @property
    def _available(self) -> bool:
        return self.redis_service is not None and self.redis_service.client is not None

    async def get_hash(self, value: str, times: int = DEFAULT_HASH_TIMES) -> str:
        """
        Hash value, using the cache only for the default iteration count.

        Algorithm:
            1. Non-default iteration counts are computed directly
            2. Compute the first round locally; it becomes the cache key
            3. Return the cached remainder when present
            4. Otherwise compute the remaining rounds and store them

        Args:
            value: Raw value (typically a private user id)
            times: Number of sha256 rounds

        Returns:
            Hex digest after `times` rounds
        """
        if times != DEFAULT_HASH_TIMES:
            return get_hash(value, times)

        first_round = get_hash(value, 1)
        redis_key = f"{HASH_CACHE_KEY_PREFIX}{first_round}"

        if self._available:
            try:
                cached = await self.redis_service.get(redis_key)
                if cached:
                    return cached
            except RedisError as e:
                logger.error(f"Hash cache read failed for {redis_key}: {e}")

        hashed = get_hash(first_round, times - 1)

        if self._available:
            try:
                await self.redis_service.set(redis_key, hashed)
            except RedisError as e:
                logger.error(f"Hash cache write failed for {redis_key}: {e}")

        return hashed
