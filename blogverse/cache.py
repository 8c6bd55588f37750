"""
Cache Manager
Redis-backed caching for profiles and rate limits; every call is a no-op when Redis is down
"""
import json
from typing import Any, Optional, Dict
from . import core
import logging

logger = logging.getLogger(__name__)

class CacheManager:
    """
    Cache manager using Redis
    Values are stored as JSON
    """

    def __init__(self):
        self.default_ttl = 3600  # 1 hour default TTL

    def _make_key(self, key: str, prefix: str = "") -> str:
        """Generate cache key with prefix"""
        if prefix:
            return f"{prefix}:{key}"
        return key

    async def set(self, key: str, value: Any, ttl: int = None, prefix: str = "") -> bool:
        """Set cache value with TTL"""
        redis_client = await core.get_redis()
        if not redis_client:
            return False

        cache_key = self._make_key(key, prefix)
        ttl = ttl or self.default_ttl

        try:
            if not isinstance(value, (str, bytes)):
                value = json.dumps(value)
            await redis_client.setex(cache_key, ttl, value)
            return True
        except Exception as e:
            logger.error(f"Cache set failed for key {cache_key}: {str(e)}")
            return False

    async def get(self, key: str, prefix: str = "") -> Optional[Any]:
        """Get cache value"""
        redis_client = await core.get_redis()
        if not redis_client:
            return None

        cache_key = self._make_key(key, prefix)

        try:
            value = await redis_client.get(cache_key)
            if value is None:
                return None

            try:
                return json.loads(value)
            except (json.JSONDecodeError, TypeError):
                return value.decode() if isinstance(value, bytes) else value

        except Exception as e:
            logger.error(f"Cache get failed for key {cache_key}: {str(e)}")
            return None

    async def delete(self, key: str, prefix: str = "") -> bool:
        """Delete cache key"""
        redis_client = await core.get_redis()
        if not redis_client:
            return False

        cache_key = self._make_key(key, prefix)

        try:
            result = await redis_client.delete(cache_key)
            return result > 0
        except Exception as e:
            logger.error(f"Cache delete failed for key {cache_key}: {str(e)}")
            return False

    async def increment(self, key: str, amount: int = 1, prefix: str = "") -> Optional[int]:
        """Increment cache value atomically"""
        redis_client = await core.get_redis()
        if not redis_client:
            return None

        cache_key = self._make_key(key, prefix)

        try:
            return await redis_client.incrby(cache_key, amount)
        except Exception as e:
            logger.error(f"Cache increment failed for key {cache_key}: {str(e)}")
            return None

    async def expire(self, key: str, ttl: int, prefix: str = "") -> bool:
        """Set TTL on an existing key"""
        redis_client = await core.get_redis()
        if not redis_client:
            return False

        cache_key = self._make_key(key, prefix)

        try:
            return bool(await redis_client.expire(cache_key, ttl))
        except Exception as e:
            logger.error(f"Cache expire failed for key {cache_key}: {str(e)}")
            return False

# Global cache manager instance
cache = CacheManager()

# Profile cache; counters change on every follow so entries are short-lived
async def cache_user_profile(user_id: int, profile: Dict, ttl: int = 300):
    return await cache.set(str(user_id), profile, ttl, "profile")

async def get_cached_user_profile(user_id: int) -> Optional[Dict]:
    return await cache.get(str(user_id), "profile")

async def invalidate_user_profile(user_id: int):
    await cache.delete(str(user_id), "profile")

async def invalidate_follow_caches(actor_id: int, target_id: int):
    """Drop cached profiles for both sides of a follow edge"""
    await invalidate_user_profile(actor_id)
    await invalidate_user_profile(target_id)

async def invalidate_user_profiles(user_ids):
    """Drop cached profiles for every user whose counters were rewritten"""
    for user_id in user_ids:
        await invalidate_user_profile(user_id)

# Rate limiting functions
async def check_rate_limit(user_id: int, action: str, limit: int = 100, window: int = 3600) -> bool:
    """Check if user is within rate limit; allows everything when Redis is down"""
    key = f"{user_id}:{action}"

    # INCR is atomic, so parallel requests each get a distinct count
    count = await cache.increment(key, 1, "rate")
    if count is None:
        return True
    if count == 1:
        await cache.expire(key, window, "rate")

    return count <= limit
