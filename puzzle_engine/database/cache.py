"""Cache manager implementation using Redis."""

import hashlib
import json
import logging
from datetime import date
from typing import Any, Dict, Optional

import redis.asyncio as redis

from ..config import settings

logger = logging.getLogger(__name__)


class CacheManager:
    """Redis-based cache for resolved daily puzzles and deterministic LLM responses.

    Every method swallows Redis errors and reports a miss; nothing in the
    engine depends on the cache for correctness.
    """

    def __init__(self, redis_url: str = None, client: Optional[redis.Redis] = None):
        """Initialize Redis connection."""
        self.redis_url = redis_url or settings.redis_url
        self.redis_client = client or redis.from_url(self.redis_url, decode_responses=True)
        self.default_ttl = settings.cache_ttl_seconds

    async def set_json(self, key: str, value: Dict[str, Any], ttl: Optional[int] = None) -> bool:
        """Set a JSON-serializable value in the cache."""
        try:
            ttl = ttl or self.default_ttl
            json_value = json.dumps(value, default=str)
            result = await self.redis_client.setex(key, ttl, json_value)
            return bool(result)

        except Exception as e:
            logger.error(f"Error setting JSON cache key {key}: {e}")
            return False

    async def get_json(self, key: str) -> Optional[Dict[str, Any]]:
        """Get a JSON value from the cache."""
        try:
            json_value = await self.redis_client.get(key)

            if json_value is None:
                return None

            if isinstance(json_value, bytes):
                json_value = json_value.decode("utf-8")

            return json.loads(json_value)

        except Exception as e:
            logger.error(f"Error getting JSON cache key {key}: {e}")
            return None

    async def cache_puzzle(self, scheduled_for: date, puzzle_data: Dict[str, Any], ttl: Optional[int] = None) -> bool:
        """Cache the resolved puzzle for a date."""
        cache_key = f"daily_puzzle:{scheduled_for.isoformat()}"
        return await self.set_json(cache_key, puzzle_data, ttl)

    async def get_cached_puzzle(self, scheduled_for: date) -> Optional[Dict[str, Any]]:
        """Get the cached puzzle for a date."""
        cache_key = f"daily_puzzle:{scheduled_for.isoformat()}"
        return await self.get_json(cache_key)

    @staticmethod
    def llm_response_key(model: str, prompt: str) -> str:
        prompt_hash = hashlib.sha256(prompt.encode("utf-8")).hexdigest()
        return f"llm_response:{model}:{prompt_hash}"

    async def cache_llm_response(self, model: str, prompt: str, response: str, ttl: Optional[int] = None) -> bool:
        return await self.set_json(self.llm_response_key(model, prompt), {"response": response}, ttl)

    async def get_cached_llm_response(self, model: str, prompt: str) -> Optional[str]:
        result = await self.get_json(self.llm_response_key(model, prompt))
        return result.get("response") if result else None

    async def get_cache_stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        try:
            info = await self.redis_client.info()

            stats = {
                "total_keys": await self.redis_client.dbsize(),
                "memory_used": info.get("used_memory_human", "N/A"),
                "keyspace_hits": info.get("keyspace_hits", 0),
                "keyspace_misses": info.get("keyspace_misses", 0),
            }

            hits = stats["keyspace_hits"]
            misses = stats["keyspace_misses"]
            total = hits + misses
            stats["hit_rate"] = hits / total if total > 0 else 0.0

            return stats

        except Exception as e:
            logger.error(f"Error getting cache stats: {e}")
            return {}

    async def health_check(self) -> bool:
        """Check if Redis connection is healthy."""
        try:
            await self.redis_client.ping()
            return True
        except Exception as e:
            logger.error(f"Redis health check failed: {e}")
            return False

    async def close(self):
        """Close Redis connection."""
        try:
            await self.redis_client.aclose()
        except Exception as e:
            logger.error(f"Error closing Redis connection: {e}")
