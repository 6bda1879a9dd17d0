"""
Redis cache for search results.
"""

import hashlib
import json
import logging
import os
from typing import Optional

import redis.asyncio as redis

from vehicle_scout.models import SearchQuery

logger = logging.getLogger(__name__)


class ResultCache:
    """
    Search result cache keyed by an md5 of the query.

    Cache failures never fail a search: reads miss and writes are skipped.
    """

    CACHE_TTL = 300  # 5 minutes

    def __init__(self, client: Optional[redis.Redis] = None):
        self.client = client

    @classmethod
    def from_env(cls) -> 'ResultCache':
        """Connect to REDIS_URL if set, otherwise return a disabled cache."""
        redis_url = os.getenv("REDIS_URL")
        if not redis_url:
            logger.info("REDIS_URL not set, result cache disabled")
            return cls()
        return cls(redis.from_url(redis_url, decode_responses=True))

    @property
    def enabled(self) -> bool:
        return self.client is not None

    @staticmethod
    def cache_key(query: SearchQuery) -> str:
        """Generate cache key from search query"""
        query_str = json.dumps(query.to_dict(), sort_keys=True)
        return f"search:{hashlib.md5(query_str.encode()).hexdigest()}"

    async def get(self, query: SearchQuery) -> Optional[dict]:
        if not self.enabled:
            return None
        try:
            cached = await self.client.get(self.cache_key(query))
            return json.loads(cached) if cached else None
        except Exception as e:
            logger.warning(f"Cache read failed: {e}")
            return None

    async def set(self, query: SearchQuery, result: dict) -> None:
        if not self.enabled:
            return
        try:
            await self.client.setex(self.cache_key(query), self.CACHE_TTL, json.dumps(result, default=str))
        except Exception as e:
            logger.warning(f"Cache write failed: {e}")

    async def close(self) -> None:
        if self.client is not None:
            await self.client.close()
            logger.info("Redis connection closed")
