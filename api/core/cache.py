"""
Redis cache manager.

Caches dashboard statistics by (organization + panel + parameters).
"""

import hashlib
import json
from typing import Optional, Dict, Any
import redis.asyncio as redis
from api.utils.logger import get_logger

logger = get_logger(__name__)


class CacheManager:
    """
    Redis-based cache for dashboard aggregates.

    Key insight: Cache must be organization-specific.
    Same panel for two tenants = different results.
    Cache failures are logged and treated as misses; they never fail a request.
    """

    def __init__(self, url: str):
        """
        Initialize Redis client.

        Args:
            url: Redis connection URL (e.g. redis://localhost:6379)
        """
        self.redis = redis.from_url(url,
        decode_responses=True,
        max_connections=50,
        socket_keepalive=True,
        socket_timeout=5.0,
        retry_on_timeout=True)

        logger.info(f"Initialized CacheManager: {url}")

    def get_key(self, organization_id: str, panel: str, params: Optional[Dict[str, Any]] = None) -> str:
        """
        Generate cache key from organization + panel + params.

        CRITICAL: Organization MUST be in the key.
        Otherwise one tenant's numbers could be served to another.

        Returns:
            Cache key pattern 'stats:{organization_id}:{panel}:{md5_hash}'
            so a whole tenant can be invalidated by wildcard.
        """
        encoded = json.dumps(params or {}, sort_keys=True, default=str)
        hash_value = hashlib.md5(encoded.encode()).hexdigest()
        return f"stats:{organization_id}:{panel}:{hash_value}"

    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        """
        Get cached result.

        Returns:
            Cached result dict or None if not found
        """
        try:
            value = await self.redis.get(key)
            if value:
                logger.debug(f"Cache HIT: {key}")
                return json.loads(value)
            logger.debug(f"Cache MISS: {key}")
            return None
        except Exception as e:
            logger.error(f"Cache get failed: {e}")
            return None

    async def set(
        self,
        key: str,
        value: Dict[str, Any],
        ttl: int = 60
    ) -> None:
        """
        Cache result for ttl seconds.
        """
        try:
            await self.redis.setex(
                key,
                ttl,
                json.dumps(value, default=str)
            )
            logger.debug(f"Cached: {key}, ttl={ttl}s")
        except Exception as e:
            logger.error(f"Cache set failed: {e}")

    async def invalidate_organization(self, organization_id: str) -> int:
        """
        Invalidate all cached panels for an organization.

        Called whenever a ticket in the organization changes.

        Returns:
            Number of keys deleted
        """
        try:
            pattern = f"stats:{organization_id}:*"
            cursor = 0
            deleted = 0

            while True:
                cursor, keys = await self.redis.scan(
                    cursor=cursor,
                    match=pattern,
                    count=100
                )

                if keys:
                    await self.redis.delete(*keys)
                    deleted += len(keys)

                if cursor == 0:
                    break

            logger.debug(f"Invalidated {deleted} cached panels for org: {organization_id}")
            return deleted

        except Exception as e:
            logger.error(f"Cache invalidation failed: {e}")
            return 0

    async def ping(self) -> bool:
        return bool(await self.redis.ping())

    async def close(self) -> None:
        """Close Redis connection."""
        await self.redis.aclose()
