"""
Dependency injection for FastAPI.

Provides singleton instances of infrastructure adapters.
"""

from functools import lru_cache
from api.core.cache import CacheManager
from api.core.realtime import ChangeFeed
from api.core.storage import ObjectStorage
from api.config.settings import settings


@lru_cache()
def get_cache() -> CacheManager:
    """Get cache manager singleton."""
    return CacheManager(url=settings.REDIS_URL)


@lru_cache()
def get_change_feed() -> ChangeFeed:
    """Get realtime change feed singleton."""
    return ChangeFeed(url=settings.REDIS_URL, cache=get_cache())


@lru_cache()
def get_storage() -> ObjectStorage:
    """Get object storage singleton."""
    return ObjectStorage.from_settings()
