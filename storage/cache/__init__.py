"""Redis cache layer."""
from .redis_cache import CacheService, create_redis_client

__all__ = ['CacheService', 'create_redis_client']
