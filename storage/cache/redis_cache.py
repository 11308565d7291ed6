"""
Redis-backed JSON cache.

Caching is optional: without a Redis client every read is a miss and every
write reports False. Redis failures are logged and never propagate.
"""
import json
import logging
import threading
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional

import redis

from common.config.settings import RedisConfig

logger = logging.getLogger(__name__)


def _serialize_value(obj):
    """json.dumps default for values the stdlib encoder rejects"""
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, Decimal):
        return str(obj)
    if hasattr(obj, 'to_dict'):
        return obj.to_dict()
    return str(obj)


def create_redis_client(config: RedisConfig) -> Optional[redis.Redis]:
    """
    Build a Redis client from configuration.

    REDIS_PASSWORD is applied only when the URL carries no credentials.
    Returns None when no URL is configured or the server cannot be reached.
    """
    if not config.url:
        logger.warning("REDIS_URL not configured, caching disabled")
        return None

    options: Dict[str, Any] = {
        'decode_responses': True,
        'socket_connect_timeout': config.socket_timeout,
        'socket_timeout': config.socket_timeout,
        'retry_on_timeout': True,
        'health_check_interval': 30,
    }
    if config.password and '@' not in config.url:
        options['password'] = config.password
        logger.info("Redis password authentication enabled")

    try:
        client = redis.Redis.from_url(config.url, **options)
        client.ping()
        logger.info("Redis connected")
        return client
    except redis.RedisError as e:
        logger.error(f"Redis connection failed, caching disabled: {e}")
        return None


class CacheService:
    """
    JSON cache over Redis with hit/miss/set counters.
    """

    def __init__(self, client: Optional[redis.Redis] = None, enabled: bool = True):
        self.redis = client if enabled else None
        self._stats = {'hits': 0, 'misses': 0, 'sets': 0, 'errors': 0}
        self._stats_lock = threading.Lock()

    def _count(self, key: str):
        with self._stats_lock:
            self._stats[key] += 1

    def get(self, key: str) -> Optional[Any]:
        if not self.redis:
            return None
        try:
            data = self.redis.get(key)
        except redis.RedisError as e:
            logger.error(f"Cache get error for key {key}: {e}")
            self._count('errors')
            return None

        if data is None:
            logger.debug(f"Cache MISS: {key}")
            self._count('misses')
            return None
        logger.debug(f"Cache HIT: {key}")
        self._count('hits')
        try:
            return json.loads(data)
        except ValueError:
            logger.warning(f"Discarding undecodable cache entry {key}")
            return None

    def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> bool:
        if not self.redis:
            return False
        try:
            serialized = json.dumps(value, default=_serialize_value)
            if ttl_seconds:
                self.redis.setex(key, ttl_seconds, serialized)
            else:
                self.redis.set(key, serialized)
            self._count('sets')
            return True
        except (redis.RedisError, TypeError, ValueError) as e:
            logger.error(f"Cache set error for key {key}: {e}")
            self._count('errors')
            return False

    def delete(self, key: str) -> bool:
        if not self.redis:
            return False
        try:
            self.redis.delete(key)
            return True
        except redis.RedisError as e:
            logger.error(f"Cache delete error for key {key}: {e}")
            return False

    def delete_pattern(self, pattern: str) -> bool:
        """Delete every key matching a glob pattern (SCAN, not KEYS)."""
        if not self.redis:
            return False
        try:
            batch = []
            for key in self.redis.scan_iter(match=pattern, count=500):
                batch.append(key)
                if len(batch) >= 500:
                    self.redis.delete(*batch)
                    batch = []
            if batch:
                self.redis.delete(*batch)
            return True
        except redis.RedisError as e:
            logger.error(f"Cache delete pattern error for {pattern}: {e}")
            return False

    def is_available(self) -> bool:
        if not self.redis:
            return False
        try:
            return bool(self.redis.ping())
        except redis.RedisError:
            return False

    def get_info(self) -> Optional[Dict[str, Any]]:
        if not self.redis:
            return None
        try:
            return self.redis.info()
        except redis.RedisError as e:
            logger.error(f"Failed to get Redis info: {e}")
            return None

    def clear(self) -> bool:
        if not self.redis:
            return False
        try:
            self.redis.flushdb()
            logger.warning("Cache cleared")
            return True
        except redis.RedisError as e:
            logger.error(f"Failed to clear cache: {e}")
            return False

    def stats(self) -> Dict[str, Any]:
        with self._stats_lock:
            stats = dict(self._stats)
        lookups = stats['hits'] + stats['misses']
        stats['hit_rate'] = round(stats['hits'] / lookups, 4) if lookups else 0.0
        stats['available'] = self.redis is not None
        return stats

    def close(self):
        if self.redis:
            try:
                self.redis.close()
            except redis.RedisError as e:
                logger.debug(f"Redis close failed: {e}")
