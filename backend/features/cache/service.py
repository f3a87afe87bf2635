"""
Response cache backed by Redis.

Only read-only catalog data goes through here. The cache is never the
source of truth: every Redis failure is logged and treated as a miss, so
callers fall through to the database.
"""
import json
import logging
from typing import Any, Optional

from redis import Redis
from redis.exceptions import RedisError

from backend.core.config import settings
from backend.core.metrics import cache_lookups_total

logger = logging.getLogger("vidify")

_client: Optional[Redis] = None


def get_redis_conn() -> Redis:
    """Process-wide Redis client (connections are lazy)."""
    global _client
    if _client is None:
        _client = Redis.from_url(settings.REDIS_URL, socket_timeout=1.0, socket_connect_timeout=1.0)
    return _client


class ResponseCache:
    """JSON get/set/clear over a Redis client."""

    def __init__(self, client: Optional[Redis] = None, enabled: Optional[bool] = None):
        self._client = client
        self.enabled = settings.CACHE_ENABLED if enabled is None else enabled

    @property
    def client(self) -> Redis:
        if self._client is None:
            self._client = get_redis_conn()
        return self._client

    def get(self, key: str) -> Optional[Any]:
        if not self.enabled:
            return None
        try:
            raw = self.client.get(key)
        except RedisError as e:
            logger.warning("cache.get_failed", extra={"event_type": "cache.get_failed", "error_code": type(e).__name__})
            cache_lookups_total.inc(labels={"key": key, "outcome": "error"})
            return None
        if raw is None:
            cache_lookups_total.inc(labels={"key": key, "outcome": "miss"})
            return None
        try:
            value = json.loads(raw)
        except (TypeError, ValueError):
            logger.warning("cache.corrupt_entry", extra={"event_type": "cache.corrupt_entry"})
            cache_lookups_total.inc(labels={"key": key, "outcome": "error"})
            return None
        cache_lookups_total.inc(labels={"key": key, "outcome": "hit"})
        return value

    def set(self, key: str, value: Any, ttl_seconds: int = 3600) -> bool:
        if not self.enabled:
            return False
        try:
            self.client.set(key, json.dumps(value, default=str), ex=ttl_seconds)
        except RedisError as e:
            logger.warning("cache.set_failed", extra={"event_type": "cache.set_failed", "error_code": type(e).__name__})
            return False
        return True

    def clear(self, pattern: str) -> bool:
        """Delete every key matching a glob pattern (e.g. "voices:*")."""
        if not self.enabled:
            return False
        try:
            keys = list(self.client.scan_iter(match=pattern))
            if keys:
                self.client.delete(*keys)
        except RedisError as e:
            logger.warning("cache.clear_failed", extra={"event_type": "cache.clear_failed", "error_code": type(e).__name__})
            return False
        return True


def get_response_cache() -> ResponseCache:
    """FastAPI dependency; overridden in tests."""
    return ResponseCache()
