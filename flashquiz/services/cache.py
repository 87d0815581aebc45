"""
Local durable cache backing the session core.

Values are JSON-encoded on write and decoded on read whatever the backend,
so a reload yields plain data just like a fresh process would see.
"""
import json
from typing import Any, Dict, Optional

import redis
import structlog

logger = structlog.get_logger()


class CacheService:
    def __init__(self, redis_url: Optional[str] = None, prefix: str = ""):
        self.prefix = prefix
        self.redis_client = None
        self._memory_cache: Dict[str, str] = {}
        if not redis_url:
            logger.info("cache_backend_selected", backend="memory")
            return
        try:
            self.redis_client = redis.from_url(redis_url, decode_responses=True)
            self.redis_client.ping()
            logger.info("cache_backend_selected", backend="redis")
        except Exception as e:
            logger.warning("redis_unavailable", error=str(e), fallback="memory")
            self.redis_client = None

    @property
    def backend(self) -> str:
        return "redis" if self.redis_client is not None else "memory"

    def _key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    def get(self, key: str) -> Optional[Any]:
        """Get value from cache"""
        try:
            if self.redis_client is not None:
                value = self.redis_client.get(self._key(key))
            else:
                value = self._memory_cache.get(self._key(key))
            return json.loads(value) if value else None
        except Exception as e:
            logger.error("cache_get_failed", key=key, error=str(e))
            return None

    def set(self, key: str, value: Any, expire: Optional[int] = 3600) -> bool:
        """Set value in cache; ``expire=None`` keeps it until deleted"""
        try:
            payload = json.dumps(value)
            if self.redis_client is not None:
                if expire is None:
                    return bool(self.redis_client.set(self._key(key), payload))
                return bool(self.redis_client.setex(self._key(key), expire, payload))
            self._memory_cache[self._key(key)] = payload
            return True
        except Exception as e:
            logger.error("cache_set_failed", key=key, error=str(e))
            return False

    def delete(self, key: str) -> bool:
        """Delete value from cache"""
        try:
            if self.redis_client is not None:
                return bool(self.redis_client.delete(self._key(key)))
            return self._memory_cache.pop(self._key(key), None) is not None
        except Exception as e:
            logger.error("cache_delete_failed", key=key, error=str(e))
            return False

