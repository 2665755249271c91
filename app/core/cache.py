"""Cache-aside store for finished deployments.

The cache is best effort. Once it sees that the backing store was never
initialized or cannot be reached it disables itself for the lifetime of the
instance, so a sustained outage costs one warning instead of one per call.
"""

import base64
import json
from typing import Any, Callable

from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

from app.core.exceptions import CacheNotInitializedError
from app.core.redis import get_redis_client
from app.utils.logging import get_logger

# Failures that mean the store itself is gone, as opposed to a bad key or value
_UNAVAILABLE_ERRORS = (CacheNotInitializedError, RedisConnectionError, RedisTimeoutError)


def deployment_cache_key(project_name: str, source_url: str) -> str:
    """Fingerprint of a deployment request."""
    encoded = base64.b64encode(source_url.encode("utf-8")).decode("ascii")
    return f"deployment:{project_name}:{encoded}"


class ResultCache:
    """Redis-backed cache with a one-way enabled -> disabled latch."""

    def __init__(
        self,
        client_provider: Callable[[], Any] = get_redis_client,
        default_ttl: int = 3600,
    ):
        self._client_provider = client_provider
        self._default_ttl = default_ttl
        self._enabled = True
        self.logger = get_logger("cache")

    @property
    def enabled(self) -> bool:
        return self._enabled

    def _disable(self, operation: str, error: Exception) -> None:
        if self._enabled:
            self._enabled = False
            self.logger.warning(
                "cache.disabled",
                operation=operation,
                error=str(error),
            )

    async def get(self, key: str) -> Any | None:
        """Return the cached value, or None on miss or when disabled."""
        if not self._enabled:
            return None

        try:
            client = self._client_provider()
            data = await client.get(key)
        except _UNAVAILABLE_ERRORS as e:
            self._disable("get", e)
            return None
        except RedisError as e:
            self.logger.warning("cache.get_failed", key=key, error=str(e))
            return None

        if data is None:
            self.logger.debug("cache.miss", key=key)
            return None

        try:
            value = json.loads(data)
        except (TypeError, ValueError) as e:
            self.logger.warning("cache.corrupt_entry", key=key, error=str(e))
            return None

        self.logger.debug("cache.hit", key=key)
        return value

    async def set(self, key: str, value: Any, ttl: int | None = None) -> bool:
        """Store a JSON-serializable value. Returns False when degraded."""
        if not self._enabled:
            return False

        ttl = ttl or self._default_ttl
        try:
            serialized = json.dumps(value, default=str)
        except (TypeError, ValueError) as e:
            self.logger.warning("cache.serialize_failed", key=key, error=str(e))
            return False

        try:
            client = self._client_provider()
            await client.setex(key, ttl, serialized)
        except (RedisError, CacheNotInitializedError) as e:
            self._disable("set", e)
            return False

        self.logger.debug("cache.set", key=key, ttl=ttl)
        return True

    async def delete(self, key: str) -> bool:
        if not self._enabled:
            return False

        try:
            client = self._client_provider()
            removed = await client.delete(key)
        except (RedisError, CacheNotInitializedError) as e:
            self._disable("delete", e)
            return False

        self.logger.debug("cache.delete", key=key)
        return removed > 0

    async def exists(self, key: str) -> bool:
        if not self._enabled:
            return False

        try:
            client = self._client_provider()
            found = await client.exists(key)
        except (RedisError, CacheNotInitializedError) as e:
            self._disable("exists", e)
            return False

        return found == 1
