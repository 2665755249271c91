"""Redis connection lifecycle."""

import redis.asyncio as redis
from redis.asyncio.retry import Retry
from redis.backoff import ExponentialBackoff

from app.config import settings
from app.core.exceptions import CacheNotInitializedError
from app.utils.logging import get_logger

logger = get_logger(__name__)

_redis_client: redis.Redis | None = None


async def connect_redis(url: str) -> redis.Redis:
    """Open a connection and verify it with a ping."""
    global _redis_client

    client = redis.from_url(
        url,
        decode_responses=True,
        socket_connect_timeout=5,
        retry=Retry(ExponentialBackoff(cap=3, base=0.1), retries=10),
    )
    try:
        await client.ping()
    except Exception:
        await client.aclose()
        raise

    _redis_client = client
    logger.info("redis.connected", url=url.split("@")[-1])
    return client


def get_redis_client() -> redis.Redis:
    """Return the shared client or raise if the store was never initialized."""
    if _redis_client is None:
        raise CacheNotInitializedError()
    return _redis_client


async def disconnect_redis() -> None:
    global _redis_client
    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None
        logger.info("redis.disconnected")


async def initialize_redis() -> None:
    """Connect at startup when a Redis URL is configured.

    A failed connection is logged and otherwise ignored: the service keeps
    running without the result cache.
    """
    if not settings.redis_url:
        logger.warning("redis.skipped", reason="REDIS_URL not set")
        return

    try:
        await connect_redis(settings.redis_url)
    except Exception as e:
        logger.error("redis.connect_failed", error=str(e))
