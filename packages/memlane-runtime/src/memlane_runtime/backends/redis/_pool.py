from __future__ import annotations

from typing import TYPE_CHECKING

from memlane_core.errors import BackendUnavailableError
from memlane_core.logging import get_logger

if TYPE_CHECKING:
    from redis.asyncio import Redis

logger = get_logger("backend.redis")


async def create_pool(redis_url: str) -> Redis:
    """Create an async Redis client and check it answers ``PING``.

    Raises :class:`BackendUnavailableError` when the server cannot be
    reached, and RuntimeError when the ``redis`` extra is not installed.
    """
    try:
        from redis.asyncio import Redis as AsyncRedis
        from redis.exceptions import ConnectionError as RedisConnectionError
    except ModuleNotFoundError as exc:
        raise RuntimeError(
            "redis extra is required for the Redis backend. "
            "Install with: pip install memlane[redis]"
        ) from exc

    client: Redis = AsyncRedis.from_url(redis_url, decode_responses=False)
    try:
        await client.ping()
    except (RedisConnectionError, OSError) as exc:
        logger.error("Failed to connect to Redis at %s", redis_url, exc_info=True)
        await client.aclose()
        raise BackendUnavailableError(f"Redis not reachable at {redis_url}") from exc
    logger.info("Connected to Redis at %s", redis_url)
    return client
