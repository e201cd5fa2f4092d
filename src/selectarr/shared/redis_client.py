"""Redis connection wrapper."""

from __future__ import annotations

from typing import TYPE_CHECKING

import redis.asyncio as aioredis
from redis.exceptions import RedisError as RedisClientError

from selectarr.shared.exceptions import RedisError

if TYPE_CHECKING:
    from selectarr.config import Settings


async def create_redis(settings: Settings) -> aioredis.Redis:
    """Connect to ``settings.redis_url`` and verify the server answers PING."""
    client: aioredis.Redis = aioredis.from_url(settings.redis_url, decode_responses=True)
    try:
        await client.ping()
    except RedisClientError as exc:
        await client.aclose()
        raise RedisError(f"redis is unreachable: {exc}") from exc
    return client
