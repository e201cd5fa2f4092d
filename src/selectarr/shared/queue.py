"""Redis list carrying grab requests to the download orchestrator."""

from __future__ import annotations

import json
import logging
from collections.abc import Awaitable
from typing import Any, TypeVar, cast

import redis.asyncio as aioredis
from redis.exceptions import RedisError as RedisClientError

from selectarr.shared.exceptions import QueueError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class TaskQueue:
    """JSON payloads on a Redis list, appended with RPUSH.

    The download orchestrator consumes the list from the other end.

    Client failures surface as :class:`QueueError` so callers never see
    redis-py exception types.
    """

    def __init__(self, redis: aioredis.Redis, queue_name: str) -> None:
        self._redis = redis
        self._queue_name = queue_name

    @property
    def name(self) -> str:
        return self._queue_name

    async def _call(self, op: str, awaitable: Awaitable[T]) -> T:
        try:
            return await awaitable
        except RedisClientError as exc:
            raise QueueError(f"{op} on {self._queue_name} failed: {exc}") from exc

    async def push(self, payload: dict[str, Any]) -> int:
        """Enqueue ``payload``; returns the queue depth after the push."""
        client = cast(Any, self._redis)
        depth = cast(int, await self._call("push", client.rpush(self._queue_name, json.dumps(payload))))
        logger.debug("queued grab on %s (depth=%d)", self._queue_name, depth)
        return depth

    async def length(self) -> int:
        client = cast(Any, self._redis)
        return cast(int, await self._call("length", client.llen(self._queue_name)))
