"""Tests for the Redis-backed TaskQueue."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from selectarr.shared.exceptions import QueueError, RedisError
from selectarr.shared.queue import TaskQueue


@pytest.fixture()
def queue(mock_redis: AsyncMock) -> TaskQueue:
    return TaskQueue(redis=mock_redis, queue_name="selectarr:test")


class TestTaskQueue:
    async def test_push_serializes_and_rpushes(self, queue: TaskQueue, mock_redis: AsyncMock) -> None:
        mock_redis.rpush.return_value = 1
        payload = {"id": "abc", "title": "Some.Movie.2024.1080p"}

        length = await queue.push(payload)

        mock_redis.rpush.assert_awaited_once_with("selectarr:test", json.dumps(payload))
        assert length == 1

    async def test_push_wraps_client_errors(self, queue: TaskQueue, mock_redis: AsyncMock) -> None:
        mock_redis.rpush.side_effect = RedisConnectionError("down")

        with pytest.raises(QueueError, match="selectarr:test") as info:
            await queue.push({"id": "abc"})
        assert isinstance(info.value, RedisError)

    async def test_length_returns_llen(self, queue: TaskQueue, mock_redis: AsyncMock) -> None:
        mock_redis.llen.return_value = 7
        assert await queue.length() == 7
        assert queue.name == "selectarr:test"

