"""Tests for RedisGrabDispatcher."""

from __future__ import annotations

import uuid
from unittest.mock import AsyncMock

import pytest

from selectarr.delay.dispatcher import RedisGrabDispatcher
from selectarr.delay.interfaces import GrabDispatcher
from selectarr.shared.enums import ReleaseProtocol
from selectarr.shared.exceptions import DispatchError, QueueError
from selectarr.shared.models import GrabRequest


def _request() -> GrabRequest:
    return GrabRequest(
        title="Some.Movie.2024.1080p",
        protocol=ReleaseProtocol.TORRENT,
        magnet_url="magnet:?xt=urn:btih:abc",
        score=600,
        movie_id="m1",
    )


class TestRedisGrabDispatcher:
    def test_implements_protocol(self) -> None:
        assert isinstance(RedisGrabDispatcher(AsyncMock()), GrabDispatcher)

    async def test_pushes_json_payload_and_returns_id(self) -> None:
        queue = AsyncMock()
        request = _request()

        grab_id = await RedisGrabDispatcher(queue).dispatch(request)

        assert grab_id == str(request.id)
        payload = queue.push.call_args[0][0]
        assert payload["id"] == str(request.id)
        assert payload["protocol"] == "torrent"
        assert payload["movie_id"] == "m1"
        assert uuid.UUID(payload["id"]) == request.id

    async def test_queue_failure_becomes_dispatch_error(self) -> None:
        queue = AsyncMock()
        queue.push.side_effect = QueueError("push failed")

        with pytest.raises(DispatchError, match="Some.Movie"):
            await RedisGrabDispatcher(queue).dispatch(_request())
