"""Redis-based grab dispatching."""

from __future__ import annotations

import logging

from selectarr.shared.exceptions import DispatchError, QueueError
from selectarr.shared.models import GrabRequest
from selectarr.shared.queue import TaskQueue

logger = logging.getLogger(__name__)


class RedisGrabDispatcher:
    """Push grab requests onto the download orchestrator's Redis queue.

    Implements the ``GrabDispatcher`` protocol.
    """

    def __init__(self, queue: TaskQueue) -> None:
        self._queue = queue

    async def dispatch(self, request: GrabRequest) -> str:
        """Serialise ``request`` onto the grab queue and return its id.

        Raises:
            DispatchError: If the queue push failed.
        """
        try:
            await self._queue.push(request.model_dump(mode="json"))
        except QueueError as exc:
            raise DispatchError(f"failed to queue grab for {request.title!r}: {exc}") from exc
        logger.info("dispatched grab %s → %s: %s", request.id, self._queue.name, request.title)
        return str(request.id)
