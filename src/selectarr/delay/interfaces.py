"""Interfaces for the delay module."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from selectarr.shared.models import GrabRequest, MediaTarget


@runtime_checkable
class GrabDispatcher(Protocol):
    """Protocol for handing a release to the download queue."""

    async def dispatch(self, request: GrabRequest) -> str:
        """Queue a grab.

        Args:
            request: Release and target to download.

        Returns:
            Identifier of the queued grab.

        Raises:
            DispatchError: If the grab could not be queued.
        """
        ...


@runtime_checkable
class TargetMonitor(Protocol):
    """Protocol for asking whether a media target is still wanted."""

    async def is_monitored(self, target: MediaTarget) -> bool:
        """Return False once the target is unmonitored or removed."""
        ...
