"""Pending release scheduling: defer, supersede and grab accepted releases.

Each media target has at most one ``pending`` row. Submissions for the same
target are serialized in-process; every status change is a conditional
update on ``status = 'pending'`` so racing writers elsewhere lose cleanly.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
import weakref
from collections.abc import Callable
from datetime import datetime, timedelta

from selectarr.delay.interfaces import GrabDispatcher, TargetMonitor
from selectarr.delay.resolver import DelayProfileResolver
from selectarr.shared.config_store import ConfigStore
from selectarr.shared.enums import GrabAction, PendingStatus
from selectarr.shared.exceptions import DispatchError
from selectarr.shared.models import (
    DelayDecision,
    EnhancedReleaseResult,
    GrabDecision,
    GrabRequest,
    MediaTarget,
    PendingRelease,
    QualitySnapshot,
    ScoringProfile,
    utc_now,
)
from selectarr.shared.repository import PendingReleaseRepository

logger = logging.getLogger(__name__)


class PendingReleaseScheduler:
    """Decide between immediate grab, deferral and discard, and grab due rows.

    Args:
        pending_repo: Persistence for pending rows.
        store: Configuration cache (scoring and delay profiles).
        dispatcher: Download-queue collaborator.
        resolver: Delay profile resolver.
        monitor: Optional check used by ``tick`` to expire unwanted targets.
        clock: Returns the current UTC time.
        batch_size: Maximum due rows handled per tick.
    """

    def __init__(
        self,
        *,
        pending_repo: PendingReleaseRepository,
        store: ConfigStore,
        dispatcher: GrabDispatcher,
        resolver: DelayProfileResolver | None = None,
        monitor: TargetMonitor | None = None,
        clock: Callable[[], datetime] = utc_now,
        batch_size: int = 50,
    ) -> None:
        self._repo = pending_repo
        self._store = store
        self._dispatcher = dispatcher
        self._resolver = resolver or DelayProfileResolver()
        self._monitor = monitor
        self._clock = clock
        self._batch_size = batch_size
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    def _lock_for(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    async def submit(
        self,
        release: EnhancedReleaseResult,
        target: MediaTarget,
        scoring_profile: ScoringProfile | None = None,
    ) -> GrabDecision:
        """Grab, defer or discard an accepted release for ``target``.

        A release competing with an existing pending row must beat its score
        strictly and by at least ``min_score_increment``; the old row is then
        superseded in the same transaction that records the new outcome.
        """
        if release.rejected:
            return GrabDecision(action=GrabAction.DISCARDED, reason=f"Rejected: {release.rejection_reason}")

        profile = scoring_profile or await self._store.get_default_profile()
        delay_profiles = await self._store.list_delay_profiles()
        decision = self._resolver.resolve(release, target, delay_profiles, profile)

        async with self._lock_for(target.key):
            existing = await self._repo.find_pending_for_target(target.key)
            if existing is not None:
                improvement = release.total_score - existing.score
                if improvement <= 0 or improvement < profile.min_score_increment:
                    logger.info(
                        "discarding %r: score %d does not improve on pending %s (%d, min increment %d)",
                        release.title,
                        release.total_score,
                        existing.id,
                        existing.score,
                        profile.min_score_increment,
                    )
                    return GrabDecision(
                        action=GrabAction.DISCARDED,
                        reason=f"Score {release.total_score} does not improve on pending {existing.score}",
                    )

            if decision.delay_minutes == 0:
                return await self._grab_now(release, target, decision, existing)
            return await self._defer(release, target, decision, existing)

    async def _grab_now(
        self,
        release: EnhancedReleaseResult,
        target: MediaTarget,
        decision: DelayDecision,
        existing: PendingRelease | None,
    ) -> GrabDecision:
        request = GrabRequest.from_release(release, target)
        if existing is None:
            grab_id = await self._dispatcher.dispatch(request)
            return GrabDecision(action=GrabAction.GRABBED, grab_id=grab_id, reason=decision.reason)

        async with self._repo.superseding(existing.id, str(request.id)) as won:
            if not won:
                return GrabDecision(action=GrabAction.DISCARDED, reason="Pending release changed concurrently")
            grab_id = await self._dispatcher.dispatch(request)
        logger.info("pending release %s superseded by immediate grab %s", existing.id, grab_id)
        return GrabDecision(
            action=GrabAction.GRABBED,
            grab_id=grab_id,
            superseded_id=existing.id,
            reason=decision.reason,
        )

    async def _defer(
        self,
        release: EnhancedReleaseResult,
        target: MediaTarget,
        decision: DelayDecision,
        existing: PendingRelease | None,
    ) -> GrabDecision:
        now = self._clock()
        pending = PendingRelease(
            title=release.title,
            info_hash=release.info_hash,
            indexer_id=release.indexer_id,
            download_url=release.download_url,
            magnet_url=release.magnet_url,
            movie_id=target.movie_id,
            series_id=target.series_id,
            episode_ids=target.episode_ids,
            season_number=target.season_number,
            score=release.total_score,
            size=release.size or None,
            protocol=release.protocol,
            quality=QualitySnapshot.from_parsed(release.parsed),
            delay_profile_id=decision.profile_id,
            added_at=now,
            process_at=now + timedelta(minutes=decision.delay_minutes),
        )

        if existing is None:
            saved = await self._repo.insert(pending)
        else:
            saved = await self._repo.supersede_and_insert(existing.id, pending)
        if saved is None:
            return GrabDecision(action=GrabAction.DISCARDED, reason="Pending release changed concurrently")

        return GrabDecision(
            action=GrabAction.DEFERRED,
            delay_minutes=decision.delay_minutes,
            pending_release_id=saved.id,
            superseded_id=existing.id if existing else None,
            reason=decision.reason,
        )

    async def tick(self) -> dict[str, int]:
        """Grab every due pending row; expire rows whose target is gone.

        Returns:
            Counters: ``due``, ``grabbed``, ``expired``, ``skipped`` (claim
            lost to another worker) and ``failed`` (dispatch error, row left
            pending for the next tick).
        """
        stats = {"due": 0, "grabbed": 0, "expired": 0, "skipped": 0, "failed": 0}
        due = await self._repo.list_due(self._clock(), self._batch_size)
        stats["due"] = len(due)

        for pending in due:
            if self._monitor is not None and not await self._monitor.is_monitored(pending.target):
                if await self._repo.expire(pending.id):
                    logger.info("expired pending release %s: target no longer monitored", pending.id)
                    stats["expired"] += 1
                continue

            try:
                async with self._repo.claim(pending.id) as claimed:
                    if claimed is None:
                        stats["skipped"] += 1
                        continue
                    grab_id = await self._dispatcher.dispatch(GrabRequest.from_pending(claimed))
            except DispatchError as exc:
                logger.warning("grab of pending release %s failed, will retry: %s", pending.id, exc)
                stats["failed"] += 1
                continue

            logger.info("grabbed pending release %s as %s: %s", pending.id, grab_id, pending.title)
            stats["grabbed"] += 1

        return stats

    async def expire_target(self, target: MediaTarget) -> int:
        """Expire the pending row of a target that is no longer wanted."""
        async with self._lock_for(target.key):
            count = await self._repo.expire_for_target(target.key)
        if count:
            logger.info("expired %d pending release(s) for %s", count, target.key)
        return count

    async def clear(self, pending_id: uuid.UUID) -> bool:
        """Manually drop a pending row. False if it was no longer pending."""
        cleared = await self._repo.expire(pending_id)
        if cleared:
            logger.info("cleared pending release %s", pending_id)
        return cleared

    async def list_pending(self, limit: int = 100) -> list[PendingRelease]:
        return await self._repo.list_by_status(PendingStatus.PENDING, limit)
