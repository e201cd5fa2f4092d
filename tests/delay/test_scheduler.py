"""Tests for PendingReleaseScheduler against an in-memory pending store."""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from selectarr.delay.scheduler import PendingReleaseScheduler
from selectarr.shared.enums import GrabAction, PendingStatus, ReleaseProtocol
from selectarr.shared.exceptions import DispatchError
from selectarr.shared.models import (
    DelayProfile,
    EnhancedReleaseResult,
    MediaTarget,
    ParsedRelease,
    PendingRelease,
    QualityResult,
    ScoreComponents,
    ScoringProfile,
)

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
TARGET = MediaTarget(series_id="s1", season_number=1)


class InMemoryPendingRepo:
    """Pending store with the same compare-and-swap semantics as the SQL repository."""

    def __init__(self) -> None:
        self.rows: dict[uuid.UUID, PendingRelease] = {}

    def _set(self, pending_id: uuid.UUID, **update: object) -> None:
        self.rows[pending_id] = self.rows[pending_id].model_copy(update=update)

    def _is_pending(self, pending_id: uuid.UUID) -> bool:
        row = self.rows.get(pending_id)
        return row is not None and row.status is PendingStatus.PENDING

    async def find_pending_for_target(self, target_key: str) -> PendingRelease | None:
        for row in self.rows.values():
            if row.status is PendingStatus.PENDING and row.target.key == target_key:
                return row
        return None

    async def insert(self, pending: PendingRelease) -> PendingRelease | None:
        if await self.find_pending_for_target(pending.target.key) is not None:
            return None
        self.rows[pending.id] = pending
        return pending

    @asynccontextmanager
    async def superseding(self, pending_id: uuid.UUID, superseded_by: str) -> AsyncIterator[bool]:
        if not self._is_pending(pending_id):
            yield False
            return
        before = self.rows[pending_id]
        self._set(pending_id, status=PendingStatus.SUPERSEDED, superseded_by=superseded_by)
        try:
            yield True
        except BaseException:
            self.rows[pending_id] = before
            raise

    async def supersede_and_insert(self, old_id: uuid.UUID, new: PendingRelease) -> PendingRelease | None:
        if not self._is_pending(old_id):
            return None
        self._set(old_id, status=PendingStatus.SUPERSEDED, superseded_by=str(new.id))
        self.rows[new.id] = new
        return new

    async def list_due(self, now: datetime, limit: int = 50) -> list[PendingRelease]:
        due = [r for r in self.rows.values() if r.status is PendingStatus.PENDING and r.process_at <= now]
        return sorted(due, key=lambda r: r.process_at)[:limit]

    async def list_by_status(self, status: PendingStatus, limit: int = 100) -> list[PendingRelease]:
        return [r for r in self.rows.values() if r.status is status][:limit]

    @asynccontextmanager
    async def claim(self, pending_id: uuid.UUID) -> AsyncIterator[PendingRelease | None]:
        if not self._is_pending(pending_id):
            yield None
            return
        before = self.rows[pending_id]
        self._set(pending_id, status=PendingStatus.GRABBED)
        try:
            yield self.rows[pending_id]
        except BaseException:
            self.rows[pending_id] = before
            raise

    async def expire(self, pending_id: uuid.UUID) -> bool:
        if not self._is_pending(pending_id):
            return False
        self._set(pending_id, status=PendingStatus.EXPIRED)
        return True

    async def expire_for_target(self, target_key: str) -> int:
        row = await self.find_pending_for_target(target_key)
        if row is None:
            return 0
        self._set(row.id, status=PendingStatus.EXPIRED)
        return 1


class Clock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


def _release(score: int, resolution: str = "1080p", title: str | None = None) -> EnhancedReleaseResult:
    title = title or f"Some.Show.S01.{resolution}.{score}"
    return EnhancedReleaseResult(
        title=title,
        protocol=ReleaseProtocol.TORRENT,
        indexer_id="idx-1",
        magnet_url="magnet:?xt=urn:btih:abc",
        parsed=ParsedRelease(original_title=title, resolution=resolution),
        quality=QualityResult(accepted=True, raw_score=0, normalized_score=score),
        total_score=score,
        score_components=ScoreComponents(raw_quality_score=0, normalized_quality_score=score, total_score=score),
        rejected=False,
    )


@pytest.fixture()
def repo() -> InMemoryPendingRepo:
    return InMemoryPendingRepo()


@pytest.fixture()
def clock() -> Clock:
    return Clock(NOW)


@pytest.fixture()
def store() -> AsyncMock:
    mock = AsyncMock()
    mock.list_delay_profiles.return_value = [DelayProfile(id="d1", name="Default", torrent_delay=60)]
    return mock


@pytest.fixture()
def dispatcher() -> AsyncMock:
    mock = AsyncMock()
    mock.dispatch.side_effect = lambda request: str(request.id)
    return mock


@pytest.fixture()
def scoring() -> ScoringProfile:
    return ScoringProfile(id="p", name="P", is_default=True, min_score_increment=100)


@pytest.fixture()
def scheduler(repo: InMemoryPendingRepo, store: AsyncMock, dispatcher: AsyncMock, clock: Clock) -> PendingReleaseScheduler:
    return PendingReleaseScheduler(pending_repo=repo, store=store, dispatcher=dispatcher, clock=clock)


class TestSubmit:
    async def test_zero_delay_grabs_immediately(
        self, scheduler: PendingReleaseScheduler, store: AsyncMock, dispatcher: AsyncMock, scoring: ScoringProfile
    ) -> None:
        store.list_delay_profiles.return_value = []

        decision = await scheduler.submit(_release(500), TARGET, scoring)

        assert decision.action is GrabAction.GRABBED
        assert decision.grab_id is not None
        dispatcher.dispatch.assert_awaited_once()

    async def test_delay_creates_pending_row(
        self, scheduler: PendingReleaseScheduler, repo: InMemoryPendingRepo, scoring: ScoringProfile
    ) -> None:
        decision = await scheduler.submit(_release(500), TARGET, scoring)

        assert decision.action is GrabAction.DEFERRED
        assert decision.delay_minutes == 60
        row = repo.rows[decision.pending_release_id]
        assert row.process_at == NOW + timedelta(minutes=60)
        assert row.delay_profile_id == "d1"
        assert row.target.key == TARGET.key

    async def test_better_candidate_supersedes(
        self, scheduler: PendingReleaseScheduler, repo: InMemoryPendingRepo, scoring: ScoringProfile
    ) -> None:
        first = await scheduler.submit(_release(500), TARGET, scoring)
        second = await scheduler.submit(_release(650), TARGET, scoring)

        assert second.action is GrabAction.DEFERRED
        assert second.superseded_id == first.pending_release_id
        old = repo.rows[first.pending_release_id]
        assert old.status is PendingStatus.SUPERSEDED
        assert old.superseded_by == str(second.pending_release_id)
        assert (await repo.find_pending_for_target(TARGET.key)).score == 650

    async def test_non_improving_candidate_discarded(
        self, scheduler: PendingReleaseScheduler, repo: InMemoryPendingRepo, scoring: ScoringProfile
    ) -> None:
        strict = scoring.model_copy(update={"min_score_increment": 200})
        first = await scheduler.submit(_release(500), TARGET, strict)

        decision = await scheduler.submit(_release(520), TARGET, strict)

        assert decision.action is GrabAction.DISCARDED
        assert len(repo.rows) == 1
        assert repo.rows[first.pending_release_id].status is PendingStatus.PENDING

    async def test_equal_score_discarded_even_without_increment(
        self, scheduler: PendingReleaseScheduler, repo: InMemoryPendingRepo
    ) -> None:
        lenient = ScoringProfile(id="p", name="P", min_score_increment=0)
        await scheduler.submit(_release(500), TARGET, lenient)

        decision = await scheduler.submit(_release(500, title="Another.Release"), TARGET, lenient)

        assert decision.action is GrabAction.DISCARDED
        assert len(repo.rows) == 1

    async def test_bypassed_candidate_supersedes_with_grab_id(
        self,
        scheduler: PendingReleaseScheduler,
        repo: InMemoryPendingRepo,
        dispatcher: AsyncMock,
        scoring: ScoringProfile,
    ) -> None:
        first = await scheduler.submit(_release(500), TARGET, scoring)

        decision = await scheduler.submit(_release(800, resolution="2160p"), TARGET, scoring)

        assert decision.action is GrabAction.GRABBED
        old = repo.rows[first.pending_release_id]
        assert old.status is PendingStatus.SUPERSEDED
        assert old.superseded_by == decision.grab_id

    async def test_failed_immediate_grab_keeps_old_row_pending(
        self,
        scheduler: PendingReleaseScheduler,
        repo: InMemoryPendingRepo,
        dispatcher: AsyncMock,
        scoring: ScoringProfile,
    ) -> None:
        first = await scheduler.submit(_release(500), TARGET, scoring)
        dispatcher.dispatch.side_effect = DispatchError("redis down")

        with pytest.raises(DispatchError):
            await scheduler.submit(_release(800, resolution="2160p"), TARGET, scoring)

        assert repo.rows[first.pending_release_id].status is PendingStatus.PENDING

    async def test_rejected_release_discarded(
        self, scheduler: PendingReleaseScheduler, scoring: ScoringProfile
    ) -> None:
        rejected = _release(500).model_copy(
            update={"rejected": True, "rejections": ["Too big"], "rejection_reason": "Too big"}
        )
        decision = await scheduler.submit(rejected, TARGET, scoring)
        assert decision.action is GrabAction.DISCARDED

    async def test_default_profile_used_when_none_given(
        self, scheduler: PendingReleaseScheduler, store: AsyncMock, scoring: ScoringProfile
    ) -> None:
        store.get_default_profile.return_value = scoring
        decision = await scheduler.submit(_release(500), TARGET)
        assert decision.action is GrabAction.DEFERRED
        store.get_default_profile.assert_awaited_once()

    async def test_concurrent_submissions_serialized(
        self, scheduler: PendingReleaseScheduler, repo: InMemoryPendingRepo, scoring: ScoringProfile
    ) -> None:
        results = await asyncio.gather(
            scheduler.submit(_release(700, title="A"), TARGET, scoring),
            scheduler.submit(_release(700, title="B"), TARGET, scoring),
        )

        actions = sorted(r.action.value for r in results)
        assert actions == ["deferred", "discarded"]
        assert len(await scheduler.list_pending()) == 1


class TestTick:
    async def test_grabs_due_rows(
        self,
        scheduler: PendingReleaseScheduler,
        repo: InMemoryPendingRepo,
        dispatcher: AsyncMock,
        clock: Clock,
        scoring: ScoringProfile,
    ) -> None:
        deferred = await scheduler.submit(_release(500), TARGET, scoring)

        assert (await scheduler.tick())["due"] == 0

        clock.now = NOW + timedelta(minutes=61)
        stats = await scheduler.tick()

        assert stats["grabbed"] == 1
        assert repo.rows[deferred.pending_release_id].status is PendingStatus.GRABBED
        request = dispatcher.dispatch.call_args[0][0]
        assert request.pending_release_id == deferred.pending_release_id

    async def test_dispatch_failure_rolls_back_claim(
        self,
        scheduler: PendingReleaseScheduler,
        repo: InMemoryPendingRepo,
        dispatcher: AsyncMock,
        clock: Clock,
        scoring: ScoringProfile,
    ) -> None:
        deferred = await scheduler.submit(_release(500), TARGET, scoring)
        dispatcher.dispatch.side_effect = DispatchError("redis down")
        clock.now = NOW + timedelta(hours=2)

        stats = await scheduler.tick()

        assert stats["failed"] == 1
        assert repo.rows[deferred.pending_release_id].status is PendingStatus.PENDING

    async def test_lost_claim_is_noop(
        self, repo: InMemoryPendingRepo, store: AsyncMock, dispatcher: AsyncMock, clock: Clock
    ) -> None:
        row = PendingRelease(
            title="x", movie_id="m1", score=1, protocol=ReleaseProtocol.TORRENT, process_at=NOW
        )
        repo.rows[row.id] = row
        repo.list_due = AsyncMock(return_value=[row])  # type: ignore[method-assign]
        repo._set(row.id, status=PendingStatus.GRABBED)
        scheduler = PendingReleaseScheduler(pending_repo=repo, store=store, dispatcher=dispatcher, clock=clock)

        stats = await scheduler.tick()

        assert stats["skipped"] == 1
        dispatcher.dispatch.assert_not_awaited()

    async def test_unmonitored_target_expires(
        self, repo: InMemoryPendingRepo, store: AsyncMock, dispatcher: AsyncMock, clock: Clock
    ) -> None:
        row = PendingRelease(
            title="x", movie_id="m1", score=1, protocol=ReleaseProtocol.TORRENT, process_at=NOW
        )
        repo.rows[row.id] = row
        monitor = AsyncMock()
        monitor.is_monitored.return_value = False
        scheduler = PendingReleaseScheduler(
            pending_repo=repo, store=store, dispatcher=dispatcher, monitor=monitor, clock=clock
        )

        stats = await scheduler.tick()

        assert stats["expired"] == 1
        assert repo.rows[row.id].status is PendingStatus.EXPIRED
        dispatcher.dispatch.assert_not_awaited()


class TestMaintenance:
    async def test_expire_target(
        self, scheduler: PendingReleaseScheduler, repo: InMemoryPendingRepo, scoring: ScoringProfile
    ) -> None:
        deferred = await scheduler.submit(_release(500), TARGET, scoring)

        assert await scheduler.expire_target(TARGET) == 1
        assert repo.rows[deferred.pending_release_id].status is PendingStatus.EXPIRED
        assert await scheduler.list_pending() == []

    async def test_clear_is_terminal(
        self, scheduler: PendingReleaseScheduler, scoring: ScoringProfile
    ) -> None:
        deferred = await scheduler.submit(_release(500), TARGET, scoring)

        assert await scheduler.clear(deferred.pending_release_id) is True
        assert await scheduler.clear(deferred.pending_release_id) is False
