"""Tests for DelayProfileResolver."""

from __future__ import annotations

import pytest

from selectarr.delay.resolver import DelayProfileResolver, profile_applies
from selectarr.shared.enums import ReleaseProtocol
from selectarr.shared.models import (
    DelayProfile,
    EnhancedReleaseResult,
    MediaTarget,
    ParsedRelease,
    QualityResult,
    ScoreComponents,
    ScoringProfile,
)

TARGET = MediaTarget(movie_id="m1", tags=["anime"])


def _release(
    resolution: str = "1080p",
    protocol: ReleaseProtocol = ReleaseProtocol.TORRENT,
    score: int = 500,
) -> EnhancedReleaseResult:
    return EnhancedReleaseResult(
        title=f"Some.Movie.{resolution}",
        protocol=protocol,
        indexer_id="idx-1",
        parsed=ParsedRelease(original_title=f"Some.Movie.{resolution}", resolution=resolution),
        quality=QualityResult(accepted=True, raw_score=0, normalized_score=score),
        total_score=score,
        score_components=ScoreComponents(raw_quality_score=0, normalized_quality_score=score, total_score=score),
        rejected=False,
    )


@pytest.fixture()
def resolver() -> DelayProfileResolver:
    return DelayProfileResolver()


class TestSelectProfile:
    def test_lowest_sort_order_that_applies_wins(self, resolver: DelayProfileResolver) -> None:
        profiles = [
            DelayProfile(id="general", name="General", sort_order=10),
            DelayProfile(id="tv-only", name="TV", sort_order=1, tags=["tv"]),
            DelayProfile(id="anime", name="Anime", sort_order=5, tags=["anime"]),
        ]
        assert resolver.select_profile(profiles, TARGET).id == "anime"

    def test_disabled_profiles_skipped(self, resolver: DelayProfileResolver) -> None:
        profiles = [DelayProfile(id="off", name="Off", enabled=False)]
        assert resolver.select_profile(profiles, TARGET) is None

    def test_untagged_profile_applies_to_all(self) -> None:
        assert profile_applies(DelayProfile(id="d", name="D"), MediaTarget(movie_id="m1"))
        assert not profile_applies(DelayProfile(id="d", name="D", tags=["x"]), MediaTarget(movie_id="m1"))


class TestResolve:
    def test_no_profile_means_immediate(self, resolver: DelayProfileResolver, profile: ScoringProfile) -> None:
        decision = resolver.resolve(_release(), TARGET, [], profile)
        assert decision.delay_minutes == 0
        assert decision.profile_id is None

    @pytest.mark.parametrize(
        ("protocol", "expected"),
        [(ReleaseProtocol.TORRENT, 120), (ReleaseProtocol.USENET, 60), (ReleaseProtocol.STREAMING, 0)],
    )
    def test_protocol_delay(
        self,
        resolver: DelayProfileResolver,
        profile: ScoringProfile,
        protocol: ReleaseProtocol,
        expected: int,
    ) -> None:
        delay = DelayProfile(id="d", name="D", usenet_delay=60, torrent_delay=120)
        assert resolver.resolve(_release(protocol=protocol), TARGET, [delay], profile).delay_minutes == expected

    def test_quality_delay_overrides_protocol_delay(
        self, resolver: DelayProfileResolver, profile: ScoringProfile
    ) -> None:
        delay = DelayProfile(id="d", name="D", torrent_delay=120, quality_delays={"1080p": 30})
        decision = resolver.resolve(_release(), TARGET, [delay], profile)
        assert decision.delay_minutes == 30
        assert decision.profile_id == "d"

    def test_bypass_for_top_resolution(self, resolver: DelayProfileResolver, profile: ScoringProfile) -> None:
        delay = DelayProfile(id="d", name="D", torrent_delay=120)
        decision = resolver.resolve(_release("2160p"), TARGET, [delay], profile)
        assert decision.delay_minutes == 0
        assert decision.bypassed is True

    def test_no_bypass_when_disabled(self, resolver: DelayProfileResolver, profile: ScoringProfile) -> None:
        delay = DelayProfile(id="d", name="D", torrent_delay=120, bypass_if_highest_quality=False)
        assert resolver.resolve(_release("2160p"), TARGET, [delay], profile).delay_minutes == 120

    def test_bypass_above_score(self, resolver: DelayProfileResolver, profile: ScoringProfile) -> None:
        delay = DelayProfile(id="d", name="D", torrent_delay=120, bypass_if_above_score=500)
        assert resolver.resolve(_release(score=500), TARGET, [delay], profile).delay_minutes == 120
        bypassed = resolver.resolve(_release(score=501), TARGET, [delay], profile)
        assert bypassed.delay_minutes == 0
        assert bypassed.bypassed is True
