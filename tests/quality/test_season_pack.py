"""Tests for season pack episode-count resolution."""

from __future__ import annotations

from selectarr.quality.season_pack import EpisodeCountOptions, resolve_season_pack_episode_count
from selectarr.shared.models import EpisodeInfo


class TestResolveSeasonPackEpisodeCount:
    def test_explicit_season_count_wins(self) -> None:
        info = EpisodeInfo(season=1, is_season_pack=True, is_complete_series=False)
        options = EpisodeCountOptions(season_episode_count=22, series_episode_count=999)
        assert resolve_season_pack_episode_count(info, options) == 22

    def test_complete_series_uses_series_count(self) -> None:
        info = EpisodeInfo(is_season_pack=True, is_complete_series=True)
        options = EpisodeCountOptions(series_episode_count=91)
        assert resolve_season_pack_episode_count(info, options) == 91

    def test_multi_season_sums_counts(self) -> None:
        info = EpisodeInfo(seasons=[1, 2, 3], is_season_pack=True)
        options = EpisodeCountOptions(season_episode_counts={1: 13, 2: 22, 3: 19})
        assert resolve_season_pack_episode_count(info, options) == 54

    def test_missing_season_count_is_unknown(self) -> None:
        info = EpisodeInfo(seasons=[1, 2, 3], is_season_pack=True)
        options = EpisodeCountOptions(season_episode_counts={1: 13, 2: 22})
        assert resolve_season_pack_episode_count(info, options) is None

    def test_complete_series_without_count(self) -> None:
        info = EpisodeInfo(is_complete_series=True)
        assert resolve_season_pack_episode_count(info, EpisodeCountOptions()) is None

    def test_nothing_known(self) -> None:
        info = EpisodeInfo(season=1, is_season_pack=True)
        assert resolve_season_pack_episode_count(info, EpisodeCountOptions()) is None
        assert resolve_season_pack_episode_count(info, None) is None
