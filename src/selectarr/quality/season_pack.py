"""Episode-count resolution for season and series packs."""

from __future__ import annotations

from pydantic import BaseModel, Field

from selectarr.shared.models import EpisodeInfo


class EpisodeCountOptions(BaseModel):
    """Episode counts known to the caller for the target series."""

    model_config = {"frozen": True}

    season_episode_count: int | None = None
    series_episode_count: int | None = None
    season_episode_counts: dict[int, int] = Field(default_factory=dict)


def resolve_season_pack_episode_count(
    episode_info: EpisodeInfo | None,
    options: EpisodeCountOptions | None,
) -> int | None:
    """Return how many episodes a pack covers, or None when it cannot be known.

    Priority: an explicit season count, then the series count for complete
    series packs, then the sum of per-season counts. A multi-season pack with
    any season missing from the map resolves to None rather than a guess.
    """
    if options is None:
        return None
    if options.season_episode_count is not None:
        return options.season_episode_count
    if episode_info is None:
        return None
    if episode_info.is_complete_series:
        return options.series_episode_count
    if episode_info.seasons:
        total = 0
        for season in episode_info.seasons:
            count = options.season_episode_counts.get(season)
            if count is None:
                return None
            total += count
        return total
    return None
