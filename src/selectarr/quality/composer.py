"""Total score composition from quality score, bonuses and penalties."""

from __future__ import annotations

from collections.abc import Sequence

from selectarr.shared.models import (
    CustomFormat,
    PackPreference,
    ParsedRelease,
    QualityResult,
    ScoreComponents,
)

ENHANCEMENT_BONUS = 20
HARDCODED_SUBS_PENALTY = -50


def calculate_pack_bonus(
    is_season_pack: bool,
    is_complete_series: bool,
    season_count: int,
    pack_preference: PackPreference | None,
) -> int:
    """Fixed bonus for packs; the bonus never scales with pack size."""
    if pack_preference is None or not pack_preference.enabled:
        return 0
    if is_complete_series:
        return pack_preference.complete_series_bonus
    if season_count > 1:
        return pack_preference.multi_season_bonus
    if is_season_pack:
        return pack_preference.season_pack_bonus
    return 0


def season_count(parsed: ParsedRelease) -> int:
    episode = parsed.episode
    if episode is None:
        return 0
    if episode.seasons:
        return len(episode.seasons)
    return 1 if episode.is_season_pack else 0


def compose_total_score(
    parsed: ParsedRelease,
    quality: QualityResult,
    matched_formats: Sequence[CustomFormat],
    pack_preference: PackPreference | None,
) -> ScoreComponents:
    """Combine the normalized quality score with bonuses and penalties.

    Formats flagged ``contributes_enhancement_bonus`` already reward a
    proper/repack, so the flat enhancement bonus is only added when none of
    them matched.
    """
    base = quality.normalized_score

    enhancement = 0
    if (parsed.is_proper or parsed.is_repack) and not any(
        f.contributes_enhancement_bonus for f in matched_formats
    ):
        enhancement = ENHANCEMENT_BONUS

    episode = parsed.episode
    pack_bonus = calculate_pack_bonus(
        is_season_pack=episode is not None and episode.is_season_pack,
        is_complete_series=episode is not None and episode.is_complete_series,
        season_count=season_count(parsed),
        pack_preference=pack_preference,
    )

    penalty = HARDCODED_SUBS_PENALTY if parsed.has_hardcoded_subs else 0
    total = round(max(0, base + enhancement + pack_bonus + penalty))

    return ScoreComponents(
        raw_quality_score=quality.raw_score,
        normalized_quality_score=base,
        enhancement_bonus=enhancement,
        pack_bonus=pack_bonus,
        hardcoded_subs_penalty=penalty,
        total_score=total,
    )
