"""Quality scoring for parsed releases against a scoring profile."""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Sequence

from selectarr.quality.matcher import CustomFormatMatcher
from selectarr.shared.enums import FormatCategory, MediaType
from selectarr.shared.models import (
    CustomFormat,
    ParsedRelease,
    QualityPreset,
    QualityResult,
    ScoringProfile,
    SizeValidationContext,
)

logger = logging.getLogger(__name__)

_GB = 1024**3
_MB = 1024**2

RESOLUTION_RANK = {
    "unknown": 0,
    "480p": 1,
    "576p": 2,
    "720p": 3,
    "1080p": 4,
    "2160p": 5,
}

ANY_PRESET = QualityPreset(id="any", name="Any")

# Raw score boundaries and the normalized value each one maps to.
_TIERS: tuple[tuple[float, float], ...] = (
    (0.0, 0.0),
    (2_000.0, 200.0),
    (5_000.0, 400.0),
    (10_000.0, 600.0),
    (15_000.0, 800.0),
    (25_000.0, 950.0),
)
NORMALIZED_MAX = 1000


def normalize_score(raw_score: float) -> int:
    """Map a raw format score onto 0..1000.

    Piecewise linear across quality tiers, logarithmic above the top tier so
    outliers cannot dominate. Monotonic non-decreasing in ``raw_score``.
    """
    if raw_score <= 0:
        return 0
    if math.isinf(raw_score):
        return NORMALIZED_MAX

    for (low_raw, low_norm), (high_raw, high_norm) in zip(_TIERS, _TIERS[1:]):
        if raw_score <= high_raw:
            normalized = low_norm + (raw_score - low_raw) / (high_raw - low_raw) * (high_norm - low_norm)
            return max(0, min(NORMALIZED_MAX, round(normalized)))

    top_raw, top_norm = _TIERS[-1]
    bonus = math.log10((raw_score - top_raw) / 1000 + 1) * 10
    return max(0, min(NORMALIZED_MAX, round(top_norm + min(50.0, bonus))))


def check_preset(parsed: ParsedRelease, preset: QualityPreset) -> str | None:
    """Return why ``parsed`` fails the legacy preset filter, or None."""
    rank = RESOLUTION_RANK.get(parsed.resolution, 0)
    if preset.min_resolution and rank < RESOLUTION_RANK.get(preset.min_resolution, 0):
        return f"Resolution {parsed.resolution} below minimum {preset.min_resolution}"
    if preset.max_resolution and rank > RESOLUTION_RANK.get(preset.max_resolution, 0):
        return f"Resolution {parsed.resolution} above maximum {preset.max_resolution}"
    if preset.allowed_sources and parsed.source not in preset.allowed_sources:
        return f"Source {parsed.source} not in allowed list"
    if preset.excluded_sources and parsed.source in preset.excluded_sources:
        return f"Source {parsed.source} is excluded"
    return None


def validate_size(
    profile: ScoringProfile,
    size_bytes: int | None,
    context: SizeValidationContext | None,
) -> str | None:
    """Check a release size against the profile limits.

    Returns a rejection reason, or None when the size is acceptable or cannot
    be checked (no context, unknown size). Season packs multiply the
    per-episode bounds by the episode count; an unknown count is a rejection.
    """
    if context is None or not size_bytes or size_bytes <= 0:
        return None

    if context.media_type is MediaType.MOVIE:
        size_gb = size_bytes / _GB
        if profile.movie_min_size_gb is not None and size_gb < profile.movie_min_size_gb:
            return f"Size {size_gb:.2f} GB is below movie minimum {profile.movie_min_size_gb:.2f} GB"
        if profile.movie_max_size_gb is not None and size_gb > profile.movie_max_size_gb:
            return f"Size {size_gb:.2f} GB exceeds movie maximum {profile.movie_max_size_gb:.2f} GB"
        return None

    min_mb = profile.episode_min_size_mb
    max_mb = profile.episode_max_size_mb
    if min_mb is None and max_mb is None:
        return None

    size_mb = size_bytes / _MB
    if not context.is_season_pack:
        if min_mb is not None and size_mb < min_mb:
            return f"Size {size_mb:.0f} MB is below episode minimum {min_mb:.0f} MB"
        if max_mb is not None and size_mb > max_mb:
            return f"Size {size_mb:.0f} MB exceeds episode maximum {max_mb:.0f} MB"
        return None

    count = context.episode_count
    if not count or count <= 0:
        return "Season pack episode count unknown; cannot validate size"
    if min_mb is not None and size_mb < min_mb * count:
        return f"Season pack size {size_mb:.0f} MB is below minimum {min_mb * count:.0f} MB for {count} episodes"
    if max_mb is not None and size_mb > max_mb * count:
        return f"Season pack size {size_mb:.0f} MB exceeds maximum {max_mb * count:.0f} MB for {count} episodes"
    return None


class QualityScorer:
    """Score parsed releases with a profile's custom format weights.

    Stateless apart from the immutable format set, so one instance can be
    shared by concurrent scoring tasks.
    """

    def __init__(self, formats: Iterable[CustomFormat]) -> None:
        self._matcher = CustomFormatMatcher(formats)

    def match(self, parsed: ParsedRelease, indexer_name: str | None = None) -> list[CustomFormat]:
        """Return the formats matching ``parsed``."""
        return self._matcher.match(parsed, indexer_name)

    def score(
        self,
        parsed: ParsedRelease,
        preset: QualityPreset,
        profile: ScoringProfile,
        size_bytes: int | None = None,
        size_context: SizeValidationContext | None = None,
        indexer_name: str | None = None,
        *,
        matched: Sequence[CustomFormat] | None = None,
    ) -> QualityResult:
        """Calculate the accept/reject verdict and scores for one release.

        Args:
            parsed: Parsed release metadata.
            preset: Legacy pass/fail filter (``ANY_PRESET`` passes everything).
            profile: Scoring profile supplying weights and limits.
            size_bytes: Release size, 0/None when unknown.
            size_context: Which size bounds apply; None skips size checks.
            indexer_name: Used by ``indexer`` format conditions.
            matched: Pre-computed matches for ``parsed``, to avoid re-matching.

        Returns:
            The quality verdict.
        """
        if matched is None:
            matched = self.match(parsed, indexer_name)

        raw_score = sum(profile.format_scores.get(f.id, 0) for f in matched)
        banned_reasons = [f.name for f in matched if f.category is FormatCategory.BANNED]
        is_banned = bool(banned_reasons)
        size_rejection = validate_size(profile, size_bytes, size_context)
        preset_rejection = check_preset(parsed, preset)

        accepted = raw_score >= profile.min_score and not is_banned and size_rejection is None and preset_rejection is None

        if not accepted:
            logger.debug(
                "rejected %r: raw=%d min=%d banned=%s size=%s preset=%s",
                parsed.original_title,
                raw_score,
                profile.min_score,
                banned_reasons,
                size_rejection,
                preset_rejection,
            )

        return QualityResult(
            accepted=accepted,
            raw_score=raw_score,
            normalized_score=normalize_score(raw_score),
            size_rejection_reason=size_rejection,
            preset_rejection_reason=preset_rejection,
            is_banned=is_banned,
            banned_reasons=banned_reasons,
            matched_formats=[f.id for f in matched],
            matched_format_names=[f.name for f in matched],
        )
