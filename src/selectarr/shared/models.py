"""Frozen Pydantic domain models shared by all modules."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

from selectarr.shared.enums import (
    BlocklistReason,
    ConditionType,
    FormatCategory,
    GrabAction,
    MediaType,
    PendingStatus,
    ReleaseProtocol,
    UpgradeStatus,
)

DEFAULT_RESOLUTION_ORDER: tuple[str, ...] = ("2160p", "1080p", "720p", "480p", "unknown")
DEFAULT_ALLOWED_PROTOCOLS: tuple[ReleaseProtocol, ...] = (ReleaseProtocol.TORRENT, ReleaseProtocol.USENET)


def utc_now() -> datetime:
    """Return timezone-aware UTC timestamps for model defaults."""
    return datetime.now(timezone.utc)


# ── Scoring configuration ──────────────────────────────────────


class PackPreference(BaseModel):
    """Fixed bonuses awarded to season and series packs."""

    model_config = {"frozen": True}

    enabled: bool = True
    season_pack_bonus: int = 100
    multi_season_bonus: int = 150
    complete_series_bonus: int = 200


class ScoringProfile(BaseModel):
    """User policy that weights formats, bounds sizes and allowlists protocols."""

    model_config = {"frozen": True}

    id: str
    name: str
    description: str = ""
    tags: list[str] = Field(default_factory=list)
    upgrades_allowed: bool = True
    min_score: int = 0
    upgrade_until_score: int = -1
    min_score_increment: int = 0
    resolution_order: list[str] = Field(default_factory=lambda: list(DEFAULT_RESOLUTION_ORDER))
    format_scores: dict[str, int] = Field(default_factory=dict)
    allowed_protocols: list[ReleaseProtocol] | None = None
    movie_min_size_gb: float | None = None
    movie_max_size_gb: float | None = None
    episode_min_size_mb: float | None = None
    episode_max_size_mb: float | None = None
    is_default: bool = False
    pack_preference: PackPreference = Field(default_factory=PackPreference)

    @field_validator("resolution_order", mode="before")
    @classmethod
    def _default_resolution_order(cls, value: Any) -> Any:
        if not value:
            return list(DEFAULT_RESOLUTION_ORDER)
        return value

    @field_validator("format_scores", mode="before")
    @classmethod
    def _empty_format_scores(cls, value: Any) -> Any:
        return value or {}

    @field_validator("pack_preference", mode="before")
    @classmethod
    def _default_pack_preference(cls, value: Any) -> Any:
        return value if value is not None else PackPreference()

    @property
    def effective_allowed_protocols(self) -> list[ReleaseProtocol]:
        """Protocol allowlist; an absent list means torrent + usenet."""
        if self.allowed_protocols is None:
            return list(DEFAULT_ALLOWED_PROTOCOLS)
        return list(self.allowed_protocols)


class FormatCondition(BaseModel):
    """One rule of a custom format."""

    model_config = {"frozen": True}

    name: str = ""
    type: ConditionType
    value: str | None = None
    required: bool = True
    negate: bool = False

    @model_validator(mode="before")
    @classmethod
    def _lift_typed_value(cls, data: Any) -> Any:
        # Stored rows may carry the comparison value under the type's own key,
        # e.g. {"type": "source", "source": "bluray"}.
        if isinstance(data, dict) and "value" not in data:
            kind = data.get("type")
            key = kind.value if isinstance(kind, ConditionType) else kind
            if key == "streaming_service" and "streamingService" in data:
                return {**data, "value": data["streamingService"]}
            if isinstance(key, str) and key in data:
                return {**data, "value": data[key]}
        return data


class CustomFormat(BaseModel):
    """A named, rule-based tag matched against a parsed release."""

    model_config = {"frozen": True}

    id: str
    name: str
    description: str = ""
    category: FormatCategory = FormatCategory.OTHER
    tags: list[str] = Field(default_factory=list)
    conditions: list[FormatCondition] = Field(default_factory=list)
    enabled: bool = True
    contributes_enhancement_bonus: bool = False

    @model_validator(mode="after")
    def _needs_required_condition(self) -> CustomFormat:
        if self.conditions and not any(c.required for c in self.conditions):
            raise ValueError(f"custom format {self.id!r} has conditions but none is required")
        return self


class QualityPreset(BaseModel):
    """Legacy pass/fail filter applied before format scoring."""

    model_config = {"frozen": True}

    id: str
    name: str
    min_resolution: str | None = None
    max_resolution: str | None = None
    allowed_sources: list[str] = Field(default_factory=list)
    excluded_sources: list[str] = Field(default_factory=list)


# ── Release inputs (external) ──────────────────────────────────


class EpisodeInfo(BaseModel):
    """Episode numbering parsed from a release title."""

    model_config = {"frozen": True}

    season: int | None = None
    seasons: list[int] | None = None
    episodes: list[int] = Field(default_factory=list)
    is_season_pack: bool = False
    is_complete_series: bool = False
    is_daily: bool = False


class ParsedRelease(BaseModel):
    """Structured metadata produced by the external title parser."""

    model_config = {"frozen": True}

    original_title: str
    clean_title: str = ""
    year: int | None = None
    resolution: str = "unknown"
    source: str = "unknown"
    codec: str = "unknown"
    audio: str = "unknown"
    hdr: str | None = None
    release_group: str | None = None
    streaming_service: str | None = None
    edition: str | None = None
    languages: list[str] = Field(default_factory=list)
    is_proper: bool = False
    is_repack: bool = False
    is_remux: bool = False
    is_3d: bool = False
    has_hardcoded_subs: bool = False
    episode: EpisodeInfo | None = None


class ReleaseResult(BaseModel):
    """A search result returned by the indexer layer."""

    model_config = {"frozen": True}

    title: str
    size: int = 0
    protocol: ReleaseProtocol
    indexer_id: str
    indexer_name: str = ""
    download_url: str | None = None
    magnet_url: str | None = None
    info_hash: str | None = None
    seeders: int | None = None
    leechers: int | None = None
    age_days: float | None = None
    password_protected: bool = False
    completion_percentage: float | None = None
    parsed: ParsedRelease | None = None


class MediaTarget(BaseModel):
    """The movie, or series episodes/season, a release is meant for."""

    model_config = {"frozen": True}

    movie_id: str | None = None
    series_id: str | None = None
    season_number: int | None = None
    episode_ids: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _exactly_one_owner(self) -> MediaTarget:
        if (self.movie_id is None) == (self.series_id is None):
            raise ValueError("media target needs exactly one of movie_id or series_id")
        return self

    @property
    def key(self) -> str:
        """Stable identity used to serialize supersession per target."""
        if self.movie_id is not None:
            return f"movie:{self.movie_id}"
        key = f"series:{self.series_id}"
        if self.season_number is not None:
            key += f":s{self.season_number}"
        if self.episode_ids:
            key += ":e" + ",".join(sorted(self.episode_ids))
        return key


class QualitySnapshot(BaseModel):
    """Quality attributes persisted alongside pending and blocklisted rows."""

    model_config = {"frozen": True}

    resolution: str | None = None
    source: str | None = None
    codec: str | None = None
    hdr: str | None = None

    @classmethod
    def from_parsed(cls, parsed: ParsedRelease) -> QualitySnapshot:
        return cls(resolution=parsed.resolution, source=parsed.source, codec=parsed.codec, hdr=parsed.hdr)


# ── Scoring outputs ─────────────────────────────────────────────


class SizeValidationContext(BaseModel):
    """Tells the scorer which size bounds apply to a release."""

    model_config = {"frozen": True}

    media_type: MediaType
    is_season_pack: bool = False
    episode_count: int | None = None


class QualityResult(BaseModel):
    """Accept/reject verdict and raw + normalized score for one release."""

    model_config = {"frozen": True}

    accepted: bool
    raw_score: int
    normalized_score: int
    size_rejection_reason: str | None = None
    preset_rejection_reason: str | None = None
    is_banned: bool = False
    banned_reasons: list[str] = Field(default_factory=list)
    matched_formats: list[str] = Field(default_factory=list)
    matched_format_names: list[str] = Field(default_factory=list)


class ScoreComponents(BaseModel):
    """Breakdown of how ``total_score`` was composed."""

    model_config = {"frozen": True}

    raw_quality_score: int
    normalized_quality_score: int
    enhancement_bonus: int = 0
    pack_bonus: int = 0
    hardcoded_subs_penalty: int = 0
    total_score: int


class TmdbHint(BaseModel):
    """Caller-supplied identity the TMDB matcher should prefer."""

    model_config = {"frozen": True}

    tmdb_id: int | None = None
    media_type: MediaType | None = None
    title: str | None = None
    year: int | None = None


class TmdbMatch(BaseModel):
    """Identity resolved by the external TMDB matcher."""

    model_config = {"frozen": True}

    tmdb_id: int
    media_type: MediaType
    title: str
    year: int | None = None
    confidence: float = 0.0


class EpisodeMatch(BaseModel):
    """Episode coverage of a TV release, copied from the parser output."""

    model_config = {"frozen": True}

    season: int = 0
    seasons: list[int] | None = None
    episodes: list[int] = Field(default_factory=list)
    is_season_pack: bool = False
    is_complete_series: bool = False


class EnhancedReleaseResult(ReleaseResult):
    """A release with parsed metadata, scoring detail and rejection reasons."""

    parsed: ParsedRelease
    quality: QualityResult
    total_score: int
    score_components: ScoreComponents
    rejected: bool
    rejections: list[str] = Field(default_factory=list)
    rejection_reason: str | None = None
    rejection_count: int = 0
    quality_weight: int = 0
    matched_formats: list[str] = Field(default_factory=list)
    tmdb_match: TmdbMatch | None = None
    episode_match: EpisodeMatch | None = None


# ── Protocol checks ─────────────────────────────────────────────


class ProtocolSettings(BaseModel):
    """Per-indexer thresholds consumed by protocol rejection handlers."""

    model_config = {"frozen": True}

    min_seeders: int | None = None
    reject_dead_torrents: bool = True
    reject_password_protected: bool = False
    max_size: int | None = None
    retention_days: int | None = None


class IndexerConfig(BaseModel):
    """Indexer settings needed for protocol-specific rejection."""

    model_config = {"frozen": True}

    id: str
    name: str
    protocol: ReleaseProtocol
    base_url: str = ""
    protocol_settings: ProtocolSettings | None = None


class ProtocolContext(BaseModel):
    """Context passed to a protocol rejection handler."""

    model_config = {"frozen": True}

    indexer_id: str
    indexer_name: str
    base_url: str = ""
    settings: ProtocolSettings = Field(default_factory=ProtocolSettings)


# ── Delay and pending releases ──────────────────────────────────


class DelayProfile(BaseModel):
    """Policy controlling how long to wait before grabbing a release."""

    model_config = {"frozen": True}

    id: str
    name: str
    sort_order: int = 0
    enabled: bool = True
    usenet_delay: int = Field(default=0, ge=0)
    torrent_delay: int = Field(default=0, ge=0)
    quality_delays: dict[str, int] = Field(default_factory=dict)
    preferred_protocol: ReleaseProtocol | None = None
    tags: list[str] = Field(default_factory=list)
    bypass_if_highest_quality: bool = True
    bypass_if_above_score: int | None = None

    @field_validator("quality_delays", mode="before")
    @classmethod
    def _empty_quality_delays(cls, value: Any) -> Any:
        return value or {}

    @field_validator("quality_delays")
    @classmethod
    def _non_negative_delays(cls, value: dict[str, int]) -> dict[str, int]:
        for resolution, minutes in value.items():
            if minutes < 0:
                raise ValueError(f"negative delay for {resolution}: {minutes}")
        return value


class DelayDecision(BaseModel):
    """Effective delay for one accepted release."""

    model_config = {"frozen": True}

    delay_minutes: int
    profile_id: str | None = None
    bypassed: bool = False
    reason: str = ""


class PendingRelease(BaseModel):
    """An accepted release held back until ``process_at``."""

    model_config = {"frozen": True}

    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    title: str
    info_hash: str | None = None
    indexer_id: str | None = None
    download_url: str | None = None
    magnet_url: str | None = None
    movie_id: str | None = None
    series_id: str | None = None
    episode_ids: list[str] = Field(default_factory=list)
    season_number: int | None = None
    score: int
    size: int | None = None
    protocol: ReleaseProtocol
    quality: QualitySnapshot | None = None
    delay_profile_id: str | None = None
    added_at: datetime = Field(default_factory=utc_now)
    process_at: datetime
    status: PendingStatus = PendingStatus.PENDING
    superseded_by: str | None = None

    @property
    def target(self) -> MediaTarget:
        return MediaTarget(
            movie_id=self.movie_id,
            series_id=self.series_id,
            season_number=self.season_number,
            episode_ids=self.episode_ids,
        )


class GrabRequest(BaseModel):
    """Payload handed to the external download queue."""

    model_config = {"frozen": True}

    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    title: str
    info_hash: str | None = None
    indexer_id: str | None = None
    download_url: str | None = None
    magnet_url: str | None = None
    protocol: ReleaseProtocol
    size: int | None = None
    score: int
    movie_id: str | None = None
    series_id: str | None = None
    episode_ids: list[str] = Field(default_factory=list)
    season_number: int | None = None
    quality: QualitySnapshot | None = None
    pending_release_id: uuid.UUID | None = None
    created_at: datetime = Field(default_factory=utc_now)

    @classmethod
    def from_pending(cls, pending: PendingRelease) -> GrabRequest:
        return cls(
            title=pending.title,
            info_hash=pending.info_hash,
            indexer_id=pending.indexer_id,
            download_url=pending.download_url,
            magnet_url=pending.magnet_url,
            protocol=pending.protocol,
            size=pending.size,
            score=pending.score,
            movie_id=pending.movie_id,
            series_id=pending.series_id,
            episode_ids=pending.episode_ids,
            season_number=pending.season_number,
            quality=pending.quality,
            pending_release_id=pending.id,
        )

    @classmethod
    def from_release(cls, release: EnhancedReleaseResult, target: MediaTarget) -> GrabRequest:
        return cls(
            title=release.title,
            info_hash=release.info_hash,
            indexer_id=release.indexer_id,
            download_url=release.download_url,
            magnet_url=release.magnet_url,
            protocol=release.protocol,
            size=release.size or None,
            score=release.total_score,
            movie_id=target.movie_id,
            series_id=target.series_id,
            episode_ids=target.episode_ids,
            season_number=target.season_number,
            quality=QualitySnapshot.from_parsed(release.parsed),
        )


class GrabDecision(BaseModel):
    """What the scheduler did with a submitted release."""

    model_config = {"frozen": True}

    action: GrabAction
    delay_minutes: int = 0
    pending_release_id: uuid.UUID | None = None
    grab_id: str | None = None
    superseded_id: uuid.UUID | None = None
    reason: str = ""


class UpgradeDecision(BaseModel):
    """Comparison of a candidate against an existing file's score."""

    model_config = {"frozen": True}

    is_upgrade: bool
    status: UpgradeStatus
    improvement: int = 0
    is_at_cutoff: bool = False
    reason: str = ""


# ── Blocklist ───────────────────────────────────────────────────


class BlocklistEntry(BaseModel):
    """A release that must never be grabbed again (until it expires)."""

    model_config = {"frozen": True}

    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    title: str
    info_hash: str | None = None
    indexer_id: str | None = None
    movie_id: str | None = None
    series_id: str | None = None
    episode_ids: list[str] = Field(default_factory=list)
    reason: BlocklistReason
    message: str | None = None
    source_title: str | None = None
    quality: QualitySnapshot | None = None
    size: int | None = None
    protocol: ReleaseProtocol | None = None
    created_at: datetime = Field(default_factory=utc_now)
    expires_at: datetime | None = None

    def is_active(self, now: datetime) -> bool:
        return self.expires_at is None or self.expires_at > now
