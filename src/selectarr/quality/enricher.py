"""Release enrichment: parse, score, compose and reject a batch of releases."""

from __future__ import annotations

import asyncio
import logging
import time

from pydantic import BaseModel, Field

from selectarr.blocklist.checker import BlocklistChecker
from selectarr.config import Settings
from selectarr.quality.composer import compose_total_score
from selectarr.quality.interfaces import TitleParser, TmdbMatcher
from selectarr.quality.rejections import (
    ProtocolHandlers,
    aggregate_rejections,
    default_protocol_handlers,
    run_protocol_handler,
)
from selectarr.quality.scorer import ANY_PRESET, QualityScorer
from selectarr.quality.season_pack import EpisodeCountOptions, resolve_season_pack_episode_count
from selectarr.shared.config_store import ConfigStore
from selectarr.shared.enums import MediaType
from selectarr.shared.exceptions import ConfigurationError
from selectarr.shared.models import (
    EnhancedReleaseResult,
    EpisodeMatch,
    IndexerConfig,
    MediaTarget,
    ParsedRelease,
    ProtocolContext,
    QualityPreset,
    ReleaseResult,
    ScoringProfile,
    SizeValidationContext,
    TmdbHint,
    TmdbMatch,
)

logger = logging.getLogger(__name__)

DEFAULT_CONCURRENCY = 16


class EnrichmentOptions(BaseModel):
    """Per-call options for ``ReleaseEnricher.enrich``."""

    model_config = {"frozen": True}

    scoring_profile_id: str | None = None
    preset: QualityPreset = ANY_PRESET
    match_to_tmdb: bool = False
    tmdb_hint: TmdbHint | None = None
    filter_rejected: bool = False
    min_score: int | None = None
    media_type: MediaType | None = None
    target: MediaTarget | None = None
    episode_counts: EpisodeCountOptions | None = None
    indexer_configs: dict[str, IndexerConfig] = Field(default_factory=dict)


class EnrichmentResult(BaseModel):
    """Output of one enrichment batch."""

    model_config = {"frozen": True}

    releases: list[EnhancedReleaseResult]
    rejected_count: int = 0
    blocklisted_count: int = 0
    scoring_profile: ScoringProfile
    enrich_time_ms: float = 0.0


def _size_context(parsed: ParsedRelease, options: EnrichmentOptions) -> SizeValidationContext:
    media_type = options.media_type
    if media_type is None:
        media_type = MediaType.TV if parsed.episode is not None else MediaType.MOVIE

    episode = parsed.episode
    is_pack = episode is not None and (episode.is_season_pack or episode.is_complete_series)
    count = resolve_season_pack_episode_count(episode, options.episode_counts) if is_pack else None
    return SizeValidationContext(media_type=media_type, is_season_pack=is_pack, episode_count=count)


def _episode_match(parsed: ParsedRelease) -> EpisodeMatch | None:
    episode = parsed.episode
    if episode is None:
        return None
    return EpisodeMatch(
        season=episode.season or 0,
        seasons=episode.seasons,
        episodes=episode.episodes,
        is_season_pack=episode.is_season_pack,
        is_complete_series=episode.is_complete_series,
    )


def _protocol_context(release: ReleaseResult, options: EnrichmentOptions) -> ProtocolContext | None:
    config = options.indexer_configs.get(release.indexer_id)
    # Protocol checks only run for indexers that carry protocol settings.
    if config is None or config.protocol_settings is None:
        return None
    return ProtocolContext(
        indexer_id=config.id,
        indexer_name=config.name,
        base_url=config.base_url,
        settings=config.protocol_settings,
    )


class ReleaseEnricher:
    """Turn raw search results into scored, ranked ``EnhancedReleaseResult`` values.

    Per-release work is independent and runs concurrently, bounded by
    ``concurrency``. Cancelling ``enrich`` cancels the outstanding work.

    ``protocol_handlers`` replaces the built-in per-protocol checks; a
    protocol missing from the map gets no handler rejection.
    """

    def __init__(
        self,
        store: ConfigStore,
        *,
        parser: TitleParser | None = None,
        tmdb_matcher: TmdbMatcher | None = None,
        blocklist: BlocklistChecker | None = None,
        concurrency: int = DEFAULT_CONCURRENCY,
        protocol_handlers: ProtocolHandlers | None = None,
    ) -> None:
        self._store = store
        self._parser = parser
        self._tmdb = tmdb_matcher
        self._blocklist = blocklist
        self._concurrency = max(1, concurrency)
        self._handlers = dict(protocol_handlers) if protocol_handlers is not None else default_protocol_handlers()

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        store: ConfigStore,
        *,
        parser: TitleParser | None = None,
        tmdb_matcher: TmdbMatcher | None = None,
        protocol_handlers: ProtocolHandlers | None = None,
    ) -> ReleaseEnricher:
        """Build an enricher with a blocklist checker over ``store``."""
        return cls(
            store,
            parser=parser,
            tmdb_matcher=tmdb_matcher,
            blocklist=BlocklistChecker(store),
            concurrency=settings.scoring_concurrency,
            protocol_handlers=protocol_handlers,
        )

    async def enrich(
        self,
        releases: list[ReleaseResult],
        options: EnrichmentOptions | None = None,
    ) -> EnrichmentResult:
        """Score a batch of releases.

        Args:
            releases: Search results to enrich.
            options: Profile selection, filtering and size context.

        Returns:
            Enriched releases sorted by ``total_score`` descending.

        Raises:
            ConfigurationError: If no profile can be resolved.
        """
        options = options or EnrichmentOptions()
        started = time.perf_counter()

        profile = await self._store.get_profile(options.scoring_profile_id)
        formats = await self._store.list_custom_formats()
        scorer = QualityScorer(formats)
        semaphore = asyncio.Semaphore(self._concurrency)

        async def bounded(release: ReleaseResult) -> EnhancedReleaseResult | None:
            async with semaphore:
                return await self._enrich_one(release, profile, scorer, options)

        outcomes = await asyncio.gather(*(bounded(r) for r in releases))

        enriched = [r for r in outcomes if r is not None]
        blocklisted = len(outcomes) - len(enriched)
        rejected = sum(1 for r in enriched if r.rejected)

        if options.filter_rejected:
            enriched = [r for r in enriched if not r.rejected]
        if options.min_score is not None:
            enriched = [r for r in enriched if r.total_score >= options.min_score]
        enriched.sort(key=lambda r: r.total_score, reverse=True)

        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info(
            "enriched %d releases with profile %s: %d rejected, %d blocklisted, %d returned (%.1f ms)",
            len(releases),
            profile.id,
            rejected,
            blocklisted,
            len(enriched),
            elapsed_ms,
        )
        return EnrichmentResult(
            releases=enriched,
            rejected_count=rejected,
            blocklisted_count=blocklisted,
            scoring_profile=profile,
            enrich_time_ms=elapsed_ms,
        )

    async def _enrich_one(
        self,
        release: ReleaseResult,
        profile: ScoringProfile,
        scorer: QualityScorer,
        options: EnrichmentOptions,
    ) -> EnhancedReleaseResult | None:
        if self._blocklist is not None and await self._blocklist.is_blocklisted(release, options.target):
            return None

        parsed = self._parse(release)
        matched = scorer.match(parsed, release.indexer_name)
        quality = scorer.score(
            parsed,
            options.preset,
            profile,
            release.size,
            _size_context(parsed, options),
            release.indexer_name,
            matched=matched,
        )
        components = compose_total_score(parsed, quality, matched, profile.pack_preference)

        scored = EnhancedReleaseResult(
            **release.model_dump(exclude={"parsed"}),
            parsed=parsed,
            quality=quality,
            total_score=components.total_score,
            score_components=components,
            rejected=False,
            quality_weight=quality.normalized_score,
            matched_formats=quality.matched_formats,
            episode_match=_episode_match(parsed),
        )

        protocol_rejection = run_protocol_handler(scored, _protocol_context(release, options), self._handlers)
        rejections = aggregate_rejections(quality, release, profile, protocol_rejection)
        tmdb_match = await self._match_tmdb(parsed, options)

        return scored.model_copy(
            update={
                "rejected": bool(rejections),
                "rejections": rejections,
                "rejection_reason": rejections[0] if rejections else None,
                "rejection_count": len(rejections),
                "tmdb_match": tmdb_match,
            }
        )

    def _parse(self, release: ReleaseResult) -> ParsedRelease:
        if release.parsed is not None:
            return release.parsed
        if self._parser is None:
            raise ConfigurationError(f"release {release.title!r} is not parsed and no title parser is configured")
        return self._parser.parse(release.title)

    async def _match_tmdb(self, parsed: ParsedRelease, options: EnrichmentOptions) -> TmdbMatch | None:
        if not options.match_to_tmdb or self._tmdb is None:
            return None
        try:
            return await self._tmdb.match(parsed, options.tmdb_hint)
        except Exception:
            logger.warning("TMDB match failed for %r", parsed.original_title, exc_info=True)
            return None
