"""Rejection aggregation and per-protocol rejection handlers."""

from __future__ import annotations

import logging
from collections.abc import Mapping

from selectarr.quality.interfaces import ProtocolRejectionHandler
from selectarr.shared.enums import ReleaseProtocol
from selectarr.shared.models import (
    EnhancedReleaseResult,
    ProtocolContext,
    QualityResult,
    ReleaseResult,
    ScoringProfile,
)

logger = logging.getLogger(__name__)

QUALITY_NOT_MET = "Quality requirements not met"
MIN_USENET_COMPLETION = 95


class TorrentRejectionHandler:
    """Seeder and size checks for torrent releases."""

    def should_reject(self, release: EnhancedReleaseResult, context: ProtocolContext) -> str | None:
        settings = context.settings
        seeders = release.seeders

        # Seeder checks only apply when the indexer reported a count.
        if seeders is not None:
            if settings.reject_dead_torrents and seeders == 0:
                return "No seeders available"
            if settings.min_seeders is not None and seeders < settings.min_seeders:
                return f"Below minimum seeders ({seeders} < {settings.min_seeders})"

        if settings.max_size is not None and release.size > settings.max_size:
            return f"Exceeds maximum size ({release.size / 1024**3:.2f} GB)"
        return None


class UsenetRejectionHandler:
    """Password, retention, completion and size checks for usenet releases."""

    def should_reject(self, release: EnhancedReleaseResult, context: ProtocolContext) -> str | None:
        settings = context.settings

        if settings.reject_password_protected and release.password_protected:
            return "Password protected release"

        retention = settings.retention_days
        if retention is not None and release.age_days is not None and release.age_days > retention:
            return f"Exceeds retention limit ({release.age_days:.0f} days > {retention} days)"

        completion = release.completion_percentage
        if completion is not None and completion < MIN_USENET_COMPLETION:
            return f"Incomplete release ({completion:g}% complete)"

        if settings.max_size is not None and release.size > settings.max_size:
            return f"Exceeds maximum size ({release.size / 1024**3:.2f} GB)"
        return None


class StreamingRejectionHandler:
    """Streaming sources have no availability signal to reject on."""

    def should_reject(self, release: EnhancedReleaseResult, context: ProtocolContext) -> str | None:
        return None


ProtocolHandlers = Mapping[ReleaseProtocol, ProtocolRejectionHandler]


def default_protocol_handlers() -> dict[ReleaseProtocol, ProtocolRejectionHandler]:
    """Return a fresh map of the built-in handlers, one per protocol."""
    return {
        ReleaseProtocol.TORRENT: TorrentRejectionHandler(),
        ReleaseProtocol.USENET: UsenetRejectionHandler(),
        ReleaseProtocol.STREAMING: StreamingRejectionHandler(),
    }


def protocol_allowlist_rejection(release: ReleaseResult, profile: ScoringProfile) -> str | None:
    allowed = profile.effective_allowed_protocols
    if release.protocol in allowed:
        return None
    names = ", ".join(p.value for p in allowed)
    return f"Protocol '{release.protocol.value}' not allowed for profile '{profile.name}' (allowed: {names})"


def run_protocol_handler(
    release: EnhancedReleaseResult,
    context: ProtocolContext | None,
    handlers: ProtocolHandlers,
) -> str | None:
    """Ask the handler for ``release.protocol``; no handler or context means no rejection."""
    if context is None:
        return None
    handler = handlers.get(release.protocol)
    if handler is None:
        logger.debug("no rejection handler for protocol %s", release.protocol.value)
        return None
    return handler.should_reject(release, context)


def aggregate_rejections(
    quality: QualityResult,
    release: ReleaseResult,
    profile: ScoringProfile,
    protocol_rejection: str | None = None,
) -> list[str]:
    """Build the ordered, human-readable rejection list for one release.

    Order: size, banned formats, the generic quality message (only when
    nothing more specific explains the rejection), protocol allowlist, then
    the protocol handler's reason.
    """
    rejections: list[str] = []

    if quality.size_rejection_reason:
        rejections.append(quality.size_rejection_reason)
    rejections.extend(f"Banned: {reason}" for reason in quality.banned_reasons)
    if not quality.accepted and not rejections:
        rejections.append(QUALITY_NOT_MET)

    allowlist = protocol_allowlist_rejection(release, profile)
    if allowlist:
        rejections.append(allowlist)
    if protocol_rejection:
        rejections.append(protocol_rejection)

    return rejections
