"""Interfaces for the quality module's external collaborators."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from selectarr.shared.models import (
    EnhancedReleaseResult,
    ParsedRelease,
    ProtocolContext,
    TmdbHint,
    TmdbMatch,
)


@runtime_checkable
class TitleParser(Protocol):
    """Protocol for release-title parsers."""

    def parse(self, title: str) -> ParsedRelease:
        """Parse a raw release title into structured metadata.

        Args:
            title: Release title as returned by the indexer.

        Returns:
            Parsed release metadata.
        """
        ...


@runtime_checkable
class TmdbMatcher(Protocol):
    """Protocol for resolving a parsed release to a TMDB identity."""

    async def match(self, parsed: ParsedRelease, hint: TmdbHint | None = None) -> TmdbMatch | None:
        """Match a release to a TMDB entry.

        Args:
            parsed: Parsed release metadata.
            hint: Optional identity the caller already knows.

        Returns:
            The match, or None when nothing matched.
        """
        ...


@runtime_checkable
class ProtocolRejectionHandler(Protocol):
    """Protocol for protocol-specific rejection checks (seeders, retention...)."""

    def should_reject(self, release: EnhancedReleaseResult, context: ProtocolContext) -> str | None:
        """Return a human-readable rejection reason, or None to accept.

        Args:
            release: The release as scored so far (not yet rejected).
            context: Indexer identity and protocol-specific settings.
        """
        ...
