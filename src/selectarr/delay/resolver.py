"""Delay profile selection and effective delay calculation."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from selectarr.shared.enums import ReleaseProtocol
from selectarr.shared.models import (
    DelayDecision,
    DelayProfile,
    EnhancedReleaseResult,
    MediaTarget,
    ScoringProfile,
)

logger = logging.getLogger(__name__)


def profile_applies(profile: DelayProfile, target: MediaTarget) -> bool:
    """An untagged profile applies to everything; otherwise tags must intersect."""
    if not profile.tags:
        return True
    return bool(set(profile.tags) & set(target.tags))


def protocol_delay(profile: DelayProfile, protocol: ReleaseProtocol) -> int:
    if protocol is ReleaseProtocol.TORRENT:
        return profile.torrent_delay
    if protocol is ReleaseProtocol.USENET:
        return profile.usenet_delay
    return 0


class DelayProfileResolver:
    """Pick the applicable delay profile and compute the delay for a release."""

    def select_profile(self, profiles: Iterable[DelayProfile], target: MediaTarget) -> DelayProfile | None:
        """Return the highest-priority enabled profile that applies to ``target``."""
        enabled = sorted((p for p in profiles if p.enabled), key=lambda p: (p.sort_order, p.id))
        for profile in enabled:
            if profile_applies(profile, target):
                return profile
        return None

    def resolve(
        self,
        release: EnhancedReleaseResult,
        target: MediaTarget,
        profiles: Iterable[DelayProfile],
        scoring_profile: ScoringProfile,
    ) -> DelayDecision:
        profile = self.select_profile(profiles, target)
        if profile is None:
            return DelayDecision(delay_minutes=0, reason="No delay profile applies")

        resolution = release.parsed.resolution
        if resolution in profile.quality_delays:
            delay = profile.quality_delays[resolution]
            reason = f"Quality delay for {resolution}"
        else:
            delay = protocol_delay(profile, release.protocol)
            reason = f"{release.protocol.value.capitalize()} delay"

        if delay > 0:
            top = scoring_profile.resolution_order[0] if scoring_profile.resolution_order else None
            if profile.bypass_if_highest_quality and top is not None and resolution == top:
                return DelayDecision(
                    delay_minutes=0,
                    profile_id=profile.id,
                    bypassed=True,
                    reason=f"Bypassed: {resolution} is the highest quality",
                )
            if profile.bypass_if_above_score is not None and release.total_score > profile.bypass_if_above_score:
                return DelayDecision(
                    delay_minutes=0,
                    profile_id=profile.id,
                    bypassed=True,
                    reason=f"Bypassed: score {release.total_score} above {profile.bypass_if_above_score}",
                )

        logger.debug("delay profile %s: %d minutes for %r", profile.id, delay, release.title)
        return DelayDecision(delay_minutes=delay, profile_id=profile.id, reason=reason)
