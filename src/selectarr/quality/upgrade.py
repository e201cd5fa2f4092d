"""Upgrade evaluation of a candidate against an existing file's score."""

from __future__ import annotations

import logging

from selectarr.shared.enums import UpgradeStatus
from selectarr.shared.models import ScoringProfile, UpgradeDecision

logger = logging.getLogger(__name__)


def is_cutoff_met(existing_score: int | None, profile: ScoringProfile) -> bool:
    """True once the existing file reaches ``upgrade_until_score`` (-1 never stops)."""
    if existing_score is None or profile.upgrade_until_score < 0:
        return False
    return existing_score >= profile.upgrade_until_score


def evaluate_upgrade(
    existing_score: int | None,
    candidate_score: int,
    profile: ScoringProfile,
    allow_sidegrade: bool = False,
) -> UpgradeDecision:
    """Decide whether ``candidate_score`` should replace ``existing_score``.

    The cutoff is reported but does not reject: it only tells callers whether
    it is still worth searching for upgrades.
    """
    if existing_score is None:
        return UpgradeDecision(is_upgrade=True, status=UpgradeStatus.NEW, reason="No existing file")

    improvement = candidate_score - existing_score
    if improvement > 0:
        status = UpgradeStatus.UPGRADE
    elif improvement == 0:
        status = UpgradeStatus.SIDEGRADE
    else:
        status = UpgradeStatus.DOWNGRADE
    at_cutoff = is_cutoff_met(existing_score, profile)

    def decision(is_upgrade: bool, reason: str) -> UpgradeDecision:
        return UpgradeDecision(
            is_upgrade=is_upgrade,
            status=status,
            improvement=improvement,
            is_at_cutoff=at_cutoff,
            reason=reason,
        )

    if not profile.upgrades_allowed:
        return decision(False, "Upgrades are disabled for this profile")
    if status is UpgradeStatus.SIDEGRADE:
        if allow_sidegrade:
            return decision(True, "Sidegrade allowed")
        return decision(False, "Release is not better quality")
    if improvement < 0:
        return decision(False, "Release is not better quality")
    if improvement < profile.min_score_increment:
        logger.debug(
            "improvement %d below minimum increment %d", improvement, profile.min_score_increment
        )
        return decision(
            False,
            f"Score improvement ({improvement}) below minimum increment ({profile.min_score_increment})",
        )
    return decision(True, "Release qualifies as upgrade")
