"""Custom format matching against parsed release metadata."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from functools import lru_cache

from selectarr.shared.enums import ConditionType
from selectarr.shared.models import CustomFormat, FormatCondition, ParsedRelease

logger = logging.getLogger(__name__)

# Boolean attributes a ``flag`` condition may test.
_FLAGS = {
    "proper": "is_proper",
    "repack": "is_repack",
    "remux": "is_remux",
    "3d": "is_3d",
    "hardcoded_subs": "has_hardcoded_subs",
}
_EPISODE_FLAGS = {
    "season_pack": "is_season_pack",
    "complete_series": "is_complete_series",
    "daily": "is_daily",
}


@lru_cache(maxsize=1024)
def _compile(pattern: str) -> re.Pattern[str] | None:
    try:
        return re.compile(pattern, re.IGNORECASE)
    except re.error as exc:
        logger.warning("invalid format pattern %r: %s", pattern, exc)
        return None


def _equals(actual: str | None, expected: str | None) -> bool:
    if actual is None or expected is None:
        return False
    return actual.lower() == expected.lower()


def _search(pattern: str | None, text: str | None) -> bool:
    if not pattern or text is None:
        return False
    compiled = _compile(pattern)
    return compiled is not None and compiled.search(text) is not None


def _flag(parsed: ParsedRelease, name: str | None) -> bool:
    if not name:
        return False
    key = name.lower().removeprefix("is_").removeprefix("has_")
    if key in _FLAGS:
        return bool(getattr(parsed, _FLAGS[key]))
    if key in _EPISODE_FLAGS:
        return parsed.episode is not None and bool(getattr(parsed.episode, _EPISODE_FLAGS[key]))
    logger.debug("unknown format flag %r", name)
    return False


def evaluate_condition(condition: FormatCondition, parsed: ParsedRelease, indexer_name: str | None = None) -> bool:
    """Evaluate one condition, with ``negate`` already applied."""
    kind = condition.type
    value = condition.value

    if kind is ConditionType.RESOLUTION:
        result = _equals(parsed.resolution, value)
    elif kind is ConditionType.SOURCE:
        result = _equals(parsed.source, value)
    elif kind is ConditionType.CODEC:
        result = _equals(parsed.codec, value)
    elif kind is ConditionType.AUDIO:
        result = _equals(parsed.audio, value)
    elif kind is ConditionType.STREAMING_SERVICE:
        result = _equals(parsed.streaming_service, value)
    elif kind is ConditionType.HDR:
        # An empty value asks "no HDR"; anything else names the HDR flavour.
        result = not parsed.hdr if not value else _equals(parsed.hdr, value)
    elif kind is ConditionType.PATTERN:
        result = _search(value, parsed.original_title)
    elif kind is ConditionType.RELEASE_GROUP:
        result = _search(value, parsed.release_group)
    elif kind is ConditionType.INDEXER:
        result = _search(value, indexer_name)
    elif kind is ConditionType.FLAG:
        result = _flag(parsed, value)
    else:  # pragma: no cover - ConditionType is exhaustive
        result = False

    return not result if condition.negate else result


def format_matches(custom_format: CustomFormat, parsed: ParsedRelease, indexer_name: str | None = None) -> bool:
    """A format matches iff every required condition holds.

    Formats without conditions never match. Optional conditions are
    informational and do not affect the outcome.
    """
    if not custom_format.conditions:
        return False
    return all(
        evaluate_condition(condition, parsed, indexer_name)
        for condition in custom_format.conditions
        if condition.required
    )


def match_formats(
    parsed: ParsedRelease,
    formats: Iterable[CustomFormat],
    indexer_name: str | None = None,
) -> list[CustomFormat]:
    """Return the enabled formats that match ``parsed``, in input order."""
    return [f for f in formats if f.enabled and format_matches(f, parsed, indexer_name)]


class CustomFormatMatcher:
    """Evaluate a release against a fixed set of custom formats."""

    def __init__(self, formats: Iterable[CustomFormat]) -> None:
        self._formats = [f for f in formats if f.enabled]

    @property
    def formats(self) -> list[CustomFormat]:
        return list(self._formats)

    def match(self, parsed: ParsedRelease, indexer_name: str | None = None) -> list[CustomFormat]:
        return match_formats(parsed, self._formats, indexer_name)

    def match_ids(self, parsed: ParsedRelease, indexer_name: str | None = None) -> list[str]:
        return [f.id for f in self.match(parsed, indexer_name)]
