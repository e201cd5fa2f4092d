"""Domain enumerations used across all modules."""

from __future__ import annotations

from enum import Enum, unique


@unique
class ReleaseProtocol(str, Enum):
    """Transport a release is delivered over."""

    TORRENT = "torrent"
    USENET = "usenet"
    STREAMING = "streaming"


@unique
class MediaType(str, Enum):
    """Kind of media a size rule applies to."""

    MOVIE = "movie"
    TV = "tv"


@unique
class FormatCategory(str, Enum):
    """UI grouping for custom formats. ``banned`` drives hard rejection."""

    RESOLUTION = "resolution"
    RELEASE_GROUP_TIER = "release_group_tier"
    AUDIO = "audio"
    HDR = "hdr"
    STREAMING = "streaming"
    MICRO = "micro"
    LOW_QUALITY = "low_quality"
    BANNED = "banned"
    ENHANCEMENT = "enhancement"
    CODEC = "codec"
    OTHER = "other"


@unique
class ConditionType(str, Enum):
    """Attribute a format condition is evaluated against."""

    RESOLUTION = "resolution"
    SOURCE = "source"
    PATTERN = "pattern"
    CODEC = "codec"
    AUDIO = "audio"
    HDR = "hdr"
    STREAMING_SERVICE = "streaming_service"
    FLAG = "flag"
    RELEASE_GROUP = "release_group"
    INDEXER = "indexer"


@unique
class PendingStatus(str, Enum):
    """Lifecycle states for a deferred release."""

    PENDING = "pending"
    SUPERSEDED = "superseded"
    GRABBED = "grabbed"
    EXPIRED = "expired"


@unique
class BlocklistReason(str, Enum):
    """Why a release was put on the blocklist."""

    DOWNLOAD_FAILED = "download_failed"
    IMPORT_FAILED = "import_failed"
    QUALITY_MISMATCH = "quality_mismatch"
    MANUAL = "manual"


@unique
class GrabAction(str, Enum):
    """Outcome of submitting an accepted release to the scheduler."""

    GRABBED = "grabbed"
    DEFERRED = "deferred"
    DISCARDED = "discarded"


@unique
class UpgradeStatus(str, Enum):
    """How a candidate compares with what is already on disk."""

    NEW = "new"
    UPGRADE = "upgrade"
    SIDEGRADE = "sidegrade"
    DOWNGRADE = "downgrade"
