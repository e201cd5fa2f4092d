"""Hierarchical exception types for the selectarr decision engine."""

from __future__ import annotations


class SelectarrError(Exception):
    """Base exception for all selectarr errors."""


# ── Infrastructure ──────────────────────────────────────────────


class DatabaseError(SelectarrError):
    """Failed to communicate with PostgreSQL."""


class RedisError(SelectarrError):
    """Failed to communicate with Redis."""


class QueueError(RedisError):
    """Queue-level operation failed."""


# ── Configuration ───────────────────────────────────────────────


class ConfigurationError(SelectarrError):
    """Stored configuration cannot support the requested operation."""


class DefaultProfileError(ConfigurationError):
    """A write would leave zero or several default scoring profiles."""


# ── Scheduling ──────────────────────────────────────────────────


class DispatchError(SelectarrError):
    """Handing a release to the download queue failed."""
