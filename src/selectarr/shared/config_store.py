"""In-process cache over the configuration repositories.

Reads are served from memory; every write made through the store drops the
affected cache entries, so the default-profile fallback and protocol
allowlists always reflect the latest committed configuration.
"""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Awaitable, Callable
from datetime import datetime

import asyncpg

from selectarr.shared.exceptions import ConfigurationError
from selectarr.shared.models import (
    BlocklistEntry,
    CustomFormat,
    DelayProfile,
    MediaTarget,
    ScoringProfile,
)
from selectarr.shared.repository import (
    BlocklistRepository,
    CustomFormatRepository,
    DelayProfileRepository,
    ScoringProfileRepository,
)

logger = logging.getLogger(__name__)

_GLOBAL_KEY = "*"
DEFAULT_BLOCKLIST_TTL = 300.0


class ConfigStore:
    """Cached access to scoring profiles, formats, delay profiles and blocklist."""

    def __init__(
        self,
        *,
        profile_repo: ScoringProfileRepository,
        format_repo: CustomFormatRepository,
        delay_repo: DelayProfileRepository,
        blocklist_repo: BlocklistRepository,
        blocklist_ttl: float = DEFAULT_BLOCKLIST_TTL,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self._profile_repo = profile_repo
        self._format_repo = format_repo
        self._delay_repo = delay_repo
        self._blocklist_repo = blocklist_repo

        self._profiles: dict[str, ScoringProfile] = {}
        self._default_profile: ScoringProfile | None = None
        self._formats: list[CustomFormat] | None = None
        self._delay_profiles: list[DelayProfile] | None = None
        self._blocklist_ttl = blocklist_ttl
        self._monotonic = monotonic
        # target key -> (monotonic load time, entries)
        self._blocklist: dict[str, tuple[float, list[BlocklistEntry]]] = {}

    @classmethod
    def from_pool(cls, pool: asyncpg.Pool, *, blocklist_ttl: float = DEFAULT_BLOCKLIST_TTL) -> ConfigStore:
        return cls(
            profile_repo=ScoringProfileRepository(pool),
            format_repo=CustomFormatRepository(pool),
            delay_repo=DelayProfileRepository(pool),
            blocklist_repo=BlocklistRepository(pool),
            blocklist_ttl=blocklist_ttl,
        )

    # ── Scoring profiles ──────────────────────────────────────

    async def get_profile(self, profile_id: str | None = None) -> ScoringProfile:
        """Return the named profile, falling back to the default profile.

        Raises:
            ConfigurationError: If the profile is missing and no default exists.
        """
        if profile_id:
            cached = self._profiles.get(profile_id)
            if cached is not None:
                return cached
            profile = await self._profile_repo.find_by_id(profile_id)
            if profile is not None:
                self._profiles[profile_id] = profile
                return profile
            logger.warning("scoring profile %s not found, using default profile", profile_id)
        return await self.get_default_profile()

    async def get_default_profile(self) -> ScoringProfile:
        """Return the default scoring profile.

        Raises:
            ConfigurationError: If no profile is flagged as default.
        """
        if self._default_profile is not None:
            return self._default_profile
        profile = await self._profile_repo.find_default()
        if profile is None:
            raise ConfigurationError("no default scoring profile is configured")
        self._default_profile = profile
        return profile

    async def save_profile(self, profile: ScoringProfile) -> ScoringProfile:
        saved = await self._profile_repo.save(profile)
        self.invalidate_profiles()
        return saved

    async def delete_profile(self, profile_id: str) -> bool:
        deleted = await self._profile_repo.delete(profile_id)
        self.invalidate_profiles()
        return deleted

    def invalidate_profiles(self) -> None:
        # A single save can flip is_default on other rows.
        count = len(self._profiles)
        self._profiles.clear()
        self._default_profile = None
        logger.debug("scoring profile cache cleared (%d entries)", count)

    # ── Custom formats ────────────────────────────────────────

    async def list_custom_formats(self) -> list[CustomFormat]:
        """Return the enabled custom formats."""
        if self._formats is None:
            self._formats = await self._format_repo.list_enabled()
        return self._formats

    async def save_custom_format(self, custom_format: CustomFormat) -> CustomFormat:
        saved = await self._format_repo.save(custom_format)
        self._formats = None
        return saved

    async def delete_custom_format(self, format_id: str) -> bool:
        deleted = await self._format_repo.delete(format_id)
        self._formats = None
        return deleted

    # ── Delay profiles ────────────────────────────────────────

    async def list_delay_profiles(self) -> list[DelayProfile]:
        """Return enabled delay profiles in ascending ``sort_order``."""
        if self._delay_profiles is None:
            self._delay_profiles = await self._delay_repo.list_enabled()
        return self._delay_profiles

    async def save_delay_profile(self, profile: DelayProfile) -> DelayProfile:
        saved = await self._delay_repo.save(profile)
        self._delay_profiles = None
        return saved

    async def delete_delay_profile(self, profile_id: str) -> bool:
        deleted = await self._delay_repo.delete(profile_id)
        self._delay_profiles = None
        return deleted

    # ── Blocklist ─────────────────────────────────────────────

    async def blocklist_for_target(self, target: MediaTarget, now: datetime) -> list[BlocklistEntry]:
        """Return blocklist entries that may apply to ``target``.

        Cached entries are re-filtered against ``now`` so an expiry never
        needs an explicit invalidation. Each target's entries are reloaded
        once they are older than ``blocklist_ttl`` seconds, which also picks
        up entries written by other processes.
        """
        entries = await self._cached_blocklist(
            target.key,
            lambda: self._blocklist_repo.list_active_for_target(target, now),
        )
        return [e for e in entries if e.is_active(now)]

    async def global_blocklist(self, now: datetime) -> list[BlocklistEntry]:
        """Return active entries that apply to every target."""
        entries = await self._cached_blocklist(
            _GLOBAL_KEY,
            lambda: self._blocklist_repo.list_active_global(now),
        )
        return [e for e in entries if e.is_active(now)]

    async def _cached_blocklist(
        self,
        key: str,
        load: Callable[[], Awaitable[list[BlocklistEntry]]],
    ) -> list[BlocklistEntry]:
        loaded_at = self._monotonic()
        cached = self._blocklist.get(key)
        if cached is not None and loaded_at - cached[0] < self._blocklist_ttl:
            return cached[1]
        entries = await load()
        self._evict_stale_blocklist(loaded_at)
        self._blocklist[key] = (loaded_at, entries)
        return entries

    def _evict_stale_blocklist(self, now: float) -> None:
        stale = [key for key, (loaded_at, _) in self._blocklist.items() if now - loaded_at >= self._blocklist_ttl]
        for key in stale:
            del self._blocklist[key]
        if stale:
            logger.debug("evicted %d stale blocklist cache entries", len(stale))

    async def add_blocklist_entry(self, entry: BlocklistEntry) -> BlocklistEntry:
        saved = await self._blocklist_repo.insert(entry)
        self.invalidate_blocklist()
        return saved

    async def remove_blocklist_entry(self, entry_id: uuid.UUID) -> bool:
        removed = await self._blocklist_repo.delete(entry_id)
        self.invalidate_blocklist()
        return removed

    async def purge_expired_blocklist(self, now: datetime) -> int:
        purged = await self._blocklist_repo.purge_expired(now)
        if purged:
            self.invalidate_blocklist()
        return purged

    def invalidate_blocklist(self) -> None:
        # Global entries apply to every target, so the whole map goes.
        self._blocklist.clear()

    def invalidate(self) -> None:
        """Drop every cached value."""
        self.invalidate_profiles()
        self._formats = None
        self._delay_profiles = None
        self.invalidate_blocklist()
