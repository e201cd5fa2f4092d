"""Blocklist lookups and maintenance.

A blocklisted release is dropped before scoring. Entries match on info hash
when both sides carry one, otherwise on title + protocol, and are scoped to
the entry's movie or series unless the entry has no target (global).
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Iterable
from datetime import datetime

from selectarr.shared.config_store import ConfigStore
from selectarr.shared.enums import BlocklistReason, ReleaseProtocol
from selectarr.shared.models import (
    BlocklistEntry,
    MediaTarget,
    ParsedRelease,
    QualitySnapshot,
    ReleaseResult,
    utc_now,
)

logger = logging.getLogger(__name__)


def _applies_to(entry: BlocklistEntry, target: MediaTarget | None) -> bool:
    if entry.movie_id is None and entry.series_id is None:
        return True
    if target is None:
        return True
    if entry.movie_id is not None:
        return entry.movie_id == target.movie_id
    if entry.series_id != target.series_id:
        return False
    if entry.episode_ids and target.episode_ids:
        return bool(set(entry.episode_ids) & set(target.episode_ids))
    return True


def _same_release(
    entry: BlocklistEntry,
    info_hash: str | None,
    title: str,
    protocol: ReleaseProtocol | None,
) -> bool:
    if entry.info_hash and info_hash:
        return entry.info_hash.lower() == info_hash.lower()
    if entry.title.lower() != title.lower():
        return False
    return entry.protocol is None or protocol is None or entry.protocol == protocol


def find_blocking_entry(
    entries: Iterable[BlocklistEntry],
    *,
    title: str,
    info_hash: str | None = None,
    protocol: ReleaseProtocol | None = None,
    target: MediaTarget | None = None,
    now: datetime,
) -> BlocklistEntry | None:
    """Return the first active entry blocking this release, or None.

    Hash matches are checked across all entries before falling back to
    title matches.
    """
    candidates = [e for e in entries if e.is_active(now) and _applies_to(e, target)]

    if info_hash:
        for entry in candidates:
            if entry.info_hash and entry.info_hash.lower() == info_hash.lower():
                return entry

    for entry in candidates:
        if _same_release(entry, info_hash, title, protocol):
            return entry
    return None


class BlocklistChecker:
    """Blocklist lookups through the ConfigStore cache."""

    def __init__(self, store: ConfigStore, clock: Callable[[], datetime] = utc_now) -> None:
        self._store = store
        self._clock = clock

    async def check(self, release: ReleaseResult, target: MediaTarget | None) -> BlocklistEntry | None:
        """Return the entry blocking ``release`` for ``target``, if any.

        Without a target only global entries are loaded.
        """
        now = self._clock()
        if target is None:
            entries = await self._store.global_blocklist(now)
        else:
            entries = await self._store.blocklist_for_target(target, now)
        entry = find_blocking_entry(
            entries,
            title=release.title,
            info_hash=release.info_hash,
            protocol=release.protocol,
            target=target,
            now=now,
        )
        if entry is not None:
            logger.info("release %r is blocklisted (%s)", release.title, entry.reason.value)
        return entry

    async def is_blocklisted(self, release: ReleaseResult, target: MediaTarget | None) -> bool:
        return await self.check(release, target) is not None


class BlocklistService:
    """Add, remove and purge blocklist entries.

    Used by the external download/import failure handlers.
    """

    def __init__(self, store: ConfigStore, clock: Callable[[], datetime] = utc_now) -> None:
        self._store = store
        self._clock = clock

    async def add(
        self,
        release: ReleaseResult,
        reason: BlocklistReason,
        *,
        target: MediaTarget | None = None,
        message: str | None = None,
        parsed: ParsedRelease | None = None,
        expires_at: datetime | None = None,
    ) -> BlocklistEntry:
        parsed = parsed or release.parsed
        entry = BlocklistEntry(
            title=release.title,
            info_hash=release.info_hash,
            indexer_id=release.indexer_id,
            movie_id=target.movie_id if target else None,
            series_id=target.series_id if target else None,
            episode_ids=list(target.episode_ids) if target else [],
            reason=reason,
            message=message,
            source_title=release.title,
            quality=QualitySnapshot.from_parsed(parsed) if parsed else None,
            size=release.size or None,
            protocol=release.protocol,
            created_at=self._clock(),
            expires_at=expires_at,
        )
        return await self._store.add_blocklist_entry(entry)

    async def remove(self, entry_id: uuid.UUID) -> bool:
        return await self._store.remove_blocklist_entry(entry_id)

    async def purge_expired(self) -> int:
        return await self._store.purge_expired_blocklist(self._clock())
