"""Async repository layer for PostgreSQL CRUD operations.

One repository per table. JSON columns are validated into frozen models here,
once, so the scoring path never re-parses configuration.
"""

from __future__ import annotations

import json
import logging
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any

import asyncpg

from selectarr.shared.enums import PendingStatus
from selectarr.shared.exceptions import DefaultProfileError
from selectarr.shared.models import (
    BlocklistEntry,
    CustomFormat,
    DelayProfile,
    MediaTarget,
    PendingRelease,
    ScoringProfile,
)

logger = logging.getLogger(__name__)


class ScoringProfileRepository:
    """CRUD operations for the ``scoring_profiles`` table.

    Writes keep exactly one row flagged ``is_default``.
    """

    def __init__(self, pool: asyncpg.Pool) -> None:
        self._pool = pool

    async def find_by_id(self, profile_id: str) -> ScoringProfile | None:
        """Fetch a single profile by primary key."""
        row = await self._pool.fetchrow(
            "SELECT * FROM scoring_profiles WHERE id = $1",
            profile_id,
        )
        if row is None:
            return None
        return _profile_from_row(row)

    async def find_default(self) -> ScoringProfile | None:
        """Return the profile flagged as default, or None."""
        row = await self._pool.fetchrow("SELECT * FROM scoring_profiles WHERE is_default LIMIT 1")
        if row is None:
            return None
        return _profile_from_row(row)

    async def list_all(self) -> list[ScoringProfile]:
        rows = await self._pool.fetch("SELECT * FROM scoring_profiles ORDER BY name ASC")
        return [_profile_from_row(row) for row in rows]

    async def save(self, profile: ScoringProfile) -> ScoringProfile:
        """Insert or update a profile.

        Saving a default profile clears the flag on every other row. The write
        is rolled back when it would leave zero or several defaults.

        Raises:
            DefaultProfileError: If the default invariant would be broken.
        """
        async with self._pool.acquire() as conn:
            async with conn.transaction():
                if profile.is_default:
                    await conn.execute(
                        """
                        UPDATE scoring_profiles
                           SET is_default = FALSE, updated_at = now()
                         WHERE is_default AND id <> $1
                        """,
                        profile.id,
                    )
                row = await conn.fetchrow(
                    """
                    INSERT INTO scoring_profiles (id, name, description, tags, upgrades_allowed, min_score,
                                                  upgrade_until_score, min_score_increment, resolution_order,
                                                  format_scores, allowed_protocols, movie_min_size_gb,
                                                  movie_max_size_gb, episode_min_size_mb, episode_max_size_mb,
                                                  pack_preference, is_default)
                    VALUES ($1, $2, $3, $4::jsonb, $5, $6, $7, $8, $9::jsonb, $10::jsonb, $11::jsonb,
                            $12, $13, $14, $15, $16::jsonb, $17)
                    ON CONFLICT (id) DO UPDATE
                       SET name = EXCLUDED.name,
                           description = EXCLUDED.description,
                           tags = EXCLUDED.tags,
                           upgrades_allowed = EXCLUDED.upgrades_allowed,
                           min_score = EXCLUDED.min_score,
                           upgrade_until_score = EXCLUDED.upgrade_until_score,
                           min_score_increment = EXCLUDED.min_score_increment,
                           resolution_order = EXCLUDED.resolution_order,
                           format_scores = EXCLUDED.format_scores,
                           allowed_protocols = EXCLUDED.allowed_protocols,
                           movie_min_size_gb = EXCLUDED.movie_min_size_gb,
                           movie_max_size_gb = EXCLUDED.movie_max_size_gb,
                           episode_min_size_mb = EXCLUDED.episode_min_size_mb,
                           episode_max_size_mb = EXCLUDED.episode_max_size_mb,
                           pack_preference = EXCLUDED.pack_preference,
                           is_default = EXCLUDED.is_default,
                           updated_at = now()
                    RETURNING *
                    """,
                    *_profile_params(profile),
                )
                defaults = await conn.fetchval("SELECT count(*) FROM scoring_profiles WHERE is_default")
                if int(defaults) != 1:
                    raise DefaultProfileError(
                        f"saving profile {profile.id!r} would leave {defaults} default profiles (need exactly 1)"
                    )
        logger.info("saved scoring profile %s (%s, default=%s)", profile.id, profile.name, profile.is_default)
        return _profile_from_row(row)

    async def delete(self, profile_id: str) -> bool:
        """Delete a non-default profile. Returns False when it did not exist.

        Raises:
            DefaultProfileError: If the profile is the current default.
        """
        async with self._pool.acquire() as conn:
            async with conn.transaction():
                row = await conn.fetchrow(
                    "DELETE FROM scoring_profiles WHERE id = $1 RETURNING is_default",
                    profile_id,
                )
                if row is None:
                    return False
                if row["is_default"]:
                    raise DefaultProfileError(
                        f"profile {profile_id!r} is the default; assign another default before deleting it"
                    )
        logger.info("deleted scoring profile %s", profile_id)
        return True


class CustomFormatRepository:
    """CRUD operations for the ``custom_formats`` table."""

    def __init__(self, pool: asyncpg.Pool) -> None:
        self._pool = pool

    async def find_by_id(self, format_id: str) -> CustomFormat | None:
        row = await self._pool.fetchrow("SELECT * FROM custom_formats WHERE id = $1", format_id)
        if row is None:
            return None
        return _format_from_row(row)

    async def list_enabled(self) -> list[CustomFormat]:
        """Return enabled formats in a stable order."""
        rows = await self._pool.fetch("SELECT * FROM custom_formats WHERE enabled ORDER BY id ASC")
        return [_format_from_row(row) for row in rows]

    async def list_all(self) -> list[CustomFormat]:
        rows = await self._pool.fetch("SELECT * FROM custom_formats ORDER BY id ASC")
        return [_format_from_row(row) for row in rows]

    async def save(self, custom_format: CustomFormat) -> CustomFormat:
        """Insert or update a custom format."""
        row = await self._pool.fetchrow(
            """
            INSERT INTO custom_formats (id, name, description, category, tags, conditions,
                                        enabled, contributes_enhancement_bonus)
            VALUES ($1, $2, $3, $4, $5::jsonb, $6::jsonb, $7, $8)
            ON CONFLICT (id) DO UPDATE
               SET name = EXCLUDED.name,
                   description = EXCLUDED.description,
                   category = EXCLUDED.category,
                   tags = EXCLUDED.tags,
                   conditions = EXCLUDED.conditions,
                   enabled = EXCLUDED.enabled,
                   contributes_enhancement_bonus = EXCLUDED.contributes_enhancement_bonus,
                   updated_at = now()
            RETURNING *
            """,
            custom_format.id,
            custom_format.name,
            custom_format.description,
            custom_format.category.value,
            custom_format.tags,
            [c.model_dump(mode="json") for c in custom_format.conditions],
            custom_format.enabled,
            custom_format.contributes_enhancement_bonus,
        )
        logger.info("saved custom format %s (%s)", custom_format.id, custom_format.name)
        return _format_from_row(row)

    async def delete(self, format_id: str) -> bool:
        tag = await self._pool.execute("DELETE FROM custom_formats WHERE id = $1", format_id)
        return _rows_from_tag(tag) > 0


class DelayProfileRepository:
    """CRUD operations for the ``delay_profiles`` table."""

    def __init__(self, pool: asyncpg.Pool) -> None:
        self._pool = pool

    async def find_by_id(self, profile_id: str) -> DelayProfile | None:
        row = await self._pool.fetchrow("SELECT * FROM delay_profiles WHERE id = $1", profile_id)
        if row is None:
            return None
        return _delay_profile_from_row(row)

    async def list_enabled(self) -> list[DelayProfile]:
        """Return enabled profiles, highest matching priority first."""
        rows = await self._pool.fetch(
            "SELECT * FROM delay_profiles WHERE enabled ORDER BY sort_order ASC, id ASC",
        )
        return [_delay_profile_from_row(row) for row in rows]

    async def save(self, profile: DelayProfile) -> DelayProfile:
        """Insert or update a delay profile."""
        row = await self._pool.fetchrow(
            """
            INSERT INTO delay_profiles (id, name, sort_order, enabled, usenet_delay, torrent_delay,
                                        quality_delays, preferred_protocol, tags,
                                        bypass_if_highest_quality, bypass_if_above_score)
            VALUES ($1, $2, $3, $4, $5, $6, $7::jsonb, $8, $9::jsonb, $10, $11)
            ON CONFLICT (id) DO UPDATE
               SET name = EXCLUDED.name,
                   sort_order = EXCLUDED.sort_order,
                   enabled = EXCLUDED.enabled,
                   usenet_delay = EXCLUDED.usenet_delay,
                   torrent_delay = EXCLUDED.torrent_delay,
                   quality_delays = EXCLUDED.quality_delays,
                   preferred_protocol = EXCLUDED.preferred_protocol,
                   tags = EXCLUDED.tags,
                   bypass_if_highest_quality = EXCLUDED.bypass_if_highest_quality,
                   bypass_if_above_score = EXCLUDED.bypass_if_above_score,
                   updated_at = now()
            RETURNING *
            """,
            profile.id,
            profile.name,
            profile.sort_order,
            profile.enabled,
            profile.usenet_delay,
            profile.torrent_delay,
            profile.quality_delays,
            profile.preferred_protocol.value if profile.preferred_protocol else None,
            profile.tags,
            profile.bypass_if_highest_quality,
            profile.bypass_if_above_score,
        )
        logger.info("saved delay profile %s (%s)", profile.id, profile.name)
        return _delay_profile_from_row(row)

    async def delete(self, profile_id: str) -> bool:
        tag = await self._pool.execute("DELETE FROM delay_profiles WHERE id = $1", profile_id)
        return _rows_from_tag(tag) > 0


class PendingReleaseRepository:
    """State-machine persistence for the ``pending_releases`` table.

    Every status transition is a conditional update guarded by
    ``status = 'pending'``; a zero-row result means another writer won.
    """

    def __init__(self, pool: asyncpg.Pool) -> None:
        self._pool = pool

    async def find_by_id(self, pending_id: uuid.UUID) -> PendingRelease | None:
        row = await self._pool.fetchrow("SELECT * FROM pending_releases WHERE id = $1", pending_id)
        if row is None:
            return None
        return _pending_from_row(row)

    async def find_pending_for_target(self, target_key: str) -> PendingRelease | None:
        """Return the live pending row for a media target, if any."""
        row = await self._pool.fetchrow(
            "SELECT * FROM pending_releases WHERE target_key = $1 AND status = $2",
            target_key,
            PendingStatus.PENDING.value,
        )
        if row is None:
            return None
        return _pending_from_row(row)

    async def insert(self, pending: PendingRelease) -> PendingRelease | None:
        """Insert a pending row.

        Returns None when the target already has a live pending row.
        """
        try:
            row = await self._pool.fetchrow(_INSERT_PENDING_SQL, *_pending_params(pending))
        except asyncpg.UniqueViolationError:
            logger.info("target %s already has a pending release", pending.target.key)
            return None
        logger.info("deferred release %s until %s: %s", pending.id, pending.process_at.isoformat(), pending.title)
        return _pending_from_row(row)

    async def supersede(self, pending_id: uuid.UUID, superseded_by: str) -> bool:
        """Mark a pending row superseded. False if it was no longer pending."""
        tag = await self._pool.execute(
            """
            UPDATE pending_releases
               SET status = $1, superseded_by = $2
             WHERE id = $3 AND status = $4
            """,
            PendingStatus.SUPERSEDED.value,
            superseded_by,
            pending_id,
            PendingStatus.PENDING.value,
        )
        return _rows_from_tag(tag) == 1

    @asynccontextmanager
    async def superseding(self, pending_id: uuid.UUID, superseded_by: str) -> AsyncIterator[bool]:
        """Supersede a pending row inside a transaction.

        Yields False when the row was no longer pending. An exception raised by
        the caller's block rolls the update back.
        """
        async with self._pool.acquire() as conn:
            async with conn.transaction():
                tag = await conn.execute(
                    """
                    UPDATE pending_releases
                       SET status = $1, superseded_by = $2
                     WHERE id = $3 AND status = $4
                    """,
                    PendingStatus.SUPERSEDED.value,
                    superseded_by,
                    pending_id,
                    PendingStatus.PENDING.value,
                )
                yield _rows_from_tag(tag) == 1

    async def supersede_and_insert(self, old_id: uuid.UUID, new: PendingRelease) -> PendingRelease | None:
        """Atomically supersede ``old_id`` with a new pending row.

        Returns None, writing nothing, when ``old_id`` was no longer pending.
        """
        async with self._pool.acquire() as conn:
            async with conn.transaction():
                tag = await conn.execute(
                    """
                    UPDATE pending_releases
                       SET status = $1, superseded_by = $2
                     WHERE id = $3 AND status = $4
                    """,
                    PendingStatus.SUPERSEDED.value,
                    str(new.id),
                    old_id,
                    PendingStatus.PENDING.value,
                )
                if _rows_from_tag(tag) != 1:
                    return None
                row = await conn.fetchrow(_INSERT_PENDING_SQL, *_pending_params(new))
        logger.info("pending release %s superseded by %s: %s", old_id, new.id, new.title)
        return _pending_from_row(row)

    async def list_due(self, now: datetime, limit: int = 50) -> list[PendingRelease]:
        """Return pending rows whose ``process_at`` has passed, oldest first."""
        rows = await self._pool.fetch(
            """
            SELECT * FROM pending_releases
             WHERE status = $1
               AND process_at <= $2
             ORDER BY process_at ASC
             LIMIT $3
            """,
            PendingStatus.PENDING.value,
            now,
            limit,
        )
        return [_pending_from_row(row) for row in rows]

    async def list_by_status(self, status: PendingStatus, limit: int = 100) -> list[PendingRelease]:
        rows = await self._pool.fetch(
            "SELECT * FROM pending_releases WHERE status = $1 ORDER BY added_at DESC LIMIT $2",
            status.value,
            limit,
        )
        return [_pending_from_row(row) for row in rows]

    @asynccontextmanager
    async def claim(self, pending_id: uuid.UUID) -> AsyncIterator[PendingRelease | None]:
        """Claim a due row for grabbing inside a transaction.

        Yields the grabbed row, or None if another worker already moved it out
        of ``pending``. An exception raised by the caller's block rolls the
        claim back so the row stays pending.
        """
        async with self._pool.acquire() as conn:
            async with conn.transaction():
                row = await conn.fetchrow(
                    """
                    UPDATE pending_releases
                       SET status = $1
                     WHERE id = $2 AND status = $3
                    RETURNING *
                    """,
                    PendingStatus.GRABBED.value,
                    pending_id,
                    PendingStatus.PENDING.value,
                )
                yield _pending_from_row(row) if row is not None else None

    async def expire(self, pending_id: uuid.UUID) -> bool:
        """Expire one pending row. False if it was no longer pending."""
        tag = await self._pool.execute(
            "UPDATE pending_releases SET status = $1 WHERE id = $2 AND status = $3",
            PendingStatus.EXPIRED.value,
            pending_id,
            PendingStatus.PENDING.value,
        )
        return _rows_from_tag(tag) == 1

    async def expire_for_target(self, target_key: str) -> int:
        """Expire the live pending row(s) of a media target."""
        tag = await self._pool.execute(
            "UPDATE pending_releases SET status = $1 WHERE target_key = $2 AND status = $3",
            PendingStatus.EXPIRED.value,
            target_key,
            PendingStatus.PENDING.value,
        )
        return _rows_from_tag(tag)

    async def count_by_status(self, status: PendingStatus) -> int:
        val = await self._pool.fetchval(
            "SELECT count(*) FROM pending_releases WHERE status = $1",
            status.value,
        )
        return int(val)


class BlocklistRepository:
    """CRUD operations for the ``blocklist`` table."""

    def __init__(self, pool: asyncpg.Pool) -> None:
        self._pool = pool

    async def insert(self, entry: BlocklistEntry) -> BlocklistEntry:
        row = await self._pool.fetchrow(
            """
            INSERT INTO blocklist (id, title, info_hash, indexer_id, movie_id, series_id, episode_ids,
                                   reason, message, source_title, quality, size, protocol,
                                   created_at, expires_at)
            VALUES ($1, $2, $3, $4, $5, $6, $7::jsonb, $8, $9, $10, $11::jsonb, $12, $13, $14, $15)
            RETURNING *
            """,
            entry.id,
            entry.title,
            entry.info_hash,
            entry.indexer_id,
            entry.movie_id,
            entry.series_id,
            entry.episode_ids,
            entry.reason.value,
            entry.message,
            entry.source_title,
            entry.quality.model_dump(mode="json") if entry.quality else None,
            entry.size,
            entry.protocol.value if entry.protocol else None,
            entry.created_at,
            entry.expires_at,
        )
        logger.info("blocklisted %s (%s): %s", entry.id, entry.reason.value, entry.title)
        return _blocklist_from_row(row)

    async def delete(self, entry_id: uuid.UUID) -> bool:
        tag = await self._pool.execute("DELETE FROM blocklist WHERE id = $1", entry_id)
        return _rows_from_tag(tag) > 0

    async def list_active_for_target(self, target: MediaTarget, now: datetime) -> list[BlocklistEntry]:
        """Return unexpired entries scoped to the target, plus global entries."""
        rows = await self._pool.fetch(
            """
            SELECT * FROM blocklist
             WHERE (expires_at IS NULL OR expires_at > $1)
               AND (
                    ($2::text IS NOT NULL AND movie_id = $2)
                    OR ($3::text IS NOT NULL AND series_id = $3)
                    OR (movie_id IS NULL AND series_id IS NULL)
               )
             ORDER BY created_at ASC
            """,
            now,
            target.movie_id,
            target.series_id,
        )
        return [_blocklist_from_row(row) for row in rows]

    async def list_active_global(self, now: datetime) -> list[BlocklistEntry]:
        """Return unexpired entries with no movie or series scope."""
        rows = await self._pool.fetch(
            """
            SELECT * FROM blocklist
             WHERE (expires_at IS NULL OR expires_at > $1)
               AND movie_id IS NULL AND series_id IS NULL
             ORDER BY created_at ASC
            """,
            now,
        )
        return [_blocklist_from_row(row) for row in rows]

    async def purge_expired(self, now: datetime) -> int:
        """Delete entries whose expiry has passed."""
        tag = await self._pool.execute(
            "DELETE FROM blocklist WHERE expires_at IS NOT NULL AND expires_at <= $1",
            now,
        )
        count = _rows_from_tag(tag)
        if count:
            logger.info("purged %d expired blocklist entries", count)
        return count


# ── Model → parameter helpers ──────────────────────────────────

_INSERT_PENDING_SQL = """
    INSERT INTO pending_releases (id, title, info_hash, indexer_id, download_url, magnet_url,
                                  movie_id, series_id, episode_ids, season_number, target_key,
                                  score, size, protocol, quality, delay_profile_id,
                                  added_at, process_at, status, superseded_by)
    VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9::jsonb, $10, $11, $12, $13, $14, $15::jsonb,
            $16, $17, $18, $19, $20)
    RETURNING *
"""


def _profile_params(profile: ScoringProfile) -> list[Any]:
    return [
        profile.id,
        profile.name,
        profile.description,
        profile.tags,
        profile.upgrades_allowed,
        profile.min_score,
        profile.upgrade_until_score,
        profile.min_score_increment,
        profile.resolution_order,
        profile.format_scores,
        [p.value for p in profile.allowed_protocols] if profile.allowed_protocols is not None else None,
        profile.movie_min_size_gb,
        profile.movie_max_size_gb,
        profile.episode_min_size_mb,
        profile.episode_max_size_mb,
        profile.pack_preference.model_dump(mode="json"),
        profile.is_default,
    ]


def _pending_params(pending: PendingRelease) -> list[Any]:
    return [
        pending.id,
        pending.title,
        pending.info_hash,
        pending.indexer_id,
        pending.download_url,
        pending.magnet_url,
        pending.movie_id,
        pending.series_id,
        pending.episode_ids,
        pending.season_number,
        pending.target.key,
        pending.score,
        pending.size,
        pending.protocol.value,
        pending.quality.model_dump(mode="json") if pending.quality else None,
        pending.delay_profile_id,
        pending.added_at,
        pending.process_at,
        pending.status.value,
        pending.superseded_by,
    ]


# ── Row → Model helpers ────────────────────────────────────────


def _decode_json(data: dict[str, Any], *keys: str) -> dict[str, Any]:
    """Decode jsonb columns that arrive as text (no codec registered)."""
    for key in keys:
        value = data.get(key)
        if isinstance(value, str):
            data[key] = json.loads(value)
    return data


def _profile_from_row(row: asyncpg.Record) -> ScoringProfile:
    """Convert an asyncpg Record to a ScoringProfile model."""
    data = _decode_json(
        dict(row),
        "tags",
        "resolution_order",
        "format_scores",
        "allowed_protocols",
        "pack_preference",
    )
    if data.get("tags") is None:
        data["tags"] = []
    if data.get("description") is None:
        data["description"] = ""
    return ScoringProfile.model_validate(data)


def _format_from_row(row: asyncpg.Record) -> CustomFormat:
    """Convert an asyncpg Record to a CustomFormat model."""
    data = _decode_json(dict(row), "tags", "conditions")
    data["tags"] = data.get("tags") or []
    data["conditions"] = data.get("conditions") or []
    if data.get("description") is None:
        data["description"] = ""
    return CustomFormat.model_validate(data)


def _delay_profile_from_row(row: asyncpg.Record) -> DelayProfile:
    """Convert an asyncpg Record to a DelayProfile model."""
    data = _decode_json(dict(row), "quality_delays", "tags")
    data["tags"] = data.get("tags") or []
    return DelayProfile.model_validate(data)


def _pending_from_row(row: asyncpg.Record) -> PendingRelease:
    """Convert an asyncpg Record to a PendingRelease model."""
    data = _decode_json(dict(row), "episode_ids", "quality")
    data["episode_ids"] = data.get("episode_ids") or []
    data["status"] = PendingStatus(data["status"])
    # target_key is derived from the target columns
    data.pop("target_key", None)
    return PendingRelease.model_validate(data)


def _blocklist_from_row(row: asyncpg.Record) -> BlocklistEntry:
    """Convert an asyncpg Record to a BlocklistEntry model."""
    data = _decode_json(dict(row), "episode_ids", "quality")
    data["episode_ids"] = data.get("episode_ids") or []
    return BlocklistEntry.model_validate(data)


def _rows_from_tag(tag: str) -> int:
    """Parse an asyncpg command tag such as ``UPDATE 3`` into a row count."""
    parts = tag.split()
    if len(parts) < 2:
        return 0
    try:
        return int(parts[-1])
    except ValueError:
        return 0
