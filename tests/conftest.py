"""Shared pytest fixtures for the selectarr test suite."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from selectarr.config import Settings
from selectarr.shared.enums import ConditionType, FormatCategory, ReleaseProtocol
from selectarr.shared.models import (
    CustomFormat,
    EpisodeInfo,
    FormatCondition,
    ParsedRelease,
    ReleaseResult,
    ScoringProfile,
)


def _mock_pool() -> tuple[MagicMock, AsyncMock]:
    """Build a mock asyncpg pool whose ``acquire()`` and ``transaction()`` work as context managers.

    Returns the pool and the connection it hands out.
    """
    conn = AsyncMock()
    tx = MagicMock()
    tx.__aenter__ = AsyncMock(return_value=None)
    tx.__aexit__ = AsyncMock(return_value=False)
    conn.transaction = MagicMock(return_value=tx)

    acquire = MagicMock()
    acquire.__aenter__ = AsyncMock(return_value=conn)
    acquire.__aexit__ = AsyncMock(return_value=False)

    pool = MagicMock()
    pool.acquire = MagicMock(return_value=acquire)
    pool.fetch = AsyncMock(return_value=[])
    pool.fetchrow = AsyncMock(return_value=None)
    pool.fetchval = AsyncMock(return_value=0)
    pool.execute = AsyncMock(return_value="UPDATE 0")
    return pool, conn


def _make_format(
    format_id: str,
    kind: ConditionType,
    value: str | None,
    *,
    category: FormatCategory = FormatCategory.OTHER,
    **extra: Any,
) -> CustomFormat:
    return CustomFormat(
        id=format_id,
        name=extra.pop("name", format_id),
        category=category,
        conditions=[FormatCondition(name=format_id, type=kind, value=value)],
        **extra,
    )


@pytest.fixture()
def pool_and_conn() -> tuple[MagicMock, AsyncMock]:
    return _mock_pool()


@pytest.fixture()
def make_format() -> Callable[..., CustomFormat]:
    return _make_format


@pytest.fixture()
def settings() -> Settings:
    """Return a Settings instance with test defaults."""
    return Settings(
        db_host="localhost",
        db_port=5432,
        db_user="test",
        db_password="test",
        db_name="selectarr_test",
        redis_url="redis://localhost:6379/1",
    )


@pytest.fixture()
def formats() -> list[CustomFormat]:
    return [
        _make_format("res-1080p", ConditionType.RESOLUTION, "1080p", category=FormatCategory.RESOLUTION),
        _make_format("res-2160p", ConditionType.RESOLUTION, "2160p", category=FormatCategory.RESOLUTION),
        _make_format("src-bluray", ConditionType.SOURCE, "bluray"),
        _make_format("cam", ConditionType.SOURCE, "cam", category=FormatCategory.BANNED, name="CAM"),
    ]


@pytest.fixture()
def profile() -> ScoringProfile:
    return ScoringProfile(
        id="default",
        name="Default",
        is_default=True,
        format_scores={"res-1080p": 8000, "res-2160p": 12000, "src-bluray": 2000, "cam": -5000},
    )


@pytest.fixture()
def movie_parsed() -> ParsedRelease:
    return ParsedRelease(
        original_title="Some.Movie.2024.1080p.BluRay.x264-GRP",
        clean_title="Some Movie",
        year=2024,
        resolution="1080p",
        source="bluray",
        codec="x264",
        release_group="GRP",
    )


@pytest.fixture()
def season_pack_parsed() -> ParsedRelease:
    return ParsedRelease(
        original_title="Some.Show.S01.1080p.WEB-DL.x264-GRP",
        clean_title="Some Show",
        resolution="1080p",
        source="webdl",
        codec="x264",
        release_group="GRP",
        episode=EpisodeInfo(season=1, is_season_pack=True),
    )


@pytest.fixture()
def movie_release(movie_parsed: ParsedRelease) -> ReleaseResult:
    return ReleaseResult(
        title=movie_parsed.original_title,
        size=8 * 1024**3,
        protocol=ReleaseProtocol.TORRENT,
        indexer_id="idx-1",
        indexer_name="TestIndexer",
        magnet_url="magnet:?xt=urn:btih:abc",
        info_hash="ABCDEF0123",
        seeders=25,
        leechers=3,
        parsed=movie_parsed,
    )


@pytest.fixture()
def mock_redis() -> AsyncMock:
    """Mock async Redis client."""
    mock = AsyncMock()
    mock.rpush = AsyncMock(return_value=1)
    mock.llen = AsyncMock(return_value=0)
    return mock
