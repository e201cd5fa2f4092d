#!/usr/bin/env python3
"""Insert a default scoring profile, starter custom formats and a delay profile."""

from __future__ import annotations

import asyncio
import logging

from selectarr.config import get_settings
from selectarr.shared.db import create_pool
from selectarr.shared.enums import ConditionType, FormatCategory
from selectarr.shared.models import CustomFormat, DelayProfile, FormatCondition, ScoringProfile
from selectarr.shared.repository import (
    CustomFormatRepository,
    DelayProfileRepository,
    ScoringProfileRepository,
)

logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
logger = logging.getLogger(__name__)

STARTER_FORMATS = [
    CustomFormat(
        id="res-2160p",
        name="2160p",
        category=FormatCategory.RESOLUTION,
        conditions=[FormatCondition(name="2160p", type=ConditionType.RESOLUTION, value="2160p")],
    ),
    CustomFormat(
        id="res-1080p",
        name="1080p",
        category=FormatCategory.RESOLUTION,
        conditions=[FormatCondition(name="1080p", type=ConditionType.RESOLUTION, value="1080p")],
    ),
    CustomFormat(
        id="res-720p",
        name="720p",
        category=FormatCategory.RESOLUTION,
        conditions=[FormatCondition(name="720p", type=ConditionType.RESOLUTION, value="720p")],
    ),
    CustomFormat(
        id="bluray-remux",
        name="BluRay Remux",
        category=FormatCategory.OTHER,
        conditions=[
            FormatCondition(name="BluRay", type=ConditionType.SOURCE, value="bluray"),
            FormatCondition(name="Remux", type=ConditionType.FLAG, value="remux"),
        ],
    ),
    CustomFormat(
        id="hdr-dv",
        name="Dolby Vision",
        category=FormatCategory.HDR,
        conditions=[FormatCondition(name="DV", type=ConditionType.HDR, value="dolby-vision")],
    ),
    CustomFormat(
        id="repack-proper",
        name="Repack/Proper",
        category=FormatCategory.ENHANCEMENT,
        contributes_enhancement_bonus=True,
        conditions=[FormatCondition(name="Proper or repack", type=ConditionType.PATTERN, value=r"\b(proper|repack)\b")],
    ),
    CustomFormat(
        id="cam",
        name="CAM",
        category=FormatCategory.BANNED,
        conditions=[FormatCondition(name="CAM source", type=ConditionType.SOURCE, value="cam")],
    ),
]

DEFAULT_PROFILE = ScoringProfile(
    id="balanced",
    name="Balanced",
    description="Prefers 1080p and 2160p, rejects CAM.",
    is_default=True,
    format_scores={
        "res-2160p": 12_000,
        "res-1080p": 8_000,
        "res-720p": 3_000,
        "bluray-remux": 6_000,
        "hdr-dv": 2_000,
        "repack-proper": 500,
        "cam": -10_000,
    },
    min_score_increment=100,
    episode_min_size_mb=100,
    episode_max_size_mb=8_000,
    movie_min_size_gb=0.5,
    movie_max_size_gb=80,
)

DEFAULT_DELAY = DelayProfile(id="default", name="Default", usenet_delay=60, torrent_delay=120)


async def seed() -> None:
    pool = await create_pool(get_settings())
    try:
        formats = CustomFormatRepository(pool)
        for custom_format in STARTER_FORMATS:
            await formats.save(custom_format)
        logger.info("seeded %d custom formats", len(STARTER_FORMATS))

        await ScoringProfileRepository(pool).save(DEFAULT_PROFILE)
        logger.info("seeded default scoring profile %s", DEFAULT_PROFILE.id)

        await DelayProfileRepository(pool).save(DEFAULT_DELAY)
        logger.info("seeded delay profile %s", DEFAULT_DELAY.id)
    finally:
        await pool.close()


def main() -> None:
    asyncio.run(seed())


if __name__ == "__main__":
    main()
