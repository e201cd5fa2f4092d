#!/usr/bin/env python3
"""Apply numbered .sql files from migrations/ that have not run yet."""

from __future__ import annotations

import asyncio
import glob
import logging
import os

import asyncpg

from selectarr.config import get_settings

logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
logger = logging.getLogger(__name__)

MIGRATIONS_DIR = os.path.join(os.path.dirname(__file__), "..", "migrations")


async def run_migrations(dsn: str) -> list[str]:
    """Apply pending migrations, each in its own transaction. Returns applied names."""
    conn: asyncpg.Connection = await asyncpg.connect(dsn)
    newly_applied: list[str] = []
    try:
        await conn.execute("""
            CREATE TABLE IF NOT EXISTS _migrations (
                filename TEXT PRIMARY KEY,
                applied_at TIMESTAMPTZ NOT NULL DEFAULT now()
            )
            """)
        applied = {row["filename"] for row in await conn.fetch("SELECT filename FROM _migrations")}

        for path in sorted(glob.glob(os.path.join(MIGRATIONS_DIR, "*.sql"))):
            name = os.path.basename(path)
            if name in applied:
                logger.info("skip  %s", name)
                continue
            with open(path, encoding="utf-8") as f:
                sql = f.read()
            logger.info("apply %s", name)
            async with conn.transaction():
                await conn.execute(sql)
                await conn.execute("INSERT INTO _migrations (filename) VALUES ($1)", name)
            newly_applied.append(name)

        logger.info("migrations complete (%d applied)", len(newly_applied))
    finally:
        await conn.close()
    return newly_applied


def main() -> None:
    dsn = os.environ.get("SELECTARR_DSN") or get_settings().dsn
    asyncio.run(run_migrations(dsn))


if __name__ == "__main__":
    main()
