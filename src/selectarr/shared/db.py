"""asyncpg connection pool factory."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

import asyncpg

from selectarr.shared.exceptions import DatabaseError

if TYPE_CHECKING:
    from selectarr.config import Settings


async def init_connection(conn: asyncpg.Connection) -> None:
    """Decode jsonb columns to Python objects on every pooled connection."""
    await conn.set_type_codec(
        "jsonb",
        encoder=json.dumps,
        decoder=json.loads,
        schema="pg_catalog",
    )


async def create_pool(settings: Settings) -> asyncpg.Pool:
    """Create and return an asyncpg connection pool."""
    try:
        pool: asyncpg.Pool = await asyncpg.create_pool(
            dsn=settings.dsn,
            min_size=settings.db_pool_min_size,
            max_size=settings.db_pool_max_size,
            init=init_connection,
        )
    except (OSError, asyncpg.PostgresError) as exc:
        target = f"{settings.db_host}:{settings.db_port}/{settings.db_name}"
        raise DatabaseError(f"cannot connect to {target}: {exc}") from exc
    return pool
