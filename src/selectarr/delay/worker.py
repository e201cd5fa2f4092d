"""Periodic worker for the pending release scheduler."""

from __future__ import annotations

import asyncio
import logging

from selectarr.blocklist.checker import BlocklistService
from selectarr.config import Settings, get_settings
from selectarr.delay.dispatcher import RedisGrabDispatcher
from selectarr.delay.scheduler import PendingReleaseScheduler
from selectarr.shared.config_store import ConfigStore
from selectarr.shared.db import create_pool
from selectarr.shared.queue import TaskQueue
from selectarr.shared.redis_client import create_redis
from selectarr.shared.repository import PendingReleaseRepository

logger = logging.getLogger(__name__)


async def run_tick(
    scheduler: PendingReleaseScheduler,
    blocklist: BlocklistService | None = None,
    queue: TaskQueue | None = None,
) -> dict[str, int]:
    """Run one scheduler tick, then optional blocklist housekeeping and queue depth."""
    stats = await scheduler.tick()
    if blocklist is not None:
        stats["blocklist_purged"] = await blocklist.purge_expired()
    if queue is not None:
        stats["grab_queue_depth"] = await queue.length()
    return stats


async def run_loop(settings: Settings, *, interval: int | None = None) -> None:
    """Run the pending release scheduler loop.

    Args:
        settings: Application settings.
        interval: Seconds between ticks (default: ``scheduler_interval_seconds``).
    """
    interval = interval if interval is not None else settings.scheduler_interval_seconds
    pool = await create_pool(settings)
    redis = await create_redis(settings)

    try:
        store = ConfigStore.from_pool(pool, blocklist_ttl=settings.blocklist_cache_ttl_seconds)
        queue = TaskQueue(redis=redis, queue_name=settings.queue_grab)
        scheduler = PendingReleaseScheduler(
            pending_repo=PendingReleaseRepository(pool),
            store=store,
            dispatcher=RedisGrabDispatcher(queue),
            batch_size=settings.scheduler_batch_size,
        )
        blocklist = BlocklistService(store) if settings.blocklist_purge_expired else None

        logger.info("pending release scheduler started (interval=%ds)", interval)

        while True:
            try:
                stats = await run_tick(scheduler, blocklist, queue)
                logger.info("tick result: %s", stats)
            except Exception as exc:
                logger.exception("tick error: %s", exc)
            await asyncio.sleep(interval)

    finally:
        await redis.aclose()
        await pool.close()


def main() -> None:
    """Entry point for ``python -m selectarr.delay.worker``."""
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    settings = get_settings()
    asyncio.run(run_loop(settings))


if __name__ == "__main__":
    main()
