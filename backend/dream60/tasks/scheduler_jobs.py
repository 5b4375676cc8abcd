# dream60/tasks/scheduler_jobs.py
"""
Background scheduler jobs.

Three loops run inside the API process:

    auto-activate   every SCHEDULER_TICK_SECONDS, walks hourly auctions through
                    their lifecycle
    claim queue     every CLAIM_QUEUE_TICK_SECONDS, advances expired claim
                    windows, then expires what is left over
    midnight        once per IST day, closes yesterday and creates today

Each tick takes a Redis lock so only one worker runs it when the API is
scaled out.
"""

import asyncio
import logging
from typing import Awaitable, Callable

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from dream60.core.clock import clock
from dream60.core.config import settings
from dream60.core.database import AsyncSessionLocal
from dream60.core.exceptions import AuctionError
from dream60.core.redis import RedisService, redis_client
from dream60.services import bidding_service, history_service, scheduler_service

logger = logging.getLogger(__name__)

AUTO_ACTIVATE_LOCK = "scheduler:auto-activate"
CLAIM_QUEUE_LOCK = "scheduler:claim-queue"
MIDNIGHT_LOCK = "scheduler:midnight"

Job = Callable[[AsyncSession], Awaitable[dict]]


def _redis():
    return redis_client.get_client() if redis_client.is_connected else None


async def run_locked(
    name: str,
    job: Job,
    session_factory: async_sessionmaker = AsyncSessionLocal,
    redis=None,
) -> dict | None:
    """
    Run a job in its own committed session under a Redis lock.

    Returns None when another worker holds the lock.
    """
    service = RedisService(redis) if redis is not None else None
    lock = None
    if service is not None:
        lock = await service.acquire_lock(name, settings.SCHEDULER_LOCK_TTL_SECONDS)
        if lock is None:
            logger.debug(f"Skipping {name}: lock held by another worker")
            return None

    try:
        async with session_factory() as db:
            try:
                result = await job(db)
                await db.commit()
                return result
            except Exception:
                await db.rollback()
                raise
    finally:
        if lock is not None:
            await service.release_lock(lock)


async def auto_activate_tick(
    session_factory: async_sessionmaker = AsyncSessionLocal, redis=None
) -> dict | None:
    async def job(db: AsyncSession) -> dict:
        result = await scheduler_service.auto_activate_auctions(db, clock.now())
        if result["changed"]:
            await db.commit()
            await bidding_service.invalidate_live_cache(redis)
            from dream60.api.websocket import broadcast_auctions

            await broadcast_auctions(db, result["changed"])
        return result

    return await run_locked(AUTO_ACTIVATE_LOCK, job, session_factory, redis)


async def claim_queue_tick(
    session_factory: async_sessionmaker = AsyncSessionLocal, redis=None
) -> dict | None:
    async def job(db: AsyncSession) -> dict:
        now = clock.now()
        result = await history_service.process_claim_queues(db, now)
        result["expired"] = await history_service.expire_unclaimed_prizes(db, now)
        return result

    return await run_locked(CLAIM_QUEUE_LOCK, job, session_factory, redis)


async def midnight_tick(
    session_factory: async_sessionmaker = AsyncSessionLocal, redis=None
) -> dict | None:
    async def job(db: AsyncSession) -> dict:
        now = clock.now()
        reset = await scheduler_service.reset_daily_auctions(db, now)
        try:
            created = await scheduler_service.create_daily_auction(db, now)
        except AuctionError as e:
            logger.warning(f"⚠ Daily auction not created: {e.message}")
            created = None
        return {"reset": reset, "created": created}

    return await run_locked(MIDNIGHT_LOCK, job, session_factory, redis)


async def _loop(name: str, tick: Callable[[], Awaitable[dict | None]], interval: int) -> None:
    logger.info(f"✓ {name} task started (interval: {interval}s)")
    while True:
        try:
            result = await tick()
            if result and result.get("changed"):
                logger.info(f"✓ {name}: {len(result['changed'])} auctions updated")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            error_msg = str(e)
            if "QueuePool limit" in error_msg or "connection timed out" in error_msg:
                logger.warning(f"⚠ Connection pool exhausted in {name}, waiting {interval * 2}s: {e}")
                await asyncio.sleep(interval)
            else:
                logger.error(f"❌ Error in {name}: {e}", exc_info=True)
        await asyncio.sleep(interval)


async def auto_activate_task() -> None:
    await _loop(
        "Auction scheduler",
        lambda: auto_activate_tick(redis=_redis()),
        settings.SCHEDULER_TICK_SECONDS,
    )


async def claim_queue_task() -> None:
    await _loop(
        "Claim queue",
        lambda: claim_queue_tick(redis=_redis()),
        settings.CLAIM_QUEUE_TICK_SECONDS,
    )


async def midnight_task() -> None:
    logger.info("✓ Midnight reset task started")
    while True:
        delay = clock.seconds_until_midnight() + 1
        logger.info(f"Next midnight reset in {delay / 3600:.1f}h")
        await asyncio.sleep(delay)
        try:
            result = await midnight_tick(redis=_redis())
            logger.info(f"✓ Midnight reset done: {result}")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"❌ Error in midnight reset: {e}", exc_info=True)


async def ensure_today() -> None:
    """Create today's auctions on startup if the midnight job has not run yet."""
    try:
        async with AsyncSessionLocal() as db:
            result = await scheduler_service.create_daily_auction(db, clock.now())
            await db.commit()
            logger.info(
                f"✓ Today's daily auction ready (existing: {result['was_existing']}, "
                f"hourly: {result['hourly']})"
            )
    except AuctionError as e:
        logger.warning(f"⚠ Skipping daily auction creation: {e.message}")
    except Exception as e:
        logger.error(f"❌ Daily auction creation on startup failed: {e}")


def start_scheduler_tasks() -> list[asyncio.Task]:
    return [
        asyncio.create_task(ensure_today()),
        asyncio.create_task(auto_activate_task()),
        asyncio.create_task(claim_queue_task()),
        asyncio.create_task(midnight_task()),
    ]


async def stop_scheduler_tasks(tasks: list[asyncio.Task]) -> None:
    for task in tasks:
        task.cancel()
    for task in tasks:
        try:
            await task
        except asyncio.CancelledError:
            pass
    logger.info("✓ Scheduler tasks stopped")
