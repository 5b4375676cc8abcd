"""
Integration Tests for the background scheduler ticks
"""
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest
from redis.exceptions import LockNotOwnedError

from dream60.core.config import settings
from dream60.core.enums import AuctionStatus
from dream60.services import bidding_service, replica_sync, scheduler_service
from dream60.tasks import scheduler_jobs

from tests.helpers import (
    AUCTION_DAY,
    FrozenClock,
    add_participant,
    at,
    make_player,
    seed_daily,
    slot_config,
)


@pytest.fixture
def job_clock(monkeypatch) -> FrozenClock:
    frozen = FrozenClock(at(9, 1))
    monkeypatch.setattr(scheduler_jobs, "clock", frozen)
    return frozen


async def seed(session_factory, *configs, now=None):
    async with session_factory() as db:
        daily, hourly = await seed_daily(db, *configs, now=now)
        await db.commit()
    return daily, hourly


class TestRunLocked:
    async def test_held_lock_skips_the_job(self, session_factory, redis):
        redis.lock.return_value.acquire.return_value = False
        job = AsyncMock(return_value={"ran": True})

        result = await scheduler_jobs.run_locked("test-job", job, session_factory, redis)

        assert result is None
        job.assert_not_awaited()
        redis.lock.return_value.release.assert_not_awaited()

    async def test_job_runs_and_releases_the_lock(self, session_factory, redis):
        job = AsyncMock(return_value={"ran": True})

        result = await scheduler_jobs.run_locked("test-job", job, session_factory, redis)

        assert result == {"ran": True}
        redis.lock.assert_called_once_with(
            "lock:test-job", timeout=settings.SCHEDULER_LOCK_TTL_SECONDS, blocking=False
        )
        redis.lock.return_value.release.assert_awaited_once()

    async def test_failing_job_still_releases_the_lock(self, session_factory, redis):
        job = AsyncMock(side_effect=RuntimeError("boom"))

        with pytest.raises(RuntimeError):
            await scheduler_jobs.run_locked("test-job", job, session_factory, redis)

        redis.lock.return_value.release.assert_awaited_once()

    async def test_expired_lock_does_not_fail_the_job(self, session_factory, redis):
        redis.lock.return_value.release.side_effect = LockNotOwnedError("expired")
        job = AsyncMock(return_value={"ran": True})

        assert await scheduler_jobs.run_locked("test-job", job, session_factory, redis) == {"ran": True}

    async def test_runs_without_redis(self, session_factory):
        job = AsyncMock(return_value={"ran": True})

        assert await scheduler_jobs.run_locked("test-job", job, session_factory) == {"ran": True}


class TestTicks:
    async def test_auto_activate_tick_commits(self, session_factory, redis, job_clock):
        _, hourly = await seed(session_factory, slot_config(1, "09:00"))

        result = await scheduler_jobs.auto_activate_tick(session_factory, redis)

        assert result["activated"] == 1
        redis.delete.assert_awaited()
        async with session_factory() as db:
            auction = await replica_sync.load_hourly_auction(db, hourly[0].hourly_auction_id)
            assert auction.status == AuctionStatus.LIVE

    async def test_claim_queue_tick_with_nothing_pending(self, session_factory, redis, job_clock):
        result = await scheduler_jobs.claim_queue_tick(session_factory, redis)

        assert result == {"processed": 0, "advanced": 0, "expired": 0}

    async def test_midnight_tick_without_master(self, session_factory, redis, job_clock):
        job_clock.set(0, 0)

        result = await scheduler_jobs.midnight_tick(session_factory, redis)

        assert result == {"reset": {"daily_reset": 0, "hourly_completed": 0}, "created": None}

    async def test_midnight_tick_rolls_the_day(self, session_factory, redis, job_clock):
        yesterday = AUCTION_DAY - timedelta(days=1)
        await seed(session_factory, slot_config(1, "09:00"), now=at(0, 5, yesterday))
        job_clock.set(0, 0)

        result = await scheduler_jobs.midnight_tick(session_factory, redis)

        assert result["reset"]["daily_reset"] == 1
        assert result["created"]["daily_auction"]["daily_auction_code"] == "DA000002"
        async with session_factory() as db:
            daily = await scheduler_service.get_today_daily_auction(db, at(0, 0))
            assert daily.auction_date == AUCTION_DAY


class TestTickAgainstConcurrentBids:
    async def test_bid_committed_after_tick_read_is_kept(self, session_factory):
        _, hourly = await seed(session_factory, slot_config(1, "09:00"))
        auction_id = hourly[0].hourly_auction_id
        player = make_player()
        async with session_factory() as db:
            await scheduler_service.auto_activate_auctions(db, at(9, 1))
            auction = await replica_sync.load_hourly_auction(db, auction_id)
            await add_participant(db, auction, player, 10, at(9, 2))
            await db.commit()

        async with session_factory() as tick_db:
            stale = await replica_sync.load_hourly_auction(tick_db, auction_id)
            assert stale.get_rounds()[0].players_data == []

            async with session_factory() as bid_db:
                await bidding_service.place_bid(
                    bid_db, auction_id, player["id"], player["username"], 50, at(9, 14)
                )
                await bid_db.commit()

            await scheduler_service.auto_activate_auctions(tick_db, at(9, 15))
            await tick_db.commit()

        async with session_factory() as db:
            auction = await replica_sync.load_hourly_auction(db, auction_id)
            round_1 = auction.get_rounds()[0]
            assert round_1.bid_of(player["id"]).auction_placed_amount == 50
            assert auction.total_bids == 1
            [participant] = auction.get_participants()
            assert participant.is_eliminated is False
