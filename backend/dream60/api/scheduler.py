# dream60/api/scheduler.py
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from dream60.api.auth import get_current_user
from dream60.api.websocket import broadcast_auctions
from dream60.core.clock import Clock, get_clock
from dream60.core.database import get_db
from dream60.core.redis import get_redis
from dream60.models.user import User
from dream60.schemas.auction import BidCreate, auction_payload, daily_payload
from dream60.services import bidding_service, history_service, scheduler_service

router = APIRouter()


@router.get("/status")
async def scheduler_status(
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """Server time, the current live auction, the next one and today's schedule."""
    data = await scheduler_service.get_scheduler_status(db, clock.now())
    return {"success": True, "message": "Scheduler status", "data": data}


@router.get("/daily-auction")
async def today_daily_auction(
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    daily = await scheduler_service.get_today_daily_auction(db, clock.now())
    return {"success": True, "message": "Today's daily auction", "data": daily_payload(daily)}


@router.get("/hourly-auctions")
async def today_hourly_auctions(
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    auctions = await scheduler_service.get_today_hourly_auctions(db, clock.now())
    return {
        "success": True,
        "message": f"{len(auctions)} hourly auctions today",
        "data": [auction_payload(a) for a in auctions],
    }


@router.get("/hourly-auctions/daily/{daily_auction_id}")
async def hourly_auctions_by_daily(daily_auction_id: str, db: AsyncSession = Depends(get_db)):
    auctions = await scheduler_service.get_hourly_auctions_by_daily(db, daily_auction_id)
    return {
        "success": True,
        "message": f"{len(auctions)} hourly auctions",
        "data": [auction_payload(a) for a in auctions],
    }


@router.get("/live-auction")
async def live_auction(
    db: AsyncSession = Depends(get_db),
    redis: Redis = Depends(get_redis),
    clock: Clock = Depends(get_clock),
):
    data = await bidding_service.get_live_auction(db, clock.now(), redis)
    return {"success": True, "message": "Live auction", "data": data}


@router.post("/place-bid")
async def place_bid(
    bid_data: BidCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    redis: Redis = Depends(get_redis),
    clock: Clock = Depends(get_clock),
):
    """
    Place a bid in the current round.

    Request body:
    {
        "hourly_auction_id": "uuid-here",
        "auction_value": 1500
    }
    """
    result = await bidding_service.place_bid(
        db,
        bid_data.hourly_auction_id,
        str(current_user.id),
        current_user.username,
        bid_data.auction_value,
        clock.now(),
        expected_round=bid_data.round_number,
    )
    await db.commit()

    await bidding_service.invalidate_live_cache(redis)
    await broadcast_auctions(db, [bid_data.hourly_auction_id])
    return {"success": True, "message": "Bid placed successfully", "data": result}


@router.get("/hourly-auctions/{hourly_auction_id}/leaderboard")
async def auction_leaderboard(
    hourly_auction_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    data = await bidding_service.get_leaderboard(
        db, hourly_auction_id, str(current_user.id), is_admin=current_user.is_admin
    )
    return {"success": True, "message": "Leaderboard", "data": data}


@router.get("/hourly-auctions/{hourly_auction_id}/participation")
async def check_participation(
    hourly_auction_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    data = await bidding_service.check_participation(db, hourly_auction_id, str(current_user.id))
    return {"success": True, "message": "Participation status", "data": data}


@router.get("/hourly-auctions/{hourly_auction_id}")
async def hourly_auction_by_id(hourly_auction_id: str, db: AsyncSession = Depends(get_db)):
    data = await bidding_service.get_hourly_auction_summary(db, hourly_auction_id)
    return {"success": True, "message": "Hourly auction", "data": data}


@router.get("/user-history")
async def user_auction_history(
    limit: Optional[int] = Query(None, ge=1, le=500),
    is_winner: Optional[bool] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    user_id = str(current_user.id)
    history = await history_service.get_user_history(
        db,
        user_id,
        clock.now(),
        limit=limit,
        is_winner=is_winner,
        start_date=start_date,
        end_date=end_date,
    )
    stats = await history_service.get_user_stats(db, user_id)
    return {
        "success": True,
        "message": f"{len(history)} auctions",
        "data": {"history": history, "stats": stats},
    }


@router.get("/auction-details/{hourly_auction_id}")
async def auction_details(
    hourly_auction_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    data = await bidding_service.get_auction_details(
        db, hourly_auction_id, str(current_user.id), clock.now()
    )
    return {"success": True, "message": "Auction details", "data": data}
