# dream60/api/admin.py
import logging

from fastapi import APIRouter, Depends
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from dream60.api.auth import get_current_admin
from dream60.api.websocket import broadcast_auction_update, broadcast_auctions
from dream60.core.clock import Clock, get_clock
from dream60.core.database import get_db
from dream60.core.redis import get_redis
from dream60.models.user import User
from dream60.schemas.auction import (
    MasterAuctionCreate,
    MasterAuctionOut,
    MasterAuctionUpdate,
    StatusUpdate,
)
from dream60.services import bidding_service, scheduler_service

logger = logging.getLogger(__name__)

router = APIRouter()


def _master_payload(master) -> dict:
    return MasterAuctionOut.model_validate(master).model_dump(mode="json")


# ==================== Master auctions ====================


@router.post("/master-auctions")
async def create_master_auction(
    master_data: MasterAuctionCreate,
    current_user: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
):
    """
    Create the master auction template (Admin only).

    Creating an active master deactivates every other master.
    """
    master = await scheduler_service.create_master_auction(
        db,
        master_data.daily_auction_config,
        created_by=str(current_user.id),
        is_active=master_data.is_active,
    )
    return {
        "success": True,
        "message": "Master auction created successfully",
        "data": _master_payload(master),
    }


@router.get("/master-auctions")
async def list_master_auctions(
    current_user: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
):
    masters = await scheduler_service.list_master_auctions(db)
    return {
        "success": True,
        "message": f"{len(masters)} master auctions",
        "data": [_master_payload(m) for m in masters],
    }


@router.get("/master-auctions/{master_id}")
async def get_master_auction(
    master_id: str,
    current_user: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
):
    master = await scheduler_service.get_master_auction(db, master_id)
    return {"success": True, "message": "Master auction found", "data": _master_payload(master)}


@router.put("/master-auctions/{master_id}")
async def update_master_auction(
    master_id: str,
    master_data: MasterAuctionUpdate,
    current_user: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
):
    master = await scheduler_service.update_master_auction(
        db,
        master_id,
        configs=master_data.daily_auction_config,
        is_active=master_data.is_active,
    )
    return {
        "success": True,
        "message": "Master auction updated successfully",
        "data": _master_payload(master),
    }


@router.delete("/master-auctions/{master_id}")
async def delete_master_auction(
    master_id: str,
    current_user: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
):
    await scheduler_service.delete_master_auction(db, master_id)
    return {"success": True, "message": "Master auction deleted successfully", "data": None}


# ==================== Manual triggers ====================


@router.post("/scheduler/create-daily")
async def trigger_create_daily(
    current_user: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """Create (or re-sync) today's daily auction and its hourly auctions."""
    result = await scheduler_service.create_daily_auction(
        db, clock.now(), created_by=str(current_user.id)
    )
    message = (
        "Daily auction already exists for today"
        if result["was_existing"]
        else "Daily auction created successfully"
    )
    return {"success": True, "message": message, "data": result}


@router.post("/scheduler/midnight-reset")
async def trigger_midnight_reset(
    current_user: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    result = await scheduler_service.midnight_reset_and_create(db, clock.now())
    return {"success": True, "message": "Midnight reset completed", "data": result}


@router.post("/scheduler/auto-activate")
async def trigger_auto_activate(
    current_user: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
    redis: Redis = Depends(get_redis),
    clock: Clock = Depends(get_clock),
):
    """Run one scheduler tick now."""
    result = await scheduler_service.auto_activate_auctions(db, clock.now())
    await db.commit()

    if result["changed"]:
        await bidding_service.invalidate_live_cache(redis)
        await broadcast_auctions(db, result["changed"])
    return {"success": True, "message": "Auto-activation completed", "data": result}


# ==================== Hourly auction operations ====================


@router.put("/hourly-auctions/{hourly_auction_id}/status")
async def update_hourly_auction_status(
    hourly_auction_id: str,
    status_data: StatusUpdate,
    current_user: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
    redis: Redis = Depends(get_redis),
    clock: Clock = Depends(get_clock),
):
    payload = await scheduler_service.update_hourly_auction_status(
        db, hourly_auction_id, status_data.status, clock.now()
    )
    await db.commit()

    await bidding_service.invalidate_live_cache(redis)
    await broadcast_auction_update(payload)
    return {
        "success": True,
        "message": f"Hourly auction status updated to {payload['status']}",
        "data": payload,
    }


@router.post("/hourly-auctions/{hourly_auction_id}/force-complete")
async def force_complete_auction(
    hourly_auction_id: str,
    current_user: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
    redis: Redis = Depends(get_redis),
    clock: Clock = Depends(get_clock),
):
    payload = await scheduler_service.force_complete_auction(db, hourly_auction_id, clock.now())
    await db.commit()

    await bidding_service.invalidate_live_cache(redis)
    await broadcast_auction_update(payload)
    logger.info(f"✓ {current_user.username} force-completed {hourly_auction_id}")
    return {"success": True, "message": "Auction force-completed", "data": payload}


@router.post("/hourly-auctions/{hourly_auction_id}/mark-winners")
async def mark_auction_winners(
    hourly_auction_id: str,
    current_user: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    result = await scheduler_service.mark_auction_winners(db, hourly_auction_id, clock.now())
    return {"success": True, "message": "Winners marked in auction history", "data": result}

