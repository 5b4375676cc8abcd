# dream60/services/scheduler_service.py
"""
Daily and hourly auction scheduling.

The master auction is the admin's template. Every day a daily auction is
replicated from it (one slot per configured time slot) and an hourly auction
is created for each slot. The minute tick then walks every hourly auction
through its lifecycle and applies the follow-ups each transition asks for.
"""

import logging
from datetime import datetime
from uuid import uuid4

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from dream60.core.config import settings
from dream60.core.enums import AuctionStatus, DailyAuctionStatus
from dream60.core.exceptions import BadRequestError, NotFoundError
from dream60.models.auction import DailyAuction, HourlyAuction, MasterAuction
from dream60.schemas.auction import auction_payload, daily_payload
from dream60.schemas.documents import DailySlot, SlotConfig, dump_documents
from dream60.services import history_service, lifecycle, replica_sync, round_engine
from dream60.services.sequence import next_daily_auction_code, next_hourly_auction_code

logger = logging.getLogger(__name__)

OPEN_STATUSES = (AuctionStatus.UPCOMING, AuctionStatus.LIVE)

PRODUCT_FIELDS = (
    "auction_name",
    "prize_value",
    "image_url",
    "product_description",
    "max_discount",
)


def is_operating_hours(now: datetime) -> bool:
    return settings.OPERATING_HOUR_START <= now.hour <= settings.OPERATING_HOUR_END


def is_schedulable_slot(time_slot: str) -> bool:
    """Only on-the-hour slots between the first and last slot hour are ticked."""
    hour, minute = round_engine.parse_time_slot(time_slot)
    return minute == 0 and settings.FIRST_SLOT_HOUR <= hour <= settings.LAST_SLOT_HOUR


# ==================== Tick ====================


async def apply_outcome(
    db: AsyncSession,
    auction: HourlyAuction,
    outcome: lifecycle.TickOutcome,
    now: datetime,
) -> None:
    """Persist the follow-ups of a lifecycle transition."""
    if outcome.status_changed:
        await replica_sync.sync_status(db, auction)
    elif outcome.early_completion:
        await replica_sync.sync_top_winners(db, auction)

    if outcome.history_action in (lifecycle.MARK_WINNERS, lifecycle.MARK_NON_WINNERS):
        await history_service.mark_winners_in_history(db, auction, now)
    elif outcome.history_action == lifecycle.CANCEL_ENTRIES:
        await history_service.cancel_entries(db, auction)

    await db.flush()


async def auto_activate_auctions(db: AsyncSession, now: datetime) -> dict:
    """
    Advance every open hourly auction to the state its slot calls for.

    Returns counts per transition and the ids of auctions that changed so the
    caller can invalidate caches and broadcast.
    """
    if not is_operating_hours(now):
        return {"skipped": True, "reason": "Outside operating hours", "changed": []}

    result = await db.execute(
        select(HourlyAuction.hourly_auction_id, HourlyAuction.auction_date, HourlyAuction.time_slot)
        .where(
            HourlyAuction.auction_date <= now.date(),
            HourlyAuction.status.in_(OPEN_STATUSES),
        )
        .order_by(HourlyAuction.auction_date, HourlyAuction.time_slot)
    )
    candidates = result.all()

    summary = {"activated": 0, "completed": 0, "cancelled": 0, "updated": 0, "changed": []}
    for auction_id, auction_date, time_slot in candidates:
        if auction_date == now.date() and not is_schedulable_slot(time_slot):
            continue

        # Bids and joins lock the same row, take it before rewriting rounds
        auction = await replica_sync.load_hourly_auction(db, auction_id, for_update=True)
        if auction is None or auction.status not in OPEN_STATUSES:
            continue

        outcome = lifecycle.tick(
            auction,
            now,
            join_window_minutes=settings.JOIN_WINDOW_MINUTES,
            max_winners=settings.MAX_WINNERS,
        )
        if not outcome.changed:
            continue

        await apply_outcome(db, auction, outcome, now)
        summary["changed"].append(auction.hourly_auction_id)

        if outcome.status_changed and outcome.status == AuctionStatus.LIVE:
            summary["activated"] += 1
            logger.info(f"✓ {auction.hourly_auction_code} ({auction.time_slot}) is now LIVE")
        elif outcome.status_changed and outcome.status == AuctionStatus.COMPLETED:
            summary["completed"] += 1
            logger.info(f"✓ {auction.hourly_auction_code} ({auction.time_slot}) completed")
        elif outcome.status_changed and outcome.status == AuctionStatus.CANCELLED:
            summary["cancelled"] += 1
            logger.info(f"⚠ {auction.hourly_auction_code} cancelled: {auction.claim_notes}")
        else:
            summary["updated"] += 1
            if outcome.early_completion:
                logger.info(
                    f"✓ {auction.hourly_auction_code} winners announced early "
                    f"in round {auction.current_round}"
                )

    return summary


# ==================== Daily / hourly creation ====================


async def get_active_master(db: AsyncSession) -> MasterAuction | None:
    result = await db.execute(
        select(MasterAuction)
        .where(MasterAuction.is_active == True)  # noqa: E712
        .order_by(MasterAuction.updated_at.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


def merge_slots(slots: list[DailySlot], configs: list[SlotConfig]) -> list[DailySlot]:
    """
    Re-apply master configs to a daily auction's slots.

    Matching is by auction number, then by time slot. Open slots take the new
    configuration and keep their identity and live state; finished slots are
    left untouched. Configs with no match become fresh UPCOMING slots.
    """
    by_number = {slot.auction_number: slot for slot in slots}
    by_time = {slot.time_slot: slot for slot in slots}
    used: set[str] = set()

    merged = []
    for config in configs:
        existing = by_number.get(config.auction_number) or by_time.get(config.time_slot)
        if existing is not None and existing.auction_id not in used:
            used.add(existing.auction_id)
            if existing.status in OPEN_STATUSES:
                merged.append(
                    DailySlot.model_validate({**existing.model_dump(), **config.model_dump()})
                )
            else:
                merged.append(existing)
        else:
            merged.append(DailySlot(**config.model_dump(), auction_id=str(uuid4())))

    # Finished slots dropped from the master still belong to the day
    for slot in slots:
        if slot.auction_id not in used and slot.status not in OPEN_STATUSES:
            merged.append(slot)

    return sorted(merged, key=lambda s: s.time_slot)


def _apply_product(auction: HourlyAuction, slot: SlotConfig) -> None:
    for field in PRODUCT_FIELDS:
        setattr(auction, field, getattr(slot, field))
    auction.product_images = dump_documents(slot.product_images)


def _apply_config(auction: HourlyAuction, slot: SlotConfig) -> None:
    _apply_product(auction, slot)
    auction.auction_number = slot.auction_number
    auction.time_slot = slot.time_slot
    auction.entry_fee = slot.entry_fee
    auction.min_entry_fee = slot.min_entry_fee
    auction.max_entry_fee = slot.max_entry_fee
    auction.fee_splits = slot.fee_splits.model_dump() if slot.fee_splits else None
    auction.round_count = slot.round_count
    auction.round_config = dump_documents(slot.round_config)
    auction.min_slots_criteria = slot.min_slots_criteria
    auction.min_slots_value = slot.min_slots_value
    auction.set_rounds(
        round_engine.round_schedule(
            auction.auction_date,
            slot.time_slot,
            slot.round_config,
            slot.round_count,
            settings.DEFAULT_ROUND_DURATION_MINUTES,
        )
    )


async def create_hourly_auctions(db: AsyncSession, daily: DailyAuction) -> dict:
    """Create (or refresh) one hourly auction per slot of a daily auction."""
    result = await db.execute(
        select(HourlyAuction).where(HourlyAuction.daily_auction_id == daily.daily_auction_id)
    )
    existing = result.scalars().all()
    by_id = {a.hourly_auction_id: a for a in existing}
    by_time = {a.time_slot: a for a in existing}

    counts = {"created": 0, "updated": 0, "skipped": 0}
    slots = daily.get_slots()
    for slot in slots:
        auction = by_id.get(slot.hourly_auction_id) or by_time.get(slot.time_slot)
        if auction is not None:
            if auction.status == AuctionStatus.LIVE:
                _apply_product(auction, slot)
                counts["updated"] += 1
            elif auction.status == AuctionStatus.UPCOMING:
                _apply_config(auction, slot)
                counts["updated"] += 1
            else:
                counts["skipped"] += 1
            slot.hourly_auction_id = auction.hourly_auction_id
            continue

        auction = HourlyAuction(
            hourly_auction_id=str(uuid4()),
            hourly_auction_code=await next_hourly_auction_code(db),
            daily_auction_id=daily.daily_auction_id,
            master_id=daily.master_id,
            auction_date=daily.auction_date,
            status=AuctionStatus.UPCOMING,
            current_round=1,
            participants=[],
            winners=[],
            total_participants=0,
            total_bids=0,
        )
        _apply_config(auction, slot)
        db.add(auction)
        slot.hourly_auction_id = auction.hourly_auction_id
        slot.status = AuctionStatus.UPCOMING
        counts["created"] += 1

    daily.set_slots(slots)
    await db.flush()

    logger.info(
        f"✓ Hourly auctions for {daily.daily_auction_code}: {counts['created']} created, "
        f"{counts['updated']} updated, {counts['skipped']} skipped"
    )
    return counts


async def create_daily_auction(db: AsyncSession, now: datetime, created_by: str = "system") -> dict:
    """
    Ensure today's daily auction and its hourly auctions exist.

    Safe to call repeatedly: existing auctions are re-synced with the master
    rather than duplicated.
    """
    master = await get_active_master(db)
    if master is None:
        raise NotFoundError("No active master auction found")

    configs = master.get_configs()
    today = now.date()

    result = await db.execute(
        select(DailyAuction).where(
            DailyAuction.is_active == True,  # noqa: E712
            DailyAuction.master_id == master.master_id,
        )
    )
    for daily in result.scalars().all():
        daily.set_slots(merge_slots(daily.get_slots(), configs))
        daily.total_auctions_per_day = len(daily.daily_auction_config)
        await create_hourly_auctions(db, daily)

    result = await db.execute(
        select(DailyAuction).where(
            DailyAuction.master_id == master.master_id,
            DailyAuction.auction_date == today,
        )
    )
    daily = result.scalar_one_or_none()
    if daily is not None:
        hourly = await create_hourly_auctions(db, daily)
        return {"daily_auction": daily_payload(daily), "was_existing": True, "hourly": hourly}

    slots = [DailySlot(**config.model_dump(), auction_id=str(uuid4())) for config in configs]
    daily = DailyAuction(
        daily_auction_id=str(uuid4()),
        daily_auction_code=await next_daily_auction_code(db),
        master_id=master.master_id,
        auction_date=today,
        created_by=created_by,
        is_active=True,
        status=DailyAuctionStatus.ACTIVE,
        total_auctions_per_day=len(slots),
        completed_auctions_count=0,
        total_participants_today=0,
        total_revenue_today=0,
    )
    daily.set_slots(sorted(slots, key=lambda s: s.time_slot))
    db.add(daily)
    await db.flush()

    hourly = await create_hourly_auctions(db, daily)
    logger.info(f"✓ Created daily auction {daily.daily_auction_code} for {today}")
    return {"daily_auction": daily_payload(daily), "was_existing": False, "hourly": hourly}


async def reset_daily_auctions(db: AsyncSession, now: datetime) -> dict:
    """Close out every daily and hourly auction from before today."""
    today = now.date()

    result = await db.execute(
        select(HourlyAuction).where(
            HourlyAuction.auction_date < today,
            HourlyAuction.status.in_(OPEN_STATUSES),
        )
    )
    stale_hourly = result.scalars().all()
    for auction in stale_hourly:
        auction.status = AuctionStatus.COMPLETED
        auction.completed_at = now
        await replica_sync.sync_status(db, auction)

    result = await db.execute(
        select(DailyAuction).where(
            DailyAuction.auction_date < today,
            DailyAuction.is_active == True,  # noqa: E712
        )
    )
    stale_daily = result.scalars().all()
    for daily in stale_daily:
        daily.is_active = False
        daily.status = DailyAuctionStatus.COMPLETED

    await db.flush()
    logger.info(
        f"✓ Reset {len(stale_daily)} daily and {len(stale_hourly)} hourly auctions before {today}"
    )
    return {"daily_reset": len(stale_daily), "hourly_completed": len(stale_hourly)}


async def midnight_reset_and_create(db: AsyncSession, now: datetime) -> dict:
    reset = await reset_daily_auctions(db, now)
    created = await create_daily_auction(db, now)
    return {"reset": reset, "created": created}


# ==================== Admin operations ====================


async def force_complete_auction(db: AsyncSession, hourly_auction_id: str, now: datetime) -> dict:
    auction = await replica_sync.load_hourly_auction(db, hourly_auction_id, for_update=True)
    if auction is None:
        raise NotFoundError("Hourly auction not found")
    if auction.status in lifecycle.TERMINAL_STATUSES:
        raise BadRequestError(f"Auction is already {auction.status.value}")

    outcome = lifecycle.force_complete(auction, now, max_winners=settings.MAX_WINNERS)
    await apply_outcome(db, auction, outcome, now)

    logger.info(
        f"✓ Force-completed {auction.hourly_auction_code} with {len(auction.winners)} winners"
    )
    return auction_payload(auction)


async def update_hourly_auction_status(
    db: AsyncSession, hourly_auction_id: str, status: str, now: datetime
) -> dict:
    try:
        new_status = AuctionStatus((status or "").upper())
    except ValueError:
        allowed = ", ".join(s.value for s in AuctionStatus)
        raise BadRequestError(f"Invalid status. Must be one of: {allowed}")

    auction = await replica_sync.load_hourly_auction(db, hourly_auction_id, for_update=True)
    if auction is None:
        raise NotFoundError("Hourly auction not found")

    auction.status = new_status
    if new_status == AuctionStatus.LIVE:
        auction.started_at = auction.started_at or now
    elif new_status in (AuctionStatus.COMPLETED, AuctionStatus.CANCELLED):
        auction.completed_at = now

    await replica_sync.sync_status(db, auction)
    await db.flush()
    logger.info(f"✓ {auction.hourly_auction_code} status set to {new_status.value}")
    return auction_payload(auction)


async def mark_auction_winners(db: AsyncSession, hourly_auction_id: str, now: datetime) -> dict:
    """Write an auction's recorded winners into the participants' history."""
    auction = await replica_sync.load_hourly_auction(db, hourly_auction_id)
    if auction is None:
        raise NotFoundError("Hourly auction not found")

    winners = auction.get_winners()
    if not winners:
        raise BadRequestError("No winners recorded for this auction")

    await history_service.mark_winners_in_history(db, auction, now)
    await replica_sync.sync_top_winners(db, auction)
    await db.flush()
    return {
        "hourly_auction_id": hourly_auction_id,
        "winners_marked": len(winners),
        "total_participants": auction.total_participants,
    }


# ==================== Master auctions ====================


async def list_master_auctions(db: AsyncSession) -> list[MasterAuction]:
    result = await db.execute(select(MasterAuction).order_by(MasterAuction.created_at.desc()))
    return list(result.scalars().all())


async def get_master_auction(db: AsyncSession, master_id: str) -> MasterAuction:
    result = await db.execute(select(MasterAuction).where(MasterAuction.master_id == master_id))
    master = result.scalar_one_or_none()
    if master is None:
        raise NotFoundError("Master auction not found")
    return master


def _check_unique_slots(configs: list[SlotConfig]) -> None:
    time_slots = [config.time_slot for config in configs]
    if len(time_slots) != len(set(time_slots)):
        raise BadRequestError("Each auction in the master config needs a distinct time slot")


async def _deactivate_other_masters(db: AsyncSession, keep: MasterAuction) -> None:
    for master in await list_master_auctions(db):
        if master is not keep and master.is_active:
            master.is_active = False


async def create_master_auction(
    db: AsyncSession, configs: list[SlotConfig], created_by: str, is_active: bool = True
) -> MasterAuction:
    _check_unique_slots(configs)
    master = MasterAuction(
        master_id=str(uuid4()),
        created_by=created_by,
        is_active=is_active,
    )
    master.set_configs(sorted(configs, key=lambda c: c.time_slot))
    db.add(master)
    await db.flush()
    if is_active:
        await _deactivate_other_masters(db, master)
    await db.flush()
    logger.info(f"✓ Master auction {master.master_id} created by {created_by}")
    return master


async def update_master_auction(
    db: AsyncSession,
    master_id: str,
    configs: list[SlotConfig] | None = None,
    is_active: bool | None = None,
) -> MasterAuction:
    master = await get_master_auction(db, master_id)
    if configs is not None:
        _check_unique_slots(configs)
        master.set_configs(sorted(configs, key=lambda c: c.time_slot))
    if is_active is not None:
        master.is_active = is_active
        if is_active:
            await _deactivate_other_masters(db, master)
    await db.flush()
    return master


async def delete_master_auction(db: AsyncSession, master_id: str) -> None:
    master = await get_master_auction(db, master_id)
    await db.delete(master)
    await db.flush()


# ==================== Queries ====================


async def get_today_hourly_auctions(db: AsyncSession, now: datetime) -> list[HourlyAuction]:
    result = await db.execute(
        select(HourlyAuction)
        .where(HourlyAuction.auction_date == now.date())
        .order_by(HourlyAuction.time_slot)
    )
    return list(result.scalars().all())


async def get_today_daily_auction(db: AsyncSession, now: datetime) -> DailyAuction:
    result = await db.execute(
        select(DailyAuction)
        .where(DailyAuction.auction_date == now.date())
        .order_by(DailyAuction.is_active.desc(), DailyAuction.created_at.desc())
        .limit(1)
    )
    daily = result.scalar_one_or_none()
    if daily is None:
        raise NotFoundError("No daily auction found for today")
    return daily


async def get_hourly_auctions_by_daily(
    db: AsyncSession, daily_auction_id: str
) -> list[HourlyAuction]:
    result = await db.execute(
        select(HourlyAuction)
        .where(HourlyAuction.daily_auction_id == daily_auction_id)
        .order_by(HourlyAuction.time_slot)
    )
    return list(result.scalars().all())


async def get_scheduler_status(db: AsyncSession, now: datetime) -> dict:
    auctions = await get_today_hourly_auctions(db, now)

    live = next((a for a in auctions if a.status == AuctionStatus.LIVE), None)
    upcoming = next(
        (
            a
            for a in auctions
            if a.status == AuctionStatus.UPCOMING
            and round_engine.slot_start(a.auction_date, a.time_slot) > now
        ),
        None,
    )

    counts = {status.value.lower(): 0 for status in AuctionStatus}
    for auction in auctions:
        counts[AuctionStatus(auction.status).value.lower()] += 1

    return {
        "server_time": now,
        "is_operating_hours": is_operating_hours(now),
        "scheduler_enabled": settings.SCHEDULER_ENABLED,
        "current_live_auction": auction_payload(live) if live else None,
        "next_upcoming_auction": auction_payload(upcoming) if upcoming else None,
        "today": {"date": now.date(), "total": len(auctions), **counts},
        "schedule": [
            {
                "hourly_auction_id": a.hourly_auction_id,
                "hourly_auction_code": a.hourly_auction_code,
                "time_slot": a.time_slot,
                "auction_name": a.auction_name,
                "status": a.status,
                "current_round": a.current_round,
                "total_participants": a.total_participants,
            }
            for a in auctions
        ],
    }
