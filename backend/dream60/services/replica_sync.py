# dream60/services/replica_sync.py
"""
Daily replica synchronizer.

The hourly auction row is canonical. Each daily auction keeps a copy of every
slot's configuration together with its live state (status, participants,
rounds, winners) so the day can be read in one place. These functions copy
hourly changes into the matching daily slot.
"""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from dream60.core.enums import AuctionStatus, DailyAuctionStatus, RoundStatus
from dream60.models.auction import DailyAuction, HourlyAuction
from dream60.schemas.documents import AuctionRound, DailySlot, Participant, PlayerBid

logger = logging.getLogger(__name__)

DONE_STATUSES = (AuctionStatus.COMPLETED, AuctionStatus.CANCELLED)


async def load_hourly_auction(
    db: AsyncSession, hourly_auction_id: str, for_update: bool = False
) -> HourlyAuction | None:
    """
    Load an hourly auction by id.

    With `for_update` the row is locked and re-read from the database even if
    this session already holds it, so writers always start from the latest
    committed rounds and participants.
    """
    stmt = select(HourlyAuction).where(HourlyAuction.hourly_auction_id == hourly_auction_id)
    if for_update:
        await db.flush()
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def load_daily_auction(db: AsyncSession, daily_auction_id: str) -> DailyAuction | None:
    result = await db.execute(
        select(DailyAuction).where(DailyAuction.daily_auction_id == daily_auction_id)
    )
    return result.scalar_one_or_none()


def find_slot(slots: list[DailySlot], auction: HourlyAuction) -> DailySlot | None:
    """Match by hourly auction id, falling back to time slot + auction number."""
    for slot in slots:
        if slot.hourly_auction_id == auction.hourly_auction_id:
            return slot
    for slot in slots:
        if slot.time_slot == auction.time_slot and slot.auction_number == auction.auction_number:
            return slot
    return None


async def _daily_and_slots(
    db: AsyncSession, auction: HourlyAuction
) -> tuple[DailyAuction | None, list[DailySlot], DailySlot | None]:
    daily = await load_daily_auction(db, auction.daily_auction_id)
    if daily is None:
        logger.warning(
            f"⚠ Daily auction {auction.daily_auction_id} not found for {auction.hourly_auction_id}"
        )
        return None, [], None

    slots = daily.get_slots()
    slot = find_slot(slots, auction)
    if slot is None:
        logger.warning(
            f"⚠ No daily slot {auction.time_slot} (#{auction.auction_number}) "
            f"in {daily.daily_auction_code}"
        )
    return daily, slots, slot


async def sync_status(db: AsyncSession, auction: HourlyAuction) -> bool:
    """Mirror the hourly status (and the final snapshot once completed) into the daily slot."""
    daily, slots, slot = await _daily_and_slots(db, auction)
    if slot is None:
        return False

    status = AuctionStatus(auction.status)
    slot.status = status
    slot.hourly_auction_id = auction.hourly_auction_id

    if status == AuctionStatus.COMPLETED:
        slot.is_auction_completed = True
        slot.completed_at = auction.completed_at
        slot.top_winners = auction.get_winners()
        slot.participants = auction.get_participants()
        slot.rounds = auction.get_rounds()
        slot.total_participants = auction.total_participants
        slot.current_round = auction.current_round
        slot.total_bids = auction.total_bids
    elif status == AuctionStatus.CANCELLED:
        slot.completed_at = auction.completed_at

    daily.completed_auctions_count = sum(1 for s in slots if s.is_auction_completed)
    if slots and all(s.status in DONE_STATUSES for s in slots):
        daily.is_all_auctions_completed = True
        daily.status = DailyAuctionStatus.COMPLETED

    daily.set_slots(slots)
    logger.info(
        f"✓ Synced {auction.hourly_auction_code} status {status.value} "
        f"to {daily.daily_auction_code}"
    )
    return True


async def sync_bid(
    db: AsyncSession,
    auction: HourlyAuction,
    round_number: int,
    bid: PlayerBid,
    participant: Participant,
) -> bool:
    """Append a placed bid and the bidder's updated stats to the daily slot."""
    daily, slots, slot = await _daily_and_slots(db, auction)
    if slot is None:
        return False

    replica_round = next((r for r in slot.rounds if r.round_number == round_number), None)
    if replica_round is None:
        replica_round = AuctionRound(
            round_number=round_number,
            started_at=bid.auction_placed_time,
            status=RoundStatus.ACTIVE,
        )
        slot.rounds.append(replica_round)
        slot.rounds.sort(key=lambda r: r.round_number)

    if replica_round.bid_of(bid.player_id) is None:
        replica_round.players_data.append(bid)
        replica_round.total_participants = len(replica_round.players_data)

    for index, existing in enumerate(slot.participants):
        if existing.player_id == participant.player_id:
            slot.participants[index] = participant
            break
    else:
        slot.participants.append(participant)

    slot.total_bids += 1
    slot.current_round = round_number
    daily.set_slots(slots)
    return True


async def sync_participant(
    db: AsyncSession, auction: HourlyAuction, participant: Participant
) -> bool:
    """Add a newly joined participant to the daily slot and the day's totals."""
    daily, slots, slot = await _daily_and_slots(db, auction)
    if slot is None:
        return False

    if any(p.player_id == participant.player_id for p in slot.participants):
        return False

    slot.participants.append(participant)
    slot.total_participants = len(slot.participants)
    daily.total_participants_today += 1
    daily.total_revenue_today += participant.entry_fee
    daily.set_slots(slots)
    return True


async def sync_top_winners(db: AsyncSession, auction: HourlyAuction) -> bool:
    """Copy the hourly winners (with their claim state) into the daily slot."""
    daily, slots, slot = await _daily_and_slots(db, auction)
    if slot is None:
        return False

    slot.top_winners = auction.get_winners()
    daily.set_slots(slots)
    return True
