# dream60/services/history_service.py
"""
Per-user auction history and the prize-claim queue.

Winners are offered the prize one rank at a time. Rank 1 gets a claim
window as soon as winners are marked; when a window expires or the winner
cancels, the next rank gets a fresh window. After rank 3 (or when no next
winner exists) every pending claim expires.
"""

import logging
import re
from datetime import date, datetime, timedelta

from sqlalchemy import case, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from dream60.core.config import settings
from dream60.core.enums import (
    AuctionStatus,
    ClaimAdvanceReason,
    HistoryAuctionStatus,
    PrizeClaimStatus,
)
from dream60.core.exceptions import BadRequestError, ForbiddenError, NotFoundError
from dream60.models.auction import HourlyAuction
from dream60.models.history import AuctionHistory
from dream60.schemas.documents import Participant, Winner
from dream60.services import replica_sync

logger = logging.getLogger(__name__)

UPI_PATTERN = re.compile(r"^[a-zA-Z0-9._-]+@[a-zA-Z0-9]+$")

# Share of the prize value a winner pays as remaining product fees, by rank
REMAINING_FEE_RATES = {1: 0.10, 2: 0.05, 3: 0.03}


def claim_window() -> timedelta:
    return timedelta(minutes=settings.CLAIM_WINDOW_MINUTES)


async def get_entry(
    db: AsyncSession, user_id: str, hourly_auction_id: str
) -> AuctionHistory | None:
    result = await db.execute(
        select(AuctionHistory).where(
            AuctionHistory.user_id == user_id,
            AuctionHistory.hourly_auction_id == hourly_auction_id,
        )
    )
    return result.scalar_one_or_none()


async def get_winner_entries(db: AsyncSession, hourly_auction_id: str) -> list[AuctionHistory]:
    result = await db.execute(
        select(AuctionHistory)
        .where(
            AuctionHistory.hourly_auction_id == hourly_auction_id,
            AuctionHistory.is_winner == True,  # noqa: E712
        )
        .order_by(AuctionHistory.final_rank)
    )
    return list(result.scalars().all())


async def create_entry(
    db: AsyncSession,
    auction: HourlyAuction,
    user_id: str,
    username: str,
    entry_fee: float,
) -> AuctionHistory:
    """Create the history row for a joined user; returns the existing row on repeat."""
    existing = await get_entry(db, user_id, auction.hourly_auction_id)
    if existing is not None:
        return existing

    entry = AuctionHistory(
        user_id=user_id,
        username=username,
        hourly_auction_id=auction.hourly_auction_id,
        daily_auction_id=auction.daily_auction_id,
        auction_date=auction.auction_date,
        auction_name=auction.auction_name,
        prize_value=auction.prize_value,
        time_slot=auction.time_slot,
        entry_fee_paid=entry_fee,
        total_amount_spent=entry_fee,
        total_participants=auction.total_participants or 0,
        auction_status=HistoryAuctionStatus.IN_PROGRESS,
        prize_claim_status=PrizeClaimStatus.NOT_APPLICABLE,
        ranks_offered=[],
    )
    db.add(entry)
    await db.flush()
    return entry


async def update_bid_info(
    db: AsyncSession,
    user_id: str,
    hourly_auction_id: str,
    amount: float,
    first_bid_in_round: bool,
) -> AuctionHistory | None:
    entry = await get_entry(db, user_id, hourly_auction_id)
    if entry is None:
        logger.warning(f"⚠ No history entry for {user_id} in {hourly_auction_id}")
        return None

    entry.total_amount_bid += amount
    entry.total_bids_placed += 1
    if first_bid_in_round:
        entry.rounds_participated += 1
    entry.auction_status = HistoryAuctionStatus.IN_PROGRESS
    entry.total_amount_spent = entry.entry_fee_paid + entry.total_amount_bid
    return entry


async def mark_winners(
    db: AsyncSession,
    hourly_auction_id: str,
    winners: list[Winner],
    now: datetime,
    total_participants: int = 0,
) -> list[AuctionHistory]:
    """Mark winners and open rank 1's claim window."""
    marked = []
    for winner in winners:
        entry = await get_entry(db, winner.player_id, hourly_auction_id)
        if entry is None:
            logger.warning(f"⚠ Winner {winner.player_username} has no history entry")
            continue

        is_rank_one = winner.rank == 1
        entry.is_winner = True
        entry.final_rank = winner.rank
        entry.prize_amount_won = winner.prize_amount or 0
        entry.last_round_bid_amount = winner.final_auction_amount or 0
        entry.auction_status = HistoryAuctionStatus.COMPLETED
        entry.prize_claim_status = PrizeClaimStatus.PENDING
        entry.claim_window_started_at = now if is_rank_one else None
        entry.claim_deadline = now + claim_window() if is_rank_one else None
        entry.current_eligible_rank = 1
        entry.ranks_offered = [1]
        entry.remaining_product_fees = round(
            (winner.prize_amount or 0) * REMAINING_FEE_RATES.get(winner.rank, 0)
        )
        entry.total_participants = total_participants
        marked.append(entry)

    logger.info(f"✓ Marked {len(marked)} winners for {hourly_auction_id}")
    return marked


async def mark_non_winners(
    db: AsyncSession, hourly_auction_id: str, total_participants: int = 0
) -> int:
    await db.flush()
    result = await db.execute(
        update(AuctionHistory)
        .where(
            AuctionHistory.hourly_auction_id == hourly_auction_id,
            AuctionHistory.is_winner == False,  # noqa: E712
            AuctionHistory.auction_status != HistoryAuctionStatus.COMPLETED,
        )
        .values(
            auction_status=HistoryAuctionStatus.COMPLETED,
            prize_claim_status=PrizeClaimStatus.NOT_APPLICABLE,
            total_participants=total_participants,
        )
        .execution_options(synchronize_session="fetch")
    )
    return result.rowcount


async def mark_winners_in_history(
    db: AsyncSession, auction: HourlyAuction, now: datetime
) -> None:
    """Make sure every participant has a history row, then record the outcome."""
    participants: list[Participant] = auction.get_participants()
    for participant in participants:
        entry = await get_entry(db, participant.player_id, auction.hourly_auction_id)
        if entry is None:
            entry = await create_entry(
                db, auction, participant.player_id, participant.player_username, participant.entry_fee
            )
        entry.total_amount_bid = participant.total_amount_bid
        entry.total_bids_placed = participant.total_bids_placed
        entry.total_amount_spent = entry.entry_fee_paid + participant.total_amount_bid
        entry.auction_status = HistoryAuctionStatus.IN_PROGRESS

    winners = auction.get_winners()
    if winners:
        await mark_winners(db, auction.hourly_auction_id, winners, now, len(participants))
    await mark_non_winners(db, auction.hourly_auction_id, len(participants))


async def cancel_entries(db: AsyncSession, auction: HourlyAuction) -> int:
    """Close every history row of an auction cancelled before it started."""
    await db.flush()
    result = await db.execute(
        update(AuctionHistory)
        .where(AuctionHistory.hourly_auction_id == auction.hourly_auction_id)
        .values(
            auction_status=HistoryAuctionStatus.COMPLETED,
            prize_claim_status=PrizeClaimStatus.CANCELLED,
            claim_notes=auction.claim_notes
            or "Auction cancelled: Minimum slots criteria not met. Refund initiated.",
        )
        .execution_options(synchronize_session="fetch")
    )
    return result.rowcount


async def sync_claim_status(db: AsyncSession, hourly_auction_id: str) -> None:
    """Mirror history claim state into the hourly winners and the daily replica."""
    auction = await replica_sync.load_hourly_auction(db, hourly_auction_id)
    if auction is None:
        return

    by_rank = {entry.final_rank: entry for entry in await get_winner_entries(db, hourly_auction_id)}
    if not by_rank:
        return

    winners = auction.get_winners()
    claimer: Winner | None = None
    for winner in winners:
        entry = by_rank.get(winner.rank)
        if entry is None:
            continue
        winner.prize_claim_status = entry.prize_claim_status
        winner.is_prize_claimed = entry.prize_claim_status == PrizeClaimStatus.CLAIMED
        winner.prize_claimed_at = entry.claimed_at
        winner.prize_claimed_by = entry.claimed_by or entry.username
        winner.claim_notes = entry.claim_notes
        if winner.is_prize_claimed:
            claimer = winner
    auction.set_winners(winners)

    if claimer is not None:
        auction.winner_id = claimer.player_id
        auction.winner_username = claimer.player_username
        auction.winning_bid = claimer.final_auction_amount
        auction.prize_claimed_by = claimer.player_username
        auction.prize_claimed_at = claimer.prize_claimed_at
        auction.prize_claim_status = PrizeClaimStatus.CLAIMED
    elif 1 in by_rank:
        auction.prize_claim_status = by_rank[1].prize_claim_status

    daily = await replica_sync.load_daily_auction(db, auction.daily_auction_id)
    if daily is None:
        return
    slots = daily.get_slots()
    slot = replica_sync.find_slot(slots, auction)
    if slot is None:
        return
    slot.top_winners = winners
    slot.prize_claim_status = auction.prize_claim_status
    if claimer is not None:
        slot.prize_claimed_by = claimer.player_username
    daily.set_slots(slots)


async def advance_claim_queue(
    db: AsyncSession,
    hourly_auction_id: str,
    now: datetime,
    from_rank: int | None = None,
    reason: ClaimAdvanceReason = ClaimAdvanceReason.EXPIRED_WINDOW,
) -> dict | None:
    """
    Move the claim offer from the current rank to the next one.

    Returns the new queue position, or None when the queue is exhausted.
    """
    winners = await get_winner_entries(db, hourly_auction_id)
    if not winners:
        return None

    current_rank = from_rank or winners[0].current_eligible_rank or 1
    next_rank = current_rank + 1

    if reason == ClaimAdvanceReason.CANCELLED:
        note = f"Rank {current_rank} cancelled the claim"
    else:
        note = f"Rank {current_rank} did not claim within {settings.CLAIM_WINDOW_MINUTES} minutes"

    for entry in winners:
        if entry.final_rank == current_rank and entry.prize_claim_status == PrizeClaimStatus.PENDING:
            entry.prize_claim_status = PrizeClaimStatus.EXPIRED
            entry.claim_notes = note

    next_winner = next((e for e in winners if e.final_rank == next_rank), None)
    if next_rank > settings.MAX_WINNERS or next_winner is None:
        if next_rank > settings.MAX_WINNERS:
            exhausted_note = (
                f"All winners (rank 1-{settings.MAX_WINNERS}) failed to claim "
                f"within their {settings.CLAIM_WINDOW_MINUTES}-minute windows"
            )
        else:
            exhausted_note = (
                f"Rank {current_rank} failed/cancelled and no rank {next_rank} winner exists"
            )
        for entry in winners:
            if entry.prize_claim_status == PrizeClaimStatus.PENDING:
                entry.prize_claim_status = PrizeClaimStatus.EXPIRED
                entry.claim_notes = exhausted_note
        await db.flush()
        await sync_claim_status(db, hourly_auction_id)
        logger.info(f"⚠ Claim queue exhausted for {hourly_auction_id}")
        return None

    deadline = now + claim_window()
    for entry in winners:
        entry.current_eligible_rank = next_rank
        entry.ranks_offered = [*(entry.ranks_offered or []), next_rank]

    next_winner.prize_claim_status = PrizeClaimStatus.PENDING
    next_winner.claim_window_started_at = now
    next_winner.claim_deadline = deadline
    next_winner.claim_notes = f"Rank {next_rank} is now eligible to claim"

    await db.flush()
    await sync_claim_status(db, hourly_auction_id)
    logger.info(f"✓ Claim queue for {hourly_auction_id} advanced to rank {next_rank}")

    return {
        "previous_rank": current_rank,
        "current_rank": next_rank,
        "current_winner": next_winner.username,
        "window_start": now,
        "deadline": deadline,
    }


async def process_claim_queues(db: AsyncSession, now: datetime) -> dict:
    """Advance every auction whose current claim window has passed."""
    await db.flush()
    result = await db.execute(
        select(AuctionHistory.hourly_auction_id, AuctionHistory.final_rank)
        .where(
            AuctionHistory.prize_claim_status == PrizeClaimStatus.PENDING,
            AuctionHistory.is_winner == True,  # noqa: E712
            AuctionHistory.claim_deadline.is_not(None),
            AuctionHistory.claim_deadline < now,
        )
        .order_by(AuctionHistory.final_rank)
    )

    processed: set[str] = set()
    advanced = 0
    for hourly_auction_id, final_rank in result.all():
        if hourly_auction_id in processed:
            continue
        processed.add(hourly_auction_id)
        if await advance_claim_queue(
            db,
            hourly_auction_id,
            now,
            from_rank=final_rank,
            reason=ClaimAdvanceReason.EXPIRED_WINDOW,
        ):
            advanced += 1

    return {"processed": len(processed), "advanced": advanced}


async def expire_unclaimed_prizes(db: AsyncSession, now: datetime) -> int:
    """Expire PENDING claims whose deadline passed and that no queue picked up."""
    await db.flush()
    result = await db.execute(
        update(AuctionHistory)
        .where(
            AuctionHistory.prize_claim_status == PrizeClaimStatus.PENDING,
            AuctionHistory.claim_deadline.is_not(None),
            AuctionHistory.claim_deadline < now,
        )
        .values(
            prize_claim_status=PrizeClaimStatus.EXPIRED,
            claim_notes="Claim deadline expired - Prize forfeited",
        )
        .execution_options(synchronize_session="fetch")
    )
    return result.rowcount


async def submit_prize_claim(
    db: AsyncSession,
    user_id: str,
    hourly_auction_id: str,
    upi_id: str,
    now: datetime,
    payment_reference: str | None = None,
    remaining_fees_paid: bool = False,
) -> AuctionHistory:
    """Record a winner's prize claim during their window."""
    if not UPI_PATTERN.match(upi_id or ""):
        raise BadRequestError("Invalid UPI ID format (e.g., username@upi)")

    entry = await get_entry(db, user_id, hourly_auction_id)
    if entry is None or not entry.is_winner:
        raise NotFoundError("Winner entry not found for this user and auction")

    if entry.prize_claim_status == PrizeClaimStatus.CLAIMED:
        raise BadRequestError("Prize has already been claimed")

    if entry.current_eligible_rank and entry.final_rank != entry.current_eligible_rank:
        raise ForbiddenError(
            f"It's not your turn yet. Currently, rank {entry.current_eligible_rank} "
            f"can claim. You are rank {entry.final_rank}.",
            data={
                "current_eligible_rank": entry.current_eligible_rank,
                "your_rank": entry.final_rank,
                "claim_deadline": entry.claim_deadline,
            },
        )

    if entry.prize_claim_status != PrizeClaimStatus.PENDING:
        raise BadRequestError(
            f"Prize claim is not pending. Current status: {entry.prize_claim_status.value}"
        )

    if entry.claim_deadline and now > entry.claim_deadline:
        entry.prize_claim_status = PrizeClaimStatus.EXPIRED
        entry.claim_notes = (
            f"Claim deadline expired ({settings.CLAIM_WINDOW_MINUTES} minutes)"
        )
        await db.flush()
        await advance_claim_queue(
            db,
            hourly_auction_id,
            now,
            from_rank=entry.final_rank,
            reason=ClaimAdvanceReason.EXPIRED_WINDOW,
        )
        # The expiry stands even though the request fails
        await db.commit()
        raise BadRequestError("Prize claim deadline has expired. Next winner can now claim.")

    entry.prize_claim_status = PrizeClaimStatus.CLAIMED
    entry.claim_upi_id = upi_id
    entry.claim_payment_reference = payment_reference
    entry.remaining_fees_paid = remaining_fees_paid
    entry.claimed_at = now
    entry.claimed_by = entry.username
    entry.claimed_by_rank = entry.final_rank
    entry.claim_notes = None
    entry.total_amount_spent = entry.entry_fee_paid + entry.last_round_bid_amount

    logger.info(f"✓ Prize claimed by rank {entry.final_rank} ({entry.username}) in {hourly_auction_id}")
    return entry


async def close_queue_after_claim(
    db: AsyncSession, hourly_auction_id: str, claimer: AuctionHistory
) -> int:
    """Expire every other pending winner once somebody has claimed the prize."""
    expired = 0
    for entry in await get_winner_entries(db, hourly_auction_id):
        if entry.user_id == claimer.user_id or entry.prize_claim_status != PrizeClaimStatus.PENDING:
            continue
        entry.prize_claim_status = PrizeClaimStatus.EXPIRED
        entry.claim_notes = f"Prize claimed by rank {claimer.final_rank} winner ({claimer.username})"
        entry.claimed_by = claimer.username
        entry.claimed_by_rank = claimer.final_rank
        entry.claimed_at = claimer.claimed_at
        expired += 1
    await db.flush()
    await sync_claim_status(db, hourly_auction_id)
    return expired


async def cancel_prize_claim(
    db: AsyncSession, user_id: str, hourly_auction_id: str, now: datetime
) -> dict | None:
    """Give up the current claim turn and pass it to the next rank."""
    entry = await get_entry(db, user_id, hourly_auction_id)
    if entry is None or not entry.is_winner:
        raise NotFoundError("Winner entry not found for this user and auction")

    if entry.prize_claim_status != PrizeClaimStatus.PENDING:
        raise BadRequestError(
            f"Cannot cancel a claim with status {entry.prize_claim_status.value}"
        )

    if entry.current_eligible_rank and entry.final_rank != entry.current_eligible_rank:
        raise ForbiddenError("Only the currently eligible winner can cancel the claim")

    entry.prize_claim_status = PrizeClaimStatus.EXPIRED
    entry.claim_notes = "Cancelled by winner"
    entry.claim_deadline = None
    entry.claim_window_started_at = None
    await db.flush()

    return await advance_claim_queue(
        db,
        hourly_auction_id,
        now,
        from_rank=entry.final_rank,
        reason=ClaimAdvanceReason.CANCELLED,
    )


def _is_settled(entry: AuctionHistory, auction: HourlyAuction | None) -> bool:
    if entry.prize_claim_status == PrizeClaimStatus.CLAIMED:
        return True
    if auction is None:
        return entry.auction_status == HistoryAuctionStatus.COMPLETED
    if auction.status == AuctionStatus.CANCELLED:
        return True
    winners = auction.get_winners()
    if auction.status == AuctionStatus.COMPLETED and not winners:
        return True
    if winners and all(w.prize_claim_status == PrizeClaimStatus.EXPIRED for w in winners):
        return True
    return any(w.is_prize_claimed for w in winners)


async def get_user_history(
    db: AsyncSession,
    user_id: str,
    now: datetime,
    limit: int | None = None,
    is_winner: bool | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
) -> list[dict]:
    """A user's auctions, newest first, with settlement state."""
    await process_claim_queues(db, now)

    stmt = select(AuctionHistory).where(AuctionHistory.user_id == user_id)
    if is_winner is not None:
        stmt = stmt.where(AuctionHistory.is_winner == is_winner)
    if start_date is not None:
        stmt = stmt.where(AuctionHistory.auction_date >= start_date)
    if end_date is not None:
        stmt = stmt.where(AuctionHistory.auction_date <= end_date)
    stmt = stmt.order_by(AuctionHistory.auction_date.desc(), AuctionHistory.time_slot.desc())
    if limit:
        stmt = stmt.limit(limit)

    entries = list((await db.execute(stmt)).scalars().all())
    auction_ids = {entry.hourly_auction_id for entry in entries}
    auctions = {}
    if auction_ids:
        result = await db.execute(
            select(HourlyAuction).where(HourlyAuction.hourly_auction_id.in_(auction_ids))
        )
        auctions = {a.hourly_auction_id: a for a in result.scalars().all()}

    history = []
    for entry in entries:
        spent = entry.entry_fee_paid
        if entry.is_winner and entry.prize_claim_status == PrizeClaimStatus.CLAIMED:
            spent += entry.last_round_bid_amount
        history.append(
            {
                "hourly_auction_id": entry.hourly_auction_id,
                "auction_name": entry.auction_name,
                "auction_date": entry.auction_date,
                "time_slot": entry.time_slot,
                "prize_value": entry.prize_value,
                "entry_fee_paid": entry.entry_fee_paid,
                "total_amount_bid": entry.total_amount_bid,
                "total_amount_spent": spent,
                "rounds_participated": entry.rounds_participated,
                "total_bids_placed": entry.total_bids_placed,
                "is_winner": entry.is_winner,
                "final_rank": entry.final_rank,
                "prize_amount_won": entry.prize_amount_won,
                "last_round_bid_amount": entry.last_round_bid_amount,
                "auction_status": entry.auction_status,
                "prize_claim_status": entry.prize_claim_status,
                "claim_deadline": entry.claim_deadline,
                "current_eligible_rank": entry.current_eligible_rank,
                "remaining_product_fees": entry.remaining_product_fees,
                "claimed_by": entry.claimed_by,
                "claimed_by_rank": entry.claimed_by_rank,
                "claim_notes": entry.claim_notes,
                "is_settled": _is_settled(entry, auctions.get(entry.hourly_auction_id)),
            }
        )
    return history


async def get_user_stats(db: AsyncSession, user_id: str) -> dict:
    """Totals over a user's completed auctions."""
    claimed_win = (AuctionHistory.is_winner == True) & (  # noqa: E712
        AuctionHistory.prize_claim_status == PrizeClaimStatus.CLAIMED
    )
    result = await db.execute(
        select(
            func.count(AuctionHistory.id),
            func.coalesce(func.sum(case((AuctionHistory.is_winner == True, 1), else_=0)), 0),  # noqa: E712
            func.coalesce(func.sum(AuctionHistory.entry_fee_paid), 0),
            func.coalesce(
                func.sum(case((claimed_win, AuctionHistory.last_round_bid_amount), else_=0)), 0
            ),
            func.coalesce(func.sum(case((claimed_win, AuctionHistory.prize_amount_won), else_=0)), 0),
            func.coalesce(
                func.sum(
                    case(
                        (AuctionHistory.prize_claim_status == PrizeClaimStatus.CLAIMED, 1),
                        else_=0,
                    )
                ),
                0,
            ),
        ).where(
            AuctionHistory.user_id == user_id,
            AuctionHistory.auction_status == HistoryAuctionStatus.COMPLETED,
        )
    )
    total_auctions, total_wins, entry_fees, claimed_bids, total_won, total_claimed = result.one()

    total_spent = float(entry_fees) + float(claimed_bids)
    return {
        "total_auctions": total_auctions,
        "total_wins": int(total_wins),
        "total_losses": total_auctions - int(total_wins),
        "total_spent": total_spent,
        "total_won": float(total_won),
        "total_claimed": int(total_claimed),
        "win_rate": round(int(total_wins) / total_auctions * 100) if total_auctions else 0,
        "net_gain": float(total_won) - total_spent,
    }
