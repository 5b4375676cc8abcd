# dream60/services/bidding_service.py
import logging
from datetime import datetime

from redis.asyncio import Redis
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from dream60.core.config import settings
from dream60.core.enums import AuctionStatus, PrizeClaimStatus, RoundStatus
from dream60.core.exceptions import BadRequestError, ForbiddenError, NotFoundError
from dream60.core.redis import LIVE_AUCTION_CACHE_KEY, RedisService
from dream60.models.auction import HourlyAuction
from dream60.schemas.auction import auction_payload
from dream60.schemas.documents import AuctionRound, PlayerBid
from dream60.services import history_service, lifecycle, replica_sync

logger = logging.getLogger(__name__)


def _find_participant(participants, user_id: str):
    for participant in participants:
        if participant.player_id == user_id:
            return participant
    return None


def _sorted_bids(auction_round: AuctionRound) -> list[PlayerBid]:
    return sorted(
        auction_round.players_data,
        key=lambda bid: (-bid.auction_placed_amount, bid.auction_placed_time),
    )


async def place_bid(
    db: AsyncSession,
    hourly_auction_id: str,
    user_id: str,
    username: str,
    amount: float,
    now: datetime,
    expected_round: int | None = None,
) -> dict:
    """
    Place a bid in the auction's current round.

    The auction row is locked for the duration of the transaction so two
    bids from the same round never overwrite each other's round data.
    """
    if amount is None or amount <= 0:
        raise BadRequestError("Bid amount must be greater than zero")

    auction = await replica_sync.load_hourly_auction(db, hourly_auction_id, for_update=True)
    if auction is None:
        raise NotFoundError("Hourly auction not found")

    if auction.status != AuctionStatus.LIVE:
        raise BadRequestError(f"Auction is not live. Current status: {auction.status.value}")

    participants = auction.get_participants()
    participant = _find_participant(participants, user_id)
    if participant is None:
        raise ForbiddenError("You must join this auction before placing a bid")

    if participant.is_eliminated:
        raise ForbiddenError(
            f"You have been eliminated in round {participant.eliminated_in_round}"
        )

    round_number = auction.current_round
    rounds = lifecycle.ensure_rounds(auction)
    by_number = {r.round_number: r for r in rounds}

    if round_number == 1 and amount < participant.entry_fee:
        raise BadRequestError(
            f"Round 1 bid must be at least your entry fee of ₹{participant.entry_fee:g}"
        )

    if round_number > 1:
        previous = by_number.get(round_number - 1)
        if previous is None or previous.status != RoundStatus.COMPLETED:
            raise BadRequestError(f"Round {round_number - 1} has not been completed yet")
        if user_id not in previous.qualified_players:
            raise ForbiddenError(
                f"You did not qualify in round {round_number - 1} and cannot bid in "
                f"round {round_number}"
            )

    current = by_number.get(round_number)
    if current is None or round_number < 1 or round_number > auction.round_count:
        raise BadRequestError(f"Round {round_number} does not exist for this auction")

    if expected_round is not None and expected_round != round_number:
        raise BadRequestError(
            f"Round {expected_round} is not the current round (round {round_number} is active)"
        )

    if current.status != RoundStatus.ACTIVE:
        raise BadRequestError(
            f"Round {round_number} is not active. Current status: {current.status.value}"
        )

    if current.bid_of(user_id) is not None:
        raise BadRequestError(f"You have already placed a bid in round {round_number}")

    bid = PlayerBid(
        player_id=user_id,
        player_username=username,
        auction_placed_amount=amount,
        auction_placed_time=now,
    )
    current.players_data.append(bid)
    current.total_participants = len(current.players_data)

    participant.total_bids_placed += 1
    participant.total_amount_bid += amount
    participant.current_round = round_number

    auction.set_rounds(rounds)
    auction.set_participants(participants)
    auction.total_bids = (auction.total_bids or 0) + 1

    await history_service.update_bid_info(
        db, user_id, hourly_auction_id, amount, first_bid_in_round=True
    )
    await replica_sync.sync_bid(db, auction, round_number, bid, participant)
    await db.flush()

    logger.info(
        f"✓ Bid ₹{amount:g} by {username} in {auction.hourly_auction_code} round {round_number}"
    )
    return {
        "hourly_auction_id": hourly_auction_id,
        "hourly_auction_code": auction.hourly_auction_code,
        "round_number": round_number,
        "player_id": user_id,
        "player_username": username,
        "auction_value": amount,
        "placed_at": now,
        "round_bids": current.total_participants,
        "total_bids": auction.total_bids,
    }


async def invalidate_live_cache(redis: Redis | None) -> None:
    if redis is None:
        return
    await RedisService(redis).delete(LIVE_AUCTION_CACHE_KEY)


async def get_live_auction(db: AsyncSession, now: datetime, redis: Redis | None = None) -> dict:
    """
    The auction currently running.

    Falls back to today's UPCOMING auction for the current hour, presented as
    LIVE, when the scheduler has not flipped it yet.
    """
    cache = RedisService(redis) if redis is not None else None
    if cache is not None:
        cached = await cache.get_json(LIVE_AUCTION_CACHE_KEY)
        if cached:
            return cached

    result = await db.execute(
        select(HourlyAuction)
        .where(HourlyAuction.status == AuctionStatus.LIVE)
        .order_by(HourlyAuction.started_at.desc())
        .limit(1)
    )
    auction = result.scalar_one_or_none()

    if auction is not None:
        payload = auction_payload(auction)
    else:
        result = await db.execute(
            select(HourlyAuction).where(
                HourlyAuction.auction_date == now.date(),
                HourlyAuction.time_slot == f"{now.hour:02d}:00",
                HourlyAuction.status == AuctionStatus.UPCOMING,
            )
        )
        auction = result.scalars().first()
        if auction is None:
            raise NotFoundError("No live auction at the moment")
        payload = auction_payload(auction)
        payload["status"] = AuctionStatus.LIVE.value

    if cache is not None:
        await cache.set_json(
            LIVE_AUCTION_CACHE_KEY, payload, expire=settings.LIVE_AUCTION_CACHE_SECONDS
        )
    return payload


async def get_leaderboard(
    db: AsyncSession, hourly_auction_id: str, user_id: str, is_admin: bool = False
) -> dict:
    auction = await replica_sync.load_hourly_auction(db, hourly_auction_id)
    if auction is None:
        raise NotFoundError("Hourly auction not found")

    participants = auction.get_participants()
    if not is_admin and _find_participant(participants, user_id) is None:
        raise ForbiddenError("Access denied. Only participants can view the leaderboard.")

    leaderboard = []
    for auction_round in auction.get_rounds():
        entries = []
        rank = 0
        previous_amount = None
        for index, bid in enumerate(_sorted_bids(auction_round)):
            # Competition ranking: ties share a rank, the next amount skips ahead
            if bid.auction_placed_amount != previous_amount:
                rank = index + 1
                previous_amount = bid.auction_placed_amount
            entries.append(
                {
                    "rank": rank,
                    "player_id": bid.player_id,
                    "player_username": bid.player_username,
                    "auction_placed_amount": bid.auction_placed_amount,
                    "auction_placed_time": bid.auction_placed_time,
                    "is_qualified": bid.player_id in auction_round.qualified_players,
                    "is_current_user": bid.player_id == user_id,
                }
            )
        leaderboard.append(
            {
                "round_number": auction_round.round_number,
                "status": auction_round.status,
                "total_participants": auction_round.total_participants,
                "qualified_count": len(auction_round.qualified_players),
                "entries": entries,
            }
        )

    history_winners = await history_service.get_winner_entries(db, hourly_auction_id)
    if history_winners:
        winners = [
            {
                "rank": entry.final_rank,
                "player_id": entry.user_id,
                "player_username": entry.username,
                "final_auction_amount": entry.last_round_bid_amount,
                "prize_amount": entry.prize_amount_won,
                "prize_claim_status": entry.prize_claim_status,
                "is_current_user": entry.user_id == user_id,
            }
            for entry in history_winners
        ]
    else:
        winners = [
            {
                "rank": winner.rank,
                "player_id": winner.player_id,
                "player_username": winner.player_username,
                "final_auction_amount": winner.final_auction_amount,
                "prize_amount": winner.prize_amount,
                "prize_claim_status": winner.prize_claim_status,
                "is_current_user": winner.player_id == user_id,
            }
            for winner in sorted(auction.get_winners(), key=lambda w: w.rank)
        ]

    return {
        "hourly_auction_id": auction.hourly_auction_id,
        "auction_name": auction.auction_name,
        "status": auction.status,
        "current_round": auction.current_round,
        "total_participants": auction.total_participants,
        "rounds": leaderboard,
        "winners": winners,
    }


async def get_auction_details(
    db: AsyncSession, hourly_auction_id: str, user_id: str, now: datetime
) -> dict:
    """One auction as seen by a participant: rounds, their bids and their outcome."""
    await history_service.process_claim_queues(db, now)

    auction = await replica_sync.load_hourly_auction(db, hourly_auction_id)
    if auction is None:
        raise NotFoundError("Hourly auction not found")

    entry = await history_service.get_entry(db, user_id, hourly_auction_id)
    if entry is None:
        raise NotFoundError("You did not participate in this auction")

    rounds = []
    for auction_round in auction.get_rounds():
        bids = _sorted_bids(auction_round)
        user_bid = auction_round.bid_of(user_id)
        user_rank = None
        if user_bid is not None:
            user_rank = next(i for i, b in enumerate(bids, start=1) if b.player_id == user_id)
        rounds.append(
            {
                "round_number": auction_round.round_number,
                "status": auction_round.status,
                "total_participants": auction_round.total_participants,
                "highest_bid": bids[0].auction_placed_amount if bids else None,
                "lowest_bid": bids[-1].auction_placed_amount if bids else None,
                "user_bid": user_bid.auction_placed_amount if user_bid else None,
                "user_rank": user_rank,
                "user_qualified": user_id in auction_round.qualified_players,
                "qualified_count": len(auction_round.qualified_players),
            }
        )

    winner_info = None
    if entry.is_winner:
        winner_info = {
            "rank": entry.final_rank,
            "prize_amount": entry.prize_amount_won,
            "last_round_bid_amount": entry.last_round_bid_amount,
            "prize_claim_status": entry.prize_claim_status,
            "claim_deadline": entry.claim_deadline,
            "current_eligible_rank": entry.current_eligible_rank,
            "claimed_at": entry.claimed_at,
            "remaining_product_fees": entry.remaining_product_fees,
            "remaining_fees_paid": entry.remaining_fees_paid,
        }

    spent = entry.entry_fee_paid
    if entry.is_winner and entry.prize_claim_status == PrizeClaimStatus.CLAIMED:
        spent += entry.last_round_bid_amount

    return {
        "hourly_auction_id": auction.hourly_auction_id,
        "hourly_auction_code": auction.hourly_auction_code,
        "auction_name": auction.auction_name,
        "auction_date": auction.auction_date,
        "time_slot": auction.time_slot,
        "prize_value": auction.prize_value,
        "status": auction.status,
        "total_participants": auction.total_participants,
        "rounds": rounds,
        "winners": [w.model_dump(mode="json") for w in auction.get_winners()],
        "winner_info": winner_info,
        "user_participation": {
            "entry_fee_paid": entry.entry_fee_paid,
            "total_amount_bid": entry.total_amount_bid,
            "total_amount_spent": spent,
            "rounds_participated": entry.rounds_participated,
            "total_bids_placed": entry.total_bids_placed,
            "is_winner": entry.is_winner,
            "final_rank": entry.final_rank,
        },
    }


async def check_participation(db: AsyncSession, hourly_auction_id: str, user_id: str) -> dict:
    auction = await replica_sync.load_hourly_auction(db, hourly_auction_id)
    if auction is None:
        raise NotFoundError("Hourly auction not found")

    participant = _find_participant(auction.get_participants(), user_id)
    return {
        "hourly_auction_id": hourly_auction_id,
        "is_participant": participant is not None,
        "is_eliminated": bool(participant and participant.is_eliminated),
        "status": auction.status,
        "current_round": auction.current_round,
    }


async def get_hourly_auction_summary(db: AsyncSession, hourly_auction_id: str) -> dict:
    """Full auction record plus per-round and money totals."""
    auction = await replica_sync.load_hourly_auction(db, hourly_auction_id)
    if auction is None:
        raise NotFoundError("Hourly auction not found")

    payload = auction_payload(auction)
    payload["round_stats"] = [
        {
            "round_number": r.round_number,
            "status": r.status,
            "total_bids": len(r.players_data),
            "qualified_count": len(r.qualified_players),
            "highest_bid": max((b.auction_placed_amount for b in r.players_data), default=None),
        }
        for r in auction.get_rounds()
    ]
    payload["total_revenue"] = sum(p.entry_fee for p in auction.get_participants())
    payload["total_prize_distributed"] = sum(w.prize_amount for w in auction.get_winners())
    return payload
