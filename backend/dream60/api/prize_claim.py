# dream60/api/prize_claim.py
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from dream60.api.auth import get_current_admin, get_current_user
from dream60.core.clock import Clock, get_clock
from dream60.core.database import get_db
from dream60.core.exceptions import NotFoundError
from dream60.models.user import User
from dream60.schemas.payment import PrizeClaimCancel, PrizeClaimSubmit
from dream60.services import history_service

router = APIRouter()


@router.post("/submit")
async def submit_prize_claim(
    claim_data: PrizeClaimSubmit,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """
    Claim the prize during your claim window.

    Request body:
    {
        "hourly_auction_id": "uuid-here",
        "upi_id": "player1@upi",
        "payment_reference": "pay_xxx"
    }
    """
    entry = await history_service.submit_prize_claim(
        db,
        str(current_user.id),
        claim_data.hourly_auction_id,
        claim_data.upi_id,
        clock.now(),
        payment_reference=claim_data.payment_reference,
    )
    await history_service.close_queue_after_claim(db, claim_data.hourly_auction_id, entry)
    return {
        "success": True,
        "message": "Prize claimed successfully",
        "data": {
            "hourly_auction_id": claim_data.hourly_auction_id,
            "rank": entry.final_rank,
            "prize_claim_status": entry.prize_claim_status,
            "claimed_at": entry.claimed_at,
        },
    }


@router.post("/cancel")
async def cancel_prize_claim(
    cancel_data: PrizeClaimCancel,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """Give up your claim turn; the next ranked winner gets a fresh window."""
    next_offer = await history_service.cancel_prize_claim(
        db, str(current_user.id), cancel_data.hourly_auction_id, clock.now()
    )
    message = (
        f"Claim passed to rank {next_offer['current_rank']}"
        if next_offer
        else "Claim cancelled. No further winners are eligible."
    )
    return {"success": True, "message": message, "data": next_offer}


@router.get("/status/{hourly_auction_id}")
async def prize_claim_status(
    hourly_auction_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    await history_service.process_claim_queues(db, clock.now())

    entry = await history_service.get_entry(db, str(current_user.id), hourly_auction_id)
    if entry is None:
        raise NotFoundError("You did not participate in this auction")

    return {
        "success": True,
        "message": "Prize claim status",
        "data": {
            "hourly_auction_id": hourly_auction_id,
            "is_winner": entry.is_winner,
            "rank": entry.final_rank,
            "prize_claim_status": entry.prize_claim_status,
            "current_eligible_rank": entry.current_eligible_rank,
            "is_my_turn": bool(entry.is_winner and entry.final_rank == entry.current_eligible_rank),
            "claim_window_started_at": entry.claim_window_started_at,
            "claim_deadline": entry.claim_deadline,
            "last_round_bid_amount": entry.last_round_bid_amount,
            "remaining_product_fees": entry.remaining_product_fees,
            "claimed_by": entry.claimed_by,
            "claim_notes": entry.claim_notes,
        },
    }


@router.post("/process-queues")
async def process_claim_queues(
    current_user: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """Run the claim-queue tick now (Admin only)."""
    now = clock.now()
    result = await history_service.process_claim_queues(db, now)
    result["expired"] = await history_service.expire_unclaimed_prizes(db, now)
    return {"success": True, "message": "Claim queues processed", "data": result}
