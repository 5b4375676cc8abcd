# dream60/api/payments.py
"""
Razorpay endpoints.

Flow:
1. POST /hourly-auction/create-order   -> gateway order for the entry fee
2. Client completes Razorpay checkout
3. POST /hourly-auction/verify         -> signature check, participant added
4. Winners use /prize-claim/create-order and /prize-claim/verify the same way
"""

from fastapi import APIRouter, Depends
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from dream60.api.auth import get_current_user
from dream60.api.websocket import broadcast_auctions
from dream60.core.clock import Clock, get_clock
from dream60.core.database import get_db
from dream60.core.redis import get_redis
from dream60.models.user import User
from dream60.schemas.payment import (
    EntryOrderCreate,
    PaymentVerify,
    PrizeClaimOrderCreate,
    PrizeClaimPaymentVerify,
)
from dream60.services import bidding_service, payment_service
from dream60.services.payment_service import RazorpayGateway, get_payment_gateway

router = APIRouter()


@router.post("/hourly-auction/create-order")
async def create_entry_order(
    order_data: EntryOrderCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    gateway: RazorpayGateway = Depends(get_payment_gateway),
    clock: Clock = Depends(get_clock),
):
    data = await payment_service.create_entry_order(
        db,
        gateway,
        str(current_user.id),
        order_data.hourly_auction_id,
        order_data.amount,
        clock.now(),
    )
    return {"success": True, "message": "Order created", "data": data}


@router.post("/hourly-auction/verify")
async def verify_entry_payment(
    verify_data: PaymentVerify,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    redis: Redis = Depends(get_redis),
    gateway: RazorpayGateway = Depends(get_payment_gateway),
    clock: Clock = Depends(get_clock),
):
    data = await payment_service.verify_entry_payment(
        db,
        gateway,
        str(current_user.id),
        current_user.username,
        verify_data.razorpay_order_id,
        verify_data.razorpay_payment_id,
        verify_data.razorpay_signature,
        clock.now(),
    )
    await db.commit()

    await bidding_service.invalidate_live_cache(redis)
    await broadcast_auctions(db, [data["hourly_auction_id"]])
    return {"success": True, "message": "Payment verified. You have joined the auction.", "data": data}


@router.post("/prize-claim/create-order")
async def create_prize_claim_order(
    order_data: PrizeClaimOrderCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    gateway: RazorpayGateway = Depends(get_payment_gateway),
    clock: Clock = Depends(get_clock),
):
    data = await payment_service.create_prize_claim_order(
        db, gateway, str(current_user.id), order_data.hourly_auction_id, clock.now()
    )
    return {"success": True, "message": "Prize claim order created", "data": data}


@router.post("/prize-claim/verify")
async def verify_prize_claim_payment(
    verify_data: PrizeClaimPaymentVerify,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    gateway: RazorpayGateway = Depends(get_payment_gateway),
    clock: Clock = Depends(get_clock),
):
    data = await payment_service.verify_prize_claim_payment(
        db,
        gateway,
        str(current_user.id),
        verify_data.razorpay_order_id,
        verify_data.razorpay_payment_id,
        verify_data.razorpay_signature,
        verify_data.upi_id,
        clock.now(),
    )
    return {"success": True, "message": "Prize claimed successfully", "data": data}
