# dream60/services/payment_service.py
"""
Razorpay reconciliation for entry fees and prize claims.

Flow:
1. Client asks for an order -> gateway order created, payment row stored as `created`
2. Client completes checkout with the gateway
3. Client posts order id, payment id and signature -> signature verified,
   payment marked `paid`, then the participant is added (entry fee) or the
   prize claim is recorded (prize claim)
"""

import asyncio
import hashlib
import hmac
import logging
import time
from datetime import datetime

import razorpay
import requests
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from dream60.core.config import settings
from dream60.core.enums import AuctionStatus, EntryFeeMode, PaymentStatus, PaymentType, PrizeClaimStatus
from dream60.core.exceptions import (
    BadRequestError,
    ConflictError,
    ForbiddenError,
    NotFoundError,
    PaymentGatewayError,
)
from dream60.models.auction import HourlyAuction
from dream60.models.payment import HourlyAuctionJoin, Payment
from dream60.schemas.documents import Participant
from dream60.services import history_service, lifecycle, replica_sync

logger = logging.getLogger(__name__)


class RazorpayGateway:
    """Razorpay SDK wrapper: order creation and checkout signature checks."""

    def __init__(self, key_id: str, key_secret: str, client: razorpay.Client | None = None):
        self.key_id = key_id
        self.key_secret = key_secret
        self.client = client or razorpay.Client(auth=(key_id, key_secret))

    async def create_order(self, amount_paise: int, currency: str, receipt: str, notes: dict) -> dict:
        order_data = {
            "amount": amount_paise,
            "currency": currency,
            "receipt": receipt,
            "notes": notes,
        }
        try:
            # Blocking SDK call
            return await asyncio.to_thread(self.client.order.create, data=order_data)
        except (
            razorpay.errors.BadRequestError,
            razorpay.errors.GatewayError,
            razorpay.errors.ServerError,
            requests.RequestException,
        ) as e:
            logger.error(f"❌ Razorpay order creation failed for {receipt}: {e}")
            raise PaymentGatewayError("Failed to create payment order. Please try again.")

    def verify_signature(self, order_id: str, payment_id: str, signature: str) -> bool:
        message = f"{order_id}|{payment_id}"
        expected = hmac.new(
            self.key_secret.encode("utf-8"),
            message.encode("utf-8"),
            hashlib.sha256,
        ).hexdigest()
        return hmac.compare_digest(expected, signature or "")


razorpay_gateway = RazorpayGateway(
    key_id=settings.RAZORPAY_KEY_ID,
    key_secret=settings.RAZORPAY_KEY_SECRET,
)


def get_payment_gateway() -> RazorpayGateway:
    """FastAPI Dependency: Provide the payment gateway"""
    return razorpay_gateway


def _receipt(prefix: str) -> str:
    return f"{prefix}-{int(time.time() * 1000)}"


def join_window_open(auction: HourlyAuction, now: datetime) -> bool:
    return (
        auction.status == AuctionStatus.LIVE
        and auction.current_round == 1
        and lifecycle.minutes_into_slot(auction, now) < settings.JOIN_WINDOW_MINUTES
    )


async def _load_payment(db: AsyncSession, order_id: str, user_id: str) -> Payment:
    result = await db.execute(select(Payment).where(Payment.gateway_order_id == order_id))
    payment = result.scalar_one_or_none()
    if payment is None:
        raise NotFoundError("Payment order not found")
    if payment.user_id != user_id:
        raise ForbiddenError("This payment order belongs to another user")
    if payment.status == PaymentStatus.PAID:
        raise ConflictError("Payment has already been verified")
    return payment


async def _check_signature(
    db: AsyncSession,
    gateway: RazorpayGateway,
    payment: Payment,
    payment_id: str,
    signature: str,
) -> None:
    payment.gateway_payment_id = payment_id
    payment.gateway_signature = signature
    if not gateway.verify_signature(payment.gateway_order_id, payment_id, signature):
        payment.status = PaymentStatus.FAILED
        # Keep the failed attempt on record
        await db.commit()
        logger.warning(f"⚠ Invalid signature for order {payment.gateway_order_id}")
        raise BadRequestError("Payment verification failed. Invalid signature.")
    payment.status = PaymentStatus.PAID


async def _create_order(
    db: AsyncSession,
    gateway: RazorpayGateway,
    user_id: str,
    hourly_auction_id: str,
    amount: float,
    payment_type: PaymentType,
    receipt_prefix: str,
) -> dict:
    receipt = _receipt(receipt_prefix)
    notes = {
        "user_id": user_id,
        "hourly_auction_id": hourly_auction_id,
        "payment_type": payment_type.value,
    }
    order = await gateway.create_order(
        amount_paise=int(round(amount * 100)),
        currency=settings.PAYMENT_CURRENCY,
        receipt=receipt,
        notes=notes,
    )

    payment = Payment(
        user_id=user_id,
        hourly_auction_id=hourly_auction_id,
        payment_type=payment_type,
        amount=amount,
        currency=settings.PAYMENT_CURRENCY,
        receipt=receipt,
        notes=notes,
        gateway_order_id=order["id"],
        status=PaymentStatus.CREATED,
    )
    db.add(payment)
    await db.flush()

    logger.info(f"✓ Created {payment_type.value} order {order['id']} for user {user_id}")
    return {
        "order_id": order["id"],
        "amount": order.get("amount", int(round(amount * 100))),
        "currency": settings.PAYMENT_CURRENCY,
        "receipt": receipt,
        "key_id": gateway.key_id,
        "payment_id": str(payment.id),
    }


# ==================== Entry fee ====================


async def create_entry_order(
    db: AsyncSession,
    gateway: RazorpayGateway,
    user_id: str,
    hourly_auction_id: str,
    amount: float,
    now: datetime,
) -> dict:
    auction = await replica_sync.load_hourly_auction(db, hourly_auction_id)
    if auction is None:
        raise NotFoundError("Hourly auction not found")

    if auction.status != AuctionStatus.LIVE:
        raise BadRequestError(f"Auction is not live. Current status: {auction.status.value}")

    if not join_window_open(auction, now):
        raise BadRequestError(
            f"Joining is only allowed in the first {settings.JOIN_WINDOW_MINUTES} minutes "
            f"of round 1"
        )

    if any(p.player_id == user_id for p in auction.get_participants()):
        raise ConflictError("You have already joined this auction")

    if amount is None or amount <= 0:
        raise BadRequestError("Entry fee amount must be greater than zero")
    if auction.entry_fee == EntryFeeMode.RANDOM and auction.min_entry_fee is not None:
        upper = auction.max_entry_fee if auction.max_entry_fee is not None else amount
        if not auction.min_entry_fee <= amount <= upper:
            raise BadRequestError(
                f"Entry fee must be between ₹{auction.min_entry_fee:g} and ₹{upper:g}"
            )

    return await _create_order(
        db, gateway, user_id, hourly_auction_id, amount, PaymentType.ENTRY_FEE, "D60"
    )


async def verify_entry_payment(
    db: AsyncSession,
    gateway: RazorpayGateway,
    user_id: str,
    username: str,
    order_id: str,
    payment_id: str,
    signature: str,
    now: datetime,
) -> dict:
    """Verify an entry-fee payment and add the payer to the auction."""
    payment = await _load_payment(db, order_id, user_id)
    if payment.payment_type != PaymentType.ENTRY_FEE:
        raise BadRequestError("Order is not an entry fee payment")

    await _check_signature(db, gateway, payment, payment_id, signature)

    auction = await replica_sync.load_hourly_auction(
        db, payment.hourly_auction_id, for_update=True
    )
    if auction is None:
        raise NotFoundError("Hourly auction not found")

    if not join_window_open(auction, now):
        payment.notes = {**(payment.notes or {}), "refund_reason": "join window closed"}
        await db.commit()
        logger.warning(f"⚠ Paid join after window for {auction.hourly_auction_code} by {username}")
        raise BadRequestError("Joining window has closed. Your payment will be refunded.")

    participants = auction.get_participants()
    participant = next((p for p in participants if p.player_id == user_id), None)
    if participant is None:
        participant = Participant(
            player_id=user_id,
            player_username=username,
            entry_fee=payment.amount,
            joined_at=now,
            current_round=1,
        )
        participants.append(participant)
        auction.set_participants(participants)
        await replica_sync.sync_participant(db, auction, participant)

        db.add(
            HourlyAuctionJoin(
                user_id=user_id,
                username=username,
                hourly_auction_id=auction.hourly_auction_id,
                payment_id=payment.id,
            )
        )
        await history_service.create_entry(db, auction, user_id, username, payment.amount)
        logger.info(
            f"✓ {username} joined {auction.hourly_auction_code} with ₹{payment.amount:g}"
        )

    await db.flush()
    return {
        "hourly_auction_id": auction.hourly_auction_id,
        "participant": participant.model_dump(mode="json"),
        "total_participants": auction.total_participants,
        "payment_status": payment.status,
    }


# ==================== Prize claim ====================


async def create_prize_claim_order(
    db: AsyncSession,
    gateway: RazorpayGateway,
    user_id: str,
    hourly_auction_id: str,
    now: datetime,
) -> dict:
    entry = await history_service.get_entry(db, user_id, hourly_auction_id)
    if entry is None or not entry.is_winner:
        raise NotFoundError("Winner entry not found for this user and auction")

    if entry.prize_claim_status != PrizeClaimStatus.PENDING:
        raise BadRequestError(
            f"Prize claim is not pending. Current status: {entry.prize_claim_status.value}"
        )
    if entry.current_eligible_rank and entry.final_rank != entry.current_eligible_rank:
        raise ForbiddenError(
            f"It's not your turn yet. Currently, rank {entry.current_eligible_rank} can claim."
        )
    if entry.claim_deadline is None or now > entry.claim_deadline:
        raise BadRequestError("Your claim window is not open")

    order = await _create_order(
        db,
        gateway,
        user_id,
        hourly_auction_id,
        entry.last_round_bid_amount,
        PaymentType.PRIZE_CLAIM,
        "PRIZE",
    )
    order["claim_deadline"] = entry.claim_deadline
    order["rank"] = entry.final_rank
    return order


async def verify_prize_claim_payment(
    db: AsyncSession,
    gateway: RazorpayGateway,
    user_id: str,
    order_id: str,
    payment_id: str,
    signature: str,
    upi_id: str,
    now: datetime,
) -> dict:
    """Verify a prize-claim payment, record the claim and close the queue."""
    payment = await _load_payment(db, order_id, user_id)
    if payment.payment_type != PaymentType.PRIZE_CLAIM:
        raise BadRequestError("Order is not a prize claim payment")

    await _check_signature(db, gateway, payment, payment_id, signature)

    entry = await history_service.submit_prize_claim(
        db,
        user_id,
        payment.hourly_auction_id,
        upi_id,
        now,
        payment_reference=payment_id,
        remaining_fees_paid=True,
    )
    expired = await history_service.close_queue_after_claim(db, payment.hourly_auction_id, entry)

    logger.info(
        f"✓ Prize claim paid by {entry.username} (rank {entry.final_rank}) "
        f"for {payment.hourly_auction_id}"
    )
    return {
        "hourly_auction_id": payment.hourly_auction_id,
        "rank": entry.final_rank,
        "prize_claim_status": entry.prize_claim_status,
        "claimed_at": entry.claimed_at,
        "other_winners_expired": expired,
        "payment_status": payment.status,
    }
