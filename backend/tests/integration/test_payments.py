"""
Integration Tests for Razorpay entry-fee and prize-claim payments
"""
import hashlib
import hmac

import pytest
from sqlalchemy import func, select

from dream60.core.enums import PaymentStatus, PrizeClaimStatus
from dream60.core.exceptions import BadRequestError, ConflictError, ForbiddenError, NotFoundError
from dream60.models.payment import HourlyAuctionJoin, Payment
from dream60.services import bidding_service, history_service, payment_service, scheduler_service

from tests.helpers import add_participant, at, auth_headers, make_player, seed_daily, slot_config


def sign(order_id: str, payment_id: str, secret: str = "rzp_test_secret") -> str:
    return hmac.new(
        secret.encode("utf-8"), f"{order_id}|{payment_id}".encode("utf-8"), hashlib.sha256
    ).hexdigest()


@pytest.fixture
async def live(db_session):
    daily, [auction] = await seed_daily(db_session, slot_config(1, "09:00"))
    await scheduler_service.auto_activate_auctions(db_session, at(9, 1))
    return daily, auction


async def order_for(db, gateway, player, auction, amount=49, now=None):
    return await payment_service.create_entry_order(
        db, gateway, player["id"], auction.hourly_auction_id, amount, now or at(9, 5)
    )


async def verify(db, gateway, player, order_id, payment_id="pay_test01", signature=None, now=None):
    return await payment_service.verify_entry_payment(
        db,
        gateway,
        player["id"],
        player["username"],
        order_id,
        payment_id,
        signature if signature is not None else sign(order_id, payment_id),
        now or at(9, 6),
    )


async def load_payment(db, order_id) -> Payment:
    result = await db.execute(select(Payment).where(Payment.gateway_order_id == order_id))
    return result.scalar_one()


class TestEntryOrder:
    async def test_order_is_created_in_paise(self, db_session, gateway, gateway_requests, live):
        _, auction = live
        player = make_player()

        order = await order_for(db_session, gateway, player, auction)

        assert order["order_id"] == "order_test0001"
        assert order["amount"] == 4900
        assert order["key_id"] == "rzp_test_key"
        assert gateway_requests[0]["notes"]["payment_type"] == "ENTRY_FEE"
        payment = await load_payment(db_session, order["order_id"])
        assert payment.status == PaymentStatus.CREATED
        assert payment.amount == 49

    async def test_fee_outside_the_configured_range(self, db_session, gateway, live):
        _, auction = live

        with pytest.raises(BadRequestError, match="between"):
            await order_for(db_session, gateway, make_player(), auction, amount=500)

    async def test_join_window_closes_after_fifteen_minutes(self, db_session, gateway, live):
        _, auction = live

        with pytest.raises(BadRequestError, match="Joining is only allowed"):
            await order_for(db_session, gateway, make_player(), auction, now=at(9, 16))

    async def test_unknown_auction(self, db_session, gateway):
        with pytest.raises(NotFoundError):
            await payment_service.create_entry_order(
                db_session, gateway, "u1", "missing", 49, at(9, 5)
            )


class TestEntryVerification:
    async def test_valid_signature_joins_the_auction(self, db_session, gateway, live):
        daily, auction = live
        player = make_player()
        order = await order_for(db_session, gateway, player, auction)

        result = await verify(db_session, gateway, player, order["order_id"])

        assert result["total_participants"] == 1
        assert result["payment_status"] == PaymentStatus.PAID
        assert auction.get_participants()[0].player_id == player["id"]

        joins = (await db_session.execute(select(func.count(HourlyAuctionJoin.id)))).scalar_one()
        assert joins == 1
        entry = await history_service.get_entry(db_session, player["id"], auction.hourly_auction_id)
        assert entry.entry_fee_paid == 49
        assert daily.total_participants_today == 1
        assert daily.total_revenue_today == 49

    async def test_bad_signature_marks_payment_failed(self, db_session, gateway, live):
        _, auction = live
        player = make_player()
        order = await order_for(db_session, gateway, player, auction)

        with pytest.raises(BadRequestError, match="Invalid signature"):
            await verify(db_session, gateway, player, order["order_id"], signature="forged")

        payment = await load_payment(db_session, order["order_id"])
        assert payment.status == PaymentStatus.FAILED
        assert auction.get_participants() == []

    async def test_payment_cannot_be_verified_twice(self, db_session, gateway, live):
        _, auction = live
        player = make_player()
        order = await order_for(db_session, gateway, player, auction)
        await verify(db_session, gateway, player, order["order_id"])

        with pytest.raises(ConflictError):
            await verify(db_session, gateway, player, order["order_id"])
        with pytest.raises(ConflictError, match="already joined"):
            await order_for(db_session, gateway, player, auction)

    async def test_order_belongs_to_its_payer(self, db_session, gateway, live):
        _, auction = live
        order = await order_for(db_session, gateway, make_player(), auction)

        with pytest.raises(ForbiddenError):
            await verify(db_session, gateway, make_player(), order["order_id"])

    async def test_paid_join_after_window_is_flagged_for_refund(self, db_session, gateway, live):
        _, auction = live
        player = make_player()
        order = await order_for(db_session, gateway, player, auction)

        with pytest.raises(BadRequestError, match="refunded"):
            await verify(db_session, gateway, player, order["order_id"], now=at(9, 20))

        payment = await load_payment(db_session, order["order_id"])
        assert payment.status == PaymentStatus.PAID
        assert payment.notes["refund_reason"] == "join window closed"
        assert auction.get_participants() == []


class TestEntryPaymentApi:
    async def test_checkout_round_trip(self, client, db_session, live, redis):
        _, auction = live
        player = make_player()
        headers = auth_headers(player)

        created = await client.post(
            "/api/razorpay/hourly-auction/create-order",
            json={"hourly_auction_id": auction.hourly_auction_id, "amount": 25},
            headers=headers,
        )
        assert created.status_code == 200
        order_id = created.json()["data"]["order_id"]

        verified = await client.post(
            "/api/razorpay/hourly-auction/verify",
            json={
                "razorpay_order_id": order_id,
                "razorpay_payment_id": "pay_api01",
                "razorpay_signature": sign(order_id, "pay_api01"),
            },
            headers=headers,
        )

        body = verified.json()
        assert verified.status_code == 200
        assert body["success"] is True
        assert body["data"]["payment_status"] == "paid"
        assert body["data"]["participant"]["player_username"] == player["username"]
        redis.delete.assert_awaited()

    async def test_bad_signature_returns_error_envelope(self, client, live):
        _, auction = live
        headers = auth_headers(make_player())
        created = await client.post(
            "/api/razorpay/hourly-auction/create-order",
            json={"hourly_auction_id": auction.hourly_auction_id, "amount": 25},
            headers=headers,
        )
        order_id = created.json()["data"]["order_id"]

        response = await client.post(
            "/api/razorpay/hourly-auction/verify",
            json={
                "razorpay_order_id": order_id,
                "razorpay_payment_id": "pay_api02",
                "razorpay_signature": "forged",
            },
            headers=headers,
        )

        assert response.status_code == 400
        assert response.json()["success"] is False


class TestPrizeClaimPayment:
    @pytest.fixture
    async def winners(self, db_session):
        _, [auction] = await seed_daily(db_session, slot_config(1, "09:00", round_count=1))
        await scheduler_service.auto_activate_auctions(db_session, at(9, 1))
        players = [make_player() for _ in range(3)]
        for player, amount in zip(players, (40, 30, 20)):
            await add_participant(db_session, auction, player, 10, at(9, 2))
            await bidding_service.place_bid(
                db_session,
                auction.hourly_auction_id,
                player["id"],
                player["username"],
                amount,
                at(9, 5),
            )
        await scheduler_service.auto_activate_auctions(db_session, at(10, 0))
        return auction, players

    async def test_rank_one_pays_last_round_bid(self, db_session, gateway, gateway_requests, winners):
        auction, players = winners

        order = await payment_service.create_prize_claim_order(
            db_session, gateway, players[0]["id"], auction.hourly_auction_id, at(10, 5)
        )

        assert order["rank"] == 1
        assert order["claim_deadline"] == at(10, 15)
        assert gateway_requests[0]["amount"] == 4000
        assert gateway_requests[0]["notes"]["payment_type"] == "PRIZE_CLAIM"

    async def test_other_ranks_wait(self, db_session, gateway, winners):
        auction, players = winners

        with pytest.raises(ForbiddenError):
            await payment_service.create_prize_claim_order(
                db_session, gateway, players[1]["id"], auction.hourly_auction_id, at(10, 5)
            )

    async def test_verified_claim_closes_the_queue(self, db_session, gateway, winners):
        auction, players = winners
        order = await payment_service.create_prize_claim_order(
            db_session, gateway, players[0]["id"], auction.hourly_auction_id, at(10, 5)
        )

        result = await payment_service.verify_prize_claim_payment(
            db_session,
            gateway,
            players[0]["id"],
            order["order_id"],
            "pay_prize01",
            sign(order["order_id"], "pay_prize01"),
            "winner@upi",
            at(10, 6),
        )

        assert result["prize_claim_status"] == PrizeClaimStatus.CLAIMED
        assert result["other_winners_expired"] == 2
        entry = await history_service.get_entry(
            db_session, players[0]["id"], auction.hourly_auction_id
        )
        assert entry.claim_payment_reference == "pay_prize01"
        assert entry.remaining_fees_paid is True
        assert auction.prize_claimed_by == players[0]["username"]
