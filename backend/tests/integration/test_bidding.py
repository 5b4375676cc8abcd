"""
Integration Tests for bidding, leaderboards and the live auction
"""
import json

import pytest

from dream60.core.exceptions import BadRequestError, ForbiddenError, NotFoundError
from dream60.core.redis import LIVE_AUCTION_CACHE_KEY
from dream60.services import bidding_service, history_service, scheduler_service

from tests.helpers import add_participant, at, make_player, seed_daily, slot_config


@pytest.fixture
async def live(db_session):
    """09:00 auction already LIVE with its daily replica"""
    daily, hourly = await seed_daily(
        db_session, slot_config(1, "09:00"), slot_config(2, "10:00")
    )
    await scheduler_service.auto_activate_auctions(db_session, at(9, 1))
    return daily, hourly[0], hourly[1]


async def join_players(db, auction, count: int, fee: float = 20) -> list[dict]:
    players = [make_player() for _ in range(count)]
    for player in players:
        await add_participant(db, auction, player, fee, at(9, 2))
    return players


async def bid(db, auction, player, amount, minute, expected_round=None):
    return await bidding_service.place_bid(
        db,
        auction.hourly_auction_id,
        player["id"],
        player["username"],
        amount,
        at(9, minute),
        expected_round=expected_round,
    )


class TestPlaceBid:
    async def test_bid_updates_round_history_and_replica(self, db_session, live):
        daily, auction, _ = live
        [player] = await join_players(db_session, auction, 1)

        result = await bid(db_session, auction, player, 50, 3)

        assert result["round_number"] == 1
        assert result["total_bids"] == 1
        round_1 = auction.get_rounds()[0]
        assert round_1.bid_of(player["id"]).auction_placed_amount == 50
        assert auction.get_participants()[0].total_amount_bid == 50

        entry = await history_service.get_entry(db_session, player["id"], auction.hourly_auction_id)
        assert entry.total_amount_bid == 50
        assert entry.rounds_participated == 1
        assert entry.total_amount_spent == 70

        slot = daily.get_slots()[0]
        assert slot.total_bids == 1
        assert slot.rounds[0].bid_of(player["id"]) is not None

    async def test_only_participants_can_bid(self, db_session, live):
        _, auction, _ = live

        with pytest.raises(ForbiddenError):
            await bid(db_session, auction, make_player(), 50, 3)

    async def test_round_one_bid_must_cover_entry_fee(self, db_session, live):
        _, auction, _ = live
        [player] = await join_players(db_session, auction, 1, fee=40)

        with pytest.raises(BadRequestError, match="entry fee"):
            await bid(db_session, auction, player, 30, 3)

    async def test_one_bid_per_round(self, db_session, live):
        _, auction, _ = live
        [player] = await join_players(db_session, auction, 1)
        await bid(db_session, auction, player, 50, 3)

        with pytest.raises(BadRequestError, match="already placed a bid"):
            await bid(db_session, auction, player, 60, 4)

    async def test_bid_for_another_round_is_rejected(self, db_session, live):
        _, auction, _ = live
        [player] = await join_players(db_session, auction, 1)

        with pytest.raises(BadRequestError, match="not the current round"):
            await bid(db_session, auction, player, 50, 3, expected_round=2)

    async def test_non_positive_amount(self, db_session, live):
        _, auction, _ = live
        [player] = await join_players(db_session, auction, 1)

        with pytest.raises(BadRequestError):
            await bid(db_session, auction, player, 0, 3)

    async def test_auction_must_be_live(self, db_session, live):
        _, _, upcoming = live

        with pytest.raises(BadRequestError, match="not live"):
            await bid(db_session, upcoming, make_player(), 50, 3)

    async def test_unknown_auction(self, db_session):
        with pytest.raises(NotFoundError):
            await bidding_service.place_bid(db_session, "missing", "u1", "u1", 50, at(9, 3))

    async def test_eliminated_player_cannot_bid_in_next_round(self, db_session, live):
        _, auction, _ = live
        a, b, c, d, e = await join_players(db_session, auction, 5)
        for player, amount in ((a, 50), (b, 50), (c, 40), (d, 30)):
            await bid(db_session, auction, player, amount, 5)

        await scheduler_service.auto_activate_auctions(db_session, at(9, 16))
        assert auction.current_round == 2

        with pytest.raises(ForbiddenError, match="eliminated in round 1"):
            await bid(db_session, auction, e, 60, 17)

        result = await bid(db_session, auction, a, 60, 17, expected_round=2)
        assert result["round_number"] == 2


class TestLeaderboard:
    async def test_participants_see_competition_ranks(self, db_session, live):
        _, auction, _ = live
        a, b, c = await join_players(db_session, auction, 3)
        for player, amount in ((a, 50), (b, 50), (c, 40)):
            await bid(db_session, auction, player, amount, 5)

        board = await bidding_service.get_leaderboard(
            db_session, auction.hourly_auction_id, a["id"]
        )

        entries = board["rounds"][0]["entries"]
        assert [e["rank"] for e in entries] == [1, 1, 3]
        assert entries[0]["is_current_user"] is True
        assert board["winners"] == []

    async def test_outsiders_are_denied_but_admins_allowed(self, db_session, live):
        _, auction, _ = live
        outsider = make_player()

        with pytest.raises(ForbiddenError, match="Only participants"):
            await bidding_service.get_leaderboard(
                db_session, auction.hourly_auction_id, outsider["id"]
            )

        board = await bidding_service.get_leaderboard(
            db_session, auction.hourly_auction_id, outsider["id"], is_admin=True
        )
        assert board["hourly_auction_id"] == auction.hourly_auction_id


class TestLiveAuction:
    async def test_live_auction_is_cached(self, db_session, live, redis):
        _, auction, _ = live

        payload = await bidding_service.get_live_auction(db_session, at(9, 5), redis)

        assert payload["hourly_auction_id"] == auction.hourly_auction_id
        key, value = redis.set.await_args.args[:2]
        assert key == LIVE_AUCTION_CACHE_KEY
        assert json.loads(value)["hourly_auction_id"] == auction.hourly_auction_id

    async def test_cache_hit_skips_database(self, db_session, redis):
        redis.get.return_value = json.dumps({"hourly_auction_id": "cached"})

        payload = await bidding_service.get_live_auction(db_session, at(9, 5), redis)

        assert payload == {"hourly_auction_id": "cached"}

    async def test_upcoming_auction_for_current_hour_is_shown_live(self, db_session):
        _, hourly = await seed_daily(db_session, slot_config(1, "09:00"))

        payload = await bidding_service.get_live_auction(db_session, at(9, 0))

        assert payload["hourly_auction_id"] == hourly[0].hourly_auction_id
        assert payload["status"] == "LIVE"

    async def test_no_live_auction(self, db_session):
        with pytest.raises(NotFoundError):
            await bidding_service.get_live_auction(db_session, at(9, 0))


class TestParticipation:
    async def test_participation_and_summary(self, db_session, live):
        _, auction, _ = live
        [player] = await join_players(db_session, auction, 1, fee=25)
        await bid(db_session, auction, player, 50, 3)

        status = await bidding_service.check_participation(
            db_session, auction.hourly_auction_id, player["id"]
        )
        summary = await bidding_service.get_hourly_auction_summary(
            db_session, auction.hourly_auction_id
        )

        assert status["is_participant"] is True
        assert status["is_eliminated"] is False
        assert summary["total_revenue"] == 25
        assert summary["round_stats"][0]["total_bids"] == 1
        assert summary["round_stats"][0]["highest_bid"] == 50

    async def test_details_require_participation(self, db_session, live):
        _, auction, _ = live

        with pytest.raises(NotFoundError):
            await bidding_service.get_auction_details(
                db_session, auction.hourly_auction_id, make_player()["id"], at(9, 5)
            )
