"""
Unit Tests for round arithmetic
Tests for: schedules, ranking, elimination and winner selection
"""
from datetime import date, datetime, timedelta

from dream60.core.enums import RoundStatus
from dream60.schemas.documents import AuctionRound, Participant, PlayerBid, RoundConfig
from dream60.services import round_engine

START = datetime(2026, 10, 18, 10, 0)


def bid(player_id: str, amount: float, second: int = 0) -> PlayerBid:
    return PlayerBid(
        player_id=player_id,
        player_username=player_id,
        auction_placed_amount=amount,
        auction_placed_time=START + timedelta(seconds=second),
    )


def participants(*ids: str) -> list[Participant]:
    return [Participant(player_id=i, player_username=i, entry_fee=10) for i in ids]


class TestSchedule:
    """Round windows derived from the time slot"""

    def test_rounds_are_back_to_back_from_slot_start(self):
        rounds = round_engine.round_schedule(date(2026, 10, 18), "10:00", [], 4)

        assert [r.round_number for r in rounds] == [1, 2, 3, 4]
        assert rounds[0].started_at == START
        assert rounds[3].completed_at == START + timedelta(minutes=60)
        assert all(r.status == RoundStatus.PENDING for r in rounds)
        for earlier, later in zip(rounds, rounds[1:]):
            assert earlier.completed_at == later.started_at

    def test_configured_durations_override_the_default(self):
        config = [RoundConfig(round=1, duration=20), RoundConfig(round=3, duration=5)]

        assert round_engine.round_durations(config, 4) == [20, 15, 5, 15]

    def test_target_round_by_elapsed_minutes(self):
        durations = [15, 15, 15, 15]

        assert round_engine.target_round(0, durations) == 1
        assert round_engine.target_round(14, durations) == 1
        assert round_engine.target_round(15, durations) == 2
        assert round_engine.target_round(59, durations) == 4
        assert round_engine.target_round(75, durations) == 4

    def test_qualifying_rank_defaults_to_three(self):
        config = [RoundConfig(round=2, top_bid_amounts_per_round=5)]

        assert round_engine.qualifying_rank(config, 1) == 3
        assert round_engine.qualifying_rank(config, 2) == 5


class TestRanking:
    """Dense ranking of a round's bids"""

    def test_equal_amounts_share_a_rank(self):
        bids = [bid("c", 400, 1), bid("b", 500, 5), bid("a", 500, 2), bid("d", 300), bid("e", 200)]

        ranked, qualified = round_engine.rank_round(bids)

        assert [(b.player_id, b.rank) for b in ranked] == [
            ("a", 1),
            ("b", 1),
            ("c", 2),
            ("d", 3),
            ("e", 4),
        ]
        assert qualified == ["a", "b", "c", "d"]
        assert ranked[-1].is_qualified is False

    def test_empty_round(self):
        ranked, qualified = round_engine.rank_round([])

        assert ranked == []
        assert qualified == []


class TestCompleteRound:
    """Closing a round eliminates non-bidders and non-qualifiers"""

    def test_round_one_eliminates_everyone_who_did_not_bid(self):
        players = participants("a", "b", "c", "d", "e")
        auction_round = AuctionRound(
            round_number=1,
            players_data=[bid("a", 500), bid("b", 400), bid("c", 300), bid("d", 200)],
        )

        qualified = round_engine.complete_round(auction_round, players, None, START)

        assert qualified == ["a", "b", "c"]
        assert auction_round.status == RoundStatus.COMPLETED
        assert auction_round.total_participants == 4
        eliminated = {p.player_id: p.eliminated_in_round for p in players if p.is_eliminated}
        assert eliminated == {"d": 1, "e": 1}

    def test_later_round_only_expects_previous_qualifiers(self):
        players = participants("a", "b", "c", "d")
        players[3].is_eliminated = True
        players[3].eliminated_in_round = 1
        auction_round = AuctionRound(round_number=2, players_data=[bid("a", 800)])

        round_engine.complete_round(auction_round, players, ["a", "b", "c"], START)

        by_id = {p.player_id: p for p in players}
        assert by_id["a"].is_eliminated is False
        assert by_id["b"].eliminated_in_round == 2
        assert by_id["c"].eliminated_in_round == 2
        assert by_id["d"].eliminated_in_round == 1


class TestWinners:
    """Winner selection"""

    def test_early_winners_order_by_rank_then_total_bid(self):
        round_1 = AuctionRound(
            round_number=1,
            players_data=[bid("a", 100), bid("b", 300), bid("c", 200)],
        )
        round_2 = AuctionRound(round_number=2, players_data=[bid("a", 900, 1), bid("b", 900, 2)])
        ranked, _ = round_engine.rank_round(round_2.players_data)
        round_2.players_data = ranked

        winners = round_engine.early_winners(
            [round_1, round_2], participants("a", "b", "c"), ["a", "b"], prize_value=5000
        )

        # Same rank in round 2; b bid more in total
        assert [w.player_id for w in winners] == ["b", "a"]
        assert [w.rank for w in winners] == [1, 2]
        assert winners[0].prize_amount == 5000

    def test_final_round_winners_break_ties_on_earlier_totals(self):
        round_1 = AuctionRound(round_number=1, players_data=[bid("a", 100), bid("b", 700)])
        final = AuctionRound(
            round_number=2,
            players_data=[bid("a", 900, 1), bid("b", 900, 2), bid("c", 500), bid("d", 400)],
        )
        final.players_data, _ = round_engine.rank_round(final.players_data)

        winners = round_engine.final_round_winners(
            [round_1, final], participants("a", "b", "c", "d"), 2, prize_value=1000
        )

        assert [w.player_id for w in winners] == ["b", "a", "c"]
        assert winners[0].final_auction_amount == 900

    def test_final_round_without_bids_has_no_winners(self):
        rounds = [AuctionRound(round_number=1), AuctionRound(round_number=2)]

        assert round_engine.final_round_winners(rounds, [], 2, prize_value=1000) == []

    def test_last_round_winners_use_the_last_round_with_bids(self):
        players = participants("a", "b", "c", "d")
        round_1 = AuctionRound(
            round_number=1,
            players_data=[bid("a", 500), bid("b", 400), bid("c", 300), bid("d", 200)],
        )
        round_engine.complete_round(round_1, players, None, START)
        round_2 = AuctionRound(round_number=2)

        winners = round_engine.last_round_winners([round_1, round_2], players, prize_value=1000)

        assert [w.player_id for w in winners] == ["a", "b", "c"]
        assert [w.rank for w in winners] == [1, 2, 3]
