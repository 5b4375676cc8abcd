"""Round arithmetic: ranking, elimination, winner selection and round schedules."""

from datetime import date, datetime, time, timedelta

from dream60.core.enums import RoundStatus
from dream60.schemas.documents import (
    AuctionRound,
    Participant,
    PlayerBid,
    RoundConfig,
    Winner,
)

DEFAULT_QUALIFYING_RANK = 3
DEFAULT_ROUND_DURATION = 15


def parse_time_slot(time_slot: str) -> tuple[int, int]:
    """'HH:MM' -> (hour, minute)"""
    hour, minute = time_slot.split(":")
    return int(hour), int(minute)


def slot_start(auction_date: date, time_slot: str) -> datetime:
    hour, minute = parse_time_slot(time_slot)
    return datetime.combine(auction_date, time(hour, minute))


def round_durations(
    round_config: list[RoundConfig],
    round_count: int,
    default_duration: int = DEFAULT_ROUND_DURATION,
) -> list[int]:
    """Minutes per round, falling back to the default where a round has no config."""
    by_round = {config.round: config.duration for config in round_config}
    return [by_round.get(number, default_duration) for number in range(1, round_count + 1)]


def qualifying_rank(round_config: list[RoundConfig], round_number: int) -> int:
    for config in round_config:
        if config.round == round_number:
            return config.top_bid_amounts_per_round
    return DEFAULT_QUALIFYING_RANK


def round_schedule(
    auction_date: date,
    time_slot: str,
    round_config: list[RoundConfig],
    round_count: int,
    default_duration: int = DEFAULT_ROUND_DURATION,
) -> list[AuctionRound]:
    """Build PENDING rounds with back-to-back start/end times from the slot start."""
    start = slot_start(auction_date, time_slot)
    rounds = []
    for number, duration in enumerate(
        round_durations(round_config, round_count, default_duration), start=1
    ):
        end = start + timedelta(minutes=duration)
        rounds.append(
            AuctionRound(
                round_number=number,
                started_at=start,
                completed_at=end,
                status=RoundStatus.PENDING,
            )
        )
        start = end
    return rounds


def target_round(minutes_elapsed: int, durations: list[int]) -> int:
    """Round whose window contains the given minute of the slot (capped at the last round)."""
    boundary = 0
    for number, duration in enumerate(durations, start=1):
        boundary += duration
        if minutes_elapsed < boundary:
            return number
    return len(durations)


def rank_round(
    players: list[PlayerBid], max_rank: int = DEFAULT_QUALIFYING_RANK
) -> tuple[list[PlayerBid], list[str]]:
    """
    Rank a round's bids.

    Bids are ordered by amount (highest first), earlier bids first on equal
    amounts. Ranks are dense: equal amounts share a rank and the next distinct
    amount takes the next rank. Every bid with rank <= max_rank qualifies.

    Returns:
        (ranked bids, qualified player ids in ranked order)
    """
    ordered = sorted(
        players, key=lambda bid: (-bid.auction_placed_amount, bid.auction_placed_time)
    )

    ranked: list[PlayerBid] = []
    rank = 0
    previous_amount = None
    for bid in ordered:
        if bid.auction_placed_amount != previous_amount:
            rank += 1
            previous_amount = bid.auction_placed_amount
        ranked.append(bid.model_copy(update={"rank": rank, "is_qualified": rank <= max_rank}))

    qualified = [bid.player_id for bid in ranked if bid.is_qualified]
    return ranked, qualified


def eliminate_non_bidders(
    participants: list[Participant],
    auction_round: AuctionRound,
    previous_qualified: list[str] | None,
) -> list[str]:
    """
    Eliminate players who were expected to bid in a round but did not.

    Round 1 expects every participant still in the game; later rounds expect
    the players who qualified in the previous round.
    """
    bidders = {bid.player_id for bid in auction_round.players_data}
    expected = None if auction_round.round_number == 1 else set(previous_qualified or [])

    eliminated = []
    for participant in participants:
        if participant.is_eliminated:
            continue
        if expected is not None and participant.player_id not in expected:
            continue
        if participant.player_id not in bidders:
            participant.is_eliminated = True
            participant.eliminated_in_round = auction_round.round_number
            eliminated.append(participant.player_id)
    return eliminated


def complete_round(
    auction_round: AuctionRound,
    participants: list[Participant],
    previous_qualified: list[str] | None,
    now: datetime,
    max_rank: int = DEFAULT_QUALIFYING_RANK,
) -> list[str]:
    """Rank, eliminate and close a round. Returns the qualified player ids."""
    ranked, qualified = rank_round(auction_round.players_data, max_rank)
    auction_round.players_data = ranked
    auction_round.qualified_players = qualified
    auction_round.total_participants = len(ranked)

    eliminate_non_bidders(participants, auction_round, previous_qualified)

    qualified_ids = set(qualified)
    bidder_ids = {bid.player_id for bid in ranked}
    for participant in participants:
        if participant.is_eliminated:
            continue
        if participant.player_id in bidder_ids and participant.player_id not in qualified_ids:
            participant.is_eliminated = True
            participant.eliminated_in_round = auction_round.round_number

    auction_round.status = RoundStatus.COMPLETED
    auction_round.completed_at = now
    return qualified


def _participant_map(participants: list[Participant]) -> dict[str, Participant]:
    return {participant.player_id: participant for participant in participants}


def _make_winner(
    rank: int,
    bid: PlayerBid,
    participants: dict[str, Participant],
    prize_value: float,
) -> Winner:
    participant = participants.get(bid.player_id)
    return Winner(
        rank=rank,
        player_id=bid.player_id,
        player_username=bid.player_username,
        final_auction_amount=bid.auction_placed_amount,
        total_amount_paid=participant.total_amount_bid if participant else bid.auction_placed_amount,
        prize_amount=prize_value,
    )


def early_winners(
    rounds: list[AuctionRound],
    participants: list[Participant],
    qualified_ids: list[str],
    prize_value: float,
    max_winners: int = 3,
) -> list[Winner]:
    """
    Winners when few enough players qualify before the final round.

    Ordered by the rank of each player's latest bid, then by total amount bid
    across all rounds (highest first), then by the latest bid's time.
    """
    candidates = []
    for player_id in qualified_ids:
        latest_bid = None
        total_bid = 0.0
        for auction_round in rounds:
            bid = auction_round.bid_of(player_id)
            if bid is not None:
                latest_bid = bid
                total_bid += bid.auction_placed_amount
        if latest_bid is not None:
            candidates.append((latest_bid, total_bid))

    candidates.sort(
        key=lambda item: (
            item[0].rank if item[0].rank is not None else float("inf"),
            -item[1],
            item[0].auction_placed_time,
        )
    )

    by_player = _participant_map(participants)
    return [
        _make_winner(position, bid, by_player, prize_value)
        for position, (bid, _) in enumerate(candidates[:max_winners], start=1)
    ]


def final_round_winners(
    rounds: list[AuctionRound],
    participants: list[Participant],
    final_round_number: int,
    prize_value: float,
    max_winners: int = 3,
) -> list[Winner]:
    """
    Winners from the final round's ranking.

    Ranks 1..max_winners are taken in order. Players sharing a rank are
    ordered by their total bids in the earlier rounds (highest first), then by
    final-round bid time.
    """
    final_round = next(
        (r for r in rounds if r.round_number == final_round_number), None
    )
    if final_round is None or not final_round.players_data:
        return []

    earlier_totals: dict[str, float] = {}
    for auction_round in rounds:
        if auction_round.round_number >= final_round_number:
            continue
        for bid in auction_round.players_data:
            earlier_totals[bid.player_id] = (
                earlier_totals.get(bid.player_id, 0.0) + bid.auction_placed_amount
            )

    by_player = _participant_map(participants)
    winners: list[Winner] = []
    for rank in range(1, max_winners + 1):
        tied = [bid for bid in final_round.players_data if bid.rank == rank]
        tied.sort(
            key=lambda bid: (-earlier_totals.get(bid.player_id, 0.0), bid.auction_placed_time)
        )
        for bid in tied:
            if len(winners) >= max_winners:
                return winners
            winners.append(_make_winner(len(winners) + 1, bid, by_player, prize_value))
    return winners


def last_round_winners(
    rounds: list[AuctionRound],
    participants: list[Participant],
    prize_value: float,
    max_winners: int = 3,
) -> list[Winner]:
    """Winners of a forced completion: the top qualifiers of the last round that has bids."""
    by_player = _participant_map(participants)
    for auction_round in reversed(rounds):
        if not auction_round.players_data:
            continue
        winners = []
        for player_id in auction_round.qualified_players[:max_winners]:
            bid = auction_round.bid_of(player_id)
            if bid is not None:
                winners.append(_make_winner(len(winners) + 1, bid, by_player, prize_value))
        return winners
    return []
