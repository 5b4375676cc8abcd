# dream60/services/lifecycle.py
"""
Hourly auction state machine.

tick() moves one auction to the state its time slot calls for at a given
IST wall-clock instant:

    before the slot hour   UPCOMING, all rounds PENDING
    inside the slot hour   LIVE, earlier rounds COMPLETED, current round ACTIVE
    after the slot hour    COMPLETED, winners taken from the final round

The functions here only mutate the auction object. Persisting it, syncing
the daily replica and updating auction history is left to the caller,
driven by the returned TickOutcome.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta

from dream60.core.enums import AuctionStatus, PrizeClaimStatus, RoundStatus
from dream60.models.auction import HourlyAuction
from dream60.schemas.documents import AuctionRound, Participant, Winner
from dream60.services import round_engine

TERMINAL_STATUSES = (AuctionStatus.COMPLETED, AuctionStatus.CANCELLED)
SLOT_LENGTH = timedelta(hours=1)

# History follow-ups requested by a transition
MARK_WINNERS = "mark_winners"
MARK_NON_WINNERS = "mark_non_winners"
CANCEL_ENTRIES = "cancel_entries"


@dataclass
class TickOutcome:
    hourly_auction_id: str
    previous_status: AuctionStatus
    status: AuctionStatus
    changed: bool = False
    early_completion: bool = False
    history_action: str | None = None

    @property
    def status_changed(self) -> bool:
        return self.previous_status != self.status


def ensure_rounds(auction: HourlyAuction) -> list[AuctionRound]:
    """Rounds of the auction, rebuilt from the slot schedule when missing."""
    rounds = auction.get_rounds()
    if len(rounds) >= auction.round_count:
        return rounds
    existing = {r.round_number: r for r in rounds}
    schedule = round_engine.round_schedule(
        auction.auction_date,
        auction.time_slot,
        auction.get_round_config(),
        auction.round_count,
    )
    return [existing.get(r.round_number, r) for r in schedule]


def minutes_into_slot(auction: HourlyAuction, now: datetime) -> int:
    start = round_engine.slot_start(auction.auction_date, auction.time_slot)
    return int((now - start).total_seconds() // 60)


def apply_winners(auction: HourlyAuction, winners: list[Winner]) -> None:
    auction.set_winners(winners)
    if winners:
        top = winners[0]
        auction.winner_id = top.player_id
        auction.winner_username = top.player_username
        auction.winning_bid = top.final_auction_amount
        auction.prize_claim_status = PrizeClaimStatus.PENDING


def _complete_open_rounds(
    auction: HourlyAuction,
    rounds: list[AuctionRound],
    participants: list[Participant],
    now: datetime,
) -> None:
    round_config = auction.get_round_config()
    previous_qualified: list[str] | None = None
    for auction_round in rounds:
        if auction_round.status != RoundStatus.COMPLETED:
            round_engine.complete_round(
                auction_round,
                participants,
                previous_qualified,
                now,
                round_engine.qualifying_rank(round_config, auction_round.round_number),
            )
        previous_qualified = auction_round.qualified_players


def _hold_upcoming(auction: HourlyAuction, outcome: TickOutcome) -> None:
    if auction.status == AuctionStatus.UPCOMING:
        return
    rounds = ensure_rounds(auction)
    for auction_round in rounds:
        auction_round.status = RoundStatus.PENDING
    auction.set_rounds(rounds)
    auction.status = AuctionStatus.UPCOMING
    auction.current_round = 0
    outcome.changed = True


def _complete_auction(
    auction: HourlyAuction, now: datetime, outcome: TickOutcome, max_winners: int
) -> None:
    rounds = ensure_rounds(auction)
    participants = auction.get_participants()
    _complete_open_rounds(auction, rounds, participants, now)

    if auction.get_winners():
        # Winners were announced early; history already carries them.
        outcome.history_action = None
    else:
        winners = round_engine.final_round_winners(
            rounds, participants, auction.round_count, auction.prize_value, max_winners
        )
        apply_winners(auction, winners)
        auction.winners_announced = bool(winners)
        outcome.history_action = MARK_WINNERS if winners else MARK_NON_WINNERS

    auction.set_rounds(rounds)
    auction.set_participants(participants)
    auction.current_round = auction.round_count
    auction.status = AuctionStatus.COMPLETED
    auction.completed_at = now
    outcome.changed = True


def _cancel_for_min_slots(auction: HourlyAuction, now: datetime, outcome: TickOutcome) -> None:
    joined = len(auction.participants or [])
    auction.status = AuctionStatus.CANCELLED
    auction.completed_at = now
    auction.claim_notes = (
        f"Auction cancelled: Minimum slots criteria not met "
        f"({joined}/{auction.min_slots_value}). Refund initiated."
    )
    outcome.changed = True
    outcome.history_action = CANCEL_ENTRIES


def _run_live(
    auction: HourlyAuction,
    now: datetime,
    outcome: TickOutcome,
    join_window_minutes: int,
    max_winners: int,
) -> None:
    rounds = ensure_rounds(auction)
    participants = auction.get_participants()

    if auction.status != AuctionStatus.LIVE:
        auction.status = AuctionStatus.LIVE
        auction.started_at = auction.started_at or now
        outcome.changed = True

    if auction.winners_announced:
        # Early completion froze the rounds until the slot hour ends.
        auction.set_rounds(rounds)
        return

    elapsed = minutes_into_slot(auction, now)
    round_config = auction.get_round_config()
    target = round_engine.target_round(
        elapsed, round_engine.round_durations(round_config, auction.round_count)
    )

    if (
        target == 1
        and auction.current_round <= 1
        and elapsed >= join_window_minutes - 1
        and len(participants) < (auction.min_slots_value or 0)
    ):
        _cancel_for_min_slots(auction, now, outcome)
        return

    previous_qualified: list[str] | None = None
    early_round: AuctionRound | None = None
    for auction_round in rounds:
        number = auction_round.round_number
        if number < target:
            if auction_round.status != RoundStatus.COMPLETED:
                qualified = round_engine.complete_round(
                    auction_round,
                    participants,
                    previous_qualified,
                    now,
                    round_engine.qualifying_rank(round_config, number),
                )
                outcome.changed = True
                if 0 < len(qualified) <= max_winners and number < auction.round_count:
                    early_round = auction_round
                    break
        elif number == target:
            if auction_round.status != RoundStatus.ACTIVE:
                auction_round.status = RoundStatus.ACTIVE
                auction_round.started_at = auction_round.started_at or now
                outcome.changed = True
        elif auction_round.status != RoundStatus.PENDING:
            auction_round.status = RoundStatus.PENDING
            auction_round.started_at = None
            auction_round.completed_at = None
            outcome.changed = True
        previous_qualified = auction_round.qualified_players

    if early_round is not None:
        winners = round_engine.early_winners(
            rounds,
            participants,
            early_round.qualified_players,
            auction.prize_value,
            max_winners,
        )
        for auction_round in rounds:
            if auction_round.round_number > early_round.round_number:
                auction_round.status = RoundStatus.COMPLETED
                auction_round.completed_at = now
        apply_winners(auction, winners)
        auction.winners_announced = True
        auction.current_round = early_round.round_number
        outcome.early_completion = True
        outcome.history_action = MARK_WINNERS
    elif auction.current_round != target:
        auction.current_round = target
        outcome.changed = True

    auction.set_rounds(rounds)
    auction.set_participants(participants)


def tick(
    auction: HourlyAuction,
    now: datetime,
    join_window_minutes: int = 15,
    max_winners: int = 3,
) -> TickOutcome:
    """Advance an auction to the state its time slot calls for at `now`."""
    status = AuctionStatus(auction.status)
    outcome = TickOutcome(
        hourly_auction_id=auction.hourly_auction_id,
        previous_status=status,
        status=status,
    )
    if status in TERMINAL_STATUSES:
        return outcome

    if auction.auction_date < now.date():
        auction.status = AuctionStatus.COMPLETED
        auction.completed_at = now
        outcome.changed = True
    else:
        start = round_engine.slot_start(auction.auction_date, auction.time_slot)
        if now < start:
            _hold_upcoming(auction, outcome)
        elif now >= start + SLOT_LENGTH:
            _complete_auction(auction, now, outcome, max_winners)
        else:
            _run_live(auction, now, outcome, join_window_minutes, max_winners)

    outcome.status = AuctionStatus(auction.status)
    return outcome


def force_complete(auction: HourlyAuction, now: datetime, max_winners: int = 3) -> TickOutcome:
    """
    Complete an auction immediately.

    Open rounds are settled and the winners are the top qualifiers of the
    last round that received bids.
    """
    outcome = TickOutcome(
        hourly_auction_id=auction.hourly_auction_id,
        previous_status=AuctionStatus(auction.status),
        status=AuctionStatus.COMPLETED,
        changed=True,
    )
    rounds = ensure_rounds(auction)
    participants = auction.get_participants()
    _complete_open_rounds(auction, rounds, participants, now)

    winners = round_engine.last_round_winners(
        rounds, participants, auction.prize_value, max_winners
    )
    apply_winners(auction, winners)
    auction.set_rounds(rounds)
    auction.set_participants(participants)
    auction.status = AuctionStatus.COMPLETED
    auction.completed_at = now
    auction.current_round = auction.round_count
    auction.winners_announced = True
    outcome.history_action = MARK_WINNERS if winners else MARK_NON_WINNERS
    return outcome
