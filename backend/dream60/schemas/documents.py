# dream60/schemas/documents.py
"""
Embedded auction documents.

Rounds, participants, winners and slot configurations are stored as JSON
columns on the auction tables. These models validate them on the way in
and serialize them on the way out.
"""

from datetime import datetime
from typing import Iterable, TypeVar

from pydantic import BaseModel, Field

from dream60.core.enums import (
    AuctionStatus,
    EntryFeeMode,
    MinSlotsCriteria,
    PrizeClaimStatus,
    RoundStatus,
)

TIME_SLOT_PATTERN = r"^([01]\d|2[0-3]):([0-5]\d)$"

DocumentT = TypeVar("DocumentT", bound=BaseModel)


class PlayerBid(BaseModel):
    """A single bid inside a round"""

    player_id: str
    player_username: str
    auction_placed_amount: float = Field(..., ge=0)
    auction_placed_time: datetime
    is_qualified: bool = False
    rank: int | None = None


class AuctionRound(BaseModel):
    round_number: int = Field(..., ge=1)
    started_at: datetime | None = None
    completed_at: datetime | None = None
    total_participants: int = 0
    players_data: list[PlayerBid] = Field(default_factory=list)
    qualified_players: list[str] = Field(default_factory=list)
    status: RoundStatus = RoundStatus.PENDING

    def bid_of(self, player_id: str) -> PlayerBid | None:
        for bid in self.players_data:
            if bid.player_id == player_id:
                return bid
        return None


class Participant(BaseModel):
    player_id: str
    player_username: str
    entry_fee: float = Field(..., ge=0)
    joined_at: datetime | None = None
    current_round: int = 1
    is_eliminated: bool = False
    eliminated_in_round: int | None = None
    total_bids_placed: int = 0
    total_amount_bid: float = 0


class Winner(BaseModel):
    rank: int = Field(..., ge=1, le=3)
    player_id: str
    player_username: str
    final_auction_amount: float
    total_amount_paid: float
    prize_amount: float
    is_prize_claimed: bool = False
    prize_claim_status: PrizeClaimStatus = PrizeClaimStatus.PENDING
    prize_claimed_at: datetime | None = None
    prize_claimed_by: str | None = None
    claim_notes: str | None = None


class RoundConfig(BaseModel):
    round: int = Field(..., ge=1)
    min_players: int | None = Field(None, ge=0)
    duration: int = Field(15, ge=1, description="Round length in minutes")
    max_bid: float | None = Field(None, ge=0)
    round_cutoff_percentage: float | None = Field(None, ge=0, le=100)
    top_bid_amounts_per_round: int = Field(3, ge=1)


class FeeSplits(BaseModel):
    box_a: float = Field(0, ge=0)
    box_b: float = Field(0, ge=0)


class ProductImage(BaseModel):
    image_url: str
    description: list[str] = Field(default_factory=list)


class SlotConfig(BaseModel):
    """One auction slot of a master or daily auction"""

    auction_number: int = Field(..., ge=1)
    time_slot: str = Field(..., pattern=TIME_SLOT_PATTERN)
    auction_name: str = Field(..., min_length=1)
    prize_value: float = Field(..., ge=0)
    image_url: str | None = None
    product_images: list[ProductImage] = Field(default_factory=list)
    product_description: dict[str, str] = Field(default_factory=dict)
    max_discount: float = Field(0, ge=0, le=100)
    entry_fee: EntryFeeMode = EntryFeeMode.RANDOM
    min_entry_fee: float | None = Field(None, ge=0)
    max_entry_fee: float | None = Field(None, ge=0)
    fee_splits: FeeSplits | None = None
    round_count: int = Field(4, ge=1)
    round_config: list[RoundConfig] = Field(default_factory=list)
    min_slots_criteria: MinSlotsCriteria = MinSlotsCriteria.AUTO
    min_slots_value: int = Field(0, ge=0)


class DailySlot(SlotConfig):
    """A daily auction slot: the slot config plus the replicated live state"""

    auction_id: str
    hourly_auction_id: str | None = None
    status: AuctionStatus = AuctionStatus.UPCOMING
    is_auction_completed: bool = False
    completed_at: datetime | None = None
    top_winners: list[Winner] = Field(default_factory=list)
    participants: list[Participant] = Field(default_factory=list)
    rounds: list[AuctionRound] = Field(default_factory=list)
    total_participants: int = 0
    current_round: int = 1
    total_bids: int = 0
    prize_claim_status: PrizeClaimStatus | None = None
    prize_claimed_by: str | None = None


def load_documents(model: type[DocumentT], raw: Iterable[dict] | None) -> list[DocumentT]:
    return [model.model_validate(item) for item in raw or []]


def dump_documents(items: Iterable[BaseModel]) -> list[dict]:
    return [item.model_dump(mode="json") for item in items]
