# dream60/schemas/auction.py
from datetime import date, datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from dream60.core.enums import AuctionStatus, DailyAuctionStatus, EntryFeeMode, PrizeClaimStatus
from dream60.schemas.documents import (
    AuctionRound,
    DailySlot,
    FeeSplits,
    Participant,
    RoundConfig,
    SlotConfig,
    Winner,
)


class APIResponse(BaseModel):
    """Envelope used by every scheduler, payment and claim endpoint"""

    success: bool = True
    message: str = ""
    data: Any = None


class BidCreate(BaseModel):
    """Request schema for placing a bid in the current round"""

    hourly_auction_id: str = Field(..., min_length=1, description="Hourly auction ID")
    auction_value: float = Field(..., description="Bid amount in rupees")
    round_number: Optional[int] = Field(
        None, ge=1, description="Round the bid is meant for (defaults to the current round)"
    )

    class Config:
        json_schema_extra = {
            "example": {
                "hourly_auction_id": "0f8fad5b-d9cb-469f-a165-70867728950e",
                "auction_value": 1500,
                "round_number": 1,
            }
        }


class StatusUpdate(BaseModel):
    status: str = Field(..., description="LIVE, UPCOMING, COMPLETED or CANCELLED")

    class Config:
        json_schema_extra = {"example": {"status": "LIVE"}}


class MasterAuctionCreate(BaseModel):
    """Admin request to create or replace the master auction template"""

    is_active: bool = True
    daily_auction_config: list[SlotConfig] = Field(..., min_length=1)

    class Config:
        json_schema_extra = {
            "example": {
                "is_active": True,
                "daily_auction_config": [
                    {
                        "auction_number": 1,
                        "time_slot": "09:00",
                        "auction_name": "iPhone 15",
                        "prize_value": 79900,
                        "entry_fee": "RANDOM",
                        "min_entry_fee": 19,
                        "max_entry_fee": 99,
                        "round_count": 4,
                        "min_slots_value": 10,
                    }
                ],
            }
        }


class MasterAuctionUpdate(BaseModel):
    is_active: Optional[bool] = None
    daily_auction_config: Optional[list[SlotConfig]] = None


class HourlyAuctionOut(BaseModel):
    """Full hourly auction as returned by the API"""

    hourly_auction_id: str
    hourly_auction_code: Optional[str] = None
    daily_auction_id: str
    master_id: str
    auction_date: date
    auction_number: int
    time_slot: str
    auction_name: str
    prize_value: float
    image_url: Optional[str] = None
    product_description: dict[str, str] = Field(default_factory=dict)
    max_discount: float = 0
    entry_fee: EntryFeeMode
    min_entry_fee: Optional[float] = None
    max_entry_fee: Optional[float] = None
    fee_splits: Optional[FeeSplits] = None
    round_count: int
    round_config: list[RoundConfig] = Field(default_factory=list)
    min_slots_value: int = 0
    status: AuctionStatus
    winners_announced: bool = False
    current_round: int
    participants: list[Participant] = Field(default_factory=list)
    rounds: list[AuctionRound] = Field(default_factory=list)
    winners: list[Winner] = Field(default_factory=list)
    total_participants: int = 0
    total_bids: int = 0
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    winner_id: Optional[str] = None
    winner_username: Optional[str] = None
    winning_bid: Optional[float] = None
    prize_claim_status: Optional[PrizeClaimStatus] = None
    prize_claimed_by: Optional[str] = None
    claim_notes: Optional[str] = None

    class Config:
        from_attributes = True


class DailyAuctionOut(BaseModel):
    daily_auction_id: str
    daily_auction_code: Optional[str] = None
    master_id: str
    auction_date: date
    is_active: bool
    total_auctions_per_day: int
    daily_auction_config: list[DailySlot] = Field(default_factory=list)
    status: DailyAuctionStatus
    is_all_auctions_completed: bool = False
    completed_auctions_count: int = 0
    total_participants_today: int = 0
    total_revenue_today: float = 0

    class Config:
        from_attributes = True


class MasterAuctionOut(BaseModel):
    master_id: str
    created_by: str
    is_active: bool
    total_auctions_per_day: int
    daily_auction_config: list[SlotConfig] = Field(default_factory=list)
    created_at: datetime

    class Config:
        from_attributes = True


def auction_payload(auction) -> dict:
    return HourlyAuctionOut.model_validate(auction).model_dump(mode="json")


def daily_payload(daily) -> dict:
    return DailyAuctionOut.model_validate(daily).model_dump(mode="json")
