from datetime import date, datetime
from uuid import uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    Enum as SAEnum,
    Float,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from dream60.core.database import Base
from dream60.core.enums import (
    AuctionStatus,
    DailyAuctionStatus,
    EntryFeeMode,
    MinSlotsCriteria,
    PrizeClaimStatus,
)
from dream60.schemas.documents import (
    AuctionRound,
    DailySlot,
    Participant,
    RoundConfig,
    SlotConfig,
    Winner,
    dump_documents,
    load_documents,
)


def enum_column(enum_cls) -> SAEnum:
    """Store enum values as plain strings (no native database enum)"""
    return SAEnum(
        enum_cls,
        native_enum=False,
        length=20,
        values_callable=lambda members: [m.value for m in members],
    )


class Counter(Base):
    """Named monotonic sequence used for human-friendly codes"""

    __tablename__ = "counters"

    name: Mapped[str] = mapped_column(String(50), primary_key=True)
    seq: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    def __repr__(self) -> str:
        return f"<Counter(name={self.name}, seq={self.seq})>"


class MasterAuction(Base):
    """Admin template from which each day's auction is replicated"""

    __tablename__ = "master_auctions"

    id: Mapped[UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid4
    )
    master_id: Mapped[str] = mapped_column(
        String(36), unique=True, nullable=False, index=True, default=lambda: str(uuid4())
    )
    created_by: Mapped[str] = mapped_column(String(64), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    total_auctions_per_day: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    daily_auction_config: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )

    def get_configs(self) -> list[SlotConfig]:
        return load_documents(SlotConfig, self.daily_auction_config)

    def set_configs(self, configs: list[SlotConfig]) -> None:
        self.daily_auction_config = dump_documents(configs)
        self.total_auctions_per_day = len(configs)

    def __repr__(self) -> str:
        return f"<MasterAuction(master_id={self.master_id}, is_active={self.is_active})>"


class DailyAuction(Base):
    """Per-day replica of the master auction plus each slot's live state"""

    __tablename__ = "daily_auctions"
    __table_args__ = (
        UniqueConstraint("master_id", "auction_date", name="uq_daily_auction_master_date"),
    )

    id: Mapped[UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid4
    )
    daily_auction_id: Mapped[str] = mapped_column(
        String(36), unique=True, nullable=False, index=True, default=lambda: str(uuid4())
    )
    daily_auction_code: Mapped[str | None] = mapped_column(
        String(20), unique=True, nullable=True, index=True
    )
    master_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    auction_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    created_by: Mapped[str] = mapped_column(String(64), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    total_auctions_per_day: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    daily_auction_config: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    status: Mapped[DailyAuctionStatus] = mapped_column(
        enum_column(DailyAuctionStatus), nullable=False, default=DailyAuctionStatus.ACTIVE
    )

    is_all_auctions_completed: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )
    completed_auctions_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_participants_today: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_revenue_today: Mapped[float] = mapped_column(Float, default=0, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )

    def get_slots(self) -> list[DailySlot]:
        return load_documents(DailySlot, self.daily_auction_config)

    def set_slots(self, slots: list[DailySlot]) -> None:
        self.daily_auction_config = dump_documents(slots)

    def __repr__(self) -> str:
        return f"<DailyAuction(code={self.daily_auction_code}, date={self.auction_date})>"


class HourlyAuction(Base):
    """Canonical record of one time-slot auction"""

    __tablename__ = "hourly_auctions"
    __table_args__ = (
        UniqueConstraint("daily_auction_id", "time_slot", name="uq_hourly_auction_daily_slot"),
        Index("ix_hourly_auctions_date_status", "auction_date", "status"),
    )

    id: Mapped[UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid4
    )
    hourly_auction_id: Mapped[str] = mapped_column(
        String(36), unique=True, nullable=False, index=True, default=lambda: str(uuid4())
    )
    hourly_auction_code: Mapped[str | None] = mapped_column(
        String(20), unique=True, nullable=True, index=True
    )
    daily_auction_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    master_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    auction_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    auction_number: Mapped[int] = mapped_column(Integer, nullable=False)
    time_slot: Mapped[str] = mapped_column(String(5), nullable=False)

    # product
    auction_name: Mapped[str] = mapped_column(String(255), nullable=False)
    prize_value: Mapped[float] = mapped_column(Float, nullable=False)
    image_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    product_images: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    product_description: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    max_discount: Mapped[float] = mapped_column(Float, nullable=False, default=0)

    # entry fee and rounds
    entry_fee: Mapped[EntryFeeMode] = mapped_column(
        enum_column(EntryFeeMode), nullable=False, default=EntryFeeMode.RANDOM
    )
    min_entry_fee: Mapped[float | None] = mapped_column(Float, nullable=True)
    max_entry_fee: Mapped[float | None] = mapped_column(Float, nullable=True)
    fee_splits: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    round_count: Mapped[int] = mapped_column(Integer, nullable=False, default=4)
    round_config: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    min_slots_criteria: Mapped[MinSlotsCriteria] = mapped_column(
        enum_column(MinSlotsCriteria), nullable=False, default=MinSlotsCriteria.AUTO
    )
    min_slots_value: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # live state
    status: Mapped[AuctionStatus] = mapped_column(
        enum_column(AuctionStatus), nullable=False, default=AuctionStatus.UPCOMING, index=True
    )
    winners_announced: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    current_round: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    participants: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    rounds: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    winners: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    total_participants: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_bids: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    started_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    # rank-1 winner and claim summary
    winner_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    winner_username: Mapped[str | None] = mapped_column(String(50), nullable=True)
    winning_bid: Mapped[float | None] = mapped_column(Float, nullable=True)
    prize_claim_status: Mapped[PrizeClaimStatus | None] = mapped_column(
        enum_column(PrizeClaimStatus), nullable=True
    )
    prize_claimed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    prize_claimed_by: Mapped[str | None] = mapped_column(String(50), nullable=True)
    claim_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )

    def get_rounds(self) -> list[AuctionRound]:
        return load_documents(AuctionRound, self.rounds)

    def set_rounds(self, rounds: list[AuctionRound]) -> None:
        self.rounds = dump_documents(rounds)

    def get_participants(self) -> list[Participant]:
        return load_documents(Participant, self.participants)

    def set_participants(self, participants: list[Participant]) -> None:
        self.participants = dump_documents(participants)
        self.total_participants = len(participants)

    def get_winners(self) -> list[Winner]:
        return load_documents(Winner, self.winners)

    def set_winners(self, winners: list[Winner]) -> None:
        self.winners = dump_documents(winners)

    def get_round_config(self) -> list[RoundConfig]:
        return load_documents(RoundConfig, self.round_config)

    def __repr__(self) -> str:
        return (
            f"<HourlyAuction(code={self.hourly_auction_code}, slot={self.time_slot}, "
            f"status={self.status})>"
        )
