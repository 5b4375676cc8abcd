from datetime import date, datetime
from uuid import uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
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
from dream60.core.enums import HistoryAuctionStatus, PrizeClaimStatus
from dream60.models.auction import enum_column


class AuctionHistory(Base):
    """Per-user ledger of one hourly auction: spend, outcome and prize claim"""

    __tablename__ = "auction_history"
    __table_args__ = (
        UniqueConstraint("user_id", "hourly_auction_id", name="uq_history_user_auction"),
        Index("ix_history_auction_claim", "hourly_auction_id", "prize_claim_status"),
        Index("ix_history_claim_deadline", "prize_claim_status", "claim_deadline"),
    )

    id: Mapped[UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid4
    )
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    username: Mapped[str] = mapped_column(String(50), nullable=False)
    hourly_auction_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    daily_auction_id: Mapped[str] = mapped_column(String(36), nullable=False)

    auction_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    auction_name: Mapped[str] = mapped_column(String(255), nullable=False)
    prize_value: Mapped[float] = mapped_column(Float, nullable=False)
    time_slot: Mapped[str] = mapped_column(String(5), nullable=False)

    # participation
    entry_fee_paid: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    total_amount_bid: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    total_amount_spent: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    rounds_participated: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_bids_placed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_participants: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # outcome
    is_winner: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    final_rank: Mapped[int | None] = mapped_column(Integer, nullable=True)
    last_round_bid_amount: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    prize_amount_won: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    auction_status: Mapped[HistoryAuctionStatus] = mapped_column(
        enum_column(HistoryAuctionStatus),
        nullable=False,
        default=HistoryAuctionStatus.IN_PROGRESS,
    )

    # prize claim queue
    prize_claim_status: Mapped[PrizeClaimStatus] = mapped_column(
        enum_column(PrizeClaimStatus),
        nullable=False,
        default=PrizeClaimStatus.NOT_APPLICABLE,
    )
    claim_window_started_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    claim_deadline: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    current_eligible_rank: Mapped[int | None] = mapped_column(Integer, nullable=True)
    ranks_offered: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    remaining_product_fees: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    remaining_fees_paid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    claimed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    claimed_by: Mapped[str | None] = mapped_column(String(50), nullable=True)
    claimed_by_rank: Mapped[int | None] = mapped_column(Integer, nullable=True)
    claim_upi_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    claim_payment_reference: Mapped[str | None] = mapped_column(String(100), nullable=True)
    claim_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )

    def __repr__(self) -> str:
        return (
            f"<AuctionHistory(user={self.username}, auction={self.hourly_auction_id}, "
            f"rank={self.final_rank})>"
        )
