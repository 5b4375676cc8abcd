from datetime import datetime
from uuid import uuid4

from sqlalchemy import (
    JSON,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from dream60.core.database import Base
from dream60.core.enums import JoinStatus, PaymentStatus, PaymentType
from dream60.models.auction import enum_column


class Payment(Base):
    """Gateway order for an entry fee or a prize claim"""

    __tablename__ = "payments"

    id: Mapped[UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid4
    )
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    hourly_auction_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    payment_type: Mapped[PaymentType] = mapped_column(
        enum_column(PaymentType), nullable=False, default=PaymentType.ENTRY_FEE
    )

    amount: Mapped[float] = mapped_column(Float, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="INR")
    receipt: Mapped[str] = mapped_column(String(64), nullable=False)
    notes: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)

    gateway_order_id: Mapped[str] = mapped_column(
        String(64), unique=True, nullable=False, index=True
    )
    gateway_payment_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    gateway_signature: Mapped[str | None] = mapped_column(String(128), nullable=True)
    status: Mapped[PaymentStatus] = mapped_column(
        enum_column(PaymentStatus), nullable=False, default=PaymentStatus.CREATED
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )

    def __repr__(self) -> str:
        return f"<Payment(order={self.gateway_order_id}, status={self.status})>"


class HourlyAuctionJoin(Base):
    """Record that a paid user joined an hourly auction"""

    __tablename__ = "hourly_auction_joins"
    __table_args__ = (
        UniqueConstraint("user_id", "hourly_auction_id", name="uq_join_user_auction"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    username: Mapped[str] = mapped_column(String(50), nullable=False)
    hourly_auction_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    payment_id: Mapped[UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("payments.id"), nullable=True
    )
    status: Mapped[JoinStatus] = mapped_column(
        enum_column(JoinStatus), nullable=False, default=JoinStatus.JOINED
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )

    def __repr__(self) -> str:
        return f"<HourlyAuctionJoin(user={self.username}, auction={self.hourly_auction_id})>"
