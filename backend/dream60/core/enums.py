from enum import Enum


class AuctionStatus(str, Enum):
    LIVE = "LIVE"
    UPCOMING = "UPCOMING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class RoundStatus(str, Enum):
    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"


class DailyAuctionStatus(str, Enum):
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class EntryFeeMode(str, Enum):
    RANDOM = "RANDOM"
    MANUAL = "MANUAL"


class MinSlotsCriteria(str, Enum):
    MANUAL = "MANUAL"
    AUTO = "AUTO"


class PrizeClaimStatus(str, Enum):
    PENDING = "PENDING"
    CLAIMED = "CLAIMED"
    EXPIRED = "EXPIRED"
    NOT_APPLICABLE = "NOT_APPLICABLE"
    CANCELLED = "CANCELLED"


class HistoryAuctionStatus(str, Enum):
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"


class PaymentStatus(str, Enum):
    CREATED = "created"
    PAID = "paid"
    FAILED = "failed"


class PaymentType(str, Enum):
    ENTRY_FEE = "ENTRY_FEE"
    PRIZE_CLAIM = "PRIZE_CLAIM"


class JoinStatus(str, Enum):
    JOINED = "joined"
    CANCELLED = "cancelled"


class ClaimAdvanceReason(str, Enum):
    EXPIRED_WINDOW = "EXPIRED_WINDOW"
    CANCELLED = "CANCELLED"
