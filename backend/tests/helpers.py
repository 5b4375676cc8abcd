"""Shared builders for auction tests"""
from datetime import date, datetime
from uuid import uuid4

from faker import Faker
from sqlalchemy.ext.asyncio import AsyncSession

from dream60.core.clock import Clock
from dream60.core.jwt import create_access_token
from dream60.schemas.documents import Participant, SlotConfig
from dream60.services import history_service, replica_sync, scheduler_service

fake = Faker()

AUCTION_DAY = date(2026, 10, 18)


class FrozenClock(Clock):
    """Clock pinned to a settable IST instant"""

    def __init__(self, current: datetime):
        super().__init__()
        self.current = current

    def now(self) -> datetime:
        return self.current

    def set(self, hour: int, minute: int = 0, day: date = AUCTION_DAY) -> datetime:
        self.current = at(hour, minute, day)
        return self.current


def at(hour: int, minute: int = 0, day: date = AUCTION_DAY) -> datetime:
    return datetime(day.year, day.month, day.day, hour, minute)


def slot_config(auction_number: int = 1, time_slot: str = "09:00", **overrides) -> SlotConfig:
    data = {
        "auction_number": auction_number,
        "time_slot": time_slot,
        "auction_name": fake.catch_phrase(),
        "prize_value": 10000,
        "entry_fee": "RANDOM",
        "min_entry_fee": 10,
        "max_entry_fee": 100,
        "round_count": 4,
        "min_slots_value": 0,
    }
    data.update(overrides)
    return SlotConfig(**data)


def make_player() -> dict:
    return {"id": str(uuid4()), "username": fake.unique.user_name()[:40]}


def auth_headers(player: dict, is_admin: bool = False) -> dict:
    token = create_access_token(player["id"], player["username"], is_admin=is_admin)
    return {"Authorization": f"Bearer {token}"}


async def seed_daily(db: AsyncSession, *configs: SlotConfig, now: datetime | None = None):
    """Active master plus today's daily and hourly auctions. Returns (daily, hourly list)."""
    now = now or at(0, 5)
    await scheduler_service.create_master_auction(
        db, list(configs) or [slot_config()], created_by="admin"
    )
    await scheduler_service.create_daily_auction(db, now)
    daily = await scheduler_service.get_today_daily_auction(db, now)
    hourly = await scheduler_service.get_hourly_auctions_by_daily(db, daily.daily_auction_id)
    return daily, hourly


async def add_participant(db: AsyncSession, auction, player: dict, entry_fee: float, now: datetime):
    """Join a player the way a verified entry payment does, without the gateway"""
    participant = Participant(
        player_id=player["id"],
        player_username=player["username"],
        entry_fee=entry_fee,
        joined_at=now,
    )
    participants = auction.get_participants()
    participants.append(participant)
    auction.set_participants(participants)
    await replica_sync.sync_participant(db, auction, participant)
    await history_service.create_entry(db, auction, player["id"], player["username"], entry_fee)
    await db.flush()
    return participant
