"""Human-friendly auction codes backed by the counters table."""

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from dream60.models.auction import Counter

DAILY_AUCTION_SEQUENCE = "daily_auction_code"
HOURLY_AUCTION_SEQUENCE = "hourly_auction_code"


def format_code(prefix: str, seq: int) -> str:
    """format_code('DA', 1) -> 'DA000001'"""
    return f"{prefix}{seq:06d}"


async def next_sequence(db: AsyncSession, name: str) -> int:
    """Atomically increment and return a named counter (first value is 1)."""
    dialect = db.get_bind().dialect.name
    insert = sqlite.insert if dialect == "sqlite" else postgresql.insert

    stmt = (
        insert(Counter)
        .values(name=name, seq=1)
        .on_conflict_do_update(
            index_elements=[Counter.name],
            set_={"seq": Counter.seq + 1},
        )
        .returning(Counter.seq)
    )
    result = await db.execute(stmt)
    return result.scalar_one()


async def next_daily_auction_code(db: AsyncSession) -> str:
    return format_code("DA", await next_sequence(db, DAILY_AUCTION_SEQUENCE))


async def next_hourly_auction_code(db: AsyncSession) -> str:
    return format_code("HA", await next_sequence(db, HOURLY_AUCTION_SEQUENCE))
