from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from dream60.core.config import settings

# Auction traffic is bursty around the top of each hour (joins, then bids
# every 15 minutes), so the pool is sized for short spikes.
if settings.USE_PGBOUNCER:
    pool_config = {
        "pool_size": 30,
        "max_overflow": 60,
        "pool_recycle": 300,
        "pool_timeout": 30,
        "pool_pre_ping": False,  # PgBouncer handles connection health
    }
else:
    pool_config = {
        "pool_size": 10,
        "max_overflow": 20,
        "pool_recycle": 120,
        "pool_timeout": 10,
        "pool_pre_ping": True,
    }

engine = create_async_engine(
    settings.DATABASE_URL,
    echo=False,
    future=True,
    pool_use_lifo=True,
    connect_args={
        "server_settings": {
            "timezone": "UTC",
            "application_name": "dream60_scheduler",
        },
        "command_timeout": 30,
        "statement_cache_size": 0,
        "timeout": 15,
    },
    **pool_config,
)

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


class Base(DeclarativeBase):
    """All ORM models base class"""

    pass


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI Dependency: Provide database session"""
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


async def init_db() -> None:
    """Initialize database, create all tables"""
    async with engine.begin() as conn:
        # Import all models to ensure they are registered
        from dream60.models import (  # noqa: F401
            AuctionHistory,
            Counter,
            DailyAuction,
            HourlyAuction,
            HourlyAuctionJoin,
            MasterAuction,
            Payment,
            User,
        )

        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """Close database connection"""
    await engine.dispose()
