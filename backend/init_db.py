#!/usr/bin/env python3
"""Initialize database tables, check Redis and create today's auctions."""
import asyncio

from dream60.core.clock import clock
from dream60.core.database import AsyncSessionLocal, close_db, init_db
from dream60.core.exceptions import AuctionError
from dream60.core.redis import redis_client
from dream60.services import scheduler_service


async def main():
    """Initialize database, test Redis and build today's schedule if a master exists."""
    print("Initializing database...")
    try:
        await init_db()
        print("✅ Database tables created successfully!")
    except Exception as e:
        print(f"❌ Database initialization failed: {e}")
        return

    print("\nTesting Redis connection...")
    try:
        await redis_client.connect()
        if await redis_client.ping():
            print("✅ Redis connection successful!")
        else:
            print("❌ Redis ping failed")
        await redis_client.disconnect()
    except Exception as e:
        print(f"❌ Redis connection failed: {e}")

    print("\nCreating today's daily auction...")
    try:
        async with AsyncSessionLocal() as db:
            result = await scheduler_service.create_daily_auction(db, clock.now())
            await db.commit()
        daily = result["daily_auction"]
        print(
            f"✅ {daily['daily_auction_code']} for {daily['auction_date']} "
            f"(existing: {result['was_existing']}, hourly: {result['hourly']})"
        )
    except AuctionError as e:
        print(f"⚠️  Skipped: {e.message}")
    finally:
        await close_db()


if __name__ == "__main__":
    asyncio.run(main())
