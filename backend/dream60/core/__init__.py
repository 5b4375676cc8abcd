# Core modules
from dream60.core.clock import Clock, clock, get_clock
from dream60.core.config import settings
from dream60.core.database import Base, close_db, get_db, init_db
from dream60.core.redis import RedisService, get_redis, redis_client

__all__ = [
    "settings",
    "get_db",
    "init_db",
    "close_db",
    "Base",
    "redis_client",
    "get_redis",
    "RedisService",
    "Clock",
    "clock",
    "get_clock",
]
