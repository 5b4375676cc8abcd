from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration settings"""

    # Application basic settings
    APP_NAME: str = "Dream60 Auction Scheduler"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # PostgreSQL database settings
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = "postgres"
    POSTGRES_HOST: str = "127.0.0.1"
    POSTGRES_PORT: int = 5432
    POSTGRES_DB: str = "dream60"

    # PgBouncer settings (set USE_PGBOUNCER=true to enable)
    USE_PGBOUNCER: bool = False
    PGBOUNCER_HOST: str = "127.0.0.1"
    PGBOUNCER_PORT: int = 6432

    # Redis settings
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    REDIS_PASSWORD: str | None = None
    REDIS_CACHE_EXPIRE: int = 3600
    AUTH_CACHE_TTL_SECONDS: int = 5
    AUTH_CACHE_MAX_ENTRIES: int = 5000

    # JWT settings
    SECRET_KEY: str = "your-secret-key-change-this-in-production"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24

    # CORS settings
    BACKEND_CORS_ORIGINS: list[str] = ["http://localhost:3000", "http://localhost:5173"]

    # Clock settings. Auction dates and time slots are IST wall-clock values.
    TIMEZONE_OFFSET_MINUTES: int = 330
    CLOCK_OFFSET_SECONDS: int = 0

    # Scheduler settings
    SCHEDULER_ENABLED: bool = True
    SCHEDULER_TICK_SECONDS: int = 60
    CLAIM_QUEUE_TICK_SECONDS: int = 60
    SCHEDULER_LOCK_TTL_SECONDS: int = 55
    OPERATING_HOUR_START: int = 3
    OPERATING_HOUR_END: int = 23
    FIRST_SLOT_HOUR: int = 9
    LAST_SLOT_HOUR: int = 22

    # Auction rules
    DEFAULT_ROUND_COUNT: int = 4
    DEFAULT_ROUND_DURATION_MINUTES: int = 15
    MAX_WINNERS: int = 3
    JOIN_WINDOW_MINUTES: int = 15
    CLAIM_WINDOW_MINUTES: int = 15
    LIVE_AUCTION_CACHE_SECONDS: int = 5

    # Razorpay settings
    RAZORPAY_KEY_ID: str = "rzp_test_key"
    RAZORPAY_KEY_SECRET: str = "rzp_test_secret"
    PAYMENT_CURRENCY: str = "INR"

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=True, extra="ignore"
    )

    @property
    def DATABASE_URL(self) -> str:
        """Generate PostgreSQL connection string (via PgBouncer if enabled)"""
        if self.USE_PGBOUNCER:
            return (
                f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
                f"@{self.PGBOUNCER_HOST}:{self.PGBOUNCER_PORT}/{self.POSTGRES_DB}"
            )
        return (
            f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    @property
    def REDIS_URL(self) -> str:
        """Generate Redis connection string"""
        if self.REDIS_PASSWORD:
            return f"redis://:{self.REDIS_PASSWORD}@{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"
        return f"redis://{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"


settings = Settings()
