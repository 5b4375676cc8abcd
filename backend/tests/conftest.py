"""
Dream60 - Test Configuration and Fixtures
"""
import itertools
import os
from typing import AsyncGenerator
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

# Set testing environment
os.environ["SECRET_KEY"] = "test-secret-key-for-testing-only"
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ["RAZORPAY_KEY_ID"] = "rzp_test_key"
os.environ["RAZORPAY_KEY_SECRET"] = "rzp_test_secret"

from dream60.api.auth import token_cache  # noqa: E402
from dream60.core.clock import get_clock  # noqa: E402
from dream60.core.database import Base, get_db  # noqa: E402
from dream60.core.redis import get_redis  # noqa: E402
from dream60.main import app  # noqa: E402
from dream60.services.payment_service import RazorpayGateway, get_payment_gateway  # noqa: E402

from tests.helpers import FrozenClock, at, auth_headers  # noqa: E402


@pytest.fixture
async def engine(tmp_path):
    test_engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path}/test.db", echo=False)
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker:
    return async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
    )


@pytest.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a fresh database session for each test"""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def redis() -> AsyncMock:
    """Redis stand-in: empty caches, locks always granted"""
    mock = AsyncMock()
    mock.get.return_value = None
    mock.set.return_value = True
    mock.delete.return_value = 1
    mock.hgetall.return_value = {}
    job_lock = AsyncMock()
    job_lock.acquire.return_value = True
    mock.lock = MagicMock(return_value=job_lock)
    return mock


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(at(9, 5))


@pytest.fixture
def gateway_requests() -> list:
    return []


@pytest.fixture
def gateway(gateway_requests) -> RazorpayGateway:
    """Razorpay gateway over a stub SDK client that accepts every order"""
    order_ids = itertools.count(1)

    def create(data: dict) -> dict:
        gateway_requests.append(data)
        return {
            "id": f"order_test{next(order_ids):04d}",
            "amount": data["amount"],
            "currency": data["currency"],
            "receipt": data["receipt"],
            "status": "created",
        }

    sdk = MagicMock()
    sdk.order.create.side_effect = create
    return RazorpayGateway(key_id="rzp_test_key", key_secret="rzp_test_secret", client=sdk)


@pytest.fixture
async def client(db_session, redis, clock, gateway) -> AsyncGenerator[AsyncClient, None]:
    """Create test client with dependency overrides"""

    async def override_get_db():
        try:
            yield db_session
            await db_session.commit()
        except Exception:
            await db_session.rollback()
            raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = lambda: redis
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_payment_gateway] = lambda: gateway

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
    await token_cache.clear()


@pytest.fixture
def admin() -> dict:
    return {"id": str(uuid4()), "username": "admin"}


@pytest.fixture
def admin_headers(admin) -> dict:
    return auth_headers(admin, is_admin=True)
