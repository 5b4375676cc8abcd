# dream60/api/auth.py
import asyncio
import time
from datetime import datetime
from typing import Any, Mapping
from uuid import UUID, uuid4

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from passlib.context import CryptContext
from redis.asyncio import Redis
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from dream60.core.config import settings
from dream60.core.database import get_db
from dream60.core.jwt import create_access_token, decode_access_token
from dream60.core.redis import get_redis
from dream60.models.user import User
from dream60.schemas.auth import UserLogin, UserRegister, UserResponse

router = APIRouter()

# Password hashing
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

# OAuth2 scheme for token authentication
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")


class InMemoryTokenCache:
    """Per-process token cache that shields Redis when a round opens and everyone bids."""

    def __init__(self, ttl_seconds: int, max_entries: int) -> None:
        self._ttl = ttl_seconds
        self._max_entries = max_entries
        self._store: dict[str, tuple[float, dict[str, str]]] = {}
        self._lock = asyncio.Lock()

    async def get(self, token: str) -> dict[str, str] | None:
        now = time.monotonic()
        async with self._lock:
            record = self._store.get(token)
            if not record:
                return None
            expires_at, payload = record
            if expires_at <= now:
                self._store.pop(token, None)
                return None
            return payload

    async def set(self, token: str, payload: dict[str, str]) -> None:
        expiry = time.monotonic() + self._ttl
        async with self._lock:
            if self._max_entries > 0 and len(self._store) >= self._max_entries:
                # Drop the entry that expires soonest to keep memory bounded.
                stale_token = min(self._store.items(), key=lambda item: item[1][0])[0]
                self._store.pop(stale_token, None)
            self._store[token] = (expiry, payload)

    async def clear(self) -> None:
        async with self._lock:
            self._store.clear()


token_cache = InMemoryTokenCache(
    ttl_seconds=settings.AUTH_CACHE_TTL_SECONDS,
    max_entries=settings.AUTH_CACHE_MAX_ENTRIES,
)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against a hash"""
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    """Hash a password"""
    return pwd_context.hash(password)


def _normalize_payload(payload: Mapping[Any, Any]) -> dict[str, str]:
    """Convert redis/local cache payload keys and values to plain strings."""
    normalized: dict[str, str] = {}
    for key, value in payload.items():
        if isinstance(key, bytes):
            key = key.decode("utf-8")
        if isinstance(value, bytes):
            value = value.decode("utf-8")
        normalized[str(key)] = str(value)
    return normalized


def _user_from_payload(payload: Mapping[str, str]) -> User:
    return User(
        id=UUID(payload.get("id", uuid4().hex)),
        username=payload.get("username", ""),
        email=payload.get("email", ""),
        mobile=payload.get("mobile") or None,
        is_admin=payload.get("is_admin", "0") == "1",
        password="",
        created_at=datetime.utcnow(),
        updated_at=datetime.utcnow(),
    )


def _serialize_user(user: User) -> dict[str, str]:
    return {
        "id": str(user.id),
        "username": user.username,
        "email": user.email,
        "mobile": user.mobile or "",
        "is_admin": "1" if user.is_admin else "0",
    }


def _user_response(user: User, token: str) -> dict:
    return {
        "user_id": str(user.id),
        "username": user.username,
        "email": user.email,
        "mobile": user.mobile,
        "token": token,
        "is_admin": user.is_admin,
    }


async def cache_user_in_redis(redis: Redis, user: User) -> None:
    """
    Cache user data in Redis for fast lookup.
    TTL matches the JWT lifetime.
    """
    user_cache_key = f"user:{user.id}"
    await redis.hset(user_cache_key, mapping=_serialize_user(user))
    await redis.expire(user_cache_key, settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60)


async def get_current_user(
    token: str = Depends(oauth2_scheme),
    redis: Redis = Depends(get_redis),
) -> User:
    """
    Resolve the caller from the JWT plus the Redis user cache.

    Flow:
    1. Decode JWT token (no DB, just signature verification)
    2. Per-process cache, then Redis
    3. Fall back to the claims carried in the JWT itself
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    token_data = decode_access_token(token)
    if token_data is None:
        raise credentials_exception

    local_cache_hit = await token_cache.get(token)
    if local_cache_hit:
        return _user_from_payload(local_cache_hit)

    user_cache_key = f"user:{token_data.user_id}"
    cached_user = await redis.hgetall(user_cache_key)

    if cached_user:
        normalized = _normalize_payload(cached_user)
        await token_cache.set(token, normalized)
        return _user_from_payload(normalized)

    # Cache expired but the JWT is still valid
    fallback_payload = {
        "id": str(token_data.user_id),
        "username": token_data.username or "",
        "email": "",
        "mobile": "",
        "is_admin": "1" if token_data.is_admin else "0",
    }
    await token_cache.set(token, fallback_payload)
    return _user_from_payload(fallback_payload)


async def get_current_admin(current_user: User = Depends(get_current_user)) -> User:
    """Allow only admin users"""
    if not current_user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required"
        )
    return current_user


@router.post("/register", response_model=UserResponse)
async def register(
    user_data: UserRegister,
    db: AsyncSession = Depends(get_db),
    redis: Redis = Depends(get_redis),
):
    """
    Register a new player.

    Request body:
    {
        "username": "player1",
        "email": "player1@example.com",
        "mobile": "9876543210",
        "password": "test123"
    }
    """
    result = await db.execute(
        select(User).where(or_(User.username == user_data.username, User.email == user_data.email))
    )
    existing = result.scalars().first()
    if existing is not None:
        detail = (
            "Username already exists"
            if existing.username == user_data.username
            else "Email already exists"
        )
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)

    new_user = User(
        id=uuid4(),
        username=user_data.username,
        email=user_data.email,
        mobile=user_data.mobile,
        password=get_password_hash(user_data.password),
        is_admin=user_data.is_admin,
        created_at=datetime.utcnow(),
        updated_at=datetime.utcnow(),
    )

    db.add(new_user)
    await db.commit()
    await db.refresh(new_user)

    access_token = create_access_token(
        user_id=new_user.id,
        username=new_user.username,
        is_admin=new_user.is_admin,
    )
    await cache_user_in_redis(redis, new_user)

    return _user_response(new_user, access_token)


@router.post("/login", response_model=UserResponse)
async def login(
    credentials: UserLogin,
    db: AsyncSession = Depends(get_db),
    redis: Redis = Depends(get_redis),
):
    """
    Login user and return JWT token.
    Also caches user data in Redis for fast authentication.
    """
    result = await db.execute(select(User).where(User.username == credentials.username))
    user = result.scalar_one_or_none()

    if not user or not verify_password(credentials.password, user.password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect username or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    access_token = create_access_token(
        user_id=user.id,
        username=user.username,
        is_admin=user.is_admin,
    )

    await cache_user_in_redis(redis, user)
    await token_cache.set(access_token, _serialize_user(user))

    return _user_response(user, access_token)


@router.get("/me")
async def get_me(current_user: User = Depends(get_current_user)):
    """
    Get current user information.
    Requires authentication.
    """
    return {
        "user_id": str(current_user.id),
        "username": current_user.username,
        "email": current_user.email,
        "mobile": current_user.mobile,
        "is_admin": current_user.is_admin,
    }
