# dream60/core/jwt.py
"""JWT token utilities for player and admin authentication."""

from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import UUID

from jose import JWTError, jwt
from pydantic import BaseModel

from dream60.core.config import settings


class TokenData(BaseModel):
    """JWT Token payload data."""

    user_id: UUID
    username: str
    is_admin: bool = False
    exp: datetime


def create_access_token(user_id: UUID, username: str, is_admin: bool = False) -> str:
    """
    Create a JWT access token for a user.

    Args:
        user_id: User's UUID
        username: User's username
        is_admin: Whether the token grants admin endpoints

    Returns:
        JWT token string
    """
    issued_at = datetime.now(timezone.utc)
    expire = issued_at + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)

    payload = {
        "user_id": str(user_id),
        "username": username,
        "is_admin": is_admin,
        "exp": expire,
        "iat": issued_at,
    }

    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str) -> Optional[TokenData]:
    """
    Decode and validate a JWT token.

    Returns:
        TokenData if valid, None if invalid or expired
    """
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        return None

    user_id_str = payload.get("user_id")
    username = payload.get("username")
    if user_id_str is None or username is None:
        return None

    try:
        user_id = UUID(user_id_str)
    except ValueError:
        return None

    return TokenData(
        user_id=user_id,
        username=username,
        is_admin=bool(payload.get("is_admin", False)),
        exp=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
    )
