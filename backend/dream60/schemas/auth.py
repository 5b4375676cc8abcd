# dream60/schemas/auth.py
from typing import Optional

from pydantic import BaseModel, Field


class UserRegister(BaseModel):
    """User registration schema"""
    username: str = Field(..., min_length=3, max_length=50)
    email: str = Field(..., min_length=3)
    mobile: Optional[str] = Field(None, pattern=r"^\+?\d{10,15}$")
    password: str = Field(..., min_length=6)
    is_admin: bool = False

    class Config:
        json_schema_extra = {
            "example": {
                "username": "player1",
                "email": "player1@example.com",
                "mobile": "9876543210",
                "password": "securepassword123"
            }
        }


class UserLogin(BaseModel):
    """User login schema"""
    username: str
    password: str

    class Config:
        json_schema_extra = {
            "example": {
                "username": "player1",
                "password": "securepassword123"
            }
        }


class UserResponse(BaseModel):
    """User response schema"""
    user_id: str
    username: str
    email: str
    mobile: Optional[str] = None
    token: str
    is_admin: bool

    class Config:
        json_schema_extra = {
            "example": {
                "user_id": "123e4567-e89b-12d3-a456-426614174000",
                "username": "player1",
                "email": "player1@example.com",
                "mobile": "9876543210",
                "token": "eyJhbGciOiJIUzI1NiIsInR5cCI6IkpXVCJ9...",
                "is_admin": False
            }
        }
