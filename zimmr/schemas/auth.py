"""
ZIMMR Backend — Auth Schemas
=============================

Request/response contracts for /auth/register, /auth/login and /auth/me.
"""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, EmailStr, Field

from zimmr.schemas.craftsman import CraftsmanResponse


class RegisterRequest(BaseModel):
    """
    Self-registration payload.

    Craftsmen must supply a phone number; `name` and `specialty` seed the
    craftsman profile (name falls back to the username).
    Admin accounts cannot self-register.
    """
    username: str = Field(min_length=3, max_length=100)
    email: EmailStr
    password: str = Field(min_length=6, max_length=128)
    role: Literal["customer", "craftsman"] = "customer"
    phone: Optional[str] = Field(default=None, max_length=50)
    name: Optional[str] = Field(default=None, max_length=255)
    specialty: Optional[str] = Field(default=None, max_length=255)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1)


class UserResponse(BaseModel):
    id: int
    username: str
    email: str
    role: str
    created_at: Optional[datetime] = None
    craftsman_id: Optional[int] = None
    craftsman: Optional[CraftsmanResponse] = None


class TokenResponse(BaseModel):
    message: str
    token: str = Field(description="Bearer JWT; send as 'Authorization: Bearer <token>'")
    user: UserResponse
