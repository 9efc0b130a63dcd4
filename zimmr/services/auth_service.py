"""
ZIMMR Backend — Auth Service
=============================

What:  Registration, login and current-user lookup.
How:   Users and (for role=craftsman) their craftsman profile are created in
       the request transaction; tokens are issued by zimmr.security.
Who:   /auth routes.
"""

import logging
from typing import Optional

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from zimmr.exceptions import (
    AuthenticationError,
    DatabaseError,
    NotFoundError,
    ValidationError,
    ZimmrError,
)
from zimmr.models.user import Craftsman, User
from zimmr.schemas.auth import LoginRequest, RegisterRequest, TokenResponse, UserResponse
from zimmr.schemas.craftsman import CraftsmanResponse
from zimmr.security import create_access_token, hash_password, verify_password

logger = logging.getLogger(__name__)


def to_user_response(user: User, craftsman: Optional[Craftsman] = None) -> UserResponse:
    return UserResponse(
        id=user.id,
        username=user.username,
        email=user.email,
        role=user.role,
        created_at=user.created_at,
        craftsman_id=craftsman.id if craftsman else None,
        craftsman=CraftsmanResponse.model_validate(craftsman) if craftsman else None,
    )


def issue_token(user: User, craftsman: Optional[Craftsman] = None) -> str:
    return create_access_token(
        user_id=user.id,
        email=user.email,
        role=user.role,
        craftsman_id=craftsman.id if craftsman else None,
    )


class AuthService:

    async def register(self, db: AsyncSession, data: RegisterRequest) -> TokenResponse:
        """
        Create a user (and craftsman profile for role=craftsman).

        Raises:
            ValidationError: duplicate email/username, craftsman without phone
            DatabaseError: insert failed
        """
        if data.role == "craftsman" and not data.phone:
            raise ValidationError("Phone number is required for craftsmen", field="phone")

        try:
            result = await db.execute(
                select(User).where(
                    or_(User.email == data.email, User.username == data.username)
                )
            )
            existing = result.scalars().first()
            if existing is not None:
                field = "email" if existing.email == data.email else "username"
                raise ValidationError(f"A user with this {field} already exists", field=field)

            user = User(
                username=data.username,
                email=data.email,
                password_hash=hash_password(data.password),
                role=data.role,
            )
            db.add(user)
            await db.flush()

            craftsman = None
            if data.role == "craftsman":
                craftsman = Craftsman(
                    user_id=user.id,
                    name=data.name or data.username,
                    phone=data.phone,
                    email=data.email,
                    specialty=data.specialty,
                )
                db.add(craftsman)
                await db.flush()

            logger.info(
                "Registered user %d (%s)%s",
                user.id,
                user.role,
                f" with craftsman profile {craftsman.id}" if craftsman else "",
            )
            return TokenResponse(
                message="Registration successful",
                token=issue_token(user, craftsman),
                user=to_user_response(user, craftsman),
            )

        except ZimmrError:
            raise
        except Exception as e:
            logger.error("Registration failed: %s", str(e), exc_info=True)
            raise DatabaseError(
                message="Registration failed. Please try again.",
                context={"original_error": type(e).__name__},
            )

    async def login(self, db: AsyncSession, data: LoginRequest) -> TokenResponse:
        """
        Raises:
            AuthenticationError: unknown email or wrong password (same message)
        """
        try:
            result = await db.execute(
                select(User)
                .options(selectinload(User.craftsman))
                .where(User.email == data.email)
            )
            user = result.scalar_one_or_none()
        except Exception as e:
            logger.error("Login lookup failed: %s", str(e))
            raise DatabaseError(message="Login failed. Please try again.")

        if user is None or not verify_password(data.password, user.password_hash):
            logger.info("Failed login attempt for %s", data.email)
            raise AuthenticationError("Invalid credentials")

        logger.info("User %d logged in", user.id)
        return TokenResponse(
            message="Login successful",
            token=issue_token(user, user.craftsman),
            user=to_user_response(user, user.craftsman),
        )

    async def get_user(self, db: AsyncSession, user_id: int) -> UserResponse:
        try:
            user = await db.get(User, user_id, options=[selectinload(User.craftsman)])
        except Exception as e:
            logger.error("Database error fetching user %d: %s", user_id, str(e))
            raise DatabaseError(message="Could not load the user. Please try again.")
        if user is None:
            raise NotFoundError(resource="user", resource_id=str(user_id))
        return to_user_response(user, user.craftsman)


auth_service = AuthService()
