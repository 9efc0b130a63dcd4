"""
ZIMMR Backend — Auth Route Handlers
====================================

What:  POST /auth/register, POST /auth/login, GET /auth/me.
Who:   Called by the web and mobile clients before any other request.
"""

import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from zimmr.database import get_db_session
from zimmr.dependencies import get_current_user
from zimmr.schemas.auth import LoginRequest, RegisterRequest, TokenResponse, UserResponse
from zimmr.schemas.common import ErrorResponse
from zimmr.security import TokenUser
from zimmr.services.auth_service import auth_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Auth"])


@router.post(
    "/register",
    response_model=TokenResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"description": "Email or username taken, or craftsman without phone", "model": ErrorResponse},
    },
    summary="Register a customer or craftsman account",
)
async def register(
    body: RegisterRequest,
    db: AsyncSession = Depends(get_db_session),
) -> TokenResponse:
    """
    Create a user and return a token for it.

    Registering with role=craftsman also creates the craftsman profile, so
    the returned token already carries a craftsmanId.
    """
    return await auth_service.register(db, body)


@router.post(
    "/login",
    response_model=TokenResponse,
    responses={401: {"description": "Invalid credentials", "model": ErrorResponse}},
    summary="Exchange email and password for a bearer token",
)
async def login(
    body: LoginRequest,
    db: AsyncSession = Depends(get_db_session),
) -> TokenResponse:
    return await auth_service.login(db, body)


@router.get(
    "/me",
    response_model=UserResponse,
    responses={401: {"description": "No token", "model": ErrorResponse}},
    summary="The authenticated user",
)
async def me(
    user: TokenUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> UserResponse:
    return await auth_service.get_user(db, user.user_id)
