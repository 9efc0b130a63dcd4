"""
ZIMMR Backend — Password Hashing & Access Tokens
=================================================

What:  bcrypt password hashing (passlib) and HS256 JWT issue/verify (python-jose).
Who:   AuthService (register/login) and the bearer dependency in dependencies.py.

Token claims:
    userId, email, role, craftsmanId (null for non-craftsmen), exp
    Claim names are camelCase because existing API clients decode them.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import JWTError, jwt as jose_jwt
from passlib.context import CryptContext

from zimmr.config import settings

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


class InvalidTokenError(Exception):
    """Token is malformed, has a bad signature, is expired or lacks claims."""


@dataclass(frozen=True)
class TokenUser:
    """The authenticated principal, decoded from a bearer token."""
    user_id: int
    email: str
    role: str
    craftsman_id: Optional[int] = None

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, password_hash: str) -> bool:
    try:
        return pwd_context.verify(plain_password, password_hash)
    except ValueError:
        # Unknown or corrupt hash format in the database
        logger.warning("Password hash could not be identified")
        return False


def create_access_token(
    user_id: int,
    email: str,
    role: str,
    craftsman_id: Optional[int] = None,
    expires_minutes: Optional[int] = None,
) -> str:
    expire = datetime.now(timezone.utc) + timedelta(
        minutes=expires_minutes or settings.jwt_expire_minutes
    )
    claims: Dict[str, Any] = {
        "userId": user_id,
        "email": email,
        "role": role,
        "craftsmanId": craftsman_id,
        "exp": expire,
    }
    return jose_jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> TokenUser:
    """
    Verify signature and expiry and return the principal.

    Raises:
        InvalidTokenError: for any verification failure
    """
    try:
        payload = jose_jwt.decode(
            token, settings.jwt_secret, algorithms=[settings.jwt_algorithm]
        )
    except JWTError as e:
        raise InvalidTokenError(str(e)) from e

    user_id = payload.get("userId")
    if user_id is None or payload.get("role") is None:
        raise InvalidTokenError("Token is missing required claims")

    return TokenUser(
        user_id=int(user_id),
        email=payload.get("email", ""),
        role=payload["role"],
        craftsman_id=payload.get("craftsmanId"),
    )
