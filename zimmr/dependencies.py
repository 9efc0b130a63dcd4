"""
ZIMMR Backend — Request Dependencies
=====================================

What:  FastAPI dependencies that authenticate the caller.

Status codes:
    - No bearer token                  → 401 (AuthenticationError)
    - Invalid or expired bearer token  → 403 (PermissionDeniedError)
    - Valid token, not a craftsman     → 403 on craftsman-only endpoints
"""

import logging

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from zimmr.exceptions import AuthenticationError, PermissionDeniedError
from zimmr.security import InvalidTokenError, TokenUser, decode_access_token

logger = logging.getLogger(__name__)

# auto_error=False: a missing header must produce our own 401 body
bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> TokenUser:
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("Access token required")
    try:
        return decode_access_token(credentials.credentials)
    except InvalidTokenError as e:
        logger.info("Rejected bearer token: %s", str(e))
        raise PermissionDeniedError("Invalid or expired token")


async def require_craftsman(user: TokenUser = Depends(get_current_user)) -> TokenUser:
    """Only callers whose token carries a craftsmanId pass."""
    if user.craftsman_id is None:
        raise PermissionDeniedError("This action is only available to craftsmen")
    return user
