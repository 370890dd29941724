"""
FastAPI dependencies for authentication.

get_auth_context is the guard in front of every protected endpoint. It walks
a fixed sequence of checks and rejects at the first failing step:

1. Authorization header present and of the form "Bearer <token>"
2. Token signature and expiry valid
3. Token subject resolves to a live (not soft-deleted) user
4. Token is the user's active token and has not been revoked

On success it returns an AuthContext that handlers receive as an explicit
parameter. The guard never writes to the database.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

import models
from auth.security import verify_token
from database import get_db
from errors import Unauthorized
from services.accounts import find_by_id

logger = logging.getLogger(__name__)

# auto_error=False so a missing header maps to our own 401 instead of FastAPI's 403
security = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class AuthContext:
    """The authenticated actor and the exact token it presented."""

    user: models.User
    token: str


def is_token_usable(user: models.User, token: str) -> bool:
    """A token passes only if it is the active token and not revoked."""
    if not user.active_token or user.active_token != token:
        return False
    return token not in (user.blacklisted_tokens or [])


async def get_auth_context(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
) -> AuthContext:
    """
    Authenticate the request from its bearer token.

    Raises:
        Unauthorized: "auth.token_missing", "auth.invalid_token" or "auth.token_blacklisted"

    Example:
        @router.get("/task/get")
        def list_tasks(ctx: AuthContext = Depends(get_auth_context)):
            return {"user_id": ctx.user.id}
    """
    if credentials is None or not credentials.credentials:
        logger.info("No bearer token provided")
        raise Unauthorized("auth.token_missing")

    token = credentials.credentials
    payload = verify_token(token)
    if payload is None or payload.get("type") != "access":
        logger.info("Bearer token failed verification")
        raise Unauthorized("auth.invalid_token")

    user_id = payload.get("sub")
    if not user_id:
        logger.info("Token payload missing 'sub' claim")
        raise Unauthorized("auth.invalid_token")

    user = find_by_id(db, str(user_id))
    if user is None:
        logger.info(f"No live user for token subject: {user_id}")
        raise Unauthorized("auth.invalid_token")

    if not is_token_usable(user, token):
        logger.info(f"Rejected inactive or revoked token for user {user.id}")
        raise Unauthorized("auth.token_blacklisted")

    logger.debug(f"User authenticated via JWT: {user.id}")
    return AuthContext(user=user, token=token)


async def get_current_user(ctx: AuthContext = Depends(get_auth_context)) -> models.User:
    """Convenience dependency for handlers that only need the acting user."""
    return ctx.user
