"""
Session and password lifecycle.

A user row holds two independent pieces of session state:

- active_token: the one token currently considered logged in. Issuing a
  token overwrites it, which implicitly retires the previous one.
- blacklisted_tokens: tokens explicitly revoked (logout, password change).
  A revoked token never passes the guard again; login starts a fresh list,
  which is safe because a fresh login also replaces active_token and every
  token string is unique.

Every operation that writes these fields locks the user row for the rest of
the request transaction, so concurrent logins/logouts on the same account
serialize instead of overwriting each other.
"""

import logging
import os
from datetime import timedelta
from typing import Optional

from sqlalchemy.orm import Session

import models
from auth.security import create_access_token, generate_reset_token
from errors import Forbidden, NotFound, Unauthorized, ValidationFailed
from notifications import Notifier
from services.accounts import (
    commit,
    create_user,
    find_by_email,
    find_by_id,
    normalize_email,
    set_password,
    verify_user_password,
)
from time_utils import utc_now

logger = logging.getLogger(__name__)

RESET_TOKEN_EXPIRE_MINUTES = int(os.environ.get("RESET_TOKEN_EXPIRE_MINUTES", "10"))
CLIENT_URL = os.environ.get("CLIENT_URL", "http://localhost:3000").rstrip("/")


def issue_token(db: Session, user: models.User) -> str:
    """Sign a new access token and make it the user's only active token."""
    token = create_access_token(user.id)
    user.active_token = token
    commit(db)
    logger.debug(f"Active token replaced for user {user.id}")
    return token


def signup(
    db: Session,
    notifier: Notifier,
    full_name: str,
    email: str,
    password: str,
    push_token: Optional[str] = None,
) -> tuple[models.User, str]:
    """Create an account, log it in, and queue the welcome email."""
    user = create_user(db, full_name, email, password, push_token=push_token)
    token = issue_token(db, user)

    notifier.email(user.email, "notify.welcome_subject", "notify.welcome_body", full_name=user.full_name)

    logger.critical(f"User registered successfully: {user.email} (ID: {user.id})")
    return user, token


def login(db: Session, email: str, password: str, push_token: Optional[str] = None) -> tuple[models.User, str]:
    """
    Authenticate with email and password.

    Raises:
        NotFound: no live account with this email
        Unauthorized: password mismatch
    """
    logger.info(f"Login attempt for email: {email}")

    user = find_by_email(db, email, for_update=True)
    if user is None:
        logger.info(f"Login failed: user not found: {email}")
        raise NotFound("user.not_found")

    if not verify_user_password(user, password):
        logger.info(f"Login failed: invalid password: {email}")
        raise Unauthorized("auth.invalid_credentials")

    # Fresh session context
    user.blacklisted_tokens = []
    if push_token:
        user.push_token = push_token

    token = issue_token(db, user)
    logger.critical(f"User logged in successfully: {user.email} (ID: {user.id})")
    return user, token


def logout(db: Session, user: models.User, token: str) -> None:
    """
    Revoke the presenting token and end the session.

    Raises:
        Unauthorized: the token was already revoked
    """
    user = find_by_id(db, user.id, for_update=True)
    if user is None:
        raise Unauthorized("auth.invalid_token")

    if token in (user.blacklisted_tokens or []):
        logger.info(f"Logout rejected: token already revoked for user {user.id}")
        raise Unauthorized("auth.already_logged_out")

    # Reassign rather than append so the JSON column is flagged dirty
    user.blacklisted_tokens = list(user.blacklisted_tokens or []) + [token]
    user.active_token = None
    user.push_token = None
    commit(db)

    logger.critical(f"User logged out successfully: {user.email} (ID: {user.id})")


def change_password(db: Session, user: models.User, token: str, old_password: str, new_password: str) -> None:
    """
    Change the password of an authenticated user.

    The token used for this request is revoked, forcing a new login.
    active_token is left in place; the guard rejects it because it is revoked.

    Raises:
        Unauthorized: old password does not match
        Forbidden: new password equals the old one
    """
    user = find_by_id(db, user.id, for_update=True)
    if user is None:
        raise Unauthorized("auth.invalid_token")

    if not verify_user_password(user, old_password):
        logger.info(f"Password change rejected: incorrect old password for user {user.id}")
        raise Unauthorized("auth.incorrect_old_password")

    if new_password == old_password:
        logger.info(f"Password change rejected: password reused by user {user.id}")
        raise Forbidden("auth.password_reused")

    set_password(user, new_password)
    user.updated_by = user.id
    if token not in (user.blacklisted_tokens or []):
        user.blacklisted_tokens = list(user.blacklisted_tokens or []) + [token]
    commit(db)

    logger.critical(f"Password changed for user: {user.email} (ID: {user.id})")


def forgot_password(db: Session, notifier: Notifier, email: str) -> None:
    """
    Start the reset flow: store a single-use token with a fixed expiry and email the link.

    A new request replaces any outstanding reset token.

    Raises:
        NotFound: no live account with this email
    """
    user = find_by_email(db, email, for_update=True)
    if user is None:
        logger.info(f"Password reset requested for unknown email: {email}")
        raise NotFound("user.not_found")

    reset_token = generate_reset_token()
    user.reset_token = reset_token
    user.reset_token_expiry = utc_now() + timedelta(minutes=RESET_TOKEN_EXPIRE_MINUTES)
    commit(db)

    notifier.email(
        user.email,
        "notify.reset_subject",
        "notify.reset_body",
        full_name=user.full_name,
        link=f"{CLIENT_URL}/reset-password/{reset_token}",
        minutes=RESET_TOKEN_EXPIRE_MINUTES,
    )
    logger.info(f"Password reset token issued for user {user.id}")


def reset_password(db: Session, email: str, token: str, new_password: str) -> None:
    """
    Complete the reset flow.

    The match on email, token and expiry happens in a single query; expired
    tokens are never purged but never match. Success clears both reset fields,
    so a token works once.

    Raises:
        ValidationFailed: no user matches the email/token pair, or the token expired
    """
    user = (
        db.query(models.User)
        .filter(
            models.User.email == normalize_email(email),
            models.User.is_deleted == False,  # noqa: E712
            models.User.reset_token == token,
            models.User.reset_token_expiry > utc_now(),
        )
        .with_for_update()
        .first()
    )
    if user is None:
        logger.info(f"Password reset rejected for {email}: invalid or expired token")
        raise ValidationFailed("auth.invalid_reset_token")

    set_password(user, new_password)
    user.reset_token = None
    user.reset_token_expiry = None
    user.updated_by = user.id
    commit(db)

    logger.critical(f"Password reset completed for user: {user.email} (ID: {user.id})")
