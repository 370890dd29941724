"""
User account and session endpoints.

This module provides REST API endpoints for:
- Signup, login and logout
- Forgot/reset password and change password
- Reading, updating and deleting the caller's profile
"""

import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

import schemas
from auth.dependencies import AuthContext, get_auth_context
from database import get_db
from i18n import get_translator, success
from notifications import Notifier, get_notifier
from services import accounts, sessions

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/user", tags=["user"])

# Profile fields that may be cleared by sending null
NULLABLE_PROFILE_FIELDS = {"push_token"}


def user_body(user) -> dict:
    return schemas.User.model_validate(user).model_dump(mode="json")


@router.post("/signup", status_code=status.HTTP_201_CREATED)
async def signup(
    request: schemas.SignupRequest,
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
    t=Depends(get_translator),
):
    """
    Register a new account and log it in.

    Raises:
        Conflict: 409 if the email is already registered
    """
    logger.info(f"Signup attempt for email: {request.email}")
    user, token = sessions.signup(
        db, notifier, request.full_name, request.email, request.password, push_token=request.push_token
    )
    return success(t, "user.signup_success", user=user_body(user), token=token)


@router.post("/login")
async def login(request: schemas.LoginRequest, db: Session = Depends(get_db), t=Depends(get_translator)):
    """
    Authenticate with email and password.

    Returns:
        The user and a fresh bearer token. Any previously issued token stops working.
    """
    user, token = sessions.login(db, request.email, request.password, push_token=request.push_token)
    return success(t, "user.login_success", user=user_body(user), token=token)


@router.post("/logout")
async def logout(
    ctx: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
    t=Depends(get_translator),
):
    sessions.logout(db, ctx.user, ctx.token)
    return success(t, "user.logout_success")


@router.post("/forgot-password")
async def forgot_password(
    request: schemas.ForgotPasswordRequest,
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
    t=Depends(get_translator),
):
    sessions.forgot_password(db, notifier, request.email)
    return success(t, "user.reset_link_sent")


@router.post("/reset-password")
async def reset_password(
    request: schemas.ResetPasswordRequest,
    db: Session = Depends(get_db),
    t=Depends(get_translator),
):
    sessions.reset_password(db, request.email, request.token, request.new_password)
    return success(t, "user.password_reset_success")


@router.post("/change-password")
async def change_password(
    request: schemas.ChangePasswordRequest,
    ctx: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
    t=Depends(get_translator),
):
    """
    Change the caller's password. The token used for this call is revoked,
    so the client has to log in again.
    """
    sessions.change_password(db, ctx.user, ctx.token, request.old_password, request.new_password)
    return success(t, "user.password_changed")


@router.get("/me")
async def get_me(ctx: AuthContext = Depends(get_auth_context), t=Depends(get_translator)):
    return success(t, "user.profile", user=user_body(ctx.user))


@router.put("/update")
async def update_me(
    request: schemas.UserUpdate,
    ctx: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
    t=Depends(get_translator),
):
    changes = {
        key: value
        for key, value in request.model_dump(exclude_unset=True).items()
        if value is not None or key in NULLABLE_PROFILE_FIELDS
    }
    user, modified = accounts.update_profile(db, ctx.user, changes)
    key = "user.updated" if modified else "user.not_modified"
    return success(t, key, modified=modified, user=user_body(user))


@router.delete("/delete")
async def delete_me(
    ctx: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
    t=Depends(get_translator),
):
    accounts.soft_delete_user(db, ctx.user, ctx.token)
    return success(t, "user.deleted")
