"""
Credential store: user identity, password hash and profile records.

No session logic lives here; token issuance and revocation are in
services.sessions. All reads exclude soft-deleted users unless asked.
"""

import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

import models
from auth.security import hash_password, verify_password
from errors import Conflict, NotFound, ServerError
from time_utils import utc_now

logger = logging.getLogger(__name__)


def commit(db: Session, conflict_key: Optional[str] = None) -> None:
    """
    Commit the request transaction, mapping persistence failures to ServerError.

    When conflict_key is given, a unique-constraint violation raises Conflict
    with that key instead, so a concurrent insert of the same value still
    yields 409.
    """
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        if conflict_key is None:
            logger.error(f"Database commit failed: {str(e)}")
            raise ServerError()
        logger.info(f"Commit rejected by unique constraint ({conflict_key})")
        raise Conflict(conflict_key)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Database commit failed: {str(e)}")
        raise ServerError()


def normalize_email(email: str) -> str:
    return email.strip().lower()


def find_by_email(db: Session, email: str, include_deleted: bool = False, for_update: bool = False) -> Optional[models.User]:
    query = db.query(models.User).filter(models.User.email == normalize_email(email))
    if not include_deleted:
        query = query.filter(models.User.is_deleted == False)  # noqa: E712
    if for_update:
        query = query.with_for_update()
    return query.first()


def find_by_id(db: Session, user_id: str, include_deleted: bool = False, for_update: bool = False) -> Optional[models.User]:
    query = db.query(models.User).filter(models.User.id == user_id)
    if not include_deleted:
        query = query.filter(models.User.is_deleted == False)  # noqa: E712
    if for_update:
        query = query.with_for_update()
    return query.first()


def verify_user_password(user: models.User, plain_password: str) -> bool:
    return verify_password(plain_password, user.password_hash)


def set_password(user: models.User, plain_password: str) -> None:
    """Every password write goes through the hash; plaintext is never stored."""
    user.password_hash = hash_password(plain_password)


def create_user(
    db: Session,
    full_name: str,
    email: str,
    password: str,
    push_token: Optional[str] = None,
) -> models.User:
    """
    Register a new user.

    The email column is unique across deleted and live accounts, so the
    uniqueness check includes soft-deleted rows.

    Raises:
        Conflict: if the email is already registered
    """
    email = normalize_email(email)
    logger.debug(f"Creating user with email: {email}")

    if find_by_email(db, email, include_deleted=True) is not None:
        logger.info(f"Registration failed: email already exists: {email}")
        raise Conflict("user.already_exists")

    user_id = models.new_id()
    user = models.User(
        id=user_id,
        full_name=full_name.strip(),
        email=email,
        push_token=push_token,
        blacklisted_tokens=[],
        created_by=user_id,
    )
    set_password(user, password)
    db.add(user)
    commit(db, conflict_key="user.already_exists")
    db.refresh(user)

    logger.info(f"User created: {user.email} (ID: {user.id})")
    return user


def update_profile(db: Session, actor: models.User, changes: dict) -> tuple[models.User, bool]:
    """
    Apply a partial profile update.

    Args:
        changes: Subset of full_name, email, push_token

    Returns:
        (user, modified). modified is False when every supplied value equals
        the stored one, in which case nothing is written.

    Raises:
        Conflict: if the new email belongs to another account
    """
    if "email" in changes and changes["email"] is not None:
        changes["email"] = normalize_email(changes["email"])
    if "full_name" in changes and changes["full_name"] is not None:
        changes["full_name"] = changes["full_name"].strip()

    effective = {k: v for k, v in changes.items() if getattr(actor, k) != v}
    if not effective:
        logger.info(f"Profile update for user {actor.id} has no changes")
        return actor, False

    if "email" in effective:
        existing = find_by_email(db, effective["email"], include_deleted=True)
        if existing is not None and existing.id != actor.id:
            logger.info(f"Profile update rejected: email {effective['email']} already in use")
            raise Conflict("user.email_taken")

    for key, value in effective.items():
        setattr(actor, key, value)
    actor.updated_by = actor.id
    commit(db, conflict_key="user.email_taken")
    db.refresh(actor)

    logger.info(f"User {actor.id} updated fields: {sorted(effective)}")
    return actor, True


def soft_delete_user(db: Session, actor: models.User, token: str) -> None:
    """
    Soft-delete the acting user's account.

    The presenting token is revoked, authored comments are detached (author
    cleared, created_by kept for audit) and assigned tasks are unassigned.
    """
    user = find_by_id(db, actor.id, for_update=True)
    if user is None:
        raise NotFound("user.not_found")

    now = utc_now()
    user.is_deleted = True
    user.deleted_at = now
    user.deleted_by = user.id
    user.blacklisted_tokens = list(user.blacklisted_tokens or []) + [token]
    user.active_token = None
    user.push_token = None

    detached = (
        db.query(models.Comment)
        .filter(models.Comment.user_id == user.id)
        .update({models.Comment.user_id: None}, synchronize_session="fetch")
    )
    unassigned = (
        db.query(models.Task)
        .filter(models.Task.user_id == user.id, models.Task.is_deleted == False)  # noqa: E712
        .update({models.Task.user_id: None, models.Task.updated_by: user.id}, synchronize_session="fetch")
    )
    commit(db)

    logger.critical(
        f"User account deleted: {user.email} (ID: {user.id}); "
        f"{detached} comment(s) detached, {unassigned} task(s) unassigned"
    )
