"""
Comments on tasks.

Anyone authenticated may comment on a live task; only the author may edit or
delete a comment. Deletion is soft.
"""

import logging
from typing import Optional

from sqlalchemy import asc, desc
from sqlalchemy.orm import Session, joinedload

import models
from auth.permissions import require_comment_author, require_live_comment, require_live_task
from notifications import Notifier
from services.accounts import commit, find_by_id
from time_utils import utc_now

logger = logging.getLogger(__name__)

SORT_NEWER = "newer"
SORT_OLDER = "older"


def _notify_assignee(db: Session, notifier: Notifier, task: models.Task, title_key: str, body_key: str, **params) -> None:
    if task.user_id is None:
        return
    assignee = find_by_id(db, task.user_id)
    if assignee is None:
        return
    notifier.push(assignee.push_token, title_key, body_key, title=task.title, **params)


def add_comment(db: Session, actor: models.User, notifier: Notifier, task_id: str, content: str) -> models.Comment:
    """
    Attach a comment to a live task.

    Raises:
        NotFound: task missing or soft-deleted
    """
    logger.info(f"User {actor.id} commenting on task {task_id}")
    task = require_live_task(db, task_id)

    comment = models.Comment(
        content=content,
        task_id=task.id,
        user_id=actor.id,
        created_by=actor.id,
        updated_by=actor.id,
    )
    db.add(comment)
    commit(db)
    db.refresh(comment)

    _notify_assignee(
        db, notifier, task, "notify.comment_added_title", "notify.comment_added_body", author=actor.full_name
    )

    logger.info(f"Comment {comment.id} added to task {task_id}")
    return comment


def list_comments(db: Session, task_id: str, sort_by: Optional[str] = SORT_NEWER) -> list[models.Comment]:
    """
    Live comments of a live task, newest first unless sort_by is "older".

    Raises:
        NotFound: task missing or soft-deleted
    """
    require_live_task(db, task_id)

    direction = asc if sort_by == SORT_OLDER else desc
    comments = (
        db.query(models.Comment)
        .options(joinedload(models.Comment.author))
        .filter(models.Comment.task_id == task_id, models.Comment.is_deleted == False)  # noqa: E712
        .order_by(direction(models.Comment.created_at), direction(models.Comment.id))
        .all()
    )
    logger.debug(f"Fetched {len(comments)} comment(s) for task {task_id}")
    return comments


def update_comment(
    db: Session, actor: models.User, notifier: Notifier, comment_id: str, task_id: str, content: str
) -> tuple[models.Comment, bool]:
    """
    Edit the content of the actor's own comment.

    Returns:
        (comment, modified). Identical content writes nothing.

    Raises:
        NotFound: comment missing, soft-deleted or on another task
        Forbidden: the actor is not the author
    """
    comment = require_live_comment(db, comment_id, task_id, for_update=True)
    require_comment_author(actor, comment)

    if comment.content == content:
        logger.info(f"Update of comment {comment_id} has no changes")
        return comment, False

    comment.content = content
    comment.updated_by = actor.id
    commit(db)
    db.refresh(comment)

    _notify_assignee(db, notifier, comment.task, "notify.comment_updated_title", "notify.comment_updated_body")

    logger.info(f"Comment {comment_id} updated by user {actor.id}")
    return comment, True


def delete_comment(db: Session, actor: models.User, notifier: Notifier, comment_id: str, task_id: str) -> models.Comment:
    """
    Soft-delete the actor's own comment.

    Raises:
        NotFound: comment missing, soft-deleted or on another task
        Forbidden: the actor is not the author
    """
    comment = require_live_comment(db, comment_id, task_id, for_update=True)
    require_comment_author(actor, comment)

    comment.is_deleted = True
    comment.deleted_at = utc_now()
    comment.deleted_by = actor.id
    comment.updated_by = actor.id
    commit(db)
    db.refresh(comment)

    _notify_assignee(db, notifier, comment.task, "notify.comment_deleted_title", "notify.comment_deleted_body")

    logger.info(f"Comment {comment_id} deleted by user {actor.id}")
    return comment
