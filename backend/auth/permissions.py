"""
Ownership checks for tasks and comments.

Visibility rules:
- A soft-deleted task or comment does not exist for any caller.
- A task is owned by its current assignee; unassigned tasks are owned by nobody.
- A comment may only be changed by its author.

Lookups for entities the actor may not see raise 404 rather than 403, so the
API does not reveal whether another user's task exists.
"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from errors import Forbidden, NotFound
from models import Comment, Task, User

logger = logging.getLogger(__name__)


def get_live_task(db: Session, task_id: str, for_update: bool = False) -> Optional[Task]:
    """Return the task if it exists and is not soft-deleted."""
    query = db.query(Task).filter(Task.id == task_id, Task.is_deleted == False)  # noqa: E712
    if for_update:
        query = query.with_for_update()
    return query.first()


def require_live_task(db: Session, task_id: str, message_key: str = "task.no_task") -> Task:
    task = get_live_task(db, task_id)
    if task is None:
        logger.info(f"Task {task_id} not found or deleted")
        raise NotFound(message_key)
    return task


def is_task_owner(user: User, task: Task) -> bool:
    return task.user_id is not None and task.user_id == user.id


def require_owned_task(db: Session, user: User, task_id: str, for_update: bool = False) -> Task:
    """
    Fetch a live task assigned to the user.

    Raises:
        NotFound: task missing, soft-deleted, or assigned to someone else
    """
    logger.debug(f"Checking ownership of task {task_id} for user {user.id}")

    task = get_live_task(db, task_id, for_update=for_update)
    if task is None:
        logger.info(f"Task {task_id} not found or deleted")
        raise NotFound("task.no_task")

    if not is_task_owner(user, task):
        logger.info(f"User {user.id} is not the assignee of task {task_id}")
        raise NotFound("task.no_task")

    return task


def require_live_comment(db: Session, comment_id: str, task_id: str, for_update: bool = False) -> Comment:
    """
    Fetch a live comment that belongs to the stated task.

    Raises:
        NotFound: comment missing, soft-deleted, or linked to a different task
    """
    query = db.query(Comment).filter(
        Comment.id == comment_id,
        Comment.task_id == task_id,
        Comment.is_deleted == False,  # noqa: E712
    )
    if for_update:
        query = query.with_for_update()
    comment = query.first()

    if comment is None:
        logger.info(f"Comment {comment_id} not found on task {task_id}")
        raise NotFound("comment.not_found")
    return comment


def require_comment_author(user: User, comment: Comment) -> None:
    """
    Raises:
        Forbidden: the user did not write the comment
    """
    if comment.user_id != user.id:
        logger.info(f"User {user.id} attempted to modify comment {comment.id} written by {comment.user_id}")
        raise Forbidden("comment.not_author")
