"""
Task lifecycle: creation, assignment, listing, updates and soft deletion.

Ownership follows assignment. A task is created unassigned, then assigned or
reassigned to a user; from then on only the assignee can read, update, change
the status of, or delete it. Soft deletion cascades explicitly to subtasks and
comments; rows are never physically removed.
"""

import enum
import logging
from collections import deque
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import asc, case, desc
from sqlalchemy.orm import Session

import models
from auth.permissions import get_live_task, require_live_task, require_owned_task
from errors import NotFound, ValidationFailed
from notifications import Notifier
from services.accounts import commit, find_by_id
from time_utils import utc_now

logger = logging.getLogger(__name__)


def declaration_rank(column, enum_cls):
    """Order an enum column by member declaration order on every backend."""
    return case(*[(column == member, rank) for rank, member in enumerate(enum_cls)], else_=len(enum_cls))


SORTABLE_FIELDS = {
    "due_date": models.Task.due_date,
    "created_at": models.Task.created_at,
    "updated_at": models.Task.updated_at,
    "title": models.Task.title,
    "priority": declaration_rank(models.Task.priority, models.TaskPriority),
    "status": declaration_rank(models.Task.status, models.TaskStatus),
}
DEFAULT_SORT_FIELD = "due_date"


def _enum_or_none(enum_cls, value: Optional[str]):
    """Coerce a filter value to an enum member; unknown values mean 'no filter'."""
    if value is None:
        return None
    try:
        return enum_cls(value)
    except ValueError:
        logger.debug(f"Ignoring unknown {enum_cls.__name__} filter value: {value}")
        return None


def _comparable(value):
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, datetime):
        # SQLite hands back naive datetimes; compare as naive UTC
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        return value
    return value


def has_circular_subtask(db: Session, task_id: str, parent_task_id: str) -> bool:
    """
    Check if making parent_task_id the parent of task_id would create a cycle.
    Uses BFS over the subtask tree of task_id to check whether parent_task_id
    is one of its descendants.
    """
    logger.debug(f"Checking circular subtask: task_id={task_id}, parent_task_id={parent_task_id}")

    if task_id == parent_task_id:
        return True

    visited = set()
    queue = deque([task_id])

    while queue:
        current_id = queue.popleft()
        if current_id in visited:
            continue
        visited.add(current_id)

        if current_id == parent_task_id:
            logger.info(f"Circular subtask detected: task {parent_task_id} is a descendant of task {task_id}")
            return True

        child_ids = db.query(models.Task.id).filter(models.Task.parent_task_id == current_id).all()
        queue.extend(child_id for (child_id,) in child_ids)

    return False


def _live_children(db: Session, task: models.Task) -> tuple[list, list]:
    subtasks = (
        db.query(models.Task)
        .filter(models.Task.parent_task_id == task.id, models.Task.is_deleted == False)  # noqa: E712
        .order_by(asc(models.Task.due_date), asc(models.Task.id))
        .all()
    )
    comments = (
        db.query(models.Comment)
        .filter(models.Comment.task_id == task.id, models.Comment.is_deleted == False)  # noqa: E712
        .order_by(desc(models.Comment.created_at), desc(models.Comment.id))
        .all()
    )
    return subtasks, comments


def with_children(db: Session, task: models.Task) -> dict:
    """Serialize-ready view of a task plus its live subtasks and comments."""
    subtasks, comments = _live_children(db, task)
    return {"task": task, "subtasks": subtasks, "comments": comments}


def create_task(db: Session, actor: models.User, notifier: Notifier, data: dict) -> models.Task:
    """
    Create an unassigned task.

    Raises:
        NotFound: parent_task_id given but no live task has that id
    """
    logger.info(f"User {actor.id} creating task: {data.get('title')}")

    parent_task_id = data.get("parent_task_id")
    if parent_task_id is not None:
        require_live_task(db, parent_task_id, message_key="task.parent_not_found")
        logger.debug(f"Parent task {parent_task_id} validated")

    task = models.Task(
        **data,
        user_id=None,
        created_by=actor.id,
        updated_by=actor.id,
    )
    db.add(task)
    commit(db)
    db.refresh(task)

    notifier.push(actor.push_token, "notify.task_created_title", "notify.task_created_body", title=task.title)

    logger.info(f"Task created successfully: id={task.id}")
    return task


def _set_assignee(db: Session, actor: models.User, notifier: Notifier, task: models.Task, assignee_id: str) -> models.Task:
    assignee = find_by_id(db, assignee_id)
    if assignee is None:
        logger.info(f"Assignee {assignee_id} not found or deleted")
        raise NotFound("task.assignee_not_found")

    old_assignee_id = task.user_id
    task.user_id = assignee.id
    task.updated_by = actor.id
    commit(db)
    db.refresh(task)

    notifier.push(assignee.push_token, "notify.task_assigned_title", "notify.task_assigned_body", title=task.title)

    logger.info(f"Task {task.id} assigned by user {actor.id}: {old_assignee_id} -> {assignee.id}")
    return task


def assign_task(db: Session, actor: models.User, notifier: Notifier, task_id: str, user_id: str) -> models.Task:
    """
    Assign a live task to a live user.

    Raises:
        NotFound: task or user missing or soft-deleted
    """
    task = get_live_task(db, task_id, for_update=True)
    if task is None:
        raise NotFound("task.no_task")
    return _set_assignee(db, actor, notifier, task, user_id)


def reassign_task(
    db: Session, actor: models.User, notifier: Notifier, task_id: str, new_user_id: str
) -> tuple[models.Task, bool]:
    """
    Move an assigned task to another user.

    Returns:
        (task, modified). Reassigning to the current assignee is a no-op.

    Raises:
        NotFound: task or user missing or soft-deleted
        ValidationFailed: the task has no assignee yet
    """
    task = get_live_task(db, task_id, for_update=True)
    if task is None:
        raise NotFound("task.no_task")

    if task.user_id is None:
        logger.info(f"Reassign rejected: task {task_id} is not assigned")
        raise ValidationFailed("task.not_assigned")

    if task.user_id == new_user_id:
        if find_by_id(db, new_user_id) is None:
            raise NotFound("task.assignee_not_found")
        logger.info(f"Reassign of task {task_id} is a no-op: already assigned to {new_user_id}")
        return task, False

    return _set_assignee(db, actor, notifier, task, new_user_id), True


def list_tasks(
    db: Session,
    actor: models.User,
    status: Optional[str] = None,
    category: Optional[str] = None,
    priority: Optional[str] = None,
    sort_by: Optional[str] = None,
    order: Optional[str] = None,
) -> list[models.Task]:
    """
    List the actor's live tasks.

    Filter values outside the enums are ignored rather than rejected. Sorting
    defaults to due date ascending; unknown sort fields fall back to due date.
    """
    logger.debug(
        f"User {actor.id} listing tasks: status={status}, category={category}, "
        f"priority={priority}, sort_by={sort_by}, order={order}"
    )

    query = db.query(models.Task).filter(
        models.Task.user_id == actor.id,
        models.Task.is_deleted == False,  # noqa: E712
    )

    status_filter = _enum_or_none(models.TaskStatus, status)
    if status_filter is not None:
        query = query.filter(models.Task.status == status_filter)
    category_filter = _enum_or_none(models.TaskCategory, category)
    if category_filter is not None:
        query = query.filter(models.Task.category == category_filter)
    priority_filter = _enum_or_none(models.TaskPriority, priority)
    if priority_filter is not None:
        query = query.filter(models.Task.priority == priority_filter)

    column = SORTABLE_FIELDS.get(sort_by or DEFAULT_SORT_FIELD, SORTABLE_FIELDS[DEFAULT_SORT_FIELD])
    direction = desc if (order or "").lower() == "desc" else asc
    # Task id as tiebreaker for deterministic ordering
    query = query.order_by(direction(column), asc(models.Task.id))

    tasks = query.all()
    logger.info(f"list_tasks completed successfully: returned {len(tasks)} tasks")
    return tasks


def get_task(db: Session, actor: models.User, task_id: str) -> models.Task:
    """
    Raises:
        NotFound: missing, soft-deleted, or not assigned to the actor
    """
    logger.debug(f"User {actor.id} requesting task {task_id}")
    return require_owned_task(db, actor, task_id)


def update_task(
    db: Session, actor: models.User, notifier: Notifier, task_id: str, changes: dict
) -> tuple[models.Task, bool]:
    """
    Apply a partial update to a task owned by the actor.

    Only supplied fields are written. When every supplied field already has
    the supplied value nothing is written and (task, False) is returned.

    Raises:
        NotFound: task not visible to the actor, or the new parent is missing/deleted
        ValidationFailed: the task would become its own parent or ancestor
    """
    logger.info(f"User {actor.id} updating task {task_id}")

    task = require_owned_task(db, actor, task_id, for_update=True)

    if "parent_task_id" in changes and changes["parent_task_id"] is not None:
        parent_task_id = changes["parent_task_id"]
        if parent_task_id == task.id:
            logger.info(f"Task {task_id} cannot be its own parent")
            raise ValidationFailed("task.self_parent")

        if get_live_task(db, parent_task_id) is None:
            logger.info(f"Parent task {parent_task_id} not found")
            raise NotFound("task.parent_not_found")

        if has_circular_subtask(db, task.id, parent_task_id):
            raise ValidationFailed("task.circular_parent")

    effective = {
        key: value
        for key, value in changes.items()
        if _comparable(getattr(task, key)) != _comparable(value)
    }
    if not effective:
        logger.info(f"Update of task {task_id} has no changes")
        return task, False

    for key, value in effective.items():
        setattr(task, key, value)
    task.updated_by = actor.id
    commit(db)
    db.refresh(task)

    notifier.push(actor.push_token, "notify.task_updated_title", "notify.task_updated_body", title=task.title)

    logger.info(f"Task {task_id} updated successfully: fields={sorted(effective)}")
    return task, True


def update_task_status(
    db: Session, actor: models.User, notifier: Notifier, task_id: str, status: models.TaskStatus
) -> tuple[models.Task, bool]:
    """
    Change the status of a task owned by the actor.

    Returns:
        (task, modified). Submitting the current status writes nothing.
    """
    logger.info(f"User {actor.id} setting status of task {task_id} to {status}")

    task = require_owned_task(db, actor, task_id, for_update=True)
    status = models.TaskStatus(status)

    if task.status == status:
        logger.info(f"Task {task_id} already has status {status.value}")
        return task, False

    old_status = task.status
    task.status = status
    task.updated_by = actor.id
    commit(db)
    db.refresh(task)

    notifier.push(
        actor.push_token,
        "notify.task_status_title",
        "notify.task_status_body",
        title=task.title,
        status=status.value,
    )

    logger.info(f"Task {task_id} status changed: {old_status.value} -> {status.value}")
    return task, True


def _collect_subtree(db: Session, root_id: str) -> list[str]:
    """Ids of the root task and every live descendant, breadth first."""
    collected = []
    visited = set()
    queue = deque([root_id])
    while queue:
        current_id = queue.popleft()
        if current_id in visited:
            continue
        visited.add(current_id)
        collected.append(current_id)
        child_ids = (
            db.query(models.Task.id)
            .filter(models.Task.parent_task_id == current_id, models.Task.is_deleted == False)  # noqa: E712
            .all()
        )
        queue.extend(child_id for (child_id,) in child_ids)
    return collected


def delete_task(db: Session, actor: models.User, notifier: Notifier, task_id: str) -> models.Task:
    """
    Soft-delete a task owned by the actor, together with its subtasks and their comments.

    A task that is already deleted is invisible, so deleting it again is a 404.
    """
    logger.info(f"User {actor.id} deleting task {task_id}")

    task = require_owned_task(db, actor, task_id, for_update=True)

    now = utc_now()
    task_ids = _collect_subtree(db, task.id)

    deleted_tasks = (
        db.query(models.Task)
        .filter(models.Task.id.in_(task_ids), models.Task.is_deleted == False)  # noqa: E712
        .update(
            {
                models.Task.is_deleted: True,
                models.Task.deleted_at: now,
                models.Task.deleted_by: actor.id,
            },
            synchronize_session="fetch",
        )
    )
    deleted_comments = (
        db.query(models.Comment)
        .filter(models.Comment.task_id.in_(task_ids), models.Comment.is_deleted == False)  # noqa: E712
        .update(
            {
                models.Comment.is_deleted: True,
                models.Comment.deleted_at: now,
                models.Comment.deleted_by: actor.id,
            },
            synchronize_session="fetch",
        )
    )
    commit(db)
    db.refresh(task)

    notifier.push(actor.push_token, "notify.task_deleted_title", "notify.task_deleted_body", title=task.title)

    logger.info(
        f"Task {task_id} deleted by user {actor.id}: "
        f"{deleted_tasks} task(s) and {deleted_comments} comment(s) soft-deleted"
    )
    return task
