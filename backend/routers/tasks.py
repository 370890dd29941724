"""
Task endpoints.

All endpoints require a bearer token. Reads and mutations of a task are
limited to its assignee; assign and reassign act on any live task.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

import schemas
from auth.dependencies import get_current_user
from database import get_db
from i18n import get_translator, success
from models import User
from notifications import Notifier, get_notifier
from services import tasks as task_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/task", tags=["task"])

# Task fields that may be cleared by sending null
NULLABLE_TASK_FIELDS = {"description", "parent_task_id"}


def task_body(task) -> dict:
    return schemas.Task.model_validate(task).model_dump(mode="json")


def task_tree_body(db: Session, task) -> dict:
    view = task_service.with_children(db, task)
    body = task_body(view["task"])
    body["subtasks"] = [task_body(subtask) for subtask in view["subtasks"]]
    body["comments"] = [
        schemas.Comment.model_validate(comment).model_dump(mode="json") for comment in view["comments"]
    ]
    return body


@router.post("/create", status_code=status.HTTP_201_CREATED)
def create_task(
    request: schemas.TaskCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
    t=Depends(get_translator),
):
    """
    Create a task. The task starts unassigned; use /task/assign-task to give it an owner.

    Raises:
        NotFound: 404 if parent_task_id does not reference a live task
    """
    task = task_service.create_task(db, current_user, notifier, request.model_dump())
    return success(t, "task.created", task=task_body(task))


@router.get("/get")
def list_tasks(
    status: Optional[str] = Query(None),
    category: Optional[str] = Query(None),
    priority: Optional[str] = Query(None),
    sort_by: Optional[str] = Query(None),
    order: Optional[str] = Query(None),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    t=Depends(get_translator),
):
    """
    List tasks assigned to the caller.

    Query params:
        status, category, priority: Optional filters; unknown values are ignored
        sort_by: due_date (default), created_at, updated_at, title, priority or status
        order: asc (default) or desc
    """
    tasks = task_service.list_tasks(
        db, current_user, status=status, category=category, priority=priority, sort_by=sort_by, order=order
    )
    return success(t, "task.list", tasks=[task_body(task) for task in tasks])


@router.get("/getallTask")
def list_tasks_with_children(
    sort_by: Optional[str] = Query(None),
    order: Optional[str] = Query(None),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    t=Depends(get_translator),
):
    """List tasks assigned to the caller, each with its live subtasks and comments."""
    tasks = task_service.list_tasks(db, current_user, sort_by=sort_by, order=order)
    return success(t, "task.list", tasks=[task_tree_body(db, task) for task in tasks])


@router.get("/filter")
def filter_tasks(
    status: Optional[str] = Query(None),
    category: Optional[str] = Query(None),
    priority: Optional[str] = Query(None),
    sort_by: Optional[str] = Query(None),
    order: Optional[str] = Query(None),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    t=Depends(get_translator),
):
    """Filtered and sorted task list, including subtasks and comments."""
    tasks = task_service.list_tasks(
        db, current_user, status=status, category=category, priority=priority, sort_by=sort_by, order=order
    )
    return success(t, "task.list", tasks=[task_tree_body(db, task) for task in tasks])


@router.get("/title/{task_id}")
def get_task(
    task_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    t=Depends(get_translator),
):
    task = task_service.get_task(db, current_user, task_id)
    return success(t, "task.details", task=task_tree_body(db, task))


@router.put("/update/{task_id}")
def update_task(
    task_id: str,
    request: schemas.TaskUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
    t=Depends(get_translator),
):
    """
    Partially update a task. Only fields present in the body are considered.

    Returns:
        modified=false with the task unchanged when every supplied value
        equals the stored one
    """
    changes = {
        key: value
        for key, value in request.model_dump(exclude_unset=True).items()
        if value is not None or key in NULLABLE_TASK_FIELDS
    }
    task, modified = task_service.update_task(db, current_user, notifier, task_id, changes)
    key = "task.updated" if modified else "task.not_modified"
    return success(t, key, modified=modified, task=task_body(task))


@router.put("/updateStatus/{task_id}")
def update_task_status(
    task_id: str,
    request: schemas.TaskStatusUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
    t=Depends(get_translator),
):
    task, modified = task_service.update_task_status(db, current_user, notifier, task_id, request.status)
    key = "task.status_updated" if modified else "task.status_not_modified"
    return success(t, key, modified=modified, task=task_body(task))


@router.delete("/delete/{task_id}")
def delete_task(
    task_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
    t=Depends(get_translator),
):
    task = task_service.delete_task(db, current_user, notifier, task_id)
    return success(t, "task.deleted", task_id=task.id)


@router.post("/assign-task")
def assign_task(
    request: schemas.AssignTask,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
    t=Depends(get_translator),
):
    task = task_service.assign_task(db, current_user, notifier, request.task_id, request.user_id)
    return success(t, "task.assigned", task=task_body(task))


@router.put("/reassign-task")
def reassign_task(
    request: schemas.ReassignTask,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
    t=Depends(get_translator),
):
    task, modified = task_service.reassign_task(db, current_user, notifier, request.task_id, request.new_user_id)
    key = "task.reassigned" if modified else "task.not_modified"
    return success(t, key, modified=modified, task=task_body(task))
