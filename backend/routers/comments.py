"""Comment endpoints."""

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
from services import comments as comment_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/comment", tags=["comment"])


def comment_body(comment) -> dict:
    return schemas.Comment.model_validate(comment).model_dump(mode="json")


@router.post("/add", status_code=status.HTTP_201_CREATED)
def add_comment(
    request: schemas.CommentCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
    t=Depends(get_translator),
):
    comment = comment_service.add_comment(db, current_user, notifier, request.task_id, request.content)
    return success(t, "comment.added", comment=comment_body(comment))


@router.get("/allcomments/{task_id}")
def list_comments(
    task_id: str,
    sort_by: Optional[str] = Query("newer", description="newer (default) or older"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    t=Depends(get_translator),
):
    comments = comment_service.list_comments(db, task_id, sort_by=sort_by)
    return success(t, "comment.all_comments", comments=[comment_body(comment) for comment in comments])


@router.put("/update/{comment_id}")
def update_comment(
    comment_id: str,
    request: schemas.CommentUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
    t=Depends(get_translator),
):
    comment, modified = comment_service.update_comment(
        db, current_user, notifier, comment_id, request.task_id, request.content
    )
    key = "comment.updated" if modified else "comment.not_modified"
    return success(t, key, modified=modified, comment=comment_body(comment))


@router.delete("/delete/{comment_id}")
def delete_comment(
    comment_id: str,
    task_id: str = Query(...),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
    t=Depends(get_translator),
):
    comment = comment_service.delete_comment(db, current_user, notifier, comment_id, task_id)
    return success(t, "comment.deleted", comment_id=comment.id)
