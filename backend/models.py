import enum
import uuid

from sqlalchemy import Boolean, Column, DateTime, Enum, ForeignKey, JSON, String, Text
from sqlalchemy.orm import relationship

from database import Base
from time_utils import utc_now


def new_id() -> str:
    return str(uuid.uuid4())


class TaskPriority(str, enum.Enum):
    High = "High"
    Medium = "Medium"
    Low = "Low"


class TaskStatus(str, enum.Enum):
    todo = "todo"
    inprocess = "inprocess"
    inreview = "inreview"
    testing = "testing"
    completed = "completed"


class TaskCategory(str, enum.Enum):
    Work = "Work"
    Personal = "Personal"


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=new_id)
    full_name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    password_hash = Column(String(255), nullable=False)

    # Session state: the single current token, and tokens revoked since the last login.
    # The two are independent: a token can be non-current without being revoked.
    active_token = Column(Text, nullable=True)
    blacklisted_tokens = Column(JSON, nullable=False, default=list)

    # Password reset state
    reset_token = Column(String(64), nullable=True, index=True)
    reset_token_expiry = Column(DateTime(timezone=True), nullable=True)

    # Push notification device address
    push_token = Column(String(512), nullable=True)

    # Audit / soft delete
    is_deleted = Column(Boolean, nullable=False, default=False)
    deleted_at = Column(DateTime(timezone=True), nullable=True)
    deleted_by = Column(String(36), nullable=True)
    created_by = Column(String(36), nullable=True)
    updated_by = Column(String(36), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utc_now)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)

    # Relationships
    tasks = relationship("Task", foreign_keys="Task.user_id", back_populates="assignee")
    comments = relationship("Comment", back_populates="author")


class Task(Base):
    __tablename__ = "tasks"

    id = Column(String(36), primary_key=True, default=new_id)
    title = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    due_date = Column(DateTime(timezone=True), nullable=False, index=True)
    priority = Column(Enum(TaskPriority, name="task_priority"), nullable=False, default=TaskPriority.Medium)
    status = Column(Enum(TaskStatus, name="task_status"), nullable=False, default=TaskStatus.todo)
    category = Column(Enum(TaskCategory, name="task_category"), nullable=False)

    # Assignee; NULL until the task is assigned
    user_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    parent_task_id = Column(String(36), ForeignKey("tasks.id"), nullable=True, index=True)

    is_deleted = Column(Boolean, nullable=False, default=False)
    deleted_at = Column(DateTime(timezone=True), nullable=True)
    deleted_by = Column(String(36), nullable=True)
    created_by = Column(String(36), nullable=True)
    updated_by = Column(String(36), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utc_now)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)

    # Relationships (no ORM cascades: soft-delete cascades live in services.tasks)
    assignee = relationship("User", foreign_keys=[user_id], back_populates="tasks")
    comments = relationship("Comment", back_populates="task")

    # Subtask relationships (self-referential)
    parent_task = relationship("Task", remote_side=[id], back_populates="subtasks", foreign_keys=[parent_task_id])
    subtasks = relationship("Task", back_populates="parent_task", foreign_keys=[parent_task_id])


class Comment(Base):
    __tablename__ = "comments"

    id = Column(String(36), primary_key=True, default=new_id)
    content = Column(Text, nullable=False)
    task_id = Column(String(36), ForeignKey("tasks.id"), nullable=False, index=True)
    # Author; cleared when the author's account is deleted
    user_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    is_deleted = Column(Boolean, nullable=False, default=False)
    deleted_at = Column(DateTime(timezone=True), nullable=True)
    deleted_by = Column(String(36), nullable=True)
    created_by = Column(String(36), nullable=True)
    updated_by = Column(String(36), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utc_now)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)

    # Relationships
    task = relationship("Task", back_populates="comments")
    author = relationship("User", back_populates="comments")
