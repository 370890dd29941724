import re
from datetime import date, datetime, timezone
from typing import Annotated, List, Optional

from pydantic import AfterValidator, BaseModel, BeforeValidator, EmailStr, Field

from models import TaskCategory, TaskPriority, TaskStatus

PASSWORD_PATTERN = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)(?=.*[@$!%*?&])[A-Za-z\d@$!%*?&]{8,}$")
PASSWORD_RULE = (
    "Password must be at least 8 characters long and contain an uppercase letter, "
    "a lowercase letter, a digit and one of @$!%*?&"
)


def check_password_strength(value: str) -> str:
    if not PASSWORD_PATTERN.match(value):
        raise ValueError(PASSWORD_RULE)
    return value


def check_not_blank(value: str) -> str:
    if not value.strip():
        raise ValueError("Must not be blank")
    return value


def coerce_due_date(value):
    """Accept a bare calendar day ("2025-03-25") as midnight UTC."""
    if isinstance(value, date) and not isinstance(value, datetime):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    if isinstance(value, str) and len(value.strip()) == 10:
        return f"{value.strip()}T00:00:00+00:00"
    return value


def as_utc(value: datetime) -> datetime:
    """Naive datetimes are taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


StrongPassword = Annotated[str, AfterValidator(check_password_strength)]
FullName = Annotated[str, Field(min_length=2, max_length=255), AfterValidator(check_not_blank)]
Content = Annotated[str, Field(min_length=1), AfterValidator(check_not_blank)]
DueDate = Annotated[datetime, BeforeValidator(coerce_due_date), AfterValidator(as_utc)]
Title = Annotated[str, Field(min_length=3, max_length=100), AfterValidator(check_not_blank)]
Description = Annotated[str, Field(max_length=500)]


# User / session schemas
class SignupRequest(BaseModel):
    full_name: FullName
    email: EmailStr
    password: StrongPassword
    push_token: Optional[str] = Field(None, max_length=512)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=8)
    push_token: Optional[str] = Field(None, max_length=512)


class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    email: EmailStr
    token: str = Field(..., min_length=1)
    new_password: StrongPassword


class ChangePasswordRequest(BaseModel):
    old_password: str = Field(..., min_length=1)
    new_password: StrongPassword


class UserUpdate(BaseModel):
    full_name: Optional[FullName] = None
    email: Optional[EmailStr] = None
    push_token: Optional[str] = Field(None, max_length=512)


class User(BaseModel):
    id: str
    full_name: str
    email: EmailStr
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class AuthorSummary(BaseModel):
    """Minimal projection of a comment's author."""
    id: str
    full_name: str

    class Config:
        from_attributes = True


# Comment schemas
class CommentCreate(BaseModel):
    task_id: str
    content: Content


class CommentUpdate(BaseModel):
    task_id: str
    content: Content


class Comment(BaseModel):
    id: str
    content: str
    task_id: str
    user_id: Optional[str] = None
    author: Optional[AuthorSummary] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


# Task schemas
class TaskCreate(BaseModel):
    title: Title
    description: Optional[Description] = None
    due_date: DueDate
    priority: TaskPriority
    category: TaskCategory
    status: TaskStatus = TaskStatus.todo
    parent_task_id: Optional[str] = None


class TaskUpdate(BaseModel):
    title: Optional[Title] = None
    description: Optional[Description] = None
    due_date: Optional[DueDate] = None
    priority: Optional[TaskPriority] = None
    category: Optional[TaskCategory] = None
    status: Optional[TaskStatus] = None
    parent_task_id: Optional[str] = None


class TaskStatusUpdate(BaseModel):
    status: TaskStatus


class AssignTask(BaseModel):
    task_id: str
    user_id: str


class ReassignTask(BaseModel):
    task_id: str
    new_user_id: str


class Task(BaseModel):
    id: str
    title: str
    description: Optional[str] = None
    due_date: datetime
    priority: TaskPriority
    status: TaskStatus
    category: TaskCategory
    user_id: Optional[str] = None
    parent_task_id: Optional[str] = None
    created_by: Optional[str] = None
    updated_by: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
