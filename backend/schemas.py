from pydantic import BaseModel, ConfigDict, EmailStr, Field, computed_field, field_validator
from pydantic.alias_generators import to_camel
from datetime import datetime
from typing import Optional, List, Literal

from models import UserRole, TaskStatus, TaskPriority
from time_utils import is_overdue


class ApiModel(BaseModel):
    """Base for wire schemas: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# User schemas
class UserSummary(ApiModel):
    id: str
    first_name: str
    last_name: str
    email: str


class UserBasic(UserSummary):
    role: UserRole


class User(UserBasic):
    is_active: bool
    last_login_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class EmailInput(ApiModel):
    """Request body carrying an email; stored and looked up lowercased."""

    @field_validator("email", check_fields=False)
    @classmethod
    def normalize_email(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        return value.strip().lower()


class UserCreate(EmailInput):
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=100)
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    role: UserRole = UserRole.user
    is_active: bool = True

    @field_validator("first_name", "last_name")
    @classmethod
    def strip_names(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Name cannot be empty")
        return value


class UserUpdate(EmailInput):
    email: Optional[EmailStr] = None
    password: Optional[str] = Field(None, min_length=6, max_length=100)
    first_name: Optional[str] = Field(None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(None, min_length=1, max_length=100)
    role: Optional[UserRole] = None
    is_active: Optional[bool] = None


class RegisterRequest(EmailInput):
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=100)
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)


class LoginRequest(EmailInput):
    email: EmailStr
    password: str


# Attachment schemas
class Attachment(ApiModel):
    filename: str
    original_name: str
    size: int
    mimetype: str
    uploaded_at: datetime


class AttachmentLink(Attachment):
    download_url: str
    view_url: str


# Task schemas
class Task(ApiModel):
    id: str
    title: str
    description: str = ""
    status: TaskStatus
    priority: TaskPriority
    due_date: Optional[datetime] = None
    tags: List[str] = Field(default_factory=list)
    assigned_to: Optional[UserSummary] = None
    created_by: Optional[UserSummary] = None
    attachments: List[Attachment] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime

    @computed_field(alias="isOverdue")
    @property
    def is_overdue(self) -> bool:
        return is_overdue(self.due_date, self.status.value)


TaskSortField = Literal["createdAt", "updatedAt", "dueDate", "title", "status", "priority"]


class TaskListParams(BaseModel):
    """Caller-supplied narrowing for the task listing."""

    page: int = Field(1, ge=1)
    limit: int = Field(10, ge=1, le=100)
    search: Optional[str] = None
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    assigned_to: Optional[str] = None
    sort_by: TaskSortField = "createdAt"
    sort_order: Literal["asc", "desc"] = "desc"

    @field_validator("search", "status", "priority", "assigned_to", mode="before")
    @classmethod
    def blank_to_none(cls, value):
        # Form-driven clients send empty strings for unset filters
        if isinstance(value, str) and not value.strip():
            return None
        return value


class Pagination(BaseModel):
    current: int
    pages: int
    total: int
    limit: int


# Response envelopes
class MessageResponse(BaseModel):
    success: bool = True
    message: str


class TaskData(BaseModel):
    task: Task


class TaskResponse(BaseModel):
    success: bool = True
    message: Optional[str] = None
    data: TaskData


class TaskListData(BaseModel):
    tasks: List[Task] = []
    pagination: Pagination


class TaskListResponse(BaseModel):
    success: bool = True
    data: TaskListData


class AttachmentListData(ApiModel):
    task_id: str
    attachments: List[AttachmentLink] = []


class AttachmentListResponse(BaseModel):
    success: bool = True
    data: AttachmentListData


class UserData(BaseModel):
    user: User


class UserResponse(BaseModel):
    success: bool = True
    message: Optional[str] = None
    data: UserData


class AuthData(BaseModel):
    user: User
    token: str


class AuthResponse(BaseModel):
    success: bool = True
    message: Optional[str] = None
    data: AuthData
