"""Pydantic models for API requests and responses."""

from typing import Optional, List
from pydantic import BaseModel, Field

from roster.services.records import Duration, Role, Task, TaskStatus, TaskTemplate, User


# Request models
class LoginRequest(BaseModel):
    """Demo login; the password is not checked."""
    email: str = Field(..., description="Email of an active user")
    password: Optional[str] = Field(None, description="Accepted but not verified")


class RegisterRequest(BaseModel):
    """Employee self-registration."""
    name: str
    email: str
    password: Optional[str] = None
    facility: Optional[str] = Field(None, description="Hospital or health center")


class UserCreateRequest(BaseModel):
    """Request to create a user (managers only)."""
    name: str
    email: str
    role: Role = Role.EMPLOYEE
    facility: Optional[str] = None
    is_active: bool = True


class RoleUpdateRequest(BaseModel):
    role: Role


class StatusUpdateRequest(BaseModel):
    is_active: bool


class TaskCreateRequest(BaseModel):
    """Request to create a new task."""
    title: str = Field(..., description="Task title")
    description: str = Field("", description="Task description")
    start_date: str = Field(..., description="Start in ISO format")
    end_date: Optional[str] = Field(None, description="End in ISO format; ignored when a duration is given")
    duration: Optional[Duration] = Field(None, description="Length as {hours, minutes}")
    registration_deadline: Optional[str] = Field(None, description="Defaults to 7 days before the start")


class TaskBatchRequest(BaseModel):
    """Request to create several tasks sharing one schedule."""
    text: str = Field(..., description="One 'title|description' per line")
    start_date: str
    registration_deadline: Optional[str] = None
    duration: Optional[Duration] = None


class TaskUpdateRequest(BaseModel):
    """Partial task update; only the fields that are sent are changed."""
    title: Optional[str] = None
    description: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    duration: Optional[Duration] = None
    registration_deadline: Optional[str] = None
    status: Optional[TaskStatus] = None
    assigned_to: Optional[str] = None


class TemplateRequest(BaseModel):
    """Template body; the name is taken from the path."""
    title: str
    description: Optional[str] = None
    duration: Duration = Field(default_factory=Duration)


# Response models
class MessageResponse(BaseModel):
    success: bool
    message: Optional[str] = None


class UserResponse(BaseModel):
    """User information."""
    id: str
    name: str
    email: str
    role: str
    facility: Optional[str]
    is_active: bool

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(
            id=user.id,
            name=user.name,
            email=user.email,
            role=user.role.value,
            facility=user.facility,
            is_active=user.is_active,
        )


class TaskResponse(BaseModel):
    """Task information."""
    id: str
    title: str
    description: str
    start_date: str
    end_date: str
    duration: Duration
    registration_deadline: str
    created_by: str
    status: str
    assigned_to: Optional[str]
    registered_employees: List[str]

    @classmethod
    def from_task(cls, task: Task) -> "TaskResponse":
        return cls(
            id=task.id,
            title=task.title,
            description=task.description,
            start_date=task.start_date.isoformat(),
            end_date=task.end_date.isoformat(),
            duration=task.duration,
            registration_deadline=task.registration_deadline.isoformat(),
            created_by=task.created_by,
            status=task.status.value,
            assigned_to=task.assigned_to,
            registered_employees=list(task.registered_employees),
        )


class TemplateResponse(BaseModel):
    """Template information."""
    name: str
    title: str
    description: Optional[str]
    duration: Duration

    @classmethod
    def from_template(cls, name: str, template: TaskTemplate) -> "TemplateResponse":
        return cls(
            name=name,
            title=template.title,
            description=template.description,
            duration=template.duration,
        )


class LoginResponse(BaseModel):
    """Session token plus the logged-in user."""
    token: str = Field(..., description="Send back in the X-Session-Token header")
    user: UserResponse
