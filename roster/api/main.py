"""Main FastAPI application for the roster API."""

import logging
from fastapi import FastAPI, Depends, HTTPException, Query, Request, Security, status
from fastapi.responses import JSONResponse
from typing import Dict, List, Optional

from roster import __version__
from roster.services import (
    AuthenticationError,
    NotFoundError,
    PermissionDenied,
    RosterError,
    Services,
    User,
    ValidationError,
)
from roster.services.records import Role, TaskStatus, TaskTemplate
from .auth import get_services, get_current_user, require_manager, token_header
from .schemas import (
    LoginRequest, LoginResponse, RegisterRequest,
    UserCreateRequest, RoleUpdateRequest, StatusUpdateRequest, UserResponse,
    TaskCreateRequest, TaskBatchRequest, TaskUpdateRequest, TaskResponse,
    TemplateRequest, TemplateResponse,
    MessageResponse,
)

logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title="Roster API",
    description="Task scheduling and registration for healthcare facility staff",
    version=__version__,
    docs_url="/docs",  # Swagger UI
    redoc_url="/redoc",  # ReDoc
)

_ERROR_STATUS = {
    ValidationError: status.HTTP_400_BAD_REQUEST,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    PermissionDenied: status.HTTP_403_FORBIDDEN,
    AuthenticationError: status.HTTP_401_UNAUTHORIZED,
}


@app.get("/", tags=["general"])
async def root():
    """Root endpoint - API information."""
    return {
        "name": "Roster API",
        "version": __version__,
        "status": "online",
        "docs": "/docs",
        "endpoints": {
            "auth": "POST /auth/login, /auth/logout, /auth/register - Session token (X-Session-Token)",
            "users": "GET|POST /users - Manage staff (managers)",
            "tasks": "GET|POST /tasks - Browse and create tasks",
            "registration": "POST /tasks/{id}/register|unregister - Sign up for a task",
            "templates": "GET /templates, PUT|DELETE /templates/{name} - Task templates",
        }
    }


@app.get("/health", tags=["general"])
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}


# Auth

@app.post("/auth/login", response_model=LoginResponse, tags=["auth"])
async def login(request: LoginRequest, services: Services = Depends(get_services)):
    """Issue a session token for the active user with this email."""
    user = services.users.authenticate(request.email, request.password)
    token = services.users.issue_token(user)
    logger.info(f"API login: {user.name} ({user.role.value})")
    return LoginResponse(token=token, user=UserResponse.from_user(user))


@app.post("/auth/logout", response_model=MessageResponse, tags=["auth"])
async def logout(
    token: Optional[str] = Security(token_header),
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """Revoke the caller's session token."""
    services.users.revoke_token(token)
    return MessageResponse(success=True, message="Logged out")


@app.get("/auth/me", response_model=UserResponse, tags=["auth"])
async def me(user: User = Depends(get_current_user)):
    return UserResponse.from_user(user)


@app.post("/auth/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED, tags=["auth"])
async def register(request: RegisterRequest, services: Services = Depends(get_services)):
    """Register a new employee account."""
    user = services.users.register_employee(
        name=request.name,
        email=request.email,
        password=request.password,
        facility=request.facility,
    )
    return UserResponse.from_user(user)


# Users

@app.get("/users", response_model=List[UserResponse], tags=["users"])
async def list_users(
    role: Optional[Role] = None,
    manager: User = Depends(require_manager),
    services: Services = Depends(get_services),
):
    users = services.users.list_users(role=role.value if role else None)
    return [UserResponse.from_user(u) for u in users]


@app.post("/users", response_model=UserResponse, status_code=status.HTTP_201_CREATED, tags=["users"])
async def create_user(
    request: UserCreateRequest,
    manager: User = Depends(require_manager),
    services: Services = Depends(get_services),
):
    user = services.users.create_user(
        name=request.name,
        email=request.email,
        role=request.role.value,
        facility=request.facility,
        is_active=request.is_active,
    )
    logger.info(f"Manager '{manager.name}' created user {user.email}")
    return UserResponse.from_user(user)


@app.patch("/users/{user_id}/role", response_model=UserResponse, tags=["users"])
async def update_user_role(
    user_id: str,
    request: RoleUpdateRequest,
    manager: User = Depends(require_manager),
    services: Services = Depends(get_services),
):
    services.users.require_user(user_id)
    if not services.users.update_user_role(user_id, request.role.value):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="At least one active manager must remain"
        )
    return UserResponse.from_user(services.users.require_user(user_id))


@app.patch("/users/{user_id}/status", response_model=UserResponse, tags=["users"])
async def update_user_status(
    user_id: str,
    request: StatusUpdateRequest,
    manager: User = Depends(require_manager),
    services: Services = Depends(get_services),
):
    services.users.require_user(user_id)
    if not services.users.update_user_status(user_id, request.is_active):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="At least one active manager must remain"
        )
    return UserResponse.from_user(services.users.require_user(user_id))


@app.delete("/users/{user_id}", response_model=MessageResponse, tags=["users"])
async def delete_user(
    user_id: str,
    manager: User = Depends(require_manager),
    services: Services = Depends(get_services),
):
    services.users.require_user(user_id)
    if not services.users.delete_user(user_id):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cannot delete the last manager"
        )
    return MessageResponse(success=True, message=f"User {user_id} deleted")


# Tasks

@app.get("/tasks", response_model=List[TaskResponse], tags=["tasks"])
async def list_tasks(
    status_filter: Optional[TaskStatus] = Query(None, alias="status"),
    day: Optional[str] = None,
    mine: bool = False,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """
    List tasks.

    `mine` limits the list to the caller's own tasks (created by a manager,
    registered for or assigned to an employee); `day` to tasks starting on
    that local date.
    """
    tasks = services.tasks.get_user_tasks(user.id) if mine else services.tasks.list_tasks()

    if day:
        wanted = {t.id for t in services.tasks.get_tasks_by_date(day)}
        tasks = [t for t in tasks if t.id in wanted]
    if status_filter:
        tasks = [t for t in tasks if t.status == status_filter]

    return [TaskResponse.from_task(t) for t in tasks]


@app.post("/tasks", response_model=TaskResponse, status_code=status.HTTP_201_CREATED, tags=["tasks"])
async def create_task(
    request: TaskCreateRequest,
    manager: User = Depends(require_manager),
    services: Services = Depends(get_services),
):
    task = services.tasks.add_task(
        title=request.title,
        description=request.description,
        start_date=request.start_date,
        end_date=request.end_date,
        duration=request.duration,
        registration_deadline=request.registration_deadline,
        actor_id=manager.id,
    )
    return TaskResponse.from_task(task)


@app.post("/tasks/batch", response_model=List[TaskResponse], status_code=status.HTTP_201_CREATED, tags=["tasks"])
async def create_tasks_batch(
    request: TaskBatchRequest,
    manager: User = Depends(require_manager),
    services: Services = Depends(get_services),
):
    tasks = services.tasks.add_tasks_batch(
        text=request.text,
        start_date=request.start_date,
        registration_deadline=request.registration_deadline,
        duration=request.duration,
        actor_id=manager.id,
    )
    return [TaskResponse.from_task(t) for t in tasks]


@app.get("/tasks/{task_id}", response_model=TaskResponse, tags=["tasks"])
async def get_task(
    task_id: str,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    return TaskResponse.from_task(services.tasks.require_task(task_id))


@app.patch("/tasks/{task_id}", response_model=TaskResponse, tags=["tasks"])
async def update_task(
    task_id: str,
    request: TaskUpdateRequest,
    manager: User = Depends(require_manager),
    services: Services = Depends(get_services),
):
    fields = request.model_dump(exclude_unset=True)
    task = services.tasks.update_task(task_id, **fields)
    return TaskResponse.from_task(task)


@app.delete("/tasks/{task_id}", response_model=MessageResponse, tags=["tasks"])
async def delete_task(
    task_id: str,
    manager: User = Depends(require_manager),
    services: Services = Depends(get_services),
):
    if not services.tasks.delete_task(task_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Task {task_id} not found"
        )
    return MessageResponse(success=True, message=f"Task {task_id} deleted")


@app.post("/tasks/{task_id}/register", response_model=TaskResponse, tags=["registration"])
async def register_for_task(
    task_id: str,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    return TaskResponse.from_task(services.tasks.register_for_task(task_id, actor_id=user.id))


@app.post("/tasks/{task_id}/unregister", response_model=TaskResponse, tags=["registration"])
async def unregister_from_task(
    task_id: str,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    return TaskResponse.from_task(services.tasks.unregister_from_task(task_id, actor_id=user.id))


@app.post("/tasks/{task_id}/complete", response_model=TaskResponse, tags=["registration"])
async def complete_task(
    task_id: str,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    return TaskResponse.from_task(services.tasks.complete_task(task_id, actor_id=user.id))


# Templates

@app.get("/templates", response_model=Dict[str, TemplateResponse], tags=["templates"])
async def list_templates(
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    templates = services.templates.get_templates()
    return {name: TemplateResponse.from_template(name, t) for name, t in templates.items()}


@app.put("/templates/{name}", response_model=TemplateResponse, tags=["templates"])
async def save_template(
    name: str,
    request: TemplateRequest,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    template = TaskTemplate(
        title=request.title,
        description=request.description,
        duration=request.duration,
    )
    if not services.templates.save_template(name, template):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Please provide a template name"
        )
    return TemplateResponse.from_template(name, template)


@app.delete("/templates/{name}", response_model=MessageResponse, tags=["templates"])
async def delete_template(
    name: str,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    services.templates.delete_template(name)
    return MessageResponse(success=True, message=f"Template '{name}' deleted")


# Error handlers
@app.exception_handler(RosterError)
async def roster_exception_handler(request: Request, exc: RosterError):
    """Map service errors to HTTP status codes."""
    code = next(
        (code for error_type, code in _ERROR_STATUS.items() if isinstance(exc, error_type)),
        status.HTTP_400_BAD_REQUEST,
    )
    logger.warning(f"{request.method} {request.url.path} rejected: {exc.message}")
    return JSONResponse(status_code=code, content={"detail": exc.message})


@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """Global exception handler."""
    logger.error(f"Unhandled exception: {exc}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"}
    )
