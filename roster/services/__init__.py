"""Services for the roster application."""

from dataclasses import dataclass

from roster.db.storage import KeyValueStorage
from .errors import RosterError, ValidationError, NotFoundError, PermissionDenied, AuthenticationError
from .records import Duration, Role, Task, TaskStatus, TaskTemplate, User
from .task import TaskService
from .template import TemplateService
from .user import UserService
from .demo import seed_demo_data


@dataclass
class Services:
    """The stores sharing one storage backend."""

    storage: KeyValueStorage
    users: UserService
    tasks: TaskService
    templates: TemplateService


def build_services(storage: KeyValueStorage, **task_options) -> Services:
    """Wire the services onto ``storage``; ``task_options`` go to TaskService."""
    users = UserService(storage)
    return Services(
        storage=storage,
        users=users,
        tasks=TaskService(storage, users, **task_options),
        templates=TemplateService(storage),
    )


__all__ = [
    "Services",
    "build_services",
    "seed_demo_data",
    "TaskService",
    "TemplateService",
    "UserService",
    "RosterError",
    "ValidationError",
    "NotFoundError",
    "PermissionDenied",
    "AuthenticationError",
    "Duration",
    "Role",
    "Task",
    "TaskStatus",
    "TaskTemplate",
    "User",
]
