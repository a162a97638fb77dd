"""Demo users and tasks for development installs."""

import logging
from datetime import datetime, timedelta
from typing import List

from roster.db.storage import KeyValueStorage
from .dates import now_utc
from .records import Duration, Role, Task, TaskStatus, User
from .task import TASKS_KEY
from .user import USERS_KEY

logger = logging.getLogger(__name__)

DEMO_USERS = [
    User(id="1", name="Manager User", email="manager@example.com",
         role=Role.MANAGER, facility="Central Hospital"),
    User(id="2", name="Employee One", email="employee1@example.com",
         role=Role.EMPLOYEE, facility="Central Hospital"),
    User(id="3", name="Employee Two", email="employee2@example.com",
         role=Role.EMPLOYEE, facility="East Health Center"),
]


def _demo_task(task_id, title, description, start, duration, deadline, **extra) -> Task:
    return Task(
        id=task_id,
        title=title,
        description=description,
        start_date=start,
        end_date=start + duration.as_timedelta(),
        duration=duration,
        registration_deadline=deadline,
        created_by="1",
        **extra,
    )


def demo_tasks(now: datetime = None) -> List[Task]:
    """Sample tasks scheduled relative to ``now``."""
    now = now or now_utc()
    day = timedelta(days=1)
    return [
        _demo_task(
            "1", "Project Presentation", "Present the quarterly project results to the team",
            now + 2 * day, Duration(hours=1, minutes=30), now + day,
            registered_employees=["2"],
        ),
        _demo_task(
            "2", "Client Meeting", "Discuss new requirements with the client",
            now - day, Duration(hours=2, minutes=0), now - 2 * day,
            status=TaskStatus.COMPLETED, assigned_to="3", registered_employees=["2", "3"],
        ),
        _demo_task(
            "3", "Team Building", "Monthly team building activity",
            now + 5 * day, Duration(hours=3, minutes=0), now + 3 * day,
        ),
    ]


def seed_demo_data(storage: KeyValueStorage, now: datetime = None) -> List[str]:
    """
    Store the demo users and tasks under keys that are still empty.

    Returns:
        The keys that were seeded
    """
    seeded = []
    with storage.lock:
        if not storage.contains(USERS_KEY):
            storage.save(USERS_KEY, [u.to_storage() for u in DEMO_USERS])
            seeded.append(USERS_KEY)
        if not storage.contains(TASKS_KEY):
            storage.save(TASKS_KEY, [t.to_storage() for t in demo_tasks(now)])
            seeded.append(TASKS_KEY)

    if seeded:
        logger.info(f"Seeded demo data: {', '.join(seeded)}")
    return seeded
