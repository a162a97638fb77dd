"""Shared test fixtures for the roster test suite."""

import pytest
import random
import tempfile
import os
from datetime import datetime, timedelta
import pytz

# Add parent directory to path so we can import roster modules
import sys
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from roster.db import init_db, dispose_db, MemoryStorage, DatabaseStorage
from roster.services import build_services
from roster.services.records import Role, User

TIMEZONE = "America/Montreal"

# Monday 2026-03-02 10:00 in Montreal (EST, UTC-5)
NOW = datetime(2026, 3, 2, 15, 0, tzinfo=pytz.UTC)


class FrozenClock:
    """Clock the tests move by hand."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock():
    return FrozenClock(NOW)


@pytest.fixture
def storage():
    """Empty in-memory storage."""
    return MemoryStorage()


@pytest.fixture
def test_db():
    """Create a temporary test database."""
    # Create a temporary file for the test database
    db_fd, db_path = tempfile.mkstemp(suffix='.db')

    # Initialize the database
    init_db(db_path)

    yield db_path

    # Cleanup
    dispose_db()
    os.close(db_fd)
    os.unlink(db_path)


@pytest.fixture
def db_storage(test_db):
    return DatabaseStorage()


@pytest.fixture
def staff(storage):
    """One manager and two employees stored in the user list."""
    users = {
        "manager": User(id="m1", name="Nora Manager", email="nora@central.example",
                        role=Role.MANAGER, facility="Central Hospital"),
        "employee_one": User(id="e1", name="Eli One", email="eli@central.example",
                             role=Role.EMPLOYEE, facility="Central Hospital"),
        "employee_two": User(id="e2", name="Ava Two", email="ava@east.example",
                             role=Role.EMPLOYEE, facility="East Health Center"),
    }
    storage.save("users", [u.to_storage() for u in users.values()])
    return users


@pytest.fixture
def manager(staff):
    return staff["manager"]


@pytest.fixture
def employee_one(staff):
    return staff["employee_one"]


@pytest.fixture
def employee_two(staff):
    return staff["employee_two"]


@pytest.fixture
def services(storage, staff, clock):
    """Services over in-memory storage with a frozen clock and seeded randomness."""
    return build_services(
        storage,
        clock=clock,
        rng=random.Random(7),
        timezone=TIMEZONE,
    )


@pytest.fixture
def task_service(services):
    return services.tasks


@pytest.fixture
def user_service(services):
    return services.users


@pytest.fixture
def template_service(services):
    return services.templates


@pytest.fixture
def open_task(task_service, manager):
    """A pending task starting in ten days with the default deadline."""
    return task_service.add_task(
        title="Night shift cover",
        description="Ward B, cover for the night nurse",
        start_date=NOW + timedelta(days=10),
        duration={"hours": 1, "minutes": 30},
        actor_id=manager.id,
    )
