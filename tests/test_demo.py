"""Tests for demo data seeding."""

from roster.services import build_services, seed_demo_data
from roster.services.demo import DEMO_USERS, demo_tasks
from roster.services.records import TaskStatus
from conftest import NOW


class TestSeedDemoData:

    def test_seeds_empty_storage(self, storage):
        seeded = seed_demo_data(storage, NOW)

        assert seeded == ["users", "tasks"]
        assert len(storage.load("users")) == 3
        assert len(storage.load("tasks")) == 3

    def test_existing_keys_are_kept(self, storage):
        storage.save("users", [])

        assert seed_demo_data(storage, NOW) == ["tasks"]
        assert storage.load("users") == []
        assert seed_demo_data(storage, NOW) == []

    def test_demo_tasks_are_consistent(self):
        for task in demo_tasks(NOW):
            assert task.end_date - task.start_date == task.duration.as_timedelta()
            assert task.registration_deadline <= task.start_date
            assert (task.status == TaskStatus.PENDING) == (task.assigned_to is None)

    def test_demo_login(self, storage, clock):
        seed_demo_data(storage, NOW)
        services = build_services(storage, clock=clock)

        manager = services.users.login("manager@example.com", "anything")

        assert manager.is_manager
        assert [u.email for u in services.users.list_users()] == [u.email for u in DEMO_USERS]
        assert len(services.tasks.get_user_tasks(manager.id)) == 3
        assert [t.id for t in services.tasks.get_completed_tasks()] == ["2"]
