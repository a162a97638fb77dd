"""Tests for registration, automatic assignment and completion."""

import random
import pytest
from datetime import datetime, timedelta

from roster.services import (
    AuthenticationError,
    NotFoundError,
    PermissionDenied,
    TaskService,
    ValidationError,
    build_services,
)
from roster.services.records import TaskStatus
from conftest import NOW, TIMEZONE


class TestRegistration:
    """Employees signing up for pending tasks."""

    def test_register_adds_employee(self, task_service, open_task, employee_one):
        task = task_service.register_for_task(open_task.id, actor_id=employee_one.id)

        assert task.registered_employees == [employee_one.id]
        assert task_service.get_task(open_task.id).registered_employees == [employee_one.id]

    def test_register_twice_is_a_noop(self, task_service, open_task, employee_one):
        task_service.register_for_task(open_task.id, actor_id=employee_one.id)
        task = task_service.register_for_task(open_task.id, actor_id=employee_one.id)

        assert task.registered_employees == [employee_one.id]

    def test_registration_order_is_kept(self, task_service, open_task, employee_one, employee_two):
        task_service.register_for_task(open_task.id, actor_id=employee_two.id)
        task = task_service.register_for_task(open_task.id, actor_id=employee_one.id)

        assert task.registered_employees == [employee_two.id, employee_one.id]

    def test_register_uses_session_user(self, task_service, user_service, open_task, employee_two):
        user_service.login(employee_two.email)

        task = task_service.register_for_task(open_task.id)

        assert task.registered_employees == [employee_two.id]

    def test_register_without_session(self, task_service, open_task):
        with pytest.raises(AuthenticationError):
            task_service.register_for_task(open_task.id)

    def test_register_after_deadline_rejected(self, task_service, clock, open_task, employee_one):
        clock.now = open_task.registration_deadline + timedelta(minutes=1)

        with pytest.raises(ValidationError, match="deadline"):
            task_service.register_for_task(open_task.id, actor_id=employee_one.id)

    def test_register_exactly_at_deadline_allowed(self, task_service, clock, open_task, employee_one):
        clock.now = open_task.registration_deadline

        task = task_service.register_for_task(open_task.id, actor_id=employee_one.id)

        assert task.is_registered(employee_one.id)
        assert task.status == TaskStatus.PENDING

    def test_register_for_assigned_task_rejected(self, task_service, open_task, employee_one, employee_two):
        task_service.register_for_task(open_task.id, actor_id=employee_one.id)
        task_service.update_task(open_task.id, assigned_to=employee_one.id)

        with pytest.raises(ValidationError, match="closed"):
            task_service.register_for_task(open_task.id, actor_id=employee_two.id)

    def test_register_for_missing_task(self, task_service, employee_one):
        with pytest.raises(NotFoundError):
            task_service.register_for_task("missing", actor_id=employee_one.id)

    def test_deactivated_user_cannot_register(self, task_service, user_service, open_task, employee_one):
        user_service.update_user_status(employee_one.id, False)

        with pytest.raises(PermissionDenied):
            task_service.register_for_task(open_task.id, actor_id=employee_one.id)

    def test_unregister(self, task_service, open_task, employee_one, employee_two):
        task_service.register_for_task(open_task.id, actor_id=employee_one.id)
        task_service.register_for_task(open_task.id, actor_id=employee_two.id)

        task = task_service.unregister_from_task(open_task.id, actor_id=employee_one.id)

        assert task.registered_employees == [employee_two.id]

    def test_unregister_when_not_registered(self, task_service, open_task, employee_one):
        task = task_service.unregister_from_task(open_task.id, actor_id=employee_one.id)

        assert task.registered_employees == []


class TestAutoAssignment:
    """Pending tasks are assigned once their registration deadline passes."""

    def test_one_registrant_is_picked_after_deadline(self, task_service, clock, open_task, employee_one, employee_two):
        task_service.register_for_task(open_task.id, actor_id=employee_one.id)
        task_service.register_for_task(open_task.id, actor_id=employee_two.id)

        clock.now = open_task.registration_deadline + timedelta(seconds=1)
        task = task_service.get_task(open_task.id)

        assert task.status == TaskStatus.ASSIGNED
        assert task.assigned_to in (employee_one.id, employee_two.id)
        assert task.registered_employees == [employee_one.id, employee_two.id]

    def test_assignment_is_persisted(self, task_service, storage, clock, open_task, employee_one):
        task_service.register_for_task(open_task.id, actor_id=employee_one.id)
        clock.advance(days=4)

        task_service.list_tasks()

        stored = storage.load("tasks")[0]
        assert stored["status"] == "assigned"
        assert stored["assignedTo"] == employee_one.id

    def test_moving_deadline_into_the_past_assigns(self, task_service, open_task, employee_one, employee_two):
        task_service.register_for_task(open_task.id, actor_id=employee_one.id)
        task_service.register_for_task(open_task.id, actor_id=employee_two.id)

        task = task_service.update_task(open_task.id, registration_deadline=NOW - timedelta(hours=1))

        assert task.status == TaskStatus.ASSIGNED
        assert task.assigned_to in (employee_one.id, employee_two.id)

    def test_no_registrants_stays_pending(self, task_service, clock, open_task):
        clock.advance(days=5)

        task = task_service.get_task(open_task.id)

        assert task.status == TaskStatus.PENDING
        assert task.assigned_to is None

    def test_before_deadline_stays_pending(self, task_service, clock, open_task, employee_one):
        task_service.register_for_task(open_task.id, actor_id=employee_one.id)
        clock.now = open_task.registration_deadline

        assert task_service.get_task(open_task.id).status == TaskStatus.PENDING

    def test_sweep_returns_assigned_tasks(self, task_service, open_task, employee_one):
        task_service.register_for_task(open_task.id, actor_id=employee_one.id)

        assert task_service.sweep_deadlines() == []
        assigned = task_service.sweep_deadlines(now=open_task.registration_deadline + timedelta(minutes=5))

        assert [t.id for t in assigned] == [open_task.id]
        assert assigned[0].assigned_to == employee_one.id

    def test_sweep_with_naive_now_uses_local_time(self, task_service, open_task, employee_one):
        task_service.register_for_task(open_task.id, actor_id=employee_one.id)

        # The deadline is 15:00 UTC, 10:00 in Montreal.
        assert task_service.sweep_deadlines(now=datetime(2026, 3, 5, 9, 59)) == []
        assigned = task_service.sweep_deadlines(now=datetime(2026, 3, 5, 10, 1))

        assert [t.id for t in assigned] == [open_task.id]
        assert task_service.sweep_deadlines(now=NOW + timedelta(days=30)) == []

    def test_first_registered_strategy(self, storage, staff, clock, employee_one, employee_two, manager):
        tasks = build_services(
            storage, clock=clock, assignment_strategy="first_registered", timezone=TIMEZONE
        ).tasks
        task = tasks.add_task(title="Inventory", start_date=NOW + timedelta(days=8), actor_id=manager.id)
        tasks.register_for_task(task.id, actor_id=employee_two.id)
        tasks.register_for_task(task.id, actor_id=employee_one.id)

        clock.advance(days=2)

        assert tasks.get_task(task.id).assigned_to == employee_two.id

    def test_random_strategy_uses_injected_rng(self, storage, staff, clock, employee_one, employee_two, manager):
        picks = set()
        for seed in range(20):
            store = type(storage)()
            store.save("users", storage.load("users"))
            tasks = build_services(store, clock=clock, rng=random.Random(seed), timezone=TIMEZONE).tasks
            task = tasks.add_task(title="Inventory", start_date=NOW + timedelta(days=8), actor_id=manager.id)
            tasks.register_for_task(task.id, actor_id=employee_one.id)
            tasks.register_for_task(task.id, actor_id=employee_two.id)
            picks.add(tasks.sweep_deadlines(now=NOW + timedelta(days=2))[0].assigned_to)

        assert picks == {employee_one.id, employee_two.id}

    def test_unknown_strategy_rejected(self, storage, user_service):
        with pytest.raises(ValueError):
            TaskService(storage, user_service, assignment_strategy="round_robin")


class TestStatusChanges:
    """Manual status and assignee edits."""

    def test_assign_registered_employee(self, task_service, open_task, employee_one):
        task_service.register_for_task(open_task.id, actor_id=employee_one.id)

        task = task_service.update_task(open_task.id, status="assigned", assigned_to=employee_one.id)

        assert task.status == TaskStatus.ASSIGNED
        assert task.assigned_to == employee_one.id

    def test_assignee_must_be_registered(self, task_service, open_task, employee_one):
        with pytest.raises(ValidationError, match="registered"):
            task_service.update_task(open_task.id, assigned_to=employee_one.id)

    def test_assigned_without_assignee_rejected(self, task_service, open_task):
        with pytest.raises(ValidationError, match="assignee"):
            task_service.update_task(open_task.id, status="assigned")

    def test_pending_cannot_jump_to_completed(self, task_service, open_task, employee_one):
        task_service.register_for_task(open_task.id, actor_id=employee_one.id)

        with pytest.raises(ValidationError, match="assigned before"):
            task_service.update_task(open_task.id, status="completed", assigned_to=employee_one.id)

    def test_cannot_move_back_to_pending(self, task_service, open_task, employee_one):
        task_service.register_for_task(open_task.id, actor_id=employee_one.id)
        task_service.update_task(open_task.id, assigned_to=employee_one.id)

        with pytest.raises(ValidationError, match="back"):
            task_service.update_task(open_task.id, status="pending", assigned_to=None)

    def test_reassign_to_other_registrant(self, task_service, open_task, employee_one, employee_two):
        task_service.register_for_task(open_task.id, actor_id=employee_one.id)
        task_service.register_for_task(open_task.id, actor_id=employee_two.id)
        task_service.update_task(open_task.id, assigned_to=employee_one.id)

        task = task_service.update_task(open_task.id, assigned_to=employee_two.id)

        assert task.status == TaskStatus.ASSIGNED
        assert task.assigned_to == employee_two.id


class TestCompletion:
    """Only the assignee completes an assigned task."""

    @pytest.fixture
    def assigned_task(self, task_service, open_task, employee_one):
        task_service.register_for_task(open_task.id, actor_id=employee_one.id)
        return task_service.update_task(open_task.id, assigned_to=employee_one.id)

    def test_assignee_completes(self, task_service, assigned_task, employee_one):
        task = task_service.complete_task(assigned_task.id, actor_id=employee_one.id)

        assert task.status == TaskStatus.COMPLETED
        assert task.assigned_to == employee_one.id
        assert [t.id for t in task_service.get_completed_tasks()] == [assigned_task.id]

    def test_other_user_cannot_complete(self, task_service, assigned_task, employee_two, manager):
        with pytest.raises(PermissionDenied):
            task_service.complete_task(assigned_task.id, actor_id=employee_two.id)
        with pytest.raises(PermissionDenied):
            task_service.complete_task(assigned_task.id, actor_id=manager.id)

    def test_pending_task_cannot_be_completed(self, task_service, open_task, employee_one):
        with pytest.raises(ValidationError, match="Only assigned"):
            task_service.complete_task(open_task.id, actor_id=employee_one.id)

    def test_completed_task_is_frozen(self, task_service, assigned_task, employee_one, employee_two):
        task_service.complete_task(assigned_task.id, actor_id=employee_one.id)

        with pytest.raises(ValidationError, match="Completed"):
            task_service.update_task(assigned_task.id, status="assigned")
        with pytest.raises(ValidationError, match="Completed"):
            task_service.update_task(assigned_task.id, assigned_to=employee_two.id)
        with pytest.raises(ValidationError, match="Only assigned"):
            task_service.complete_task(assigned_task.id, actor_id=employee_one.id)

    def test_completed_task_title_can_change(self, task_service, assigned_task, employee_one):
        task_service.complete_task(assigned_task.id, actor_id=employee_one.id)

        task = task_service.update_task(assigned_task.id, title="Night shift (done)")

        assert task.title == "Night shift (done)"
        assert task.status == TaskStatus.COMPLETED
