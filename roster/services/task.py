"""Task management service: lifecycle, registration and auto-assignment."""

import logging
import random
import uuid
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from pydantic import ValidationError as SchemaError

from roster.db.storage import KeyValueStorage
from .dates import (
    DEFAULT_REGISTRATION_LEAD_DAYS,
    default_registration_deadline,
    local_day,
    now_utc,
    parse_datetime,
    to_utc,
)
from .errors import NotFoundError, PermissionDenied, ValidationError
from .records import Duration, Task, TaskStatus, User, load_records
from .user import UserService

logger = logging.getLogger(__name__)

TASKS_KEY = "tasks"

MAX_DURATION_HOURS = 24
UNTITLED_TASK = "Untitled task"

ASSIGNMENT_STRATEGIES = ("random", "first_registered")

_STATUS_ORDER = [TaskStatus.PENDING, TaskStatus.ASSIGNED, TaskStatus.COMPLETED]
_EDITABLE_FIELDS = {
    "title",
    "description",
    "start_date",
    "end_date",
    "duration",
    "registration_deadline",
    "status",
    "assigned_to",
}
_SCHEDULE_FIELDS = {"start_date", "end_date", "duration", "registration_deadline"}
_NON_NULLABLE_FIELDS = {"title", "status"} | _SCHEDULE_FIELDS

DateInput = Union[str, date, datetime]
DurationInput = Union[Duration, Dict[str, Any], str, int]


def parse_batch_lines(text: str) -> List[Tuple[str, str]]:
    """Split batch input into (title, description) pairs, one per non-blank line.

    Each line is ``title|description``; the description is optional.
    """
    entries = []
    for line in (text or "").splitlines():
        if not line.strip():
            continue
        title, _, description = line.partition("|")
        entries.append((title.strip() or UNTITLED_TASK, description.strip()))
    return entries


class TaskService:
    """Manage tasks and their pending → assigned → completed lifecycle.

    Every read and every mutation first runs the deadline sweep: a pending
    task whose registration deadline has passed and that has registrants gets
    one of them assigned.
    """

    def __init__(
        self,
        storage: KeyValueStorage,
        users: UserService,
        clock: Callable[[], datetime] = now_utc,
        rng: random.Random = None,
        assignment_strategy: str = "random",
        registration_lead_days: int = DEFAULT_REGISTRATION_LEAD_DAYS,
        timezone: str = None,
    ):
        if assignment_strategy not in ASSIGNMENT_STRATEGIES:
            raise ValueError(f"Unknown assignment strategy: {assignment_strategy}")

        self.storage = storage
        self.users = users
        self.clock = clock
        self.rng = rng or random.Random()
        self.assignment_strategy = assignment_strategy
        self.registration_lead_days = registration_lead_days
        self.timezone = timezone

    # Queries

    def list_tasks(self, status: str = None) -> List[Task]:
        """All tasks ordered by start date, optionally filtered by status."""
        tasks = self._load_swept()
        if status:
            wanted = self._status(status)
            tasks = [t for t in tasks if t.status == wanted]
        return sorted(tasks, key=lambda t: t.start_date)

    def get_task(self, task_id: str) -> Optional[Task]:
        return self._find(self._load_swept(), task_id)

    def require_task(self, task_id: str) -> Task:
        task = self.get_task(task_id)
        if not task:
            raise NotFoundError(f"Task {task_id} not found")
        return task

    def get_user_tasks(self, user_id: str = None) -> List[Task]:
        """
        Tasks relevant to a user.

        Managers see the tasks they created; employees see the tasks they are
        assigned to or registered for.
        """
        user = self._actor(user_id)
        tasks = self.list_tasks()
        if user.is_manager:
            return [t for t in tasks if t.created_by == user.id]
        return [t for t in tasks if t.assigned_to == user.id or t.is_registered(user.id)]

    def get_pending_tasks(self) -> List[Task]:
        return self.list_tasks(status=TaskStatus.PENDING.value)

    def get_assigned_tasks(self) -> List[Task]:
        return self.list_tasks(status=TaskStatus.ASSIGNED.value)

    def get_completed_tasks(self) -> List[Task]:
        return self.list_tasks(status=TaskStatus.COMPLETED.value)

    def get_tasks_by_date(self, day: DateInput) -> List[Task]:
        """Tasks starting on the given local calendar day."""
        if isinstance(day, datetime):
            target = local_day(day, self.timezone)
        elif isinstance(day, date):
            target = day
        else:
            target = local_day(self._parse_date(day, "Date"), self.timezone)
        return [t for t in self.list_tasks() if local_day(t.start_date, self.timezone) == target]

    # Mutations

    def add_task(
        self,
        title: str,
        start_date: DateInput,
        description: str = "",
        end_date: DateInput = None,
        duration: DurationInput = None,
        registration_deadline: DateInput = None,
        actor_id: str = None,
    ) -> Task:
        """
        Create a pending task.

        The end date is derived from the duration when one is given, otherwise
        the duration is derived from the end date (default 1h00). A missing
        registration deadline defaults to a week before the start.

        Raises:
            ValidationError: on a blank title, bad duration or a deadline after the start
        """
        creator = self._actor(actor_id)
        title = self._clean_title(title)
        schedule = self._resolve_schedule(start_date, end_date, duration, registration_deadline)

        with self.storage.lock:
            tasks = self._load_swept()
            task = self._new_task(title, description, schedule, creator)
            tasks.append(task)
            self._commit(tasks)

        logger.info(f"Created task #{task.id} '{task.title}' starting {task.start_date.isoformat()}")
        return task

    def add_tasks_batch(
        self,
        text: str,
        start_date: DateInput,
        registration_deadline: DateInput = None,
        duration: DurationInput = None,
        actor_id: str = None,
    ) -> List[Task]:
        """Create one task per ``title|description`` line, all sharing the same schedule."""
        if not text or not text.strip():
            raise ValidationError("Enter at least one task")

        entries = parse_batch_lines(text)
        if not entries:
            raise ValidationError("Could not read any task; use one 'title|description' per line")

        creator = self._actor(actor_id)
        schedule = self._resolve_schedule(start_date, None, duration, registration_deadline)

        with self.storage.lock:
            tasks = self._load_swept()
            created = [
                self._new_task(title, description, schedule, creator)
                for title, description in entries
            ]
            tasks.extend(created)
            self._commit(tasks)

        logger.info(f"Created {len(created)} tasks in batch")
        return created

    def update_task(self, task_id: str, **fields) -> Task:
        """
        Update a task and re-check its invariants.

        Schedule changes recompute the end date (or derive the duration from an
        explicit end date). Setting ``assigned_to`` on a pending task assigns it.

        Raises:
            NotFoundError: if the task does not exist
            ValidationError: on unknown fields, invalid values or a forbidden status change
        """
        unknown = set(fields) - _EDITABLE_FIELDS
        if unknown:
            raise ValidationError(f"Cannot update field(s): {', '.join(sorted(unknown))}")
        cleared = sorted(f for f in _NON_NULLABLE_FIELDS if f in fields and fields[f] is None)
        if cleared:
            raise ValidationError(f"Field(s) cannot be empty: {', '.join(cleared)}")

        with self.storage.lock:
            tasks = self._load_swept()
            task = self._find(tasks, task_id)
            if not task:
                raise NotFoundError(f"Task {task_id} not found")

            changes: Dict[str, Any] = {}

            if "title" in fields:
                changes["title"] = self._clean_title(fields["title"])
            if "description" in fields:
                changes["description"] = fields["description"] or ""

            if _SCHEDULE_FIELDS & set(fields):
                if "duration" in fields:
                    duration, end_date = fields["duration"], None
                elif "end_date" in fields:
                    duration, end_date = None, fields["end_date"]
                else:
                    duration, end_date = task.duration, None

                start, end, duration, deadline = self._resolve_schedule(
                    fields.get("start_date", task.start_date),
                    end_date,
                    duration,
                    fields.get("registration_deadline", task.registration_deadline),
                )
                changes.update(
                    start_date=start,
                    end_date=end,
                    duration=duration,
                    registration_deadline=deadline,
                )

            if "status" in fields or "assigned_to" in fields:
                assigned_to = fields.get("assigned_to", task.assigned_to) or None
                if "status" in fields:
                    status = self._status(fields["status"])
                elif assigned_to and task.status == TaskStatus.PENDING:
                    status = TaskStatus.ASSIGNED
                else:
                    status = task.status
                self._check_transition(task, status, assigned_to)
                changes.update(status=status, assigned_to=assigned_to)

            updated = self._revise(task, changes)
            self._replace(tasks, updated)
            self._commit(tasks)

        logger.info(f"Updated task #{task_id}: {', '.join(sorted(changes)) or 'no changes'}")
        return self._find(tasks, task_id)

    def delete_task(self, task_id: str) -> bool:
        """Delete a task."""
        with self.storage.lock:
            tasks = self._load()
            remaining = [t for t in tasks if t.id != task_id]
            if len(remaining) == len(tasks):
                return False
            self._commit(remaining)

        logger.info(f"Deleted task #{task_id}")
        return True

    def register_for_task(self, task_id: str, actor_id: str = None) -> Task:
        """
        Register the acting user for a pending task. Registering twice is a no-op.

        Raises:
            ValidationError: if the task is no longer pending or its deadline has passed
        """
        user = self._actor(actor_id)

        with self.storage.lock:
            tasks = self._load_swept()
            task = self._find(tasks, task_id)
            if not task:
                raise NotFoundError(f"Task {task_id} not found")
            if task.status != TaskStatus.PENDING:
                raise ValidationError("Registration is closed for this task")
            if task.registration_deadline < self.clock():
                raise ValidationError("Registration deadline has passed")
            if task.is_registered(user.id):
                return task

            task = self._revise(task, {"registered_employees": [*task.registered_employees, user.id]})
            self._replace(tasks, task)
            self._commit(tasks)

        logger.info(f"{user.name} registered for task #{task_id}")
        return task

    def unregister_from_task(self, task_id: str, actor_id: str = None) -> Task:
        """Remove the acting user from a task's registrants."""
        user = self._actor(actor_id)

        with self.storage.lock:
            tasks = self._load_swept()
            task = self._find(tasks, task_id)
            if not task:
                raise NotFoundError(f"Task {task_id} not found")
            if not task.is_registered(user.id):
                return task

            remaining = [uid for uid in task.registered_employees if uid != user.id]
            task = self._revise(task, {"registered_employees": remaining})
            self._replace(tasks, task)
            self._commit(tasks)

        logger.info(f"{user.name} unregistered from task #{task_id}")
        return task

    def complete_task(self, task_id: str, actor_id: str = None) -> Task:
        """
        Mark an assigned task as completed.

        Raises:
            PermissionDenied: if the acting user is not the assignee
            ValidationError: if the task is not assigned
        """
        user = self._actor(actor_id)

        with self.storage.lock:
            tasks = self._load_swept()
            task = self._find(tasks, task_id)
            if not task:
                raise NotFoundError(f"Task {task_id} not found")
            if task.status != TaskStatus.ASSIGNED:
                raise ValidationError(f"Only assigned tasks can be completed (status: {task.status.value})")
            if task.assigned_to != user.id:
                raise PermissionDenied("Only the assigned employee can complete this task")

            task = self._revise(task, {"status": TaskStatus.COMPLETED})
            self._replace(tasks, task)
            self._commit(tasks)

        logger.info(f"Task #{task_id} completed by {user.name}")
        return task

    def sweep_deadlines(self, now: datetime = None) -> List[Task]:
        """
        Auto-assign pending tasks whose registration deadline has passed.

        Returns:
            The tasks assigned by this sweep
        """
        with self.storage.lock:
            tasks = self._load()
            assigned = self._sweep(tasks, now)
            if assigned:
                self._save(tasks)
        return assigned

    # Helpers

    def _sweep(self, tasks: List[Task], now: datetime = None) -> List[Task]:
        now = to_utc(now or self.clock(), self.timezone)
        assigned = []
        for index, task in enumerate(tasks):
            if (
                task.status == TaskStatus.PENDING
                and task.registered_employees
                and not task.assigned_to
                and task.registration_deadline < now
            ):
                assignee = self._pick_assignee(task)
                tasks[index] = task.revise(status=TaskStatus.ASSIGNED, assigned_to=assignee)
                assigned.append(tasks[index])
                logger.info(
                    f"Auto-assigned task #{task.id} '{task.title}' to {assignee} "
                    f"({len(task.registered_employees)} registered)"
                )
        return assigned

    def _pick_assignee(self, task: Task) -> str:
        if self.assignment_strategy == "first_registered":
            return task.registered_employees[0]
        return self.rng.choice(task.registered_employees)

    def _resolve_schedule(
        self,
        start_date: DateInput,
        end_date: Optional[DateInput],
        duration: Optional[DurationInput],
        registration_deadline: Optional[DateInput],
    ) -> Tuple[datetime, datetime, Duration, datetime]:
        start = self._parse_date(start_date, "Start date")

        if duration is not None:
            duration = self._coerce_duration(duration)
            end = start + duration.as_timedelta()
        elif end_date is not None:
            end = self._parse_date(end_date, "End date")
            try:
                duration = Duration.from_timedelta(end - start)
            except ValueError as e:
                raise ValidationError(str(e))
        else:
            duration = Duration()
            end = start + duration.as_timedelta()

        self._check_duration(duration)

        if registration_deadline is None:
            deadline = default_registration_deadline(start, self.registration_lead_days)
        else:
            deadline = self._parse_date(registration_deadline, "Registration deadline")

        if deadline > start:
            raise ValidationError("Registration deadline must be before or on the start date")

        return start, end, duration, deadline

    @staticmethod
    def _coerce_duration(value: DurationInput) -> Duration:
        if isinstance(value, Duration):
            return value
        try:
            return Duration.model_validate(value)
        except SchemaError as e:
            raise ValidationError(f"Invalid duration: {e.errors()[0]['msg']}")

    @staticmethod
    def _check_duration(duration: Duration):
        if duration.hours > MAX_DURATION_HOURS:
            raise ValidationError(f"Duration cannot exceed {MAX_DURATION_HOURS} hours")

    def _check_transition(self, task: Task, status: TaskStatus, assigned_to: Optional[str]):
        """Enforce pending → assigned → completed with a registered assignee."""
        if task.status == TaskStatus.COMPLETED:
            if status != TaskStatus.COMPLETED or assigned_to != task.assigned_to:
                raise ValidationError("Completed tasks cannot be changed")
            return

        if _STATUS_ORDER.index(status) < _STATUS_ORDER.index(task.status):
            raise ValidationError(
                f"Cannot move a task from '{task.status.value}' back to '{status.value}'"
            )

        if status == TaskStatus.PENDING:
            if assigned_to:
                raise ValidationError("A pending task cannot have an assignee")
            return

        if task.status == TaskStatus.PENDING and status == TaskStatus.COMPLETED:
            raise ValidationError("A task must be assigned before it can be completed")

        if not assigned_to:
            raise ValidationError("An assigned task needs an assignee")

        if assigned_to != task.assigned_to and not task.is_registered(assigned_to):
            raise ValidationError("The assignee must be registered for the task")

    def _new_task(self, title: str, description: str, schedule: tuple, creator: User) -> Task:
        start, end, duration, deadline = schedule
        return Task(
            id=uuid.uuid4().hex,
            title=title,
            description=(description or "").strip(),
            start_date=start,
            end_date=end,
            duration=duration,
            registration_deadline=deadline,
            created_by=creator.id,
            status=TaskStatus.PENDING,
            registered_employees=[],
        )

    def _actor(self, actor_id: Optional[str]) -> User:
        user = self.users.require_user(actor_id) if actor_id else self.users.require_current_user()
        if not user.is_active:
            raise PermissionDenied(f"User {user.name} is deactivated")
        return user

    def _parse_date(self, value: DateInput, label: str) -> datetime:
        if value is None:
            raise ValidationError(f"{label} is required")
        try:
            return parse_datetime(value, self.timezone)
        except (ValueError, OverflowError):
            raise ValidationError(f"{label} is not a valid date: {value!r}")

    @staticmethod
    def _clean_title(title: str) -> str:
        title = (title or "").strip()
        if not title:
            raise ValidationError("Title is required")
        return title

    @staticmethod
    def _status(value: Union[str, TaskStatus]) -> TaskStatus:
        try:
            return TaskStatus(value)
        except ValueError:
            raise ValidationError(f"Unknown status: {value}")

    @staticmethod
    def _revise(task: Task, changes: Dict[str, Any]) -> Task:
        try:
            return task.revise(**changes)
        except SchemaError as e:
            raise ValidationError(f"Invalid task: {e.errors()[0]['msg']}")

    @staticmethod
    def _find(tasks: List[Task], task_id: str) -> Optional[Task]:
        return next((t for t in tasks if t.id == task_id), None)

    @staticmethod
    def _replace(tasks: List[Task], updated: Task):
        for index, task in enumerate(tasks):
            if task.id == updated.id:
                tasks[index] = updated

    def _load(self) -> List[Task]:
        return load_records(
            self.storage.load(TASKS_KEY), Task, "task", context={"timezone": self.timezone}
        )

    def _load_swept(self) -> List[Task]:
        with self.storage.lock:
            tasks = self._load()
            if self._sweep(tasks):
                self._save(tasks)
        return tasks

    def _commit(self, tasks: List[Task]):
        self._sweep(tasks)
        self._save(tasks)

    def _save(self, tasks: List[Task]):
        self.storage.save(TASKS_KEY, [t.to_storage() for t in tasks])
