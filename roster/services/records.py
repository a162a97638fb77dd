"""Pydantic records for users, tasks and templates.

Records are persisted with camelCase keys (``startDate``,
``registeredEmployees``...) and validated one entry at a time on load, so a
single malformed entry is dropped instead of poisoning the whole collection.
"""

import enum
import logging
import re
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator, model_validator
from pydantic import ValidationError as SchemaError
from pydantic.alias_generators import to_camel

from .dates import parse_datetime

logger = logging.getLogger(__name__)

R = TypeVar("R", bound="Record")

_HOURS_MINUTES = re.compile(r"^\s*(\d+)\s*:\s*(\d{1,2})\s*$")
_UNITS = re.compile(r"^\s*(?:(\d+)\s*h(?:ours?)?)?\s*(?:(\d+)\s*m(?:in(?:utes?)?)?)?\s*$", re.IGNORECASE)


class Role(str, enum.Enum):
    MANAGER = "manager"
    EMPLOYEE = "employee"


class TaskStatus(str, enum.Enum):
    PENDING = "pending"
    ASSIGNED = "assigned"
    COMPLETED = "completed"


class Record(BaseModel):
    """Base for persisted records."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_storage(self) -> Dict[str, Any]:
        """JSON-ready dict with camelCase keys and ISO dates."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    def revise(self: R, **changes) -> R:
        """Return a re-validated copy with ``changes`` applied."""
        data = self.model_dump()
        data.update(changes)
        return type(self).model_validate(data)


class Duration(Record):
    """Task length in hours and minutes."""

    hours: int = Field(1, ge=0)
    minutes: int = Field(0, ge=0, le=59)

    @model_validator(mode="before")
    @classmethod
    def _accept_text(cls, value: Any) -> Any:
        if isinstance(value, (str, int)) and not isinstance(value, bool):
            return cls._split(value)
        return value

    @staticmethod
    def _split(value: Any) -> Dict[str, int]:
        if isinstance(value, int):
            return {"hours": value // 60, "minutes": value % 60}

        text = value.strip()
        if text.isdigit():
            total = int(text)
            return {"hours": total // 60, "minutes": total % 60}

        match = _HOURS_MINUTES.match(text)
        if match:
            return {"hours": int(match.group(1)), "minutes": int(match.group(2))}

        match = _UNITS.match(text)
        if text and match and any(match.groups()):
            total = int(match.group(1) or 0) * 60 + int(match.group(2) or 0)
            return {"hours": total // 60, "minutes": total % 60}

        raise ValueError(f"Unrecognised duration: {value!r}")

    @property
    def total_minutes(self) -> int:
        return self.hours * 60 + self.minutes

    def as_timedelta(self) -> timedelta:
        return timedelta(minutes=self.total_minutes)

    @classmethod
    def from_timedelta(cls, delta: timedelta) -> "Duration":
        """Duration spanning ``delta``, which must be whole, non-negative minutes."""
        seconds = delta.total_seconds()
        if seconds < 0:
            raise ValueError("End date is before start date")
        if seconds % 60:
            raise ValueError("Task length must be a whole number of minutes")
        total = int(seconds // 60)
        return cls(hours=total // 60, minutes=total % 60)

    def __str__(self):
        return f"{self.hours}h{self.minutes:02d}"


class User(Record):
    id: str
    name: str
    email: str
    role: Role = Role.EMPLOYEE
    facility: Optional[str] = None
    is_active: bool = True

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, value: Any) -> Any:
        return str(value) if isinstance(value, int) else value

    @property
    def is_manager(self) -> bool:
        return self.role == Role.MANAGER


class Task(Record):
    id: str
    title: str
    description: str = ""
    start_date: datetime
    end_date: datetime
    duration: Duration
    registration_deadline: datetime
    created_by: str
    status: TaskStatus = TaskStatus.PENDING
    assigned_to: Optional[str] = None
    registered_employees: List[str] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _migrate(cls, data: Any, info: ValidationInfo) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if data.get("description") is None:
            data["description"] = ""
        # Older entries only carry start/end; derive the duration from them.
        if data.get("duration") is None:
            start = data.get("startDate", data.get("start_date"))
            end = data.get("endDate", data.get("end_date"))
            if start is not None and end is not None:
                tz_name = (info.context or {}).get("timezone")
                elapsed = parse_datetime(end, tz_name) - parse_datetime(start, tz_name)
                data["duration"] = Duration.from_timedelta(elapsed)
        return data

    @field_validator("start_date", "end_date", "registration_deadline", mode="before")
    @classmethod
    def _parse_dates(cls, value: Any, info: ValidationInfo) -> datetime:
        tz_name = (info.context or {}).get("timezone")
        return parse_datetime(value, tz_name)

    @field_validator("id", "created_by", "assigned_to", mode="before")
    @classmethod
    def _stringify_ids(cls, value: Any) -> Any:
        return str(value) if isinstance(value, int) else value

    @field_validator("registered_employees", mode="before")
    @classmethod
    def _dedupe_registrants(cls, value: Any) -> Any:
        if not isinstance(value, (list, tuple)):
            return value
        seen = []
        for item in value:
            item = str(item) if isinstance(item, int) else item
            if item not in seen:
                seen.append(item)
        return seen

    @model_validator(mode="after")
    def _check_assignee(self) -> "Task":
        if self.status == TaskStatus.PENDING and self.assigned_to:
            raise ValueError("A pending task cannot have an assignee")
        if self.status != TaskStatus.PENDING and not self.assigned_to:
            raise ValueError(f"A task with status '{self.status.value}' needs an assignee")
        return self

    @model_validator(mode="after")
    def _check_schedule(self) -> "Task":
        if self.end_date - self.start_date != self.duration.as_timedelta():
            raise ValueError(
                f"End date does not match start date plus duration ({self.duration})"
            )
        if self.registration_deadline > self.start_date:
            raise ValueError("Registration deadline is after the start date")
        return self

    def is_registered(self, user_id: str) -> bool:
        return user_id in self.registered_employees


class TaskTemplate(Record):
    """Reusable task defaults."""

    title: str
    description: Optional[str] = None
    duration: Duration = Field(default_factory=Duration)

    @model_validator(mode="before")
    @classmethod
    def _migrate(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        # The create-task form saved templates with flat hour/minute fields.
        if "duration" not in data and ("durationHours" in data or "durationMinutes" in data):
            data["duration"] = {
                "hours": int(data.pop("durationHours", 0) or 0),
                "minutes": int(data.pop("durationMinutes", 0) or 0),
            }
        return data


def load_records(raw: Any, model: Type[R], kind: str, context: Dict[str, Any] = None) -> List[R]:
    """Validate a stored list entry by entry, skipping malformed ones."""
    if raw is None:
        return []
    if not isinstance(raw, list):
        logger.warning(f"Stored {kind} collection is not a list; ignoring it")
        return []

    records = []
    for index, entry in enumerate(raw):
        try:
            records.append(model.model_validate(entry, context=context))
        except (SchemaError, ValueError, TypeError) as e:
            logger.warning(f"Skipping malformed {kind} entry #{index}: {e}")
    return records


def load_record_map(raw: Any, model: Type[R], kind: str) -> Dict[str, R]:
    """Validate a stored name → entry mapping, skipping malformed entries."""
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        logger.warning(f"Stored {kind} collection is not a mapping; ignoring it")
        return {}

    records = {}
    for name, entry in raw.items():
        try:
            records[name] = model.model_validate(entry)
        except (SchemaError, ValueError, TypeError) as e:
            logger.warning(f"Skipping malformed {kind} '{name}': {e}")
    return records
