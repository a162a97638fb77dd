"""Date and duration helpers.

All datetimes handled by the services are timezone-aware and normalised to
UTC; naive input is interpreted in the configured local timezone.
"""

from datetime import date, datetime, timedelta
from typing import Optional, Union

import pytz
from dateutil import parser as date_parser

DEFAULT_TIMEZONE = "America/Montreal"
DEFAULT_REGISTRATION_LEAD_DAYS = 7


def now_utc() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(pytz.UTC)


def get_timezone(tz_name: Optional[str] = None):
    return pytz.timezone(tz_name or DEFAULT_TIMEZONE)


def to_utc(value: datetime, tz_name: Optional[str] = None) -> datetime:
    """Localise a naive datetime to ``tz_name`` and convert to UTC."""
    if value.tzinfo is None:
        value = get_timezone(tz_name).localize(value)
    return value.astimezone(pytz.UTC)


def parse_datetime(value: Union[str, date, datetime], tz_name: Optional[str] = None) -> datetime:
    """Parse an ISO string (or date/datetime) into an aware UTC datetime.

    Raises:
        ValueError: if the value cannot be parsed
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            raise ValueError("Date is empty")
        try:
            parsed = date_parser.isoparse(text)
        except ValueError:
            parsed = date_parser.parse(text)
    else:
        raise ValueError(f"Unsupported date value: {value!r}")

    return to_utc(parsed, tz_name)


def local_day(value: datetime, tz_name: Optional[str] = None) -> date:
    """Calendar day of ``value`` in the local timezone."""
    return to_utc(value, tz_name).astimezone(get_timezone(tz_name)).date()


def default_registration_deadline(
    start_date: datetime, lead_days: int = DEFAULT_REGISTRATION_LEAD_DAYS
) -> datetime:
    """Registration closes ``lead_days`` before the task starts."""
    return start_date - timedelta(days=lead_days)
