"""Scheduled jobs for registration deadlines."""

import logging
from datetime import datetime, timedelta

import pytz
from apscheduler.schedulers.background import BackgroundScheduler

from roster.services import TaskService

logger = logging.getLogger(__name__)


def sweep_registration_deadlines(task_service: TaskService):
    """Assign tasks whose registration deadline has passed."""
    try:
        assigned = task_service.sweep_deadlines()
    except Exception as e:
        logger.error(f"Deadline sweep failed: {e}")
        return []

    for task in assigned:
        logger.info(f"Deadline sweep assigned task #{task.id} '{task.title}' to {task.assigned_to}")
    return assigned


def setup_scheduler(task_service: TaskService, interval_minutes: float = 1, tz_name: str = "UTC"):
    """
    Set up the periodic deadline sweep.

    Reads and mutations already sweep on their own; this job covers quiet
    periods. Returns None when ``interval_minutes`` is 0.
    """
    if not interval_minutes:
        logger.info("Deadline sweep job disabled")
        return None

    tz = pytz.timezone(tz_name)
    scheduler = BackgroundScheduler(timezone=tz)
    scheduler.add_job(
        sweep_registration_deadlines,
        "interval",
        args=[task_service],
        minutes=interval_minutes,
        next_run_time=datetime.now(tz) + timedelta(seconds=10),  # Start after 10 seconds
        id="sweep_registration_deadlines",
        name="sweep_registration_deadlines",
        coalesce=True,
        max_instances=1,
    )

    logger.info(f"Deadline sweep scheduled every {interval_minutes} minute(s)")
    return scheduler
