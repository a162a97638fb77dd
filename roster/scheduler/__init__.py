"""Background jobs."""

from .jobs import setup_scheduler, sweep_registration_deadlines

__all__ = ["setup_scheduler", "sweep_registration_deadlines"]
