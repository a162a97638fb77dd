"""Task scheduling and registration for healthcare facility staff."""

__version__ = "1.0.0"
