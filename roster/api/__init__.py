"""HTTP API for the roster services."""

from .main import app
from .auth import set_services, get_services

__all__ = ["app", "set_services", "get_services"]
