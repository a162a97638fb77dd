"""Errors raised by the roster services.

Every message is meant to be shown to the user as-is.
"""


class RosterError(Exception):
    """Base class for all service errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(RosterError, ValueError):
    """Input rejected (empty field, bad duration, deadline after start...)."""


class NotFoundError(RosterError, LookupError):
    """Referenced task, user or template does not exist."""


class PermissionDenied(RosterError):
    """The acting user may not perform this operation."""


class AuthenticationError(RosterError):
    """Login failed or no user is logged in."""
