"""Authentication dependencies for the roster API.

``POST /auth/login`` returns a session token; clients send it back in the
``X-Session-Token`` header and every protected endpoint acts as its owner.
"""

from typing import Optional

from fastapi import Depends, HTTPException, Security, status
from fastapi.security import APIKeyHeader

from roster.services import Services, User
from roster.services.records import Role

# Session token header
token_header = APIKeyHeader(name="X-Session-Token", auto_error=False)

# Services instance shared by the endpoints (set by run_api.py or the tests)
_services: Optional[Services] = None


def set_services(services: Services):
    """Set the services the API operates on."""
    global _services
    _services = services


def get_services() -> Services:
    """Get the configured services."""
    if _services is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Storage is not configured"
        )
    return _services


async def get_current_user(
    token: Optional[str] = Security(token_header),
    services: Services = Depends(get_services),
) -> User:
    """
    Return the user the session token belongs to.

    Raises:
        HTTPException: 401 if the token is missing, unknown or revoked
    """
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not logged in"
        )

    user = services.users.resolve_token(token)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired session token"
        )
    return user


def check_role(user: User, required_role: Role) -> bool:
    """Managers may do everything; employees only employee actions."""
    if user.role == Role.MANAGER:
        return True
    return user.role == required_role


async def require_manager(user: User = Depends(get_current_user)) -> User:
    """
    Return the logged-in user if they are a manager.

    Raises:
        HTTPException: 403 for employees
    """
    if not check_role(user, Role.MANAGER):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only managers can perform this action"
        )
    return user
