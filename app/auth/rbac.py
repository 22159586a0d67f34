from typing import Iterable

from fastapi import Depends, HTTPException, status

from app.auth.dependencies import get_current_user
from app.auth.schemas import CurrentUser
from app.core.exceptions import AuthorizationError


def ensure_role(actor: CurrentUser, roles: Iterable[str], message: str = "Insufficient permissions") -> None:
    """Raise AuthorizationError unless actor.role is one of roles. Used inside services."""
    if actor.role not in tuple(roles):
        raise AuthorizationError(message)


def require_roles(*roles: str):
    """
    Dependency factory to gate a route by role.

    Example:
        Depends(require_roles("ADMIN", "REGISTRAR"))
    """

    async def _checker(current_user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if current_user.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return current_user

    return _checker
