"""
Security guards for role-based and terminal-scoped access control.

Provides dependencies and helpers for protecting dispatch endpoints.
"""

from typing import List
from fastapi import Depends
from dispatch_backend.app.core.dependencies import get_current_user
from dispatch_backend.app.core.exceptions import InsufficientPermissionsError, TerminalAccessDeniedError
from dispatch_backend.app.core.permissions import user_roles, has_terminal_access
from dispatch_backend.app.models.enums import UserRole


def require_role(allowed_roles: List[UserRole]):
    """
    Dependency factory for role-based access control.

    Usage:
        @router.post("/terminals/{terminal_id}/dispatch")
        async def create(current_user: dict = Depends(require_role(DISPATCH_WRITE_ROLES))):
            ...

    The user passes when any of their roles is in allowed_roles.

    Raises:
        InsufficientPermissionsError (403) otherwise
    """
    async def role_checker(current_user: dict = Depends(get_current_user)) -> dict:
        if not user_roles(current_user) & set(allowed_roles):
            raise InsufficientPermissionsError(
                f"Access denied. Required role: {', '.join(r.value for r in allowed_roles)}",
                details={"required_roles": [r.value for r in allowed_roles]},
            )
        return current_user

    return role_checker


class TerminalScopeGuard:
    """
    Class-based guard for validating terminal-scoped access.

    Usage:
        terminal_guard = TerminalScopeGuard()

        @router.get("/dispatch/{dispatch_id}")
        async def get_dispatch(...):
            event = await service.get_dispatch_event(dispatch_id)
            terminal_guard.enforce(event.terminal_id, current_user)
            return event
    """

    def enforce(self, terminal_id: int, current_user: dict):
        """
        Raises:
            TerminalAccessDeniedError (403) if the terminal is out of scope
        """
        if not has_terminal_access(terminal_id, current_user):
            raise TerminalAccessDeniedError(terminal_id)

