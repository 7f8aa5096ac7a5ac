"""
Role and terminal-scope checks over the token payload.

Shared by the HTTP guards and the dispatch service's capability hooks.
"""

from typing import Set
from dispatch_backend.app.models.enums import UserRole, BROAD_ACCESS_ROLES, DISPATCH_DELETE_ROLES


def user_roles(current_user: dict) -> Set[UserRole]:
    """Roles from the token payload; unknown role names are ignored."""
    roles = set()
    for raw in (current_user or {}).get("roles") or []:
        try:
            roles.add(UserRole(raw))
        except ValueError:
            continue
    return roles


def can_delete_dispatch(current_user: dict) -> bool:
    """Capability hook for deleting dispatch events (elevated roles only)."""
    return bool(user_roles(current_user) & set(DISPATCH_DELETE_ROLES))


def has_terminal_access(terminal_id: int, current_user: dict) -> bool:
    """
    Corporate and system roles reach every terminal; terminal roles only
    reach the terminals listed in their token.
    """
    if user_roles(current_user) & BROAD_ACCESS_ROLES:
        return True
    return int(terminal_id) in token_terminal_ids(current_user)


def token_terminal_ids(current_user: dict) -> Set[int]:
    """Terminal ids listed in the token; entries that are not integers are ignored."""
    terminal_ids = set()
    for raw in (current_user or {}).get("terminal_ids") or []:
        try:
            terminal_ids.add(int(raw))
        except (TypeError, ValueError):
            continue
    return terminal_ids
