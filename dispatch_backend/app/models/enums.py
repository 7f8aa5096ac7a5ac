"""
User roles enumeration.

Defines the role types carried in dispatch users' access tokens.
"""

import enum


class UserRole(str, enum.Enum):
    """
    User role enumeration.

    Terminal roles are scoped to the terminals listed in the token;
    corporate and system roles apply across all terminals.
    """
    # Terminal roles
    DISPATCHER = "dispatcher"
    TEAM_LEAD = "team_lead"
    TERMINAL_MANAGER = "terminal_manager"

    # Corporate roles
    EQUIPMENT_MANAGER = "equipment_manager"
    SAFETY_MANAGER = "safety_manager"
    COMPLIANCE_MANAGER = "compliance_manager"
    OPERATIONS_MANAGEMENT = "operations_management"

    # System roles
    SYSTEM_ADMIN = "system_admin"


TERMINAL_ROLES = frozenset({
    UserRole.DISPATCHER,
    UserRole.TEAM_LEAD,
    UserRole.TERMINAL_MANAGER,
})

BROAD_ACCESS_ROLES = frozenset({
    UserRole.EQUIPMENT_MANAGER,
    UserRole.SAFETY_MANAGER,
    UserRole.COMPLIANCE_MANAGER,
    UserRole.OPERATIONS_MANAGEMENT,
    UserRole.SYSTEM_ADMIN,
})

# Roles allowed to create and mutate dispatch events
DISPATCH_WRITE_ROLES = [
    UserRole.DISPATCHER,
    UserRole.TEAM_LEAD,
    UserRole.TERMINAL_MANAGER,
    UserRole.OPERATIONS_MANAGEMENT,
    UserRole.SYSTEM_ADMIN,
]

# Elevated roles allowed to delete dispatch events
DISPATCH_DELETE_ROLES = [
    UserRole.TERMINAL_MANAGER,
    UserRole.OPERATIONS_MANAGEMENT,
    UserRole.SYSTEM_ADMIN,
]
