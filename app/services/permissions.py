"""
Tenant resolution and capability checks.

Roles map to capability keys; routes and services ask for keys, never roles,
so the table below is the only place that knows which role may do what.
"""
from typing import Dict, FrozenSet, Optional

from app.core.exceptions import AccessDeniedError
from app.models.user import User, UserRole


class Permission:
    TIME_VIEW_TEAM = "time.view_team"
    TIME_EDIT_PAST = "time.edit_past"
    TIME_APPROVE = "time.approve"
    OVERTIME_VIEW = "overtime.view"
    OVERTIME_APPROVE = "overtime.approve"
    OVERTIME_MANAGE_RULES = "overtime.manage_rules"
    LEAVE_APPROVE_REQUESTS = "leave.approve_requests"
    LEAVE_VIEW_TEAM_CALENDAR = "leave.view_team_calendar"
    LEAVE_MANAGE_BALANCES = "leave.manage_balances"
    LEAVE_MANAGE_TYPES = "leave.manage_types"
    LEAVE_MANAGE_HOLIDAYS = "leave.manage_holidays"


_EMPLOYEE = frozenset({Permission.OVERTIME_VIEW})
_MANAGER = _EMPLOYEE | {
    Permission.TIME_VIEW_TEAM,
    Permission.TIME_APPROVE,
    Permission.OVERTIME_APPROVE,
    Permission.LEAVE_APPROVE_REQUESTS,
    Permission.LEAVE_VIEW_TEAM_CALENDAR,
}
_HR_MANAGER = _MANAGER | {
    Permission.TIME_EDIT_PAST,
    Permission.LEAVE_MANAGE_BALANCES,
    Permission.LEAVE_MANAGE_HOLIDAYS,
}
_ADMIN = _HR_MANAGER | {
    Permission.OVERTIME_MANAGE_RULES,
    Permission.LEAVE_MANAGE_TYPES,
}

ROLE_CAPABILITIES: Dict[UserRole, FrozenSet[str]] = {
    UserRole.EMPLOYEE: _EMPLOYEE,
    UserRole.MANAGER: _MANAGER,
    UserRole.HR_MANAGER: _HR_MANAGER,
    UserRole.HR_ADMIN: _ADMIN,
    UserRole.SUPER_ADMIN: _ADMIN,
}


class PermissionResolver:
    def resolve_tenant(self, user: User) -> int:
        if not user.organization_id:
            raise AccessDeniedError("User is not assigned to an organization")
        return user.organization_id

    def has_permission(self, user: Optional[User], tenant_id: int, key: str) -> bool:
        if user is None or not user.is_active:
            return False
        if user.organization_id != tenant_id:
            return False
        return key in ROLE_CAPABILITIES.get(user.role, frozenset())

    def ensure_permission(self, user: Optional[User], tenant_id: int, key: str) -> None:
        if not self.has_permission(user, tenant_id, key):
            raise AccessDeniedError(f"Missing permission: {key}")


default_resolver = PermissionResolver()


def get_permission_resolver() -> PermissionResolver:
    """FastAPI dependency so deployments can plug in another resolver."""
    return default_resolver
