"""
Role-based permissions for catalog accounts.
"""

from typing import Dict, FrozenSet, Iterable
from enum import Enum


class Permission(str, Enum):
    VIEW_PLANS = "view_plans"
    CREATE_PLANS = "create_plans"
    EDIT_PLANS = "edit_plans"
    DELETE_PLANS = "delete_plans"
    MANAGE_USERS = "manage_users"
    CHANGE_PASSWORD = "change_password"


_PLAN_EDITING = frozenset({
    Permission.VIEW_PLANS,
    Permission.CREATE_PLANS,
    Permission.EDIT_PLANS,
    Permission.DELETE_PLANS,
    Permission.CHANGE_PASSWORD,
})

ROLE_PERMISSIONS: Dict[str, FrozenSet[Permission]] = {
    "admin": _PLAN_EDITING | {Permission.MANAGE_USERS},
    "editor": _PLAN_EDITING,
    "user": _PLAN_EDITING,
    "viewer": frozenset({Permission.VIEW_PLANS, Permission.CHANGE_PASSWORD}),
}


def has_permission(role: str, permission: Permission) -> bool:
    """Unknown roles hold no permissions."""
    return permission in ROLE_PERMISSIONS.get(role, frozenset())


def has_all_permissions(role: str, permissions: Iterable[Permission]) -> bool:
    return all(has_permission(role, permission) for permission in permissions)
