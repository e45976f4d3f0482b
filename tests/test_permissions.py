"""
Tests for role permissions.
"""

import pytest

from planfinder.core.permissions import Permission, has_all_permissions, has_permission


@pytest.mark.parametrize("role", ["admin", "editor", "user"])
def test_plan_editing_roles(role):
    assert has_all_permissions(role, [
        Permission.VIEW_PLANS, Permission.CREATE_PLANS, Permission.EDIT_PLANS, Permission.DELETE_PLANS,
    ])


def test_only_admin_manages_users():
    assert has_permission("admin", Permission.MANAGE_USERS)
    assert not has_permission("editor", Permission.MANAGE_USERS)
    assert not has_permission("user", Permission.MANAGE_USERS)


def test_viewer_is_read_only():
    assert has_permission("viewer", Permission.VIEW_PLANS)
    assert has_permission("viewer", Permission.CHANGE_PASSWORD)
    assert not has_permission("viewer", Permission.CREATE_PLANS)
    assert not has_permission("viewer", Permission.DELETE_PLANS)


def test_unknown_role_has_nothing():
    assert not has_permission("guest", Permission.VIEW_PLANS)
    assert not has_all_permissions("", [Permission.VIEW_PLANS])
