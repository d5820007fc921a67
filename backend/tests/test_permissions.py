"""
Tests for organization role checks.
"""

from core.permissions import (
    can_change_role,
    can_delete_organization,
    can_invite,
    can_manage_admins,
    can_manage_members,
)


class TestRoleChecks:
    def test_managers(self):
        for check in (can_invite, can_manage_members):
            assert check("owner")
            assert check("admin")
            assert not check("member")
            assert not check(None)

    def test_owner_only(self):
        for check in (can_delete_organization, can_manage_admins):
            assert check("owner")
            assert not check("admin")
            assert not check("member")


class TestRoleChanges:
    def test_admin_moves_members_only(self):
        assert can_change_role("admin", "member", "member")
        assert not can_change_role("admin", "member", "admin")
        assert not can_change_role("admin", "admin", "member")

    def test_owner_manages_admins(self):
        assert can_change_role("owner", "member", "admin")
        assert can_change_role("owner", "admin", "member")

    def test_owner_role_never_changes_hands(self):
        assert not can_change_role("owner", "owner", "admin")
        assert not can_change_role("owner", "member", "owner")

    def test_members_change_nothing(self):
        assert not can_change_role("member", "member", "member")
