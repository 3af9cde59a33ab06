"""Unit tests for the role model.

Tests cover:
- Tolerant parsing of stored role values
- Privilege predicates
- Global role assignment rules (self-change, superadmin protection)
- Organization authority and what it allows
"""

import pytest

from auth.roles import (
    GlobalRole,
    OrgAuthority,
    OrgRole,
    can_act_on_org,
    can_assign_role,
    can_delete_org,
    can_manage_members,
    can_remove_org_owner,
    is_privileged,
    is_superadmin,
)
from auth.session import Caller


class TestRoleParsing:
    def test_known_global_roles(self):
        assert GlobalRole.parse("superadmin") == GlobalRole.SUPERADMIN
        assert GlobalRole.parse(GlobalRole.ADMIN) == GlobalRole.ADMIN

    def test_unknown_or_missing_global_role_is_user(self):
        assert GlobalRole.parse(None) == GlobalRole.USER
        assert GlobalRole.parse("root") == GlobalRole.USER

    def test_org_role_missing_means_no_membership(self):
        assert OrgRole.parse(None) is None
        assert OrgRole.parse("viewer") is None
        assert OrgRole.parse("owner") == OrgRole.OWNER


class TestPrivilege:
    @pytest.mark.parametrize("role,expected", [
        ("user", False),
        ("admin", True),
        ("superadmin", True),
        (None, False),
    ])
    def test_is_privileged(self, role, expected):
        assert is_privileged(role) is expected

    def test_is_superadmin(self):
        assert is_superadmin("superadmin")
        assert not is_superadmin("admin")

    @pytest.mark.parametrize("role", list(GlobalRole))
    def test_caller_agrees_with_predicates(self, role):
        caller = Caller(account_id="x", email=None, role=role)

        assert caller.is_privileged is is_privileged(role)
        assert caller.is_superadmin is is_superadmin(role)


class TestCanAssignRole:
    def test_admin_may_promote_user_to_admin(self):
        assert can_assign_role(False, "user", "admin")

    def test_admin_may_not_grant_superadmin(self):
        assert not can_assign_role(False, "user", "superadmin")

    def test_admin_may_not_demote_superadmin(self):
        assert not can_assign_role(False, "superadmin", "user")

    def test_superadmin_may_touch_superadmin_roles(self):
        assert can_assign_role(True, "admin", "superadmin")
        assert can_assign_role(True, "superadmin", "admin")

    def test_self_role_change_always_rejected(self):
        assert not can_assign_role(True, "superadmin", "user", target_is_caller=True)
        assert not can_assign_role(False, "user", "admin", target_is_caller=True)


class TestOrgAuthority:
    def test_superadmin_overrides_any_org_role(self):
        assert can_act_on_org(True, None) == OrgAuthority.SUPERADMIN_OVERRIDE
        assert can_act_on_org(True, "member") == OrgAuthority.SUPERADMIN_OVERRIDE

    def test_org_roles(self):
        assert can_act_on_org(False, "owner") == OrgAuthority.ORG_OWNER
        assert can_act_on_org(False, "admin") == OrgAuthority.ORG_ADMIN
        assert can_act_on_org(False, "member") == OrgAuthority.FORBIDDEN
        assert can_act_on_org(False, None) == OrgAuthority.FORBIDDEN

    def test_member_management(self):
        assert can_manage_members(OrgAuthority.ORG_ADMIN)
        assert can_manage_members(OrgAuthority.ORG_OWNER)
        assert can_manage_members(OrgAuthority.SUPERADMIN_OVERRIDE)
        assert not can_manage_members(OrgAuthority.FORBIDDEN)

    def test_org_delete_needs_owner_or_superadmin(self):
        assert can_delete_org(OrgAuthority.ORG_OWNER)
        assert can_delete_org(OrgAuthority.SUPERADMIN_OVERRIDE)
        assert not can_delete_org(OrgAuthority.ORG_ADMIN)

    def test_only_superadmin_removes_owner(self):
        assert can_remove_org_owner(OrgAuthority.SUPERADMIN_OVERRIDE)
        assert not can_remove_org_owner(OrgAuthority.ORG_OWNER)
        assert not can_remove_org_owner(OrgAuthority.ORG_ADMIN)
