"""Role model: global roles, organization roles and the decisions built on them.

Global role (profiles.role):
- SUPERADMIN: authority over every organization and account except other superadmins
- ADMIN: privileged; may list accounts, change non-superadmin roles, edit global overrides
- USER: regular account

Organization role (organization_members.org_role):
- OWNER: created the organization; only removable by a superadmin
- ADMIN: may manage membership
- MEMBER: no management rights

Decision matrix for organization management:
┌──────────────────────────┬────────┬───────┬────────┬────────────┐
│ Caller                   │ member │ admin │ owner  │ superadmin │
├──────────────────────────┼────────┼───────┼────────┼────────────┤
│ Manage membership        │        │   ✓   │   ✓    │     ✓      │
│ Remove the owner         │        │       │        │     ✓      │
│ Delete the organization  │        │       │   ✓    │     ✓      │
└──────────────────────────┴────────┴───────┴────────┴────────────┘

Every function here is pure: no I/O, no side effects.
"""

from enum import Enum
from typing import Optional, Union


class GlobalRole(str, Enum):
    """Values are stored as TEXT in the database and must match exactly."""
    USER = "user"
    ADMIN = "admin"
    SUPERADMIN = "superadmin"

    @classmethod
    def parse(cls, value: Optional[Union[str, "GlobalRole"]]) -> "GlobalRole":
        """Stored value to role; missing or unknown values are plain users."""
        try:
            return cls(value)
        except ValueError:
            return cls.USER


class OrgRole(str, Enum):
    MEMBER = "member"
    ADMIN = "admin"
    OWNER = "owner"

    @classmethod
    def parse(cls, value: Optional[Union[str, "OrgRole"]]) -> Optional["OrgRole"]:
        """Stored value to role; None when the caller holds no membership."""
        if value is None:
            return None
        try:
            return cls(value)
        except ValueError:
            return None


class OrgAuthority(str, Enum):
    """What a caller may do inside one organization."""
    FORBIDDEN = "forbidden"
    ORG_ADMIN = "org-admin"
    ORG_OWNER = "org-owner"
    SUPERADMIN_OVERRIDE = "superadmin-override"


PRIVILEGED_ROLES = {GlobalRole.ADMIN, GlobalRole.SUPERADMIN}


def is_privileged(global_role: Optional[Union[str, GlobalRole]]) -> bool:
    """True for admin or superadmin.

    Examples:
        >>> is_privileged("admin")
        True
        >>> is_privileged(GlobalRole.USER)
        False
    """
    return GlobalRole.parse(global_role) in PRIVILEGED_ROLES


def is_superadmin(global_role: Optional[Union[str, GlobalRole]]) -> bool:
    return GlobalRole.parse(global_role) == GlobalRole.SUPERADMIN


def can_assign_role(
    caller_is_superadmin: bool,
    target_current_role: Optional[Union[str, GlobalRole]],
    requested_role: Union[str, GlobalRole],
    target_is_caller: bool = False,
) -> bool:
    """Whether a privileged caller may move a target from one global role to another.

    Rejected when the target is the caller (self-role-change is never allowed),
    or when either side of the change is superadmin and the caller is not.
    """
    if target_is_caller:
        return False

    touches_superadmin = (
        GlobalRole.parse(target_current_role) == GlobalRole.SUPERADMIN
        or GlobalRole.parse(requested_role) == GlobalRole.SUPERADMIN
    )
    if touches_superadmin and not caller_is_superadmin:
        return False
    return True


def can_act_on_org(
    caller_global_is_superadmin: bool,
    caller_org_role: Optional[Union[str, OrgRole]],
) -> OrgAuthority:
    """Authority of a caller over one organization's membership.

    Global superadmin overrides any organization role; otherwise owners and
    admins may manage membership and mere members (or non-members) may not.
    """
    if caller_global_is_superadmin:
        return OrgAuthority.SUPERADMIN_OVERRIDE

    role = OrgRole.parse(caller_org_role)
    if role == OrgRole.OWNER:
        return OrgAuthority.ORG_OWNER
    if role == OrgRole.ADMIN:
        return OrgAuthority.ORG_ADMIN
    return OrgAuthority.FORBIDDEN


def can_manage_members(authority: OrgAuthority) -> bool:
    return authority != OrgAuthority.FORBIDDEN


def can_delete_org(authority: OrgAuthority) -> bool:
    """Only the owner or a superadmin may delete an organization."""
    return authority in (OrgAuthority.ORG_OWNER, OrgAuthority.SUPERADMIN_OVERRIDE)


def can_remove_org_owner(authority: OrgAuthority) -> bool:
    return authority == OrgAuthority.SUPERADMIN_OVERRIDE
