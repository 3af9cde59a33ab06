"""Tenancy module - organizations, memberships and the active organization.

This module provides:
- Organization CRUD with generated slugs
- Membership management (owner/admin members and superadmins)
- The caller's active organization and its instruction override cache
"""

from .schemas import (
    MemberAdd,
    MemberRoleUpdate,
    Organization,
    OrganizationCreate,
    OrganizationMember,
    OrganizationUpdate,
)
from .service import OrganizationService

__all__ = [
    "MemberAdd",
    "MemberRoleUpdate",
    "Organization",
    "OrganizationCreate",
    "OrganizationMember",
    "OrganizationUpdate",
    "OrganizationService",
]
