"""Deletion protocol: the four ways accounts and organizations are removed.

Entry points:
- delete_user: superadmin removes any non-superadmin account
- delete_org_user: org owner/admin (or superadmin) removes an account from one
  organization, purging the account when asked to or when no membership is left
- delete_self: a non-superadmin removes their own account, together with the
  organizations they own that have no other members
- delete_organization: the owner (or a superadmin) removes an organization and
  its tenant data; accounts are never purged

Each entry point derives its own authorization from auth.roles, runs its steps
in a fixed order and ends with exactly one audit entry. The store has no
multi-statement transactions: every step is an idempotent filtered delete or
update, and a failed call is retried by running the whole entry point again.

All checks that can reject a call run before the first write.
"""

import logging
from typing import Any, Optional

from audit.service import AuditAction, AuditLogger
from auth.roles import (
    GlobalRole,
    OrgAuthority,
    OrgRole,
    can_act_on_org,
    can_delete_org,
    can_manage_members,
    can_remove_org_owner,
    is_superadmin,
)
from auth.session import AuthSessionPort, Caller, resolve_caller, try_delete_credentials
from errors import (
    DependentDataBlocks,
    ErrorCode,
    InvalidTarget,
    NotAuthorized,
    NotFound,
    OperationResult,
    StorageFailure,
    admin_operation,
)
from models.base import utcnow
from storage.ports import (
    ORGANIZATION_INSTRUCTIONS,
    ORGANIZATION_MEMBERS,
    ORGANIZATIONS,
    PROFILES,
    PROJECTS,
    RowStorePort,
    StoreError,
)
from tenancy.service import OrganizationService
from .purge import delete_projects, purge_account

logger = logging.getLogger(__name__)


class DeletionService:
    """Runs the deletion entry points on behalf of the session's caller."""

    def __init__(
        self,
        store: RowStorePort,
        session: AuthSessionPort,
        audit: AuditLogger,
        organizations: Optional[OrganizationService] = None,
    ):
        self.store = store
        self.session = session
        self.audit = audit
        self.organizations = organizations

    # ------------------------------------------------------------------
    # Global user delete
    # ------------------------------------------------------------------

    @admin_operation("delete_user", "Delete failed")
    async def delete_user(self, user_id: str) -> OperationResult:
        caller = await resolve_caller(self.session, self.store)
        if not caller.is_superadmin:
            raise NotAuthorized("Only SuperAdmin can delete users globally.")
        if user_id == caller.account_id:
            raise InvalidTarget(
                'Cannot delete your own account from here. Use "Delete my account" instead.',
                code=ErrorCode.TARGET_IS_SELF,
            )

        # A missing profile is not an error: a retry after a partial purge
        # must still be able to finish the remaining steps.
        target = await self._profile(user_id)
        if target and is_superadmin(target.get("role")):
            raise InvalidTarget("Cannot delete another SuperAdmin.")

        counts = await purge_account(self.store, user_id)
        await try_delete_credentials(self.session, user_id)

        await self.audit.record(
            caller.account_id,
            AuditAction.USER_DELETE,
            user_id,
            {
                "deleted_email": _email(target),
                "deleted_by": GlobalRole.SUPERADMIN.value,
                **counts.as_details(),
                "deleted_at": utcnow().isoformat(),
            },
        )
        self._clear_org_caches()
        logger.info(f"User {user_id} deleted", extra={"actor_id": caller.account_id, "target_id": user_id})
        return OperationResult.ok(**counts.as_details())

    # ------------------------------------------------------------------
    # Org-scoped user removal
    # ------------------------------------------------------------------

    @admin_operation("delete_org_user", "Remove failed")
    async def delete_org_user(
        self,
        user_id: str,
        org_id: str,
        also_delete_account: bool = False,
    ) -> OperationResult:
        """Remove an account from one organization.

        Steps:
        1. The account's projects in this organization (contents first)
        2. The membership
        3. Full purge when requested, or when no membership remains anywhere;
           otherwise the account's active organization, if it is this one

        A purge leaves the active organization alone until the profile itself
        is deleted, so a retry after a failed purge still finds the account.
        """
        caller = await resolve_caller(self.session, self.store)
        if user_id == caller.account_id:
            raise InvalidTarget(
                'Cannot remove yourself. Use "Delete my account" instead.',
                code=ErrorCode.TARGET_IS_SELF,
            )

        caller_role = None
        if not caller.is_superadmin:
            caller_role = await self._org_role(caller.account_id, org_id)
        authority = can_act_on_org(caller.is_superadmin, caller_role)
        if not can_manage_members(authority):
            raise NotAuthorized("Only organization owner, admin, or SuperAdmin can remove users.")

        target = await self._profile(user_id)
        target_role = await self._org_role(user_id, org_id)
        if target_role is None:
            if not await self._removal_interrupted(target, org_id, authority):
                raise NotFound("User is not a member of this organization")
            logger.info(
                f"Resuming interrupted removal of {user_id} from {org_id}",
                extra={"actor_id": caller.account_id, "target_id": user_id, "org_id": org_id},
            )
        elif target_role == OrgRole.OWNER and not can_remove_org_owner(authority):
            raise InvalidTarget("Cannot remove the organization owner. Only SuperAdmin can do this.")

        if target and is_superadmin(target.get("role")):
            raise InvalidTarget("Cannot remove a SuperAdmin from an organization.")

        projects_deleted, _ = await delete_projects(
            self.store, "Projects delete failed", owner_id=user_id, organization_id=org_id
        )
        await self._step(
            "Membership delete failed",
            self.store.delete(ORGANIZATION_MEMBERS, eq={"organization_id": org_id, "user_id": user_id}),
        )

        remaining = await self._step(
            "Membership lookup failed",
            self.store.select(ORGANIZATION_MEMBERS, columns=["id"], eq={"user_id": user_id}, limit=1),
        )
        purge = also_delete_account or not remaining
        if purge:
            counts = await purge_account(self.store, user_id)
            projects_deleted += counts.projects_deleted
            await try_delete_credentials(self.session, user_id)
        else:
            await self._step(
                "Active organization reset failed",
                self.store.update(
                    PROFILES,
                    {"active_organization_id": None},
                    eq={"id": user_id, "active_organization_id": org_id},
                ),
            )

        await self.audit.record(
            caller.account_id,
            AuditAction.ORG_USER_REMOVE,
            user_id,
            {
                "org_id": org_id,
                "removed_email": _email(target),
                "also_deleted_account": purge,
                "projects_deleted": projects_deleted,
                "deleted_at": utcnow().isoformat(),
            },
        )
        self._clear_org_caches()
        return OperationResult.ok(account_deleted=purge, projects_deleted=projects_deleted)

    # ------------------------------------------------------------------
    # Self-delete
    # ------------------------------------------------------------------

    @admin_operation("delete_self", "Self-delete failed")
    async def delete_self(self) -> OperationResult:
        """Delete the caller's account.

        Organizations the caller owns are deleted too, but only when nobody
        else is a member; otherwise nothing is deleted and the blocking
        organization is named. There is no ownership transfer.
        """
        caller = await resolve_caller(self.session, self.store)
        if caller.is_superadmin:
            raise NotAuthorized("SuperAdmin cannot delete own account. Demote yourself first.")

        owned = await self.store.select(
            ORGANIZATION_MEMBERS,
            columns=["organization_id"],
            eq={"user_id": caller.account_id, "org_role": OrgRole.OWNER.value},
        )
        owned_org_ids = [m["organization_id"] for m in owned]

        for org_id in owned_org_ids:
            others = await self.store.select(
                ORGANIZATION_MEMBERS,
                columns=["id"],
                eq={"organization_id": org_id},
                neq={"user_id": caller.account_id},
                limit=1,
            )
            if others:
                org = await self.store.select_one(ORGANIZATIONS, columns=["name"], eq={"id": org_id})
                org_name = org["name"] if org else org_id
                raise DependentDataBlocks(
                    f'You are the owner of "{org_name}" which has other members. '
                    f'Transfer ownership or remove all members first.'
                )

        for org_id in owned_org_ids:
            await self._delete_org_data(org_id)

        counts = await purge_account(self.store, caller.account_id)
        await try_delete_credentials(self.session, caller.account_id)

        await self.audit.record(
            caller.account_id,
            AuditAction.SELF_DELETE,
            caller.account_id,
            {
                "deleted_email": caller.email or "unknown",
                "organizations_deleted": owned_org_ids,
                **counts.as_details(),
                "deleted_at": utcnow().isoformat(),
            },
        )
        self._clear_org_caches()
        await self.session.sign_out()
        return OperationResult.ok(organizations_deleted=owned_org_ids, **counts.as_details())

    # ------------------------------------------------------------------
    # Organization delete
    # ------------------------------------------------------------------

    @admin_operation("delete_organization", "Organization delete failed")
    async def delete_organization(self, org_id: str) -> OperationResult:
        caller = await resolve_caller(self.session, self.store)

        org = await self.store.select_one(ORGANIZATIONS, eq={"id": org_id})
        if org is None:
            raise NotFound("Organization not found")

        authority = can_act_on_org(caller.is_superadmin, await self._owner_role(caller, org))
        if not can_delete_org(authority):
            raise NotAuthorized("Only the organization owner or SuperAdmin can delete an organization.")

        projects_deleted, member_ids = await self._delete_org_data(org_id)

        await self.audit.record(
            caller.account_id,
            AuditAction.ORG_DELETE,
            None,
            {
                "org_id": org_id,
                "org_name": org.get("name"),
                "projects_deleted": projects_deleted,
                "members_affected": len(member_ids),
                "affected_user_ids": member_ids,
                "deleted_at": utcnow().isoformat(),
            },
        )
        self._clear_org_caches()
        logger.info(
            f"Organization {org_id} deleted ({projects_deleted} projects, {len(member_ids)} members)",
            extra={"actor_id": caller.account_id, "org_id": org_id},
        )
        return OperationResult.ok(projects_deleted=projects_deleted, members_affected=len(member_ids))

    async def _owner_role(self, caller: Caller, org: dict[str, Any]) -> Optional[OrgRole]:
        """Caller's role in the organization.

        Once a partial delete has removed the memberships, the creator is
        still recognized as owner so that a retry can complete.
        """
        if caller.is_superadmin:
            return None
        role = await self._org_role(caller.account_id, org["id"])
        if role is None and org.get("created_by") == caller.account_id:
            remaining = await self.store.select(
                ORGANIZATION_MEMBERS, columns=["id"], eq={"organization_id": org["id"]}, limit=1
            )
            if not remaining:
                return OrgRole.OWNER
        return role

    async def _removal_interrupted(
        self,
        target: Optional[dict[str, Any]],
        org_id: str,
        authority: OrgAuthority,
    ) -> bool:
        """Whether an earlier removal of `target` from this organization stopped part way.

        The membership is deleted early, so a retry recognizes the account by
        what is left: projects in this organization, or an active organization
        still pointing here. A superadmin may also finish an account that has
        no membership anywhere.
        """
        if target is None:
            return False
        if target.get("active_organization_id") == org_id:
            return True

        leftover = await self._step(
            "Projects lookup failed",
            self.store.select(
                PROJECTS, columns=["id"], eq={"owner_id": target["id"], "organization_id": org_id}, limit=1
            ),
        )
        if leftover:
            return True

        if authority == OrgAuthority.SUPERADMIN_OVERRIDE:
            memberships = await self._step(
                "Membership lookup failed",
                self.store.select(ORGANIZATION_MEMBERS, columns=["id"], eq={"user_id": target["id"]}, limit=1),
            )
            return not memberships
        return False

    # ------------------------------------------------------------------
    # Shared steps
    # ------------------------------------------------------------------

    async def _delete_org_data(self, org_id: str) -> tuple[int, list[str]]:
        """Remove an organization and everything that references it.

        Order: instruction set, projects (contents first), memberships (ids
        recorded first), active-organization references, organization row.
        Self-delete and organization delete share this order.

        Returns:
            (projects deleted, ids of accounts that were members)
        """
        await self._step(
            "Instructions delete failed",
            self.store.delete(ORGANIZATION_INSTRUCTIONS, eq={"organization_id": org_id}),
        )
        projects_deleted, _ = await delete_projects(
            self.store, "Projects delete failed", organization_id=org_id
        )

        members = await self._step(
            "Membership lookup failed",
            self.store.select(ORGANIZATION_MEMBERS, columns=["user_id"], eq={"organization_id": org_id}),
        )
        member_ids = [m["user_id"] for m in members]
        await self._step(
            "Membership delete failed",
            self.store.delete(ORGANIZATION_MEMBERS, eq={"organization_id": org_id}),
        )
        await self._step(
            "Active organization reset failed",
            self.store.update(
                PROFILES, {"active_organization_id": None}, eq={"active_organization_id": org_id}
            ),
        )
        await self._step(
            "Failed to delete org",
            self.store.delete(ORGANIZATIONS, eq={"id": org_id}),
        )
        return projects_deleted, member_ids

    async def _step(self, label: str, call):
        try:
            return await call
        except StoreError as e:
            raise StorageFailure.from_store_error(e, label)

    async def _org_role(self, account_id: str, org_id: str) -> Optional[OrgRole]:
        membership = await self.store.select_one(
            ORGANIZATION_MEMBERS,
            columns=["org_role"],
            eq={"user_id": account_id, "organization_id": org_id},
        )
        return OrgRole.parse(membership["org_role"]) if membership else None

    async def _profile(self, account_id: str) -> Optional[dict[str, Any]]:
        return await self.store.select_one(
            PROFILES, columns=["id", "email", "role", "active_organization_id"], eq={"id": account_id}
        )

    def _clear_org_caches(self) -> None:
        if self.organizations is not None:
            self.organizations.clear_cache()


def _email(profile: Optional[dict[str, Any]]) -> str:
    return (profile or {}).get("email") or "unknown"
