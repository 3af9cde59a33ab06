"""Organization and membership store.

Holds the per-session caches used by the rest of the core:
- the caller's active organization
- the caller's organization list
- the active organization's instruction overrides (see instructions.cache)

Switching the active organization invalidates the organization override
cache before the new organization is loaded, so no read can observe the
previous tenant's overrides under the new tenant.

Membership rules:
- owner/admin members and superadmins manage membership
- the owner role is only created together with the organization; it cannot be
  granted, changed or removed through membership management
- removing a membership clears the removed account's active organization if it
  pointed at this organization
"""

import logging
import time
from typing import Any, Optional

from audit.service import AuditAction, AuditLogger
from auth.roles import (
    OrgAuthority,
    OrgRole,
    can_act_on_org,
    can_manage_members,
)
from auth.session import AuthSessionPort, Caller, resolve_caller
from config import Settings, get_settings
from errors import (
    ErrorCode,
    InvalidInput,
    InvalidTarget,
    NotAuthorized,
    NotFound,
    OperationResult,
    StorageFailure,
    admin_operation,
)
from instructions.cache import Clock, InstructionsCache, OverrideMap
from models.base import utcnow
from storage.ports import (
    ORGANIZATION_INSTRUCTIONS,
    ORGANIZATION_MEMBERS,
    ORGANIZATIONS,
    PROFILES,
    RowStorePort,
    StoreError,
)
from .schemas import (
    InstructionsUpdate,
    MemberAdd,
    MemberRoleUpdate,
    Organization,
    OrganizationCreate,
    OrganizationInstructionSet,
    OrganizationMember,
    OrganizationUpdate,
)
from .slug import generate_slug

logger = logging.getLogger(__name__)

NO_ORGANIZATION_NAME = "No Organization"
NOT_A_MEMBER = "You are not a member of this organization"


class OrganizationService:
    """Organization CRUD, membership CRUD and the active-organization state.

    One instance serves one session; its caches describe that session's caller.
    """

    def __init__(
        self,
        store: RowStorePort,
        session: AuthSessionPort,
        audit: AuditLogger,
        settings: Optional[Settings] = None,
        clock: Clock = time.monotonic,
    ):
        self.store = store
        self.session = session
        self.audit = audit
        self.settings = settings or get_settings()

        self._active_org: Optional[Organization] = None
        self._active_org_loaded = False
        self._user_orgs: Optional[list[Organization]] = None
        self.org_instructions = InstructionsCache(ttl_seconds=None, clock=clock)

    # ------------------------------------------------------------------
    # Active organization
    # ------------------------------------------------------------------

    def get_active_org(self) -> Optional[Organization]:
        return self._active_org

    def get_active_org_id(self) -> Optional[str]:
        return self._active_org.id if self._active_org else None

    def get_active_org_name(self) -> str:
        return self._active_org.name if self._active_org else NO_ORGANIZATION_NAME

    @admin_operation("load_active_org", "Failed to load active organization")
    async def load_active_org(self) -> OperationResult:
        caller = await resolve_caller(self.session, self.store)
        organization = await self._load_active_org(caller)
        return OperationResult.ok(organization=organization)

    async def _load_active_org(self, caller: Caller) -> Optional[Organization]:
        profile = await self.store.select_one(
            PROFILES, columns=["active_organization_id"], eq={"id": caller.account_id}
        )
        org_id = profile.get("active_organization_id") if profile else None

        row = None
        if org_id:
            row = await self.store.select_one(ORGANIZATIONS, eq={"id": org_id})
            if row is None:
                logger.warning(
                    f"Active organization {org_id} of {caller.account_id} no longer exists",
                    extra={"actor_id": caller.account_id, "org_id": org_id},
                )

        self._set_active_org(Organization.from_row(row) if row else None)
        return self._active_org

    def _set_active_org(self, organization: Optional[Organization]) -> None:
        new_id = organization.id if organization else None
        if new_id != self.get_active_org_id():
            self.org_instructions.invalidate()
        self._active_org = organization
        self._active_org_loaded = True

    async def ensure_active_org_loaded(self) -> Optional[Organization]:
        """Load the active organization once per session (raises on failure)."""
        if not self._active_org_loaded:
            caller = await resolve_caller(self.session, self.store)
            await self._load_active_org(caller)
        return self._active_org

    @admin_operation("switch_org", "Failed to switch organization")
    async def switch_org(self, org_id: str) -> OperationResult:
        """Make `org_id` the caller's active organization (membership required)."""
        caller = await resolve_caller(self.session, self.store)

        membership = await self.store.select_one(
            ORGANIZATION_MEMBERS,
            columns=["id"],
            eq={"user_id": caller.account_id, "organization_id": org_id},
        )
        if membership is None:
            raise NotFound(NOT_A_MEMBER)

        previous_org_id = self.get_active_org_id()
        await self.store.update(
            PROFILES, {"active_organization_id": org_id}, eq={"id": caller.account_id}
        )

        # Before anything can read overrides again
        self.org_instructions.invalidate()
        organization = await self._load_active_org(caller)

        await self.audit.record(
            caller.account_id,
            AuditAction.ORG_SWITCH,
            caller.account_id,
            {"from_org_id": previous_org_id, "org_id": org_id},
        )
        logger.info(
            f"Switched to org: {self.get_active_org_name()}",
            extra={"actor_id": caller.account_id, "org_id": org_id},
        )
        return OperationResult.ok(organization=organization)

    # ------------------------------------------------------------------
    # Caller's organizations
    # ------------------------------------------------------------------

    @admin_operation("get_user_orgs", "Failed to load organizations")
    async def get_user_orgs(self, force: bool = False) -> OperationResult:
        if self._user_orgs is not None and not force:
            return OperationResult.ok(organizations=list(self._user_orgs))

        caller = await resolve_caller(self.session, self.store)
        memberships = await self.store.select(
            ORGANIZATION_MEMBERS, columns=["organization_id"], eq={"user_id": caller.account_id}
        )
        org_ids = [m["organization_id"] for m in memberships]
        rows = []
        if org_ids:
            rows = await self.store.select(ORGANIZATIONS, in_={"id": org_ids}, order_by="name")

        self._user_orgs = [Organization.from_row(row) for row in rows]
        return OperationResult.ok(organizations=list(self._user_orgs))

    @admin_operation("get_user_org_role", "Failed to load organization role")
    async def get_user_org_role(self, org_id: str) -> OperationResult:
        caller = await resolve_caller(self.session, self.store)
        role = await self._org_role(caller.account_id, org_id)
        return OperationResult.ok(role=role)

    async def _org_role(self, account_id: str, org_id: str) -> Optional[OrgRole]:
        membership = await self.store.select_one(
            ORGANIZATION_MEMBERS,
            columns=["org_role"],
            eq={"user_id": account_id, "organization_id": org_id},
        )
        return OrgRole.parse(membership["org_role"]) if membership else None

    async def _authority(self, caller: Caller, org_id: str) -> OrgAuthority:
        role = None if caller.is_superadmin else await self._org_role(caller.account_id, org_id)
        return can_act_on_org(caller.is_superadmin, role)

    async def _require_manager(self, caller: Caller, org_id: str, message: str) -> OrgAuthority:
        authority = await self._authority(caller, org_id)
        if not can_manage_members(authority):
            raise NotAuthorized(message)
        return authority

    async def _require_member(self, caller: Caller, org_id: str) -> None:
        if caller.is_superadmin:
            return
        if await self._org_role(caller.account_id, org_id) is None:
            raise NotAuthorized(NOT_A_MEMBER)

    # ------------------------------------------------------------------
    # Organization CRUD
    # ------------------------------------------------------------------

    @admin_operation("create_org", "Failed to create organization")
    async def create_org(self, name: str, slug: Optional[str] = None) -> OperationResult:
        """Create an organization owned by the caller.

        The owner membership is required: if it cannot be written the
        organization row is removed again and the call fails. A missing
        instruction set is tolerated (it is upserted on first save).
        """
        caller = await resolve_caller(self.session, self.store)
        data = OrganizationCreate(name=name, slug=slug)
        final_slug = data.slug or generate_slug(data.name, self.settings.ORG_SLUG_MAX_LENGTH)

        row = await self.store.insert(
            ORGANIZATIONS,
            {"name": data.name, "slug": final_slug, "created_by": caller.account_id},
        )
        org_id = row["id"]

        try:
            await self.store.insert(
                ORGANIZATION_MEMBERS,
                {"organization_id": org_id, "user_id": caller.account_id, "org_role": OrgRole.OWNER.value},
            )
        except StoreError as e:
            logger.error(
                f"createOrg: owner membership failed, removing organization {org_id}",
                extra={"actor_id": caller.account_id, "org_id": org_id},
            )
            await self.store.delete(ORGANIZATIONS, eq={"id": org_id})
            raise StorageFailure.from_store_error(e, "Failed to add owner membership")

        try:
            await self.store.insert(
                ORGANIZATION_INSTRUCTIONS,
                {"organization_id": org_id, "instructions": None, "updated_by": caller.account_id},
            )
        except StoreError as e:
            logger.warning(
                f"createOrg: instruction set not created: {e.message}",
                extra={"org_id": org_id},
            )

        self._user_orgs = None
        organization = Organization.from_row(row)
        await self.audit.record(
            caller.account_id,
            AuditAction.ORG_CREATE,
            None,
            {"org_id": org_id, "name": organization.name, "slug": organization.slug},
        )
        return OperationResult.ok(org_id=org_id, organization=organization)

    @admin_operation("update_org", "Failed to update organization")
    async def update_org(self, org_id: str, **updates: Any) -> OperationResult:
        """Update name, slug and/or logo_url of an organization."""
        caller = await resolve_caller(self.session, self.store)
        await self._require_manager(
            caller, org_id, "Only organization owner, admin, or SuperAdmin can update the organization."
        )
        changes = OrganizationUpdate(**updates).changes()
        if not changes:
            raise InvalidInput("Nothing to update")

        updated = await self.store.update(ORGANIZATIONS, changes, eq={"id": org_id})
        if updated == 0:
            raise NotFound("Organization not found")

        if self.get_active_org_id() == org_id:
            await self._load_active_org(caller)
        self._user_orgs = None

        await self.audit.record(
            caller.account_id,
            AuditAction.ORG_UPDATE,
            None,
            {"org_id": org_id, "fields": sorted(changes)},
        )
        return OperationResult.ok()

    @admin_operation("get_all_orgs", "Failed to load organizations")
    async def get_all_orgs(self) -> OperationResult:
        caller = await resolve_caller(self.session, self.store)
        if not caller.is_superadmin:
            raise NotAuthorized("Only SuperAdmin can list all organizations.")
        rows = await self.store.select(ORGANIZATIONS, order_by="name")
        return OperationResult.ok(organizations=[Organization.from_row(row) for row in rows])

    # ------------------------------------------------------------------
    # Membership
    # ------------------------------------------------------------------

    @admin_operation("get_org_members", "Failed to load members")
    async def get_org_members(self, org_id: str) -> OperationResult:
        """Members of an organization, merged with their profiles.

        Memberships and profiles are read separately: a profile the caller is
        not allowed to read must not hide the member's role or joined-at.
        """
        caller = await resolve_caller(self.session, self.store)
        await self._require_member(caller, org_id)

        member_rows = await self.store.select(
            ORGANIZATION_MEMBERS,
            columns=["id", "organization_id", "user_id", "org_role", "joined_at"],
            eq={"organization_id": org_id},
            order_by="joined_at",
        )
        if not member_rows:
            return OperationResult.ok(members=[])

        profiles: dict[str, dict] = {}
        try:
            profile_rows = await self.store.select(
                PROFILES,
                columns=["id", "email", "display_name", "first_name", "last_name", "role"],
                in_={"id": [m["user_id"] for m in member_rows]},
            )
            profiles = {p["id"]: p for p in profile_rows}
        except StoreError as e:
            logger.warning(
                f"getOrgMembers: profiles query failed: {e.message}",
                extra={"org_id": org_id},
            )

        members = [OrganizationMember.from_rows(m, profiles.get(m["user_id"])) for m in member_rows]
        return OperationResult.ok(members=members)

    @admin_operation("add_member", "Failed to add member")
    async def add_member(self, org_id: str, email: str, role: str = OrgRole.MEMBER.value) -> OperationResult:
        caller = await resolve_caller(self.session, self.store)
        await self._require_manager(
            caller, org_id, "Only organization owner, admin, or SuperAdmin can add members."
        )
        data = MemberAdd(email=email, role=role)

        profile = await self.store.select_one(PROFILES, columns=["id"], eq={"email": data.email})
        if profile is None:
            raise NotFound("User not found with this email")

        existing = await self.store.select_one(
            ORGANIZATION_MEMBERS,
            columns=["id"],
            eq={"organization_id": org_id, "user_id": profile["id"]},
        )
        if existing is not None:
            raise InvalidInput("User is already a member of this organization")

        member = await self.store.insert(
            ORGANIZATION_MEMBERS,
            {"organization_id": org_id, "user_id": profile["id"], "org_role": data.role.value},
        )
        if profile["id"] == caller.account_id:
            self._user_orgs = None

        await self.audit.record(
            caller.account_id,
            AuditAction.MEMBER_ADD,
            profile["id"],
            {"org_id": org_id, "org_role": data.role.value, "target_email": data.email},
        )
        return OperationResult.ok(member_id=member["id"])

    @admin_operation("update_member_role", "Failed to update member role")
    async def update_member_role(self, org_id: str, user_id: str, role: str) -> OperationResult:
        caller = await resolve_caller(self.session, self.store)
        await self._require_manager(
            caller, org_id, "Only organization owner, admin, or SuperAdmin can change member roles."
        )
        data = MemberRoleUpdate(role=role)

        if user_id == caller.account_id:
            raise InvalidTarget("You cannot change your own role", code=ErrorCode.TARGET_IS_SELF)

        current = await self._org_role(user_id, org_id)
        if current is None:
            raise NotFound("User is not a member of this organization")
        if current == OrgRole.OWNER:
            raise InvalidTarget("The organization owner's role cannot be changed.")
        if current == data.role:
            return OperationResult.ok("Role unchanged")

        await self.store.update(
            ORGANIZATION_MEMBERS,
            {"org_role": data.role.value},
            eq={"organization_id": org_id, "user_id": user_id},
        )
        await self.audit.record(
            caller.account_id,
            AuditAction.MEMBER_ROLE_CHANGE,
            user_id,
            {"org_id": org_id, "old_role": current.value, "new_role": data.role.value},
        )
        return OperationResult.ok()

    @admin_operation("remove_member", "Failed to remove member")
    async def remove_member(self, org_id: str, user_id: str) -> OperationResult:
        """Remove a membership without touching the account's data.

        Use DeletionService.delete_org_user to also remove the account's
        projects in the organization (and possibly the account).
        """
        caller = await resolve_caller(self.session, self.store)
        await self._require_manager(
            caller, org_id, "Only organization owner, admin, or SuperAdmin can remove users."
        )

        current = await self._org_role(user_id, org_id)
        if current is None:
            raise NotFound("User is not a member of this organization")
        if current == OrgRole.OWNER:
            raise InvalidTarget(
                "The organization owner cannot be removed. Delete the organization instead."
            )

        await self.store.delete(
            ORGANIZATION_MEMBERS, eq={"organization_id": org_id, "user_id": user_id}
        )
        await self.store.update(
            PROFILES,
            {"active_organization_id": None},
            eq={"id": user_id, "active_organization_id": org_id},
        )
        if user_id == caller.account_id:
            self.clear_cache()

        await self.audit.record(
            caller.account_id,
            AuditAction.MEMBER_REMOVE,
            user_id,
            {"org_id": org_id, "org_role": current.value},
        )
        return OperationResult.ok()

    # ------------------------------------------------------------------
    # Organization instructions
    # ------------------------------------------------------------------

    @admin_operation("get_org_instructions", "Failed to load organization instructions")
    async def get_org_instructions(self, org_id: str) -> OperationResult:
        caller = await resolve_caller(self.session, self.store)
        await self._require_member(caller, org_id)
        row = await self.store.select_one(ORGANIZATION_INSTRUCTIONS, eq={"organization_id": org_id})
        instruction_set = None
        if row is not None:
            instruction_set = OrganizationInstructionSet(
                organization_id=row["organization_id"],
                instructions=row.get("instructions") or None,
                updated_at=row.get("updated_at"),
                updated_by=row.get("updated_by"),
            )
        return OperationResult.ok(instructions=instruction_set)

    @admin_operation("save_org_instructions", "Failed to save organization instructions")
    async def save_org_instructions(self, org_id: str, instructions: dict[str, str]) -> OperationResult:
        caller = await resolve_caller(self.session, self.store)
        await self._require_manager(
            caller, org_id, "Only organization owner, admin, or SuperAdmin can edit instructions."
        )
        data = InstructionsUpdate(instructions=instructions)
        await self._write_org_instructions(caller, org_id, data.instructions)

        await self.audit.record(
            caller.account_id,
            AuditAction.ORG_INSTRUCTIONS_UPDATE,
            None,
            {"org_id": org_id, "sections_updated": len(data.instructions)},
        )
        return OperationResult.ok()

    @admin_operation("reset_org_instructions", "Failed to reset organization instructions")
    async def reset_org_instructions(self, org_id: str) -> OperationResult:
        caller = await resolve_caller(self.session, self.store)
        await self._require_manager(
            caller, org_id, "Only organization owner, admin, or SuperAdmin can edit instructions."
        )
        await self._write_org_instructions(caller, org_id, None)

        await self.audit.record(
            caller.account_id,
            AuditAction.ORG_INSTRUCTIONS_RESET,
            None,
            {"org_id": org_id},
        )
        return OperationResult.ok()

    async def _write_org_instructions(
        self, caller: Caller, org_id: str, instructions: Optional[dict[str, str]]
    ) -> None:
        await self.store.upsert(
            ORGANIZATION_INSTRUCTIONS,
            {
                "organization_id": org_id,
                "instructions": instructions,
                "updated_at": utcnow(),
                "updated_by": caller.account_id,
            },
            on_conflict="organization_id",
        )
        self.org_instructions.invalidate()

    async def get_active_org_instructions(self) -> Optional[OverrideMap]:
        """Override map of the active organization, loading it if needed.

        Raises StoreError / AdminError on failure; the resolver degrades those
        to a warning.
        """
        await self.ensure_active_org_loaded()
        org_id = self.get_active_org_id()
        if org_id is None:
            return None

        async def load() -> Optional[OverrideMap]:
            row = await self.store.select_one(
                ORGANIZATION_INSTRUCTIONS, columns=["instructions"], eq={"organization_id": org_id}
            )
            return row.get("instructions") if row else None

        return await self.org_instructions.ensure_fresh(load, scope=org_id)

    def get_active_org_instructions_sync(self) -> Optional[OverrideMap]:
        """Cached overrides of the active organization; None if not loaded for it."""
        org_id = self.get_active_org_id()
        if org_id is None:
            return None
        return self.org_instructions.peek(org_id)

    # ------------------------------------------------------------------
    # Cache management
    # ------------------------------------------------------------------

    def invalidate_org_instructions(self) -> None:
        self.org_instructions.invalidate()

    def clear_cache(self) -> None:
        self._active_org = None
        self._active_org_loaded = False
        self._user_orgs = None
        self.org_instructions.invalidate()
