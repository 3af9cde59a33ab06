"""Account administration service.

Admins and superadmins may list accounts, change global roles and read the
audit log. Changes touching the superadmin role (in either direction) need a
superadmin caller, and nobody changes their own role.

Role changes are idempotent: assigning the current role writes nothing and
records no audit entry.
"""

import logging
from typing import Optional

from audit.schemas import AdminLogEntry
from audit.service import AuditAction, AuditLogger
from auth.roles import GlobalRole, can_assign_role
from auth.session import AuthSessionPort, Caller, resolve_caller
from config import Settings, get_settings
from errors import ErrorCode, InvalidTarget, NotAuthorized, NotFound, OperationResult, admin_operation
from storage.ports import PROFILES, RowStorePort
from .schemas import AdminUser, RoleUpdate

logger = logging.getLogger(__name__)


class AdminService:
    def __init__(
        self,
        store: RowStorePort,
        session: AuthSessionPort,
        audit: AuditLogger,
        settings: Optional[Settings] = None,
    ):
        self.store = store
        self.session = session
        self.audit = audit
        self.settings = settings or get_settings()

    async def _privileged_caller(self) -> Caller:
        caller = await resolve_caller(self.session, self.store)
        if not caller.is_privileged:
            raise NotAuthorized("Not authorized")
        return caller

    @admin_operation("fetch_users", "Failed to fetch users")
    async def fetch_users(self) -> OperationResult:
        """All accounts, oldest first."""
        await self._privileged_caller()
        rows = await self.store.select(
            PROFILES,
            columns=["id", "email", "display_name", "role", "created_at", "last_sign_in"],
            order_by="created_at",
        )
        return OperationResult.ok(users=[AdminUser.from_row(row) for row in rows])

    @admin_operation("update_user_role", "Failed to update role")
    async def update_user_role(self, target_user_id: str, new_role: str) -> OperationResult:
        caller = await self._privileged_caller()
        requested = RoleUpdate(role=new_role).role

        target = await self.store.select_one(
            PROFILES, columns=["id", "email", "role"], eq={"id": target_user_id}
        )
        if target is None:
            raise NotFound("User not found")

        old_role = GlobalRole.parse(target.get("role"))
        target_is_caller = target_user_id == caller.account_id
        if not can_assign_role(caller.is_superadmin, old_role, requested, target_is_caller=target_is_caller):
            if target_is_caller:
                raise InvalidTarget("You cannot change your own role", code=ErrorCode.TARGET_IS_SELF)
            raise NotAuthorized("Only Super Admin can modify Super Admin roles")

        if old_role == requested:
            return OperationResult.ok("Role unchanged")

        await self.store.update(PROFILES, {"role": requested.value}, eq={"id": target_user_id})
        await self.audit.record(
            caller.account_id,
            AuditAction.ROLE_CHANGE,
            target_user_id,
            {
                "old_role": old_role.value,
                "new_role": requested.value,
                "target_email": target.get("email") or "unknown",
            },
        )
        logger.info(
            f"Role of {target_user_id} changed from {old_role.value} to {requested.value}",
            extra={"actor_id": caller.account_id, "target_id": target_user_id},
        )
        return OperationResult.ok(old_role=old_role, new_role=requested)

    @admin_operation("fetch_admin_log", "Failed to fetch audit log")
    async def fetch_admin_log(self, limit: Optional[int] = None) -> OperationResult:
        """Newest audit entries, with admin and target emails resolved."""
        await self._privileged_caller()
        if limit is None:
            limit = self.settings.ADMIN_LOG_DEFAULT_LIMIT

        rows = await self.audit.fetch_recent(limit)

        account_ids = {
            account_id
            for row in rows
            for account_id in (row.get("admin_id"), row.get("target_user_id"))
            if account_id
        }
        emails: dict[str, str] = {}
        if account_ids:
            profiles = await self.store.select(
                PROFILES, columns=["id", "email"], in_={"id": sorted(account_ids)}
            )
            emails = {p["id"]: p["email"] for p in profiles if p.get("email")}

        return OperationResult.ok(entries=[AdminLogEntry.from_row(row, emails) for row in rows])
