"""Administration of the global instruction overrides.

The global override map lives in the singleton global_settings row. Admins and
superadmins may read, replace or reset it; every write is audited and
invalidates the global override cache so the next resolution reloads it.
"""

import logging
from typing import Optional

from pydantic import BaseModel, Field

from audit.service import AuditAction, AuditLogger
from auth.session import AuthSessionPort, Caller, resolve_caller
from config import Settings, get_settings
from errors import NotAuthorized, OperationResult, admin_operation
from models.base import utcnow
from storage.ports import GLOBAL_SETTINGS, RowStorePort
from tenancy.schemas import InstructionsUpdate
from .resolver import OverrideResolver

logger = logging.getLogger(__name__)


class GlobalInstructionSet(BaseModel):
    custom_instructions: Optional[dict[str, str]] = Field(
        None, description="Instruction key -> replacement text; None means no overrides"
    )
    updated_at: Optional[str] = None
    updated_by: Optional[str] = None


class GlobalInstructionsService:
    def __init__(
        self,
        store: RowStorePort,
        session: AuthSessionPort,
        audit: AuditLogger,
        resolver: OverrideResolver,
        settings: Optional[Settings] = None,
    ):
        self.store = store
        self.session = session
        self.audit = audit
        self.resolver = resolver
        self.settings = settings or get_settings()

    async def _privileged_caller(self) -> Caller:
        caller = await resolve_caller(self.session, self.store)
        if not caller.is_privileged:
            raise NotAuthorized("Not authorized")
        return caller

    @admin_operation("load_global_instructions", "Failed to load global instructions")
    async def load(self) -> OperationResult:
        await self._privileged_caller()
        row = await self.store.select_one(
            GLOBAL_SETTINGS, eq={"id": self.settings.GLOBAL_SETTINGS_ROW_ID}
        )
        if row is None:
            return OperationResult.ok(instructions=GlobalInstructionSet())

        updated_at = row.get("updated_at")
        return OperationResult.ok(
            instructions=GlobalInstructionSet(
                custom_instructions=row.get("custom_instructions") or None,
                updated_at=updated_at.isoformat() if updated_at else None,
                updated_by=row.get("updated_by"),
            )
        )

    @admin_operation("save_global_instructions", "Failed to save instructions")
    async def save(self, instructions: dict[str, str]) -> OperationResult:
        caller = await self._privileged_caller()
        data = InstructionsUpdate(instructions=instructions)
        await self._write(caller, data.instructions)

        await self.audit.record(
            caller.account_id,
            AuditAction.INSTRUCTIONS_UPDATE,
            None,
            {"sections_updated": len(data.instructions), "timestamp": utcnow().isoformat()},
        )
        return OperationResult.ok()

    @admin_operation("reset_global_instructions", "Failed to reset")
    async def reset(self) -> OperationResult:
        caller = await self._privileged_caller()
        await self._write(caller, None)

        await self.audit.record(
            caller.account_id,
            AuditAction.INSTRUCTIONS_RESET,
            None,
            {"timestamp": utcnow().isoformat()},
        )
        return OperationResult.ok()

    async def _write(self, caller: Caller, instructions: Optional[dict[str, str]]) -> None:
        await self.store.upsert(
            GLOBAL_SETTINGS,
            {
                "id": self.settings.GLOBAL_SETTINGS_ROW_ID,
                "custom_instructions": instructions,
                "updated_at": utcnow(),
                "updated_by": caller.account_id,
            },
            on_conflict="id",
        )
        self.resolver.invalidate_global()
        logger.info(
            "Global instructions updated" if instructions is not None else "Global instructions reset",
            extra={"actor_id": caller.account_id},
        )
