"""Audit logging service for privileged actions.

This service provides a centralized interface for creating immutable audit log
entries. Every mutating admin, organization and instruction operation appends
exactly one entry through this service once it has succeeded.

Audit Events:
- role_change
- user_delete, org_user_remove, self_delete
- org_create, org_update, org_delete, org_switch
- member_add, member_role_change, member_remove
- instructions_update, instructions_reset
- org_instructions_update, org_instructions_reset

A failed audit write never fails the operation that triggered it: losing one
entry is preferable to leaving an account or organization half-administered.
The failure is logged as a warning instead.
"""

import logging
from typing import Any, Dict, Optional

from storage.ports import ADMIN_LOG, RowStorePort, StoreError


logger = logging.getLogger(__name__)


class AuditAction:
    ROLE_CHANGE = "role_change"
    USER_DELETE = "user_delete"
    ORG_USER_REMOVE = "org_user_remove"
    SELF_DELETE = "self_delete"
    ORG_CREATE = "org_create"
    ORG_UPDATE = "org_update"
    ORG_DELETE = "org_delete"
    ORG_SWITCH = "org_switch"
    MEMBER_ADD = "member_add"
    MEMBER_ROLE_CHANGE = "member_role_change"
    MEMBER_REMOVE = "member_remove"
    INSTRUCTIONS_UPDATE = "instructions_update"
    INSTRUCTIONS_RESET = "instructions_reset"
    ORG_INSTRUCTIONS_UPDATE = "org_instructions_update"
    ORG_INSTRUCTIONS_RESET = "org_instructions_reset"


class AuditLogger:
    """Appends admin_log entries through the row store."""

    def __init__(self, store: RowStorePort):
        self.store = store

    async def record(
        self,
        actor_id: Optional[str],
        action: str,
        target_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> Optional[Dict[str, Any]]:
        """Create an audit log entry.

        All parameters are stored as-is. This function does not validate action
        names - callers must use AuditAction values.

        Args:
            actor_id: Account that performed the action
            action: Event action (e.g., "user_delete", "role_change")
            target_id: Account affected, if the action targets one
            details: Forensic payload (counts, affected ids, old/new values)

        Returns:
            The stored entry, or None when the write failed
        """
        try:
            return await self.store.insert(
                ADMIN_LOG,
                {
                    "admin_id": actor_id,
                    "action": action,
                    "target_user_id": target_id,
                    "details": details or {},
                },
            )
        except StoreError as e:
            logger.warning(
                f"Audit entry '{action}' could not be written: {e.message}",
                extra={"actor_id": actor_id, "target_id": target_id},
            )
            return None

    async def fetch_recent(self, limit: int) -> list[Dict[str, Any]]:
        """Newest entries first. Raises StoreError on failure."""
        return await self.store.select(
            ADMIN_LOG, order_by="created_at", descending=True, limit=limit
        )
