"""Pydantic schemas for audit log entries.

Audit logs are read-only (no update/delete operations).
"""

from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from typing import Any, Optional


class AdminLogEntry(BaseModel):
    """Audit log entry as returned to administrators.

    Emails are resolved from the current account list when possible and fall
    back to the emails captured in the entry's details (the account may have
    been purged since).
    """
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "id": "550e8400-e29b-41d4-a716-446655440000",
                "admin_id": "123e4567-e89b-12d3-a456-426614174000",
                "admin_email": "root@example.com",
                "action": "user_delete",
                "target_user_id": "abc12345-6789-0abc-def0-123456789012",
                "target_email": "ana@example.com",
                "details": {"deleted_email": "ana@example.com", "deleted_by": "superadmin"},
                "created_at": "2026-02-19T12:00:00Z",
            }
        }
    )

    id: str = Field(..., description="Audit log entry unique identifier")
    admin_id: Optional[str] = Field(None, description="Account that performed the action")
    admin_email: Optional[str] = Field(None, description="Email of the acting account, if known")
    action: str = Field(..., description="Event action (role_change, user_delete, etc.)")
    target_user_id: Optional[str] = Field(None, description="Account affected by the action")
    target_email: Optional[str] = Field(None, description="Email of the affected account, if known")
    details: dict[str, Any] = Field(default_factory=dict, description="Forensic payload")
    created_at: Optional[datetime] = Field(None, description="Event timestamp")

    @classmethod
    def from_row(cls, row: dict, emails: dict[str, str]) -> "AdminLogEntry":
        details = row.get("details") or {}
        admin_id = row.get("admin_id")
        target_id = row.get("target_user_id")
        return cls(
            id=row["id"],
            admin_id=admin_id,
            admin_email=emails.get(admin_id) or details.get("admin_email") or "Unknown",
            action=row["action"],
            target_user_id=target_id,
            target_email=(
                emails.get(target_id)
                or details.get("target_email")
                or details.get("deleted_email")
                or details.get("removed_email")
            ),
            details=details,
            created_at=row.get("created_at"),
        )
