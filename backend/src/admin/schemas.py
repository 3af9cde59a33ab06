"""Pydantic schemas for account administration."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from auth.roles import GlobalRole


class AdminUser(BaseModel):
    """Account as listed to administrators."""
    id: str
    email: Optional[str] = None
    display_name: str = Field(..., description="display_name, else the email local part, else 'Unknown'")
    role: GlobalRole = GlobalRole.USER
    created_at: Optional[datetime] = None
    last_sign_in: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: dict) -> "AdminUser":
        email = row.get("email")
        local_part = email.split("@")[0] if email else ""
        return cls(
            id=row["id"],
            email=email,
            display_name=row.get("display_name") or local_part or "Unknown",
            role=GlobalRole.parse(row.get("role")),
            created_at=row.get("created_at"),
            last_sign_in=row.get("last_sign_in"),
        )


class RoleUpdate(BaseModel):
    role: GlobalRole
