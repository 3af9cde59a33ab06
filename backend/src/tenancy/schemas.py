"""Pydantic schemas for organizations, memberships and organization instructions.

Input models validate caller-supplied values before any store call is made.
Invalid input is rejected with the first validation message.

Output models normalize rows returned by the row store.
"""

from datetime import datetime
from typing import Any, Optional
import re

from pydantic import BaseModel, ConfigDict, Field, field_validator

from auth.roles import OrgRole


SLUG_PATTERN = re.compile(r'^[a-z0-9-]+$')


def _validate_slug(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    if not value:
        return None
    if not SLUG_PATTERN.match(value):
        raise ValueError("Slug must contain only lowercase letters, numbers, and hyphens")
    if len(value) < 2 or len(value) > 100:
        raise ValueError("Slug must be between 2 and 100 characters")
    return value


def _validate_assignable_role(value: OrgRole) -> OrgRole:
    # Ownership is only granted by organization creation
    if value == OrgRole.OWNER:
        raise ValueError("The owner role cannot be assigned; ownership transfer is not supported")
    return value


class OrganizationCreate(BaseModel):
    """Input for creating an organization. The slug is generated when omitted."""
    name: str = Field(..., min_length=1, max_length=200, description="Display name")
    slug: Optional[str] = Field(None, description="URL-friendly unique identifier")

    @field_validator('name')
    @classmethod
    def validate_name(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Organization name cannot be empty")
        return v.strip()

    @field_validator('slug')
    @classmethod
    def validate_slug(cls, v: Optional[str]) -> Optional[str]:
        return _validate_slug(v)


class OrganizationUpdate(BaseModel):
    """Partial update; only fields explicitly provided are written."""
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(None, min_length=1, max_length=200)
    slug: Optional[str] = None
    logo_url: Optional[str] = Field(None, description="Logo URL, or None to remove it")

    @field_validator('name')
    @classmethod
    def validate_name(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            raise ValueError("Organization name cannot be empty")
        if not v.strip():
            raise ValueError("Organization name cannot be empty")
        return v.strip()

    @field_validator('slug')
    @classmethod
    def validate_slug(cls, v: Optional[str]) -> Optional[str]:
        slug = _validate_slug(v)
        if slug is None:
            raise ValueError("Slug cannot be empty")
        return slug

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True)


class MemberAdd(BaseModel):
    email: str = Field(..., min_length=3, description="Email of an existing account")
    role: OrgRole = Field(default=OrgRole.MEMBER)

    @field_validator('email')
    @classmethod
    def normalize_email(cls, v: str) -> str:
        v = v.strip().lower()
        if '@' not in v:
            raise ValueError("Invalid email address")
        return v

    @field_validator('role')
    @classmethod
    def validate_role(cls, v: OrgRole) -> OrgRole:
        return _validate_assignable_role(v)


class MemberRoleUpdate(BaseModel):
    role: OrgRole

    @field_validator('role')
    @classmethod
    def validate_role(cls, v: OrgRole) -> OrgRole:
        return _validate_assignable_role(v)


class InstructionsUpdate(BaseModel):
    """Override map: instruction key -> replacement text."""
    instructions: dict[str, str] = Field(default_factory=dict)


class Organization(BaseModel):
    """Organization as returned to callers."""
    id: str
    name: str
    slug: str
    logo_url: Optional[str] = None
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: dict) -> "Organization":
        return cls(**{k: row.get(k) for k in cls.model_fields})


class OrganizationMember(BaseModel):
    """Membership merged with whatever profile fields the caller could read.

    Role and joined-at always come from the membership row; profile fields
    may be empty when the profile is not visible.
    """
    id: str
    organization_id: str
    user_id: str
    org_role: OrgRole
    joined_at: Optional[datetime] = None
    email: str = ""
    display_name: str = "Unknown"
    first_name: str = ""
    last_name: str = ""

    @classmethod
    def from_rows(cls, member: dict, profile: Optional[dict]) -> "OrganizationMember":
        profile = profile or {}
        first_name = profile.get("first_name") or ""
        last_name = profile.get("last_name") or ""
        email = profile.get("email") or ""
        return cls(
            id=member["id"],
            organization_id=member["organization_id"],
            user_id=member["user_id"],
            org_role=member["org_role"],
            joined_at=member.get("joined_at"),
            email=email,
            display_name=display_name_for(profile),
            first_name=first_name,
            last_name=last_name,
        )


def display_name_for(profile: Optional[dict]) -> str:
    """display_name, else "first last", else the email local part, else "Unknown"."""
    profile = profile or {}
    if profile.get("display_name"):
        return profile["display_name"]
    first_name = profile.get("first_name") or ""
    last_name = profile.get("last_name") or ""
    if first_name and last_name:
        return f"{first_name} {last_name}"
    email = profile.get("email") or ""
    if email.split("@")[0]:
        return email.split("@")[0]
    return "Unknown"


class OrganizationInstructionSet(BaseModel):
    organization_id: str
    instructions: Optional[dict[str, Any]] = None
    updated_at: Optional[datetime] = None
    updated_by: Optional[str] = None
