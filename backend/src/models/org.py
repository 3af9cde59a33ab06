"""Organization model - Root entity for multi-tenant isolation"""

from sqlalchemy import Column, DateTime, Text
from sqlalchemy.orm import validates
import re

from .base import Base, new_id, utcnow


class Organization(Base):
    """
    Organization model - one tenant.

    Ownership is implicit: the owner is the member whose org_role is 'owner'.
    Projects, memberships and the organization instruction set reference
    organizations.id and must be removed before the row itself.
    """
    __tablename__ = "organizations"

    id = Column(Text, primary_key=True, default=new_id)
    name = Column(Text, nullable=False)
    slug = Column(Text, nullable=False, unique=True)
    logo_url = Column(Text, nullable=True)
    created_by = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    @validates('slug')
    def validate_slug(self, key, value):
        """
        Ensure slug is URL-friendly and follows naming conventions.

        Pattern: ^[a-z0-9-]+$
        Valid: acme-gmbh, test-org-123
        Invalid: Acme_GmbH, acme gmbh, acme.gmbh

        Raises:
            ValueError: If slug doesn't match pattern or length requirements
        """
        if not re.match(r'^[a-z0-9-]+$', value):
            raise ValueError(
                "Slug must contain only lowercase letters, numbers, and hyphens"
            )
        if len(value) < 2 or len(value) > 100:
            raise ValueError("Slug must be between 2 and 100 characters")
        return value

    @validates('name')
    def validate_name(self, key, value):
        """Ensure organization name is not empty and within length limits."""
        if not value or len(value.strip()) == 0:
            raise ValueError("Organization name cannot be empty")
        if len(value) > 200:
            raise ValueError("Organization name cannot exceed 200 characters")
        return value.strip()

    def __repr__(self):
        return f"<Organization(id={self.id}, slug='{self.slug}', name='{self.name}')>"
