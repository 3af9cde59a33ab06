"""Organization membership SQLAlchemy model"""

from sqlalchemy import Column, Text, DateTime, ForeignKey, CheckConstraint, UniqueConstraint, Index

from .base import Base, new_id, utcnow


class OrganizationMember(Base):
    """Join between an account and an organization, carrying the org role.

    The (organization_id, user_id) pair is unique. Exactly one member per
    organization holds 'owner' until the organization is deleted.
    """
    __tablename__ = "organization_members"

    id = Column(Text, primary_key=True, default=new_id)
    organization_id = Column(Text, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Text, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)
    org_role = Column(Text, nullable=False, default="member")
    joined_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        CheckConstraint(
            "org_role IN ('member', 'admin', 'owner')",
            name='ck_organization_members_org_role'
        ),
        UniqueConstraint('organization_id', 'user_id', name='uq_organization_members_org_user'),
        Index("ix_organization_members_user_id", "user_id"),
    )
