"""Project and project content SQLAlchemy models"""

from sqlalchemy import Column, Text, DateTime, ForeignKey, Index

from .base import Base, PortableJSONB, new_id, utcnow


class Project(Base):
    """User-owned workspace, optionally scoped to an organization.

    Projects are created outside this package. They are always deleted
    before their owner and before the organization they reference.
    """
    __tablename__ = "projects"
    __table_args__ = (
        Index("ix_projects_owner_id", "owner_id"),
        Index("ix_projects_organization_id", "organization_id"),
    )

    id = Column(Text, primary_key=True, default=new_id)
    owner_id = Column(Text, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)
    organization_id = Column(Text, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=True)
    title = Column(Text, nullable=False, default="New Project")
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)


class ProjectData(Base):
    """Per-language content of a project (one row per project and language)."""
    __tablename__ = "project_data"

    project_id = Column(Text, ForeignKey("projects.id", ondelete="CASCADE"), primary_key=True)
    language = Column(Text, primary_key=True)
    data = Column(PortableJSONB, nullable=False, default=dict)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
