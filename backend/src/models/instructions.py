"""Instruction override SQLAlchemy models (global singleton and per organization)"""

from sqlalchemy import Column, Text, DateTime, ForeignKey

from .base import Base, PortableJSONB, new_id, utcnow


class GlobalSettings(Base):
    """Singleton row (id='global') holding the global override map.

    custom_instructions NULL means "no global overrides".
    """
    __tablename__ = "global_settings"

    id = Column(Text, primary_key=True, default="global")
    custom_instructions = Column(PortableJSONB, nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_by = Column(Text, ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True)


class OrganizationInstructions(Base):
    """Override map for one organization; deleted together with it."""
    __tablename__ = "organization_instructions"

    id = Column(Text, primary_key=True, default=new_id)
    organization_id = Column(
        Text,
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    instructions = Column(PortableJSONB, nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_by = Column(Text, ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True)
