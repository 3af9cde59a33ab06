"""Per-account settings SQLAlchemy model"""

from sqlalchemy import Column, Text, DateTime, ForeignKey

from .base import Base, PortableJSONB, utcnow


class AccountSettings(Base):
    """One settings row per account, removed by the purge."""
    __tablename__ = "user_settings"

    user_id = Column(Text, ForeignKey("profiles.id", ondelete="CASCADE"), primary_key=True)
    ai_provider = Column(Text, nullable=True, default="gemini")
    model = Column(Text, nullable=True)
    custom_logo = Column(Text, nullable=True)
    custom_instructions = Column(PortableJSONB, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
