"""Account (profile) SQLAlchemy model"""

from sqlalchemy import Column, Text, DateTime, ForeignKey, CheckConstraint
from sqlalchemy.orm import validates
import re

from .base import Base, utcnow


class Account(Base):
    """Account model representing one end user.

    The row id equals the id of the external credential record. Signup is
    handled outside this package; here accounts are only read, have their
    role or active organization changed, and are removed by the purge.
    """
    __tablename__ = "profiles"

    id = Column(Text, primary_key=True)
    email = Column(Text, nullable=True)
    display_name = Column(Text, nullable=True)
    first_name = Column(Text, nullable=True)
    last_name = Column(Text, nullable=True)
    role = Column(Text, nullable=False, default="user")
    active_organization_id = Column(
        Text,
        ForeignKey("organizations.id", ondelete="SET NULL"),
        nullable=True,
    )
    last_sign_in = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        CheckConstraint(
            "role IN ('user', 'admin', 'superadmin')",
            name='ck_profiles_role'
        ),
    )

    @validates('email')
    def validate_email(self, key, value):
        """Basic email format validation"""
        if value is None:
            return value
        if not re.match(r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$', value):
            raise ValueError("Invalid email format")
        return value.lower()
