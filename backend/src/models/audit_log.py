"""AdminLog SQLAlchemy model"""

from sqlalchemy import Column, Text, DateTime, Index

from .base import Base, PortableJSONB, new_id, utcnow


class AdminLog(Base):
    """AdminLog model for immutable records of privileged actions.

    Entries are append-only and are never updated or deleted by this package.
    admin_id and target_user_id are plain references: they must survive the
    purge of the accounts they point at.
    """
    __tablename__ = "admin_log"
    __table_args__ = (
        Index("ix_admin_log_created_at", "created_at"),
        Index("ix_admin_log_admin_id", "admin_id"),
    )

    id = Column(Text, primary_key=True, default=new_id)
    admin_id = Column(Text, nullable=True)
    action = Column(Text, nullable=False)
    target_user_id = Column(Text, nullable=True)
    details = Column(PortableJSONB, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
