"""SQLAlchemy models for the tenant admin core"""

from .base import Base
from .account import Account
from .account_settings import AccountSettings
from .org import Organization
from .membership import OrganizationMember
from .project import Project, ProjectData
from .instructions import GlobalSettings, OrganizationInstructions
from .audit_log import AdminLog

__all__ = [
    "Base",
    "Account",
    "AccountSettings",
    "Organization",
    "OrganizationMember",
    "Project",
    "ProjectData",
    "GlobalSettings",
    "OrganizationInstructions",
    "AdminLog",
]
