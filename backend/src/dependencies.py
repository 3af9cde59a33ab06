"""Service wiring for one session.

Every service takes the row store and the session port explicitly; this
module builds a consistent set of them sharing one audit logger, one
organization store (with its active-organization and override caches) and one
override resolver.

Example:
    engine = get_engine()
    await init_models(engine)
    core = build_core(SqlAlchemyRowStore(engine), session)

    result = await core.deletion.delete_organization(org_id)
    if not result.success:
        show_error(result.message)
"""

import time
from dataclasses import dataclass
from typing import Optional

from admin.service import AdminService
from audit.service import AuditLogger
from auth.session import AuthSessionPort
from config import Settings, get_settings
from database import get_engine
from deletion.service import DeletionService
from instructions.cache import Clock
from instructions.resolver import OverrideResolver
from instructions.service import GlobalInstructionsService
from observability import configure_logging
from storage.ports import RowStorePort
from storage.sqlalchemy_store import SqlAlchemyRowStore
from tenancy.service import OrganizationService


@dataclass
class AdminCore:
    store: RowStorePort
    session: AuthSessionPort
    audit: AuditLogger
    organizations: OrganizationService
    overrides: OverrideResolver
    global_instructions: GlobalInstructionsService
    deletion: DeletionService
    admin: AdminService


def build_core(
    store: RowStorePort,
    session: AuthSessionPort,
    settings: Optional[Settings] = None,
    clock: Clock = time.monotonic,
) -> AdminCore:
    """Wire all services of one session around `store` and `session`."""
    settings = settings or get_settings()
    audit = AuditLogger(store)
    organizations = OrganizationService(store, session, audit, settings=settings, clock=clock)
    overrides = OverrideResolver(store, organizations, settings=settings, clock=clock)

    return AdminCore(
        store=store,
        session=session,
        audit=audit,
        organizations=organizations,
        overrides=overrides,
        global_instructions=GlobalInstructionsService(store, session, audit, overrides, settings=settings),
        deletion=DeletionService(store, session, audit, organizations=organizations),
        admin=AdminService(store, session, audit, settings=settings),
    )


def build_database_core(session: AuthSessionPort, settings: Optional[Settings] = None) -> AdminCore:
    """Core backed by the configured database (DATABASE_URL).

    Also configures process logging from LOG_LEVEL / LOG_JSON.
    """
    settings = settings or get_settings()
    configure_logging(level=settings.LOG_LEVEL, json_format=settings.LOG_JSON)
    return build_core(SqlAlchemyRowStore(get_engine()), session, settings=settings)
