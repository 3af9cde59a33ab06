"""Pytest fixtures for the tenant admin core.

Provides reusable test fixtures for:
- An in-memory row store (same table layout as the SQLAlchemy models)
- A fake session whose signed-in account can be switched per test
- A manually advanced clock for cache TTL tests
- A seeded tenant landscape with accounts in every role

Usage:
    @pytest.mark.asyncio
    async def test_owner_deletes_org(core, session, tenants):
        session.sign_in(tenants.owner)
        result = await core.deletion.delete_organization(tenants.org_a)
        assert result.success
"""

import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import pytest

backend_src = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(backend_src))

from auth.session import InMemoryAuthSession
from config import Settings
from dependencies import build_core
from storage.memory_store import InMemoryRowStore
from storage.ports import (
    ORGANIZATION_INSTRUCTIONS,
    ORGANIZATION_MEMBERS,
    ORGANIZATIONS,
    PROFILES,
    PROJECT_DATA,
    PROJECTS,
    USER_SETTINGS,
)


class FakeClock:
    """Monotonic clock advanced by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def settings() -> Settings:
    return Settings(DATABASE_URL="sqlite+aiosqlite:///:memory:", LOG_JSON=False)


@pytest.fixture
def store() -> InMemoryRowStore:
    return InMemoryRowStore()


@pytest.fixture
def session() -> InMemoryAuthSession:
    return InMemoryAuthSession()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def core(store, session, settings, clock):
    return build_core(store, session, settings=settings, clock=clock)


# ----------------------------------------------------------------------
# Seeding helpers
# ----------------------------------------------------------------------


def seed_account(
    store: InMemoryRowStore,
    account_id: str,
    role: str = "user",
    email: Optional[str] = None,
    active_org: Optional[str] = None,
    **fields,
) -> dict:
    store.seed(USER_SETTINGS, {"user_id": account_id})
    return store.seed(
        PROFILES,
        {
            "id": account_id,
            "email": email or f"{account_id}@example.com",
            "role": role,
            "active_organization_id": active_org,
            **fields,
        },
    )[0]


def seed_org(store: InMemoryRowStore, org_id: str, name: str, owner_id: str, **members: str) -> dict:
    """Organization with its owner, further members (user_id=org_role) and an instruction set."""
    org = store.seed(
        ORGANIZATIONS, {"id": org_id, "name": name, "slug": org_id, "created_by": owner_id}
    )[0]
    store.seed(ORGANIZATION_MEMBERS, {"organization_id": org_id, "user_id": owner_id, "org_role": "owner"})
    for user_id, org_role in members.items():
        store.seed(ORGANIZATION_MEMBERS, {"organization_id": org_id, "user_id": user_id, "org_role": org_role})
    store.seed(ORGANIZATION_INSTRUCTIONS, {"organization_id": org_id, "instructions": None})
    return org


def seed_project(
    store: InMemoryRowStore,
    project_id: str,
    owner_id: str,
    org_id: Optional[str] = None,
    languages: tuple = ("en", "sl"),
) -> dict:
    project = store.seed(
        PROJECTS, {"id": project_id, "owner_id": owner_id, "organization_id": org_id}
    )[0]
    for language in languages:
        store.seed(PROJECT_DATA, {"project_id": project_id, "language": language, "data": {"title": project_id}})
    return project


def rows_where(store: InMemoryRowStore, table: str, **eq) -> list[dict]:
    return [row for row in store.rows(table) if all(row.get(k) == v for k, v in eq.items())]


@dataclass
class Tenants:
    root: str = "root"          # superadmin
    root2: str = "root2"        # second superadmin
    ada: str = "ada"            # global admin, no memberships
    owner: str = "owen"         # owner of org-a
    org_admin: str = "alma"     # admin of org-a
    member: str = "mia"         # member of org-a only
    shared: str = "nils"        # member of org-a and org-b
    owner_b: str = "bea"        # owner of org-b
    loner: str = "lea"          # no memberships
    org_a: str = "org-a"
    org_b: str = "org-b"


@pytest.fixture
def tenants(store) -> Tenants:
    """
    Accounts:
        root, root2 (superadmin), ada (admin), owen, alma, mia, nils, bea, lea (user)

    Organizations:
        org-a "Acme": owen owner, alma admin, mia member, nils member
        org-b "Beta": bea owner, nils member

    Projects:
        p-owen-a (owen, org-a), p-mia-a (mia, org-a), p-mia-own (mia, personal),
        p-nils-a (nils, org-a), p-nils-b (nils, org-b), p-bea-b (bea, org-b)
    """
    t = Tenants()
    seed_account(store, t.root, role="superadmin")
    seed_account(store, t.root2, role="superadmin")
    seed_account(store, t.ada, role="admin")
    seed_account(store, t.owner, active_org=t.org_a, display_name="Owen Owner")
    seed_account(store, t.org_admin, active_org=t.org_a, first_name="Alma", last_name="Admin")
    seed_account(store, t.member, active_org=t.org_a)
    seed_account(store, t.shared, active_org=t.org_b)
    seed_account(store, t.owner_b, active_org=t.org_b)
    seed_account(store, t.loner)

    seed_org(store, t.org_a, "Acme", t.owner, **{t.org_admin: "admin", t.member: "member", t.shared: "member"})
    seed_org(store, t.org_b, "Beta", t.owner_b, **{t.shared: "member"})

    seed_project(store, "p-owen-a", t.owner, t.org_a)
    seed_project(store, "p-mia-a", t.member, t.org_a)
    seed_project(store, "p-mia-own", t.member)
    seed_project(store, "p-nils-a", t.shared, t.org_a)
    seed_project(store, "p-nils-b", t.shared, t.org_b)
    seed_project(store, "p-bea-b", t.owner_b, t.org_b)
    return t
